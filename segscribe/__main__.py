import sys

from segscribe.cli import main

sys.exit(main())
