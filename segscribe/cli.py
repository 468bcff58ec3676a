"""Command line entry points."""

import argparse
import asyncio
import sys
from typing import Optional, Sequence

import httpx

from segscribe.config import settings
from segscribe.database import AsyncSessionLocal, engine
from segscribe.logging_config import get_logger, setup_logging
from segscribe.migrations_utils import initialize_database

logger = get_logger("cli")


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run(
        "segscribe.main:create_app",
        factory=True,
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_config=None,
    )
    return 0


def _default_server_url() -> str:
    host = "127.0.0.1" if settings.host in ("0.0.0.0", "::") else settings.host
    return f"http://{host}:{settings.port}"


async def _server_is_running(
    base_url: str, transport: Optional[httpx.AsyncBaseTransport] = None
) -> bool:
    try:
        async with httpx.AsyncClient(
            base_url=base_url, timeout=5.0, transport=transport
        ) as client:
            response = await client.get("/health")
    except httpx.TransportError:
        return False
    return response.is_success


async def _request_server_sweep(
    base_url: str, transport: Optional[httpx.AsyncBaseTransport] = None
) -> int:
    """Ask the running server to sweep, so events reach its WebSocket clients."""
    try:
        async with httpx.AsyncClient(
            base_url=base_url, timeout=30.0, transport=transport
        ) as client:
            response = await client.post("/speech-segments/resubmit-failed")
            response.raise_for_status()
    except httpx.TransportError as exc:
        logger.error("Could not reach server at %s: %s", base_url, exc)
        print(
            f"Server at {base_url} is not reachable. "
            "Use --offline to resubmit while the server is stopped.",
            file=sys.stderr,
        )
        return 1
    except httpx.HTTPStatusError as exc:
        logger.error("Server rejected resubmission request: %s", exc)
        print(f"Server returned {exc.response.status_code}.", file=sys.stderr)
        return 1

    queued = response.json()["queued"]
    print(f"Queued {queued} failed transcription(s) for resubmission on {base_url}.")
    return 0


async def _resubmit_offline(
    base_url: str, transport: Optional[httpx.AsyncBaseTransport] = None
) -> int:
    """Resubmit in this process; only allowed while no server is running.

    Events from a local pipeline have no subscribers, so running this next to
    a live server would hide state changes from its clients.
    """
    if await _server_is_running(base_url, transport):
        print(
            f"Server at {base_url} is running; resubmit through it instead of --offline.",
            file=sys.stderr,
        )
        return 1

    from segscribe.main import build_pipeline

    pipeline = build_pipeline(session_factory=AsyncSessionLocal)
    await pipeline.queue.start()
    try:
        queued = await pipeline.sweeper.sweep()
        await pipeline.queue.join()
    finally:
        await pipeline.queue.stop()
    logger.info("All failed transcriptions have been processed (%s resubmitted).", queued)
    print(f"Resubmitted {queued} failed transcription(s).")
    return 0


async def _resubmit_failed(args: argparse.Namespace) -> int:
    base_url = args.url or _default_server_url()
    if args.offline:
        return await _resubmit_offline(base_url)
    return await _request_server_sweep(base_url)


async def _init_db() -> int:
    await initialize_database(engine)
    print("Database schema initialized.")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="segscribe", description=__doc__)
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP/WebSocket server")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    resubmit = sub.add_parser(
        "resubmit-failed",
        help="Ask the running server to resubmit failed transcriptions",
    )
    resubmit.add_argument(
        "--url", default=None, help="Server base URL (default: from HOST/PORT settings)"
    )
    resubmit.add_argument(
        "--offline",
        action="store_true",
        help="Resubmit in this process and wait for the attempts; refused while the server is up",
    )
    sub.add_parser("init-db", help="Create database tables from the models")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()
    if args.command == "serve":
        return _serve(args)
    if args.command == "resubmit-failed":
        return asyncio.run(_resubmit_failed(args))
    if args.command == "init-db":
        return asyncio.run(_init_db())
    return 2


if __name__ == "__main__":
    sys.exit(main())
