"""Command-line entry point: ``python -m sipstatus``."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging

from sipstatus.config import StatusConfig
from sipstatus.exceptions import ConfigError
from sipstatus.service import StatusService

_logger = logging.getLogger("sipstatus")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Stream live PBX extension status to web clients")
    parser.add_argument("--host", default=None, help="Bind address (overrides SERVE_IP).")
    parser.add_argument("--port", type=int, default=None, help="Bind port (overrides SERVE_PORT).")
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Verbose logging and the /test-update endpoint (same as DEBUG=1).",
    )
    parser.add_argument("--env-file", default=None, help="Path to a .env file to load first.")
    return parser.parse_args(argv)


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _run(config: StatusConfig) -> None:
    async with StatusService(config) as service:
        await service.start()
        await service.serve_forever()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    overrides: dict[str, object] = {}
    if args.host:
        overrides["serve_ip"] = args.host
    if args.port is not None:
        overrides["serve_port"] = args.port
    if args.debug:
        overrides["debug"] = True

    try:
        config = StatusConfig.from_env(dotenv_path=args.env_file, **overrides)
    except ConfigError as exc:
        print(f"Configuration error: {exc}")
        return 2

    _configure_logging(config.debug)
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_run(config))
    _logger.info("Shutting down")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
