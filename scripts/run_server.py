#!/usr/bin/env python
"""Serve the portfolio assistant with Hypercorn."""
import argparse
import asyncio
import os
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from hypercorn.asyncio import serve
from hypercorn.config import Config

from folio import config
from folio.main import app, logger


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the portfolio assistant server.")
    parser.add_argument(
        "--host",
        default=os.environ.get("HOST", "127.0.0.1"),
        help="Host to bind the server to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("PORT", "5000")),
        help="Port to bind the server to (default: 5000)",
    )
    args = parser.parse_args()

    hypercorn_config = Config()
    hypercorn_config.bind = [f"{args.host}:{args.port}"]
    hypercorn_config.loglevel = config.LOG_LEVEL

    logger.info("server_starting", bind=hypercorn_config.bind)
    asyncio.run(serve(app, hypercorn_config))


if __name__ == "__main__":
    main()
