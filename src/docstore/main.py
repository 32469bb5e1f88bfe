#!/usr/bin/env python3
"""Run the docstore HTTP API under uvicorn."""

from __future__ import annotations

import argparse
import logging

import uvicorn

from docstore.config import Settings, configure_logging
from docstore.runtime import Docstore

logger = logging.getLogger("docstore")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="docstore HTTP API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    logger.info(
        "starting docstore (%s provider) on %s:%d",
        settings.database_provider,
        args.host,
        args.port,
    )

    app = Docstore.create_app("docstore", settings=settings)
    try:
        uvicorn.run(app, host=args.host, port=args.port)
    finally:
        Docstore.reset()


if __name__ == "__main__":
    main()
