"""
Run the CRM API with uvicorn.
"""

from __future__ import annotations

import argparse
import logging

import uvicorn

from crm_backend.app import create_app
from crm_backend.config import get_settings

logger = logging.getLogger(__name__)


def main() -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="CRM backend server")
    parser.add_argument(
        "--host",
        type=str,
        default=settings.host,
        help="Interface to bind",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help="Port to listen on",
    )
    parser.add_argument(
        "--in-memory",
        action="store_true",
        help="Ignore DATABASE_URL and keep all data in memory",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    if args.in_memory:
        settings = settings.model_copy(update={"use_in_memory_backends": True})

    app = create_app(settings)
    logger.info("Serving on %s:%d", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
