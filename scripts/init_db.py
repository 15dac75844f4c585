"""
Create the CRM tables and load the default product catalog into the database.
"""

from __future__ import annotations

import argparse
import logging

from crm_backend.config import get_settings
from crm_backend.db import PersistentStoreError, SqlStore
from crm_backend.records import ProductRecord
from crm_backend.storage import DEFAULT_PRODUCTS

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Initialize the CRM database")
    parser.add_argument(
        "--database-url",
        type=str,
        default=None,
        help="SQLAlchemy URL (defaults to DATABASE_URL)",
    )
    parser.add_argument(
        "--skip-catalog",
        action="store_true",
        help="Create tables only",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")

    url = args.database_url or get_settings().database_url
    if not url:
        logger.error("No database URL given and DATABASE_URL is not set")
        return 1

    store = SqlStore(url)
    try:
        store.ensure_schema()
        if not args.skip_catalog:
            for product_id, name in enumerate(DEFAULT_PRODUCTS, start=1):
                store.upsert_product(ProductRecord(id=product_id, name=name))
    except PersistentStoreError as exc:
        logger.error("Database initialization failed: %s", exc)
        return 1
    logger.info("Database ready")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
