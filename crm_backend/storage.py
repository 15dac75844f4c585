"""
Storage facade combining the in-memory store with an optional persistent mirror.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi.concurrency import run_in_threadpool

from crm_backend.db import InMemoryStore, PersistentStore
from crm_backend.records import CustomerRecord, FollowUpRecord, ProductRecord

logger = logging.getLogger(__name__)

DEFAULT_PRODUCTS = (
    "Ashwagandha",
    "Triphala",
    "Brahmi",
    "Turmeric",
    "Shilajit",
    "Neem",
    "Amla",
    "Tulsi",
    "Guduchi",
    "Shatavari",
)


class StorageFacade:
    """
    Single entry point for customer, follow-up and product data.

    Writes always land in the in-memory store first, so id assignment and
    cascade deletes never depend on the persistent backend. When a backend
    is configured the write is then mirrored there and the backend's record
    is returned. Reads prefer the backend when configured. Any backend
    failure is logged and answered from memory instead; callers never see it.
    """

    def __init__(self, persistent: Optional[PersistentStore] = None):
        self.memory = InMemoryStore()
        self.persistent = persistent
        self.connected = persistent is not None
        for name in DEFAULT_PRODUCTS:
            self.memory.create_product({"name": name})

    async def open(self) -> None:
        """Prepare the backend schema and mirror the current catalog into it."""
        if not self.connected:
            logger.info("No persistent store configured; using in-memory storage")
            return
        try:
            await run_in_threadpool(self.persistent.ensure_schema)
            for product in self.memory.list_products():
                await run_in_threadpool(self.persistent.upsert_product, product)
        except Exception:
            logger.exception(
                "Persistent store unavailable at startup; serving from memory"
            )
            return
        logger.info("Persistent store ready")

    async def _read(self, operation: str, *args: Any) -> Any:
        local = getattr(self.memory, operation)
        if not self.connected:
            return local(*args)
        try:
            return await run_in_threadpool(getattr(self.persistent, operation), *args)
        except Exception:
            logger.exception("Persistent store error during %s", operation)
            return local(*args)

    async def _mirror(self, operation: str, local_result: Any, *args: Any) -> Any:
        if not self.connected:
            return local_result
        try:
            return await run_in_threadpool(getattr(self.persistent, operation), *args)
        except Exception:
            logger.exception("Persistent store error during %s", operation)
            return local_result

    # -------------------------- customers --------------------------
    async def get_customer(self, customer_id: int) -> Optional[CustomerRecord]:
        return await self._read("get_customer", customer_id)

    async def list_customers(self) -> list[CustomerRecord]:
        return await self._read("list_customers")

    async def create_customer(self, data: dict) -> CustomerRecord:
        record = self.memory.create_customer(data)
        return await self._mirror("create_customer", record, record)

    async def update_customer(
        self, customer_id: int, changes: dict
    ) -> Optional[CustomerRecord]:
        updated = self.memory.update_customer(customer_id, changes)
        mirrored = await self._mirror("update_customer", updated, customer_id, changes)
        return mirrored if mirrored is not None else updated

    async def delete_customer(self, customer_id: int) -> bool:
        deleted = self.memory.delete_customer(customer_id)
        return bool(await self._mirror("delete_customer", deleted, customer_id)) or deleted

    # -------------------------- follow-ups --------------------------
    async def get_follow_up(self, follow_up_id: int) -> Optional[FollowUpRecord]:
        return await self._read("get_follow_up", follow_up_id)

    async def list_follow_ups(self) -> list[FollowUpRecord]:
        return await self._read("list_follow_ups")

    async def list_follow_ups_by_customer(
        self, customer_id: int
    ) -> list[FollowUpRecord]:
        return await self._read("list_follow_ups_by_customer", customer_id)

    async def create_follow_up(self, data: dict) -> FollowUpRecord:
        record = self.memory.create_follow_up(data)
        return await self._mirror("create_follow_up", record, record)

    async def update_follow_up(
        self, follow_up_id: int, changes: dict
    ) -> Optional[FollowUpRecord]:
        updated = self.memory.update_follow_up(follow_up_id, changes)
        mirrored = await self._mirror(
            "update_follow_up", updated, follow_up_id, changes
        )
        return mirrored if mirrored is not None else updated

    async def delete_follow_up(self, follow_up_id: int) -> bool:
        deleted = self.memory.delete_follow_up(follow_up_id)
        return bool(await self._mirror("delete_follow_up", deleted, follow_up_id)) or deleted

    # -------------------------- products --------------------------
    async def get_product(self, product_id: int) -> Optional[ProductRecord]:
        return await self._read("get_product", product_id)

    async def get_product_by_name(self, name: str) -> Optional[ProductRecord]:
        return await self._read("get_product_by_name", name)

    async def list_products(self) -> list[ProductRecord]:
        return await self._read("list_products")

    async def create_product(self, data: dict) -> ProductRecord:
        record = self.memory.create_product(data)
        return await self._mirror("create_product", record, record)

    async def delete_product(self, product_id: int) -> bool:
        deleted = self.memory.delete_product(product_id)
        return bool(await self._mirror("delete_product", deleted, product_id)) or deleted
