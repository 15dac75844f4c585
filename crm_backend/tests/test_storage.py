import os
import tempfile
import unittest
from datetime import datetime, timezone

from crm_backend.db import PersistentStoreError, SqlStore
from crm_backend.storage import DEFAULT_PRODUCTS, StorageFacade


class UnreachableStore:
    """Persistent store whose every call fails."""

    def __init__(self):
        self.calls = []

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            self.calls.append(name)
            raise PersistentStoreError(f"{name}: connection refused")

        return fail


def _strip_created_at(value):
    if isinstance(value, list):
        return [_strip_created_at(item) for item in value]
    if hasattr(value, "as_dict"):
        data = value.as_dict()
        data.pop("created_at", None)
        return data
    return value


WHEN = datetime(2026, 11, 1, 10, 0, tzinfo=timezone.utc)


async def _exercise(storage: StorageFacade) -> list:
    """Run a fixed sequence of operations and collect every result."""
    results = []
    results.append(await storage.list_products())
    results.append(await storage.create_customer({"name": "Asha", "phone": "555-1111"}))
    results.append(
        await storage.create_customer(
            {"name": "Ravi", "phone": "555-2222", "purchased_products": [1, 2]}
        )
    )
    results.append(await storage.update_customer(2, {"notes": "repeat buyer"}))
    results.append(await storage.update_customer(2, {"purchased_products": []}))
    results.append(await storage.update_customer(9, {"notes": "missing"}))
    results.append(
        await storage.create_follow_up(
            {"customer_id": 1, "notes": "call back", "scheduled_date": WHEN}
        )
    )
    results.append(
        await storage.create_follow_up(
            {"customer_id": 2, "notes": "visit", "scheduled_date": WHEN}
        )
    )
    results.append(await storage.update_follow_up(1, {"status": "completed"}))
    results.append(await storage.get_follow_up(1))
    results.append(await storage.list_follow_ups_by_customer(1))
    results.append(await storage.delete_customer(1))
    results.append(await storage.delete_customer(1))
    results.append(await storage.list_follow_ups())
    results.append(await storage.delete_follow_up(2))
    results.append(await storage.get_product_by_name("tulsi"))
    results.append(await storage.create_product({"name": "Moringa"}))
    results.append(await storage.delete_product(3))
    results.append(await storage.get_product(3))
    results.append(await storage.list_customers())
    results.append(await storage.get_customer(2))
    return results


class InMemoryFacadeTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.storage = StorageFacade()

    async def test_seeds_default_catalog(self):
        self.assertFalse(self.storage.connected)
        products = await self.storage.list_products()
        self.assertEqual([p.id for p in products], list(range(1, 11)))
        self.assertEqual([p.name for p in products], list(DEFAULT_PRODUCTS))

        created = await self.storage.create_product({"name": "Moringa"})
        self.assertEqual(created.id, 11)

    async def test_example_scenario(self):
        customer = await self.storage.create_customer(
            {"name": "Asha", "phone": "555-1111"}
        )
        self.assertEqual(customer.id, 1)
        self.assertEqual(customer.purchased_products, [])
        self.assertIsNotNone(customer.created_at)

        follow_up = await self.storage.create_follow_up(
            {
                "customer_id": 1,
                "notes": "call back",
                "status": "pending",
                "scheduled_date": WHEN,
            }
        )
        self.assertEqual((follow_up.id, follow_up.customer_id), (1, 1))

        self.assertTrue(await self.storage.delete_customer(1))
        self.assertEqual(await self.storage.list_follow_ups_by_customer(1), [])
        self.assertIsNone(await self.storage.get_customer(1))

    async def test_update_ignores_immutable_fields(self):
        customer = await self.storage.create_customer(
            {"name": "Asha", "phone": "555-1111"}
        )
        updated = await self.storage.update_customer(
            customer.id,
            {"id": 50, "created_at": datetime(1999, 1, 1, tzinfo=timezone.utc)},
        )
        self.assertEqual(updated.id, customer.id)
        self.assertEqual(updated.created_at, customer.created_at)


class UnreachableBackendTests(unittest.IsolatedAsyncioTestCase):
    async def test_degraded_mode_matches_memory_only(self):
        backend = UnreachableStore()
        degraded = StorageFacade(persistent=backend)
        self.assertTrue(degraded.connected)
        with self.assertLogs("crm_backend.storage", level="ERROR"):
            await degraded.open()
            degraded_results = await _exercise(degraded)

        baseline = await _exercise(StorageFacade())
        self.assertEqual(
            _strip_created_at(degraded_results), _strip_created_at(baseline)
        )
        self.assertIn("create_customer", backend.calls)
        self.assertIn("list_products", backend.calls)


class SqlBackedFacadeTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        url = "sqlite:///" + os.path.join(self.tmpdir.name, "crm.db")
        self.backend = SqlStore(url)
        self.storage = StorageFacade(persistent=self.backend)

    def tearDown(self):
        self.backend.engine.dispose()
        self.tmpdir.cleanup()

    async def test_open_mirrors_catalog(self):
        await self.storage.open()
        self.assertEqual(len(self.backend.list_products()), 10)

    async def test_writes_are_mirrored_with_memory_ids(self):
        await self.storage.open()
        customer = await self.storage.create_customer(
            {"name": "Asha", "phone": "555-1111", "purchased_products": [4]}
        )
        self.assertEqual(customer.id, 1)
        self.assertEqual(self.backend.get_customer(1).name, "Asha")

        updated = await self.storage.update_customer(1, {"rating": 5})
        self.assertEqual(updated.rating, 5)
        self.assertEqual(updated.purchased_products, [4])

        await self.storage.create_follow_up(
            {"customer_id": 1, "notes": "call back", "scheduled_date": WHEN}
        )
        self.assertTrue(await self.storage.delete_customer(1))
        self.assertEqual(self.backend.list_follow_ups(), [])
        self.assertEqual(self.storage.memory.list_follow_ups(), [])

    async def test_reads_prefer_backend(self):
        await self.storage.open()
        await self.storage.create_customer({"name": "Asha", "phone": "555-1111"})
        self.storage.memory.reset()

        customer = await self.storage.get_customer(1)
        self.assertEqual(customer.name, "Asha")
        self.assertEqual(len(await self.storage.list_products()), 10)

    async def test_update_falls_back_when_backend_row_missing(self):
        # Without open() the backend has no tables, so every call fails.
        with self.assertLogs("crm_backend.storage", level="ERROR"):
            customer = await self.storage.create_customer(
                {"name": "Asha", "phone": "555-1111"}
            )
        self.assertEqual(customer.id, 1)

        self.backend.ensure_schema()
        updated = await self.storage.update_customer(1, {"notes": "new"})
        self.assertEqual(updated.notes, "new")
        self.assertTrue(await self.storage.delete_customer(1))


class RestartedProcessTests(unittest.IsolatedAsyncioTestCase):
    """Two facades over one database, as across a process restart."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.url = "sqlite:///" + os.path.join(self.tmpdir.name, "crm.db")
        self.backends = []

    def tearDown(self):
        for backend in self.backends:
            backend.engine.dispose()
        self.tmpdir.cleanup()

    async def _facade(self) -> StorageFacade:
        backend = SqlStore(self.url)
        self.backends.append(backend)
        storage = StorageFacade(persistent=backend)
        await storage.open()
        return storage

    async def test_new_process_does_not_overwrite_durable_rows(self):
        first = await self._facade()
        await first.create_customer({"name": "Asha", "phone": "555-1111"})
        await first.create_follow_up(
            {"customer_id": 1, "notes": "asha call", "scheduled_date": WHEN}
        )

        second = await self._facade()
        self.assertEqual([c.name for c in await second.list_customers()], ["Asha"])

        with self.assertLogs("crm_backend.storage", level="ERROR"):
            ravi = await second.create_customer({"name": "Ravi", "phone": "555-2222"})
        self.assertEqual((ravi.id, ravi.name), (1, "Ravi"))

        self.assertEqual([c.name for c in await second.list_customers()], ["Asha"])
        follow_ups = await second.list_follow_ups_by_customer(1)
        self.assertEqual([f.notes for f in follow_ups], ["asha call"])
        self.assertEqual(self.backends[0].get_customer(1).name, "Asha")
        self.assertEqual(len(self.backends[0].list_products()), 10)


if __name__ == "__main__":
    unittest.main()
