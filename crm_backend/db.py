"""
Record stores: the authoritative in-memory store and a SQLAlchemy-backed
persistent store that mirrors it.
"""

from __future__ import annotations

import dataclasses
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Generic, Iterator, Optional, Protocol, TypeVar

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from crm_backend.records import (
    CustomerRecord,
    FollowUpRecord,
    ProductRecord,
    clean_changes,
    utcnow,
)


class PersistentStoreError(Exception):
    """Raised when the persistent backend cannot complete an operation."""


class PersistentStore(Protocol):
    """Operations the facade mirrors to an external backend."""

    def ensure_schema(self) -> None:
        ...

    def get_customer(self, customer_id: int) -> Optional[CustomerRecord]:
        ...

    def list_customers(self) -> list[CustomerRecord]:
        ...

    def create_customer(self, record: CustomerRecord) -> CustomerRecord:
        ...

    def update_customer(
        self, customer_id: int, changes: dict
    ) -> Optional[CustomerRecord]:
        ...

    def delete_customer(self, customer_id: int) -> bool:
        ...

    def get_follow_up(self, follow_up_id: int) -> Optional[FollowUpRecord]:
        ...

    def list_follow_ups(self) -> list[FollowUpRecord]:
        ...

    def list_follow_ups_by_customer(self, customer_id: int) -> list[FollowUpRecord]:
        ...

    def create_follow_up(self, record: FollowUpRecord) -> FollowUpRecord:
        ...

    def update_follow_up(
        self, follow_up_id: int, changes: dict
    ) -> Optional[FollowUpRecord]:
        ...

    def delete_follow_up(self, follow_up_id: int) -> bool:
        ...

    def get_product(self, product_id: int) -> Optional[ProductRecord]:
        ...

    def get_product_by_name(self, name: str) -> Optional[ProductRecord]:
        ...

    def list_products(self) -> list[ProductRecord]:
        ...

    def create_product(self, record: ProductRecord) -> ProductRecord:
        ...

    def upsert_product(self, record: ProductRecord) -> ProductRecord:
        ...

    def delete_product(self, product_id: int) -> bool:
        ...


R = TypeVar("R")


class _Table(Generic[R]):
    """Id-keyed rows plus the counter that numbers them."""

    def __init__(self):
        self.rows: Dict[int, R] = {}
        self.next_id = 1

    def allocate_id(self) -> int:
        new_id = self.next_id
        self.next_id += 1
        return new_id

    def reset(self) -> None:
        self.rows.clear()
        self.next_id = 1


class InMemoryStore:
    """Authoritative store for all three entity types.

    Ids come from a per-table counter starting at 1 and are never reused,
    even after the record they named is deleted. No method raises for an
    unknown id: absence is reported as ``None`` (or ``False`` for deletes).
    """

    def __init__(self):
        self.customers: _Table[CustomerRecord] = _Table()
        self.follow_ups: _Table[FollowUpRecord] = _Table()
        self.products: _Table[ProductRecord] = _Table()

    def reset(self) -> None:
        """Clear all tables and counters (useful in tests)."""
        self.customers.reset()
        self.follow_ups.reset()
        self.products.reset()

    # -------------------------- customers --------------------------
    def get_customer(self, customer_id: int) -> Optional[CustomerRecord]:
        return self.customers.rows.get(customer_id)

    def list_customers(self) -> list[CustomerRecord]:
        return list(self.customers.rows.values())

    def create_customer(self, data: dict) -> CustomerRecord:
        payload = clean_changes(CustomerRecord, data)
        payload["purchased_products"] = list(payload.get("purchased_products") or [])
        record = CustomerRecord(id=self.customers.allocate_id(), **payload)
        self.customers.rows[record.id] = record
        return record

    def update_customer(
        self, customer_id: int, changes: dict
    ) -> Optional[CustomerRecord]:
        existing = self.customers.rows.get(customer_id)
        if not existing:
            return None
        payload = clean_changes(CustomerRecord, changes)
        if payload.get("purchased_products") is None:
            payload["purchased_products"] = existing.purchased_products
        payload["purchased_products"] = list(payload["purchased_products"])
        updated = dataclasses.replace(existing, **payload)
        self.customers.rows[customer_id] = updated
        return updated

    def delete_customer(self, customer_id: int) -> bool:
        if self.customers.rows.pop(customer_id, None) is None:
            return False
        orphaned = [
            follow_up_id
            for follow_up_id, follow_up in self.follow_ups.rows.items()
            if follow_up.customer_id == customer_id
        ]
        for follow_up_id in orphaned:
            del self.follow_ups.rows[follow_up_id]
        return True

    # -------------------------- follow-ups --------------------------
    def get_follow_up(self, follow_up_id: int) -> Optional[FollowUpRecord]:
        return self.follow_ups.rows.get(follow_up_id)

    def list_follow_ups(self) -> list[FollowUpRecord]:
        return list(self.follow_ups.rows.values())

    def list_follow_ups_by_customer(self, customer_id: int) -> list[FollowUpRecord]:
        return [
            follow_up
            for follow_up in self.follow_ups.rows.values()
            if follow_up.customer_id == customer_id
        ]

    def create_follow_up(self, data: dict) -> FollowUpRecord:
        payload = clean_changes(FollowUpRecord, data)
        if payload.get("status") is None:
            payload.pop("status", None)
        record = FollowUpRecord(id=self.follow_ups.allocate_id(), **payload)
        self.follow_ups.rows[record.id] = record
        return record

    def update_follow_up(
        self, follow_up_id: int, changes: dict
    ) -> Optional[FollowUpRecord]:
        existing = self.follow_ups.rows.get(follow_up_id)
        if not existing:
            return None
        payload = clean_changes(FollowUpRecord, changes)
        if payload.get("status") is None:
            payload.pop("status", None)
        updated = dataclasses.replace(existing, **payload)
        self.follow_ups.rows[follow_up_id] = updated
        return updated

    def delete_follow_up(self, follow_up_id: int) -> bool:
        return self.follow_ups.rows.pop(follow_up_id, None) is not None

    # -------------------------- products --------------------------
    def get_product(self, product_id: int) -> Optional[ProductRecord]:
        return self.products.rows.get(product_id)

    def get_product_by_name(self, name: str) -> Optional[ProductRecord]:
        wanted = name.lower()
        for product in self.products.rows.values():
            if product.name.lower() == wanted:
                return product
        return None

    def list_products(self) -> list[ProductRecord]:
        return list(self.products.rows.values())

    def create_product(self, data: dict) -> ProductRecord:
        payload = clean_changes(ProductRecord, data)
        record = ProductRecord(id=self.products.allocate_id(), **payload)
        self.products.rows[record.id] = record
        return record

    def delete_product(self, product_id: int) -> bool:
        return self.products.rows.pop(product_id, None) is not None


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back out.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlStore:
    """
    SQLAlchemy-backed mirror. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).

    Rows are inserted with the ids the in-memory store assigned. An id that
    already has a row is an error, never an overwrite; only the catalog load
    (``upsert_product``) replaces existing rows. Every SQLAlchemy failure
    surfaces as ``PersistentStoreError``.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.Session() as session:
                yield session
        except SQLAlchemyError as exc:
            raise PersistentStoreError(str(exc)) from exc

    def ensure_schema(self) -> None:
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            raise PersistentStoreError(str(exc)) from exc

    def _to_customer(self, row: "CustomerRow") -> CustomerRecord:
        return CustomerRecord(
            id=row.id,
            name=row.name,
            phone=row.phone,
            email=row.email,
            address=row.address,
            notes=row.notes,
            purchased_products=list(row.purchased_products or []),
            rating=row.rating,
            last_visit=_aware(row.last_visit),
            created_at=_aware(row.created_at),
        )

    def _to_follow_up(self, row: "FollowUpRow") -> FollowUpRecord:
        return FollowUpRecord(
            id=row.id,
            customer_id=row.customer_id,
            notes=row.notes,
            status=row.status,
            scheduled_date=_aware(row.scheduled_date),
            completed_at=_aware(row.completed_at),
            feedback=row.feedback,
            created_at=_aware(row.created_at),
        )

    def _to_product(self, row: "ProductRow") -> ProductRecord:
        return ProductRecord(id=row.id, name=row.name)

    # -------------------------- customers --------------------------
    def get_customer(self, customer_id: int) -> Optional[CustomerRecord]:
        with self._session() as session:
            row = session.get(CustomerRow, customer_id)
            return self._to_customer(row) if row else None

    def list_customers(self) -> list[CustomerRecord]:
        with self._session() as session:
            rows = session.execute(select(CustomerRow).order_by(CustomerRow.id))
            return [self._to_customer(row) for row in rows.scalars()]

    def create_customer(self, record: CustomerRecord) -> CustomerRecord:
        with self._session() as session:
            row = CustomerRow(**record.as_dict())
            session.add(row)
            session.commit()
            return self._to_customer(row)

    def update_customer(
        self, customer_id: int, changes: dict
    ) -> Optional[CustomerRecord]:
        with self._session() as session:
            row = session.get(CustomerRow, customer_id)
            if not row:
                return None
            for key, value in clean_changes(CustomerRecord, changes).items():
                if key == "purchased_products":
                    if value is None:
                        continue
                    value = list(value)
                setattr(row, key, value)
            session.commit()
            return self._to_customer(row)

    def delete_customer(self, customer_id: int) -> bool:
        with self._session() as session:
            result = session.execute(
                delete(CustomerRow).where(CustomerRow.id == customer_id)
            )
            if result.rowcount == 0:
                session.rollback()
                return False
            session.execute(
                delete(FollowUpRow).where(FollowUpRow.customer_id == customer_id)
            )
            session.commit()
            return True

    # -------------------------- follow-ups --------------------------
    def get_follow_up(self, follow_up_id: int) -> Optional[FollowUpRecord]:
        with self._session() as session:
            row = session.get(FollowUpRow, follow_up_id)
            return self._to_follow_up(row) if row else None

    def list_follow_ups(self) -> list[FollowUpRecord]:
        with self._session() as session:
            rows = session.execute(select(FollowUpRow).order_by(FollowUpRow.id))
            return [self._to_follow_up(row) for row in rows.scalars()]

    def list_follow_ups_by_customer(self, customer_id: int) -> list[FollowUpRecord]:
        with self._session() as session:
            stmt = (
                select(FollowUpRow)
                .where(FollowUpRow.customer_id == customer_id)
                .order_by(FollowUpRow.id)
            )
            return [self._to_follow_up(row) for row in session.execute(stmt).scalars()]

    def create_follow_up(self, record: FollowUpRecord) -> FollowUpRecord:
        with self._session() as session:
            row = FollowUpRow(**record.as_dict())
            session.add(row)
            session.commit()
            return self._to_follow_up(row)

    def update_follow_up(
        self, follow_up_id: int, changes: dict
    ) -> Optional[FollowUpRecord]:
        with self._session() as session:
            row = session.get(FollowUpRow, follow_up_id)
            if not row:
                return None
            for key, value in clean_changes(FollowUpRecord, changes).items():
                if key == "status" and value is None:
                    continue
                setattr(row, key, value)
            session.commit()
            return self._to_follow_up(row)

    def delete_follow_up(self, follow_up_id: int) -> bool:
        with self._session() as session:
            result = session.execute(
                delete(FollowUpRow).where(FollowUpRow.id == follow_up_id)
            )
            session.commit()
            return result.rowcount > 0

    # -------------------------- products --------------------------
    def get_product(self, product_id: int) -> Optional[ProductRecord]:
        with self._session() as session:
            row = session.get(ProductRow, product_id)
            return self._to_product(row) if row else None

    def get_product_by_name(self, name: str) -> Optional[ProductRecord]:
        with self._session() as session:
            stmt = (
                select(ProductRow)
                .where(func.lower(ProductRow.name) == name.lower())
                .order_by(ProductRow.id)
                .limit(1)
            )
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_product(row) if row else None

    def list_products(self) -> list[ProductRecord]:
        with self._session() as session:
            rows = session.execute(select(ProductRow).order_by(ProductRow.id))
            return [self._to_product(row) for row in rows.scalars()]

    def create_product(self, record: ProductRecord) -> ProductRecord:
        with self._session() as session:
            row = ProductRow(**record.as_dict())
            session.add(row)
            session.commit()
            return self._to_product(row)

    def upsert_product(self, record: ProductRecord) -> ProductRecord:
        with self._session() as session:
            row = session.merge(ProductRow(**record.as_dict()))
            session.commit()
            return self._to_product(row)

    def delete_product(self, product_id: int) -> bool:
        with self._session() as session:
            result = session.execute(
                delete(ProductRow).where(ProductRow.id == product_id)
            )
            session.commit()
            return result.rowcount > 0


Base = declarative_base()


class ProductRow(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(Text, nullable=False, unique=True)


class CustomerRow(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(Text, nullable=False)
    phone = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    purchased_products = Column(JSON, nullable=False, default=list)
    rating = Column(Integer, nullable=True)
    last_visit = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class FollowUpRow(Base):
    __tablename__ = "follow_ups"

    id = Column(Integer, primary_key=True, autoincrement=False)
    customer_id = Column(Integer, nullable=False, index=True)
    notes = Column(Text, nullable=False)
    status = Column(String(32), nullable=False, default="pending")
    scheduled_date = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    feedback = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
