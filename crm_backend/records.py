"""
Entity records shared by the in-memory store, the SQL store and the facade.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ProductRecord:
    id: int
    name: str

    def as_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


@dataclass
class CustomerRecord:
    id: int
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    purchased_products: list[int] = field(default_factory=list)
    rating: Optional[int] = None
    last_visit: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "notes": self.notes,
            "purchased_products": list(self.purchased_products),
            "rating": self.rating,
            "last_visit": self.last_visit,
            "created_at": self.created_at,
        }


@dataclass
class FollowUpRecord:
    id: int
    customer_id: int
    notes: str
    scheduled_date: datetime
    status: str = "pending"
    completed_at: Optional[datetime] = None
    feedback: Optional[Any] = None
    created_at: datetime = field(default_factory=utcnow)

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "notes": self.notes,
            "status": self.status,
            "scheduled_date": self.scheduled_date,
            "completed_at": self.completed_at,
            "feedback": self.feedback,
            "created_at": self.created_at,
        }


# Fields that are assigned once at creation and never merged from a partial.
IMMUTABLE_FIELDS = frozenset({"id", "created_at"})


def updatable_fields(record_type: type) -> frozenset[str]:
    return frozenset(f.name for f in fields(record_type)) - IMMUTABLE_FIELDS


def clean_changes(record_type: type, changes: dict) -> dict:
    """Drop immutable and unknown keys from an update payload."""
    allowed = updatable_fields(record_type)
    return {key: value for key, value in changes.items() if key in allowed}
