"""
Pydantic schemas for the CRM API.

JSON field names are camelCase (``purchasedProducts``, ``createdAt``);
request bodies also accept the snake_case names.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProductCreate(ApiModel):
    name: str = Field(..., min_length=1, max_length=255)


class Product(ApiModel):
    id: int
    name: str


class CustomerCreate(ApiModel):
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    purchased_products: Optional[list[int]] = None
    rating: Optional[int] = None
    last_visit: Optional[datetime] = None


class CustomerUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = Field(default=None, min_length=1)
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    purchased_products: Optional[list[int]] = None
    rating: Optional[int] = None
    last_visit: Optional[datetime] = None


class Customer(ApiModel):
    id: int
    name: str
    phone: str
    email: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    purchased_products: list[int] = Field(default_factory=list)
    rating: Optional[int] = None
    last_visit: Optional[datetime] = None
    created_at: datetime


class FollowUpCreate(ApiModel):
    customer_id: int
    notes: str
    status: str = Field(default="pending", min_length=1, max_length=32)
    scheduled_date: datetime
    completed_at: Optional[datetime] = None
    feedback: Optional[Any] = None


class FollowUpUpdate(ApiModel):
    customer_id: Optional[int] = None
    notes: Optional[str] = None
    status: Optional[str] = Field(default=None, min_length=1, max_length=32)
    scheduled_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    feedback: Optional[Any] = None


class FollowUp(ApiModel):
    id: int
    customer_id: int
    notes: str
    status: str
    scheduled_date: datetime
    completed_at: Optional[datetime] = None
    feedback: Optional[Any] = None
    created_at: datetime
