"""
HTTP routes for the CRM API.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from crm_backend.dependencies import get_storage
from crm_backend.schemas import (
    Customer,
    CustomerCreate,
    CustomerUpdate,
    FollowUp,
    FollowUpCreate,
    FollowUpUpdate,
    Product,
    ProductCreate,
)
from crm_backend.storage import StorageFacade

logger = logging.getLogger(__name__)

router = APIRouter()


def _changes(payload, required: tuple[str, ...] = ()) -> dict:
    """Fields the client actually sent; nulls are dropped for required fields."""
    changes = payload.model_dump(exclude_unset=True)
    for name in required:
        if changes.get(name, ...) is None:
            del changes[name]
    return changes


# -------------------------- customers --------------------------
@router.get("/customers", response_model=list[Customer])
async def list_customers(storage: StorageFacade = Depends(get_storage)):
    customers = await storage.list_customers()
    return [Customer.model_validate(customer.as_dict()) for customer in customers]


@router.get("/customers/{customer_id}", response_model=Customer)
async def get_customer(customer_id: int, storage: StorageFacade = Depends(get_storage)):
    customer = await storage.get_customer(customer_id)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return Customer.model_validate(customer.as_dict())


@router.post("/customers", response_model=Customer, status_code=201)
async def create_customer(
    payload: CustomerCreate, storage: StorageFacade = Depends(get_storage)
):
    customer = await storage.create_customer(payload.model_dump())
    return Customer.model_validate(customer.as_dict())


@router.put("/customers/{customer_id}", response_model=Customer)
async def update_customer(
    customer_id: int,
    payload: CustomerUpdate,
    storage: StorageFacade = Depends(get_storage),
):
    changes = _changes(payload, required=("name", "phone"))
    customer = await storage.update_customer(customer_id, changes)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")
    return Customer.model_validate(customer.as_dict())


@router.delete("/customers/{customer_id}", status_code=204)
async def delete_customer(
    customer_id: int, storage: StorageFacade = Depends(get_storage)
):
    if not await storage.delete_customer(customer_id):
        raise HTTPException(status_code=404, detail="Customer not found")
    return Response(status_code=204)


@router.get("/customers/{customer_id}/followups", response_model=list[FollowUp])
async def list_customer_follow_ups(
    customer_id: int, storage: StorageFacade = Depends(get_storage)
):
    follow_ups = await storage.list_follow_ups_by_customer(customer_id)
    return [FollowUp.model_validate(follow_up.as_dict()) for follow_up in follow_ups]


# -------------------------- follow-ups --------------------------
@router.get("/followups", response_model=list[FollowUp])
async def list_follow_ups(storage: StorageFacade = Depends(get_storage)):
    follow_ups = await storage.list_follow_ups()
    return [FollowUp.model_validate(follow_up.as_dict()) for follow_up in follow_ups]


@router.get("/followups/{follow_up_id}", response_model=FollowUp)
async def get_follow_up(
    follow_up_id: int, storage: StorageFacade = Depends(get_storage)
):
    follow_up = await storage.get_follow_up(follow_up_id)
    if not follow_up:
        raise HTTPException(status_code=404, detail="Follow-up not found")
    return FollowUp.model_validate(follow_up.as_dict())


@router.post("/followups", response_model=FollowUp, status_code=201)
async def create_follow_up(
    payload: FollowUpCreate, storage: StorageFacade = Depends(get_storage)
):
    follow_up = await storage.create_follow_up(payload.model_dump())
    return FollowUp.model_validate(follow_up.as_dict())


@router.put("/followups/{follow_up_id}", response_model=FollowUp)
async def update_follow_up(
    follow_up_id: int,
    payload: FollowUpUpdate,
    storage: StorageFacade = Depends(get_storage),
):
    changes = _changes(
        payload, required=("customer_id", "notes", "status", "scheduled_date")
    )
    follow_up = await storage.update_follow_up(follow_up_id, changes)
    if not follow_up:
        raise HTTPException(status_code=404, detail="Follow-up not found")
    return FollowUp.model_validate(follow_up.as_dict())


@router.delete("/followups/{follow_up_id}", status_code=204)
async def delete_follow_up(
    follow_up_id: int, storage: StorageFacade = Depends(get_storage)
):
    if not await storage.delete_follow_up(follow_up_id):
        raise HTTPException(status_code=404, detail="Follow-up not found")
    return Response(status_code=204)


# -------------------------- products --------------------------
@router.get("/products", response_model=list[Product])
async def list_products(storage: StorageFacade = Depends(get_storage)):
    products = await storage.list_products()
    return [Product.model_validate(product.as_dict()) for product in products]


@router.get("/products/{product_id}", response_model=Product)
async def get_product(product_id: int, storage: StorageFacade = Depends(get_storage)):
    product = await storage.get_product(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return Product.model_validate(product.as_dict())


@router.post("/products", response_model=Product, status_code=201)
async def create_product(
    payload: ProductCreate, storage: StorageFacade = Depends(get_storage)
):
    """
    Uniqueness is a lookup-then-create; the store itself does not enforce it.
    """
    name = payload.name
    if await storage.get_product_by_name(name):
        raise HTTPException(status_code=400, detail=f'Product "{name}" already exists')
    product = await storage.create_product({"name": name})
    logger.info("Created product %s (%d)", product.name, product.id)
    return Product.model_validate(product.as_dict())


@router.delete("/products/{product_id}", status_code=204)
async def delete_product(product_id: int, storage: StorageFacade = Depends(get_storage)):
    if not await storage.delete_product(product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    return Response(status_code=204)
