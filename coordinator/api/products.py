"""Product definition endpoints"""
from fastapi import APIRouter, Depends
from typing import List

from coordinator.core.catalog import CatalogService
from coordinator.core.dependencies import get_catalog, get_state
from coordinator.core.state_manager import StateManager
from shared.models import Product

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=List[Product])
async def list_products(state: StateManager = Depends(get_state)):
    return state.find(Product, order_by="created_at")


@router.post("", response_model=Product)
async def save_product(product: Product,
                       catalog: CatalogService = Depends(get_catalog)):
    """Create or replace a product"""
    return await catalog.save_product(product)


@router.get("/{product_id}", response_model=Product)
async def get_product(product_id: str,
                      state: StateManager = Depends(get_state)):
    return await state.require(Product, product_id)


@router.delete("/{product_id}")
async def delete_product(product_id: str,
                         catalog: CatalogService = Depends(get_catalog)):
    await catalog.delete_product(product_id)
    return {"message": "Product deleted", "product_id": product_id}
