"""
api/routes/v1/products.py -- Product catalog endpoints.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET    /api/v1/products          -- list all products (public)
  GET    /api/v1/products/mine     -- caller's products (requires auth)
  POST   /api/v1/products          -- create; owner = caller (requires auth)
  PUT    /api/v1/products/{id}     -- partial update (owner or admin)
  DELETE /api/v1/products/{id}     -- delete (owner or admin)

Ownership:
  PUT/DELETE use authorize(OWNER_OR_ADMIN, owner_of=_product_owner). The owner
  id is read from the store inside the dependency, immediately before the
  decision. A non-admin gets the same 403 for a product owned by someone else
  and for a product id that does not exist; admins get 404 for the latter.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from api.limiter import limiter
from api.models import ProductCreate, ProductResponse, ProductUpdate
from auth.dependencies import authorize
from auth.models import CallerContext
from auth.policy import EndpointClass
from catalog.models import Product
from catalog.store import ProductStore
from core.config import get_settings

router = APIRouter()

_WRITE_LIMIT = get_settings().write_rate_limit


def _product_owner(request: Request) -> Optional[str]:
    store: ProductStore = request.app.state.product_store
    return store.get_owner_id(request.path_params["product_id"])


require_caller = authorize(EndpointClass.AUTHENTICATED)
require_owner_or_admin = authorize(EndpointClass.OWNER_OR_ADMIN, owner_of=_product_owner)


@router.get("/products", response_model=list[ProductResponse], dependencies=[Depends(authorize(EndpointClass.PUBLIC))])
def list_products(request: Request) -> list[ProductResponse]:
    """Return every product with its owner's display name."""
    store: ProductStore = request.app.state.product_store
    user_store = request.app.state.user_store
    names: dict[str, Optional[str]] = {}
    rows = []
    for product in store.list_products():
        if product.owner_id not in names:
            owner = user_store.get_by_id(product.owner_id)
            names[product.owner_id] = owner.name if owner else None
        rows.append(ProductResponse.from_product(product, names[product.owner_id]))
    return rows


@router.get("/products/mine", response_model=list[ProductResponse])
def list_my_products(request: Request, caller: CallerContext = Depends(require_caller)) -> list[ProductResponse]:
    store: ProductStore = request.app.state.product_store
    owner = request.app.state.user_store.get_by_id(caller.identity_id)
    owner_name = owner.name if owner else None
    return [ProductResponse.from_product(p, owner_name) for p in store.list_by_owner(caller.identity_id)]


@limiter.limit(_WRITE_LIMIT)
@router.post("/products", response_model=ProductResponse, status_code=201)
def create_product(
    request: Request,
    body: ProductCreate,
    caller: CallerContext = Depends(require_caller),
) -> ProductResponse:
    """Create a product owned by the caller. Any owner field in the body is ignored."""
    store: ProductStore = request.app.state.product_store
    product_id = store.create_product(
        Product(
            name=body.name,
            description=body.description,
            price=body.price,
            owner_id=caller.identity_id,
        )
    )
    return ProductResponse.from_product(store.get_product(product_id))


@limiter.limit(_WRITE_LIMIT)
@router.put("/products/{product_id}", response_model=ProductResponse)
def update_product(
    request: Request,
    product_id: str,
    body: ProductUpdate,
    caller: CallerContext = Depends(require_owner_or_admin),
) -> ProductResponse:
    """Update name, description or price. Ownership is never changed."""
    store: ProductStore = request.app.state.product_store
    changes = body.changes()
    if not store.update_product(product_id, **changes):
        raise HTTPException(status_code=404, detail="Product not found.")
    return ProductResponse.from_product(store.get_product(product_id))


@limiter.limit(_WRITE_LIMIT)
@router.delete("/products/{product_id}", status_code=204)
def delete_product(
    request: Request,
    product_id: str,
    caller: CallerContext = Depends(require_owner_or_admin),
) -> Response:
    store: ProductStore = request.app.state.product_store
    if not store.delete_product(product_id):
        raise HTTPException(status_code=404, detail="Product not found.")
    return Response(status_code=204)
