from typing import Optional

from fastapi import APIRouter, Depends, Query

from core.errors import NotFound
from core.session import get_current_user, get_optional_user
from models.order import Order
from models.user import User
from schemas.order import OrderOut, OrderPage, OrderStats
from services.order_repository import OrderRepository, get_order_repository

router = APIRouter(prefix="/orders", tags=["orders"])


def _visible(order: Optional[Order], user: Optional[User]) -> Order:
    # A signed-in caller only sees their own orders.
    if not order or (user and order.user_id != user.id):
        raise NotFound()
    return order


@router.get("/", response_model=OrderPage)
def list_orders(
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(get_current_user),
    repository: OrderRepository = Depends(get_order_repository),
):
    orders, total = repository.list_for_user(user.id, limit=limit, offset=offset)
    return {
        "orders": orders,
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + limit < total,
    }


@router.get("/stats", response_model=OrderStats)
def order_stats(user: User = Depends(get_current_user), repository: OrderRepository = Depends(get_order_repository)):
    return repository.stats(user_id=user.id)


@router.get("/number/{order_number}", response_model=OrderOut)
def get_order_by_number(
    order_number: str,
    user: Optional[User] = Depends(get_optional_user),
    repository: OrderRepository = Depends(get_order_repository),
):
    return _visible(repository.get_by_order_number(order_number), user)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user: Optional[User] = Depends(get_optional_user),
    repository: OrderRepository = Depends(get_order_repository),
):
    return _visible(repository.get(order_id), user)
