from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from services.api.app.db.deps import get_db
from services.api.app.db.models import Order
from services.api.app.models.order import OrderOut
from services.api.app.routers.common import order_to_out
from sqlalchemy.orm import Session

router = APIRouter()


@router.get("/v1/orders/{order_id}", response_model=OrderOut)
def get_order(order_id: str, db: Session = Depends(get_db)) -> OrderOut:
    order = db.get(Order, order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order_to_out(order)
