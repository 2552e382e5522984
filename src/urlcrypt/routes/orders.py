"""Order endpoints — opaque order ids in the path."""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import RedirectResponse

router = APIRouter(prefix="/orders", tags=["orders"])

LATEST_ORDER_ID = 42


@router.get("/latest")
def latest_order():
    return RedirectResponse(f"/orders/{LATEST_ORDER_ID}", status_code=307)


@router.get("/{order_id}")
def get_order(order_id: int):
    return {"id": order_id}
