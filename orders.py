"""
Order placement.

An order is priced and reserved entirely inside one transaction:

    STARTED -> PRICED -> RESERVED -> WRITTEN -> COMMITTED
                   (any step) -> ABORTED

Prices and availability sent by the client are ignored. Every line reserves
its own stock, so a product+size repeated in the cart reserves the sum and a
failure on any line rolls back all of them. A write conflict with a concurrent
order reruns the whole transaction against fresh stock.
"""
import logging
import random
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Union

import config
import pricing
import stock
from database import Database, serialize, to_object_id
from errors import InsufficientStockError, NotFoundError, describe_failure
from schemas import Order, OrderFailure, OrderInput, OrderItem, OrderSuccess
from users import resolve_order_user

logger = logging.getLogger(__name__)

COLLECTION = "order"

OrderResult = Union[OrderSuccess, OrderFailure]


class OrderState(str, Enum):
    STARTED = "started"
    PRICED = "priced"
    RESERVED = "reserved"
    WRITTEN = "written"
    COMMITTED = "committed"
    ABORTED = "aborted"


def tracking_number() -> str:
    return f"TRK-{int(time.time() * 1000)}-{random.randint(0, 999)}"


def payment_status_for(method: str) -> str:
    # No gateway confirmation yet: card payments (cmi) are taken as settled
    return "paid" if method == "cmi" else "pending"


def _load_catalog(db, product_ids: List[Any], now: datetime, session):
    products = {p["_id"]: p for p in db["product"].find({"_id": {"$in": product_ids}}, session=session)}
    sale_ids = list({p["sale_info"] for p in products.values() if p.get("sale_info")})
    sales = {}
    if sale_ids:
        query = {"_id": {"$in": sale_ids}, **pricing.active_sale_filter(now)}
        sales = {s["_id"]: s for s in db["sale"].find(query, session=session)}
    return products, sales


def create_order(database: Database, order_data: Union[OrderInput, dict]) -> OrderResult:
    state = OrderState.STARTED
    try:
        data = order_data if isinstance(order_data, OrderInput) else OrderInput.model_validate(order_data)
        line_ids = [to_object_id(line.product_id, "product id") for line in data.products]
    except Exception as exc:
        reason, message = describe_failure(exc)
        logger.warning("Order rejected before start: %s", message)
        return OrderFailure(reason=reason, message=message)

    db = database.db
    attempts = 0

    def place(session):
        # Runs again from scratch when the transaction hits a write conflict
        nonlocal state, attempts
        attempts += 1
        if attempts > 1:
            logger.warning("Retrying order after %s (attempt %d)", state.value, attempts)
        state = OrderState.STARTED

        user_id = resolve_order_user(db, data.user_id, data.delivery_information, session=session)

        now = datetime.now(timezone.utc)
        products, sales = _load_catalog(db, list(set(line_ids)), now, session)
        state = OrderState.PRICED

        items = []
        subtotal = 0.0
        for line, product_id in zip(data.products, line_ids):
            product = products.get(product_id)
            if product is None:
                raise NotFoundError(f"Product with ID {line.product_id} not found.")
            if not product.get("stock"):
                raise NotFoundError(f"Stock information for product ID {line.product_id} not found.")

            if not stock.reserve(db, product["stock"], line.size, line.quantity, session=session):
                title = product.get("title") or line.product_id
                raise InsufficientStockError(
                    f"Insufficient stock for {title} (size: {line.size.strip().upper()})."
                )

            sale = sales.get(product.get("sale_info"))
            unit_price, total_price = pricing.line_total(
                product.get("retail_price", 0), sale, line.quantity, now=now, product=product
            )
            subtotal += total_price
            items.append(OrderItem(
                product_id=product_id,
                size=line.size.strip().upper(),
                quantity=line.quantity,
                unit_price=unit_price,
                total_price=total_price,
                added_at=now,
            ))
        state = OrderState.RESERVED

        order_total = pricing.money(subtotal + data.delivery_fee)
        claimed = data.order_total_price
        if claimed is not None and abs(claimed - order_total) > config.PRICE_MISMATCH_TOLERANCE:
            logger.warning(
                "Price mismatch for user %s: client total %.2f, server total %.2f. Using server total.",
                user_id, claimed, order_total,
            )

        order = Order(
            tracking_number=tracking_number(),
            user_id=user_id,
            products=items,
            quantity=sum(item.quantity for item in items),
            delivery_fee=pricing.money(data.delivery_fee),
            order_total_price=order_total,
            payment_method=data.payment_method,
            payment_status=payment_status_for(data.payment_method),
            delivery_status="processing",
            delivery_information=data.delivery_information,
            notes=data.notes,
            ordered_at=now,
        )
        doc = order.model_dump()
        doc["created_at"] = doc["updated_at"] = now
        result = db[COLLECTION].insert_one(doc, session=session)
        db["user"].update_one({"_id": user_id}, {"$push": {"orders": result.inserted_id}}, session=session)
        state = OrderState.WRITTEN
        return doc

    try:
        doc = database.run_in_transaction(place)
    except Exception as exc:
        reason, message = describe_failure(exc)
        if reason == "server_error":
            logger.exception("Order %s after %s", OrderState.ABORTED.value, state.value)
        else:
            logger.error("Order %s after %s: %s", OrderState.ABORTED.value, state.value, message)
        return OrderFailure(reason=reason, message=message)

    state = OrderState.COMMITTED
    logger.info("Order %s %s (%s, total %.2f)", doc["_id"], state.value, doc["tracking_number"],
                doc["order_total_price"])
    return OrderSuccess(order=serialize(doc))


def get_order(db, order_id: str) -> Optional[dict]:
    doc = db[COLLECTION].find_one({"_id": to_object_id(order_id, "order id")})
    return serialize(doc) if doc else None


def list_user_orders(db, user_id: str, limit: int = 50) -> List[dict]:
    cursor = db[COLLECTION].find({"user_id": to_object_id(user_id, "user id")}).sort("ordered_at", -1).limit(limit)
    return [serialize(doc) for doc in cursor]
