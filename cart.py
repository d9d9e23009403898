"""
Carts of signed-in shoppers. Guest carts never reach the server.

Cart prices are display prices, refreshed on every change. The order placed
from a cart is priced again from scratch.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

import pricing
import stock
from database import Database, serialize, to_object_id
from errors import InsufficientStockError, InvalidRequestError, NotFoundError, log_failure
from products import active_sales_for
from schemas import ActionResult, Cart
from users import require_user

logger = logging.getLogger(__name__)

COLLECTION = "cart"


def _empty(user_id) -> dict:
    return {"user_id": str(user_id), "products": [], "quantity": 0, "total_amount": 0.0}


def _price_items(db, items: List[dict], now: datetime, session=None) -> List[dict]:
    ids = list({item["product_id"] for item in items})
    products = {}
    if ids:
        products = {p["_id"]: p for p in db["product"].find({"_id": {"$in": ids}}, session=session)}
    sales = active_sales_for(db, list(products.values()), now)

    priced = []
    for item in items:
        product = products.get(item["product_id"])
        if product is None:
            logger.info("Dropping deleted product %s from cart", item["product_id"])
            continue
        unit, total = pricing.line_total(
            product.get("retail_price", 0), sales.get(product.get("sale_info")), item["quantity"],
            now=now, product=product,
        )
        priced.append({**item, "unit_price": unit, "total_price": total})
    return priced


def _check_stock(db, product_id, size: str, wanted: int, session=None):
    product = db["product"].find_one({"_id": product_id}, session=session)
    if not product:
        raise NotFoundError("Product not found.")
    left = stock.available(stock.get_stock(db, product.get("stock"), session=session), size)
    if left < wanted:
        raise InsufficientStockError(f"Only {left} left in size {size} for {product.get('title')}.")


def _line(product_id: str, size: str):
    pid = to_object_id(product_id, "product id")
    size = (size or "").strip().upper()
    if not size:
        raise InvalidRequestError("Size is required.")
    return pid, size


def _change(database: Database, user_id: Optional[str], action: str,
            edit: Callable[..., bool], create: bool = False) -> ActionResult:
    """Load the user's cart, apply ``edit`` to its items and save the re-priced result.

    ``edit(db, items, session)`` mutates the list in place and returns whether
    anything changed.
    """
    try:
        db = database.db
        user = require_user(db, user_id)
        now = datetime.now(timezone.utc)
        with database.transaction() as session:
            cart = db[COLLECTION].find_one({"user_id": user["_id"]}, session=session)
            if cart is None:
                if not create:
                    raise NotFoundError("Cart not found.")
                cart_id = database.create_document(COLLECTION, Cart(user_id=user["_id"]), session=session)
                db["user"].update_one({"_id": user["_id"]}, {"$set": {"cart": cart_id}}, session=session)
                cart = {"_id": cart_id, "user_id": user["_id"], "products": []}
                logger.info("Cart %s created for user %s", cart_id, user["_id"])

            items = list(cart.get("products", []))
            changed = edit(db, items, session)
            items = _price_items(db, items, now, session)
            changes = {
                "products": items,
                "quantity": sum(item["quantity"] for item in items),
                "total_amount": pricing.money(sum(item["total_price"] for item in items)),
                "updated_at": now,
            }
            db[COLLECTION].update_one({"_id": cart["_id"]}, {"$set": changes}, session=session)
            saved = db[COLLECTION].find_one({"_id": cart["_id"]}, session=session)
    except Exception as exc:
        reason, message = log_failure(action, exc)
        return ActionResult.failed(reason, message)

    return ActionResult(success=True, message="Cart updated.", data=serialize(saved), changed=changed)


def get_cart(database: Database, user_id: Optional[str]) -> ActionResult:
    try:
        db = database.db
        user = require_user(db, user_id)
        cart = db[COLLECTION].find_one({"user_id": user["_id"]})
        if cart is None:
            return ActionResult(success=True, message="Cart is empty.", data=_empty(user["_id"]))
        items = _price_items(db, cart.get("products", []), datetime.now(timezone.utc))
        cart.update(
            products=items,
            quantity=sum(item["quantity"] for item in items),
            total_amount=pricing.money(sum(item["total_price"] for item in items)),
        )
    except Exception as exc:
        reason, message = log_failure("get cart", exc)
        return ActionResult.failed(reason, message)
    return ActionResult(success=True, message="Cart loaded.", data=serialize(cart))


def add_item(database: Database, user_id: Optional[str], product_id: str, size: str,
             quantity: int = 1) -> ActionResult:
    def edit(db, items, session):
        pid, label = _line(product_id, size)
        if quantity < 1:
            raise InvalidRequestError("Quantity must be at least 1.")
        existing = next((i for i in items if i["product_id"] == pid and i["size"] == label), None)
        wanted = quantity + (existing["quantity"] if existing else 0)
        _check_stock(db, pid, label, wanted, session)
        if existing:
            existing["quantity"] = wanted
        else:
            items.append({"product_id": pid, "size": label, "quantity": quantity,
                          "added_at": datetime.now(timezone.utc)})
        return True

    return _change(database, user_id, "add to cart", edit, create=True)


def update_item_quantity(database: Database, user_id: Optional[str], product_id: str, size: str,
                         quantity: int) -> ActionResult:
    """Set the quantity of a line; zero removes it."""
    def edit(db, items, session):
        pid, label = _line(product_id, size)
        if quantity < 0:
            raise InvalidRequestError("Quantity cannot be negative.")
        index = next((n for n, i in enumerate(items) if i["product_id"] == pid and i["size"] == label), None)
        if index is None:
            raise NotFoundError("Item not found in cart.")
        if quantity == 0:
            items.pop(index)
            return True
        _check_stock(db, pid, label, quantity, session)
        changed = items[index]["quantity"] != quantity
        items[index]["quantity"] = quantity
        return changed

    return _change(database, user_id, "update cart item", edit)


def remove_item(database: Database, user_id: Optional[str], product_id: str, size: str) -> ActionResult:
    def edit(db, items, session):
        pid, label = _line(product_id, size)
        before = len(items)
        items[:] = [i for i in items if not (i["product_id"] == pid and i["size"] == label)]
        return len(items) != before

    return _change(database, user_id, "remove cart item", edit)


def clear_cart(database: Database, user_id: Optional[str]) -> ActionResult:
    try:
        db = database.db
        user = require_user(db, user_id)
        with database.transaction() as session:
            removed = db[COLLECTION].delete_one({"user_id": user["_id"]}, session=session)
            db["user"].update_one({"_id": user["_id"]}, {"$unset": {"cart": ""}}, session=session)
    except Exception as exc:
        reason, message = log_failure("clear cart", exc)
        return ActionResult.failed(reason, message)
    return ActionResult(
        success=True,
        message="Cart cleared.",
        data=_empty(user["_id"]),
        changed=removed.deleted_count == 1,
    )
