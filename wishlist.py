import logging
from datetime import datetime, timezone
from typing import Optional

from database import Database, to_object_id
from errors import NotFoundError, log_failure
from products import COLLECTION as PRODUCTS, active_sales_for, present
from schemas import ActionResult
from users import COLLECTION as USERS, require_user

logger = logging.getLogger(__name__)


def add_item(database: Database, user_id: Optional[str], product_id: str) -> ActionResult:
    try:
        db = database.db
        user = require_user(db, user_id)
        pid = to_object_id(product_id, "product id")
        if not db[PRODUCTS].find_one({"_id": pid}):
            raise NotFoundError("Product not found.")
        result = db[USERS].update_one({"_id": user["_id"]}, {"$addToSet": {"wishlist": pid}})
    except Exception as exc:
        reason, message = log_failure("add to wishlist", exc)
        return ActionResult.failed(reason, message)

    added = result.modified_count == 1
    if added:
        logger.info("User %s added product %s to wishlist", user_id, product_id)
    message = "Added to wishlist." if added else "Already in wishlist."
    return ActionResult(success=True, message=message, changed=added, data={"product_id": product_id})


def remove_item(database: Database, user_id: Optional[str], product_id: str) -> ActionResult:
    try:
        db = database.db
        user = require_user(db, user_id)
        pid = to_object_id(product_id, "product id")
        result = db[USERS].update_one({"_id": user["_id"]}, {"$pull": {"wishlist": pid}})
    except Exception as exc:
        reason, message = log_failure("remove from wishlist", exc)
        return ActionResult.failed(reason, message)

    removed = result.modified_count == 1
    message = "Removed from wishlist." if removed else "Not in wishlist."
    return ActionResult(success=True, message=message, changed=removed, data={"product_id": product_id})


def list_items(database: Database, user_id: Optional[str]) -> ActionResult:
    try:
        db = database.db
        user = require_user(db, user_id)
        ids = user.get("wishlist", [])
        products = list(db[PRODUCTS].find({"_id": {"$in": ids}})) if ids else []
        now = datetime.now(timezone.utc)
        sales = active_sales_for(db, products, now)
    except Exception as exc:
        reason, message = log_failure("list wishlist", exc)
        return ActionResult.failed(reason, message)

    return ActionResult(
        success=True,
        message=f"{len(products)} item(s) in wishlist.",
        data={"products": [present(p, sales, now) for p in products]},
    )
