"""
Per-product size ledger.

``reserve`` is the only guard against overselling: the quantity check and the
decrement are one conditional update, so two orders racing for the last unit
cannot both match.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from bson import ObjectId

from errors import InvalidRequestError
from schemas import SizeQuantity, Stock

logger = logging.getLogger(__name__)

COLLECTION = "stock"


def _size(size: str) -> str:
    size = (size or "").strip().upper()
    if not size:
        raise InvalidRequestError("Size is required.")
    return size


def _quantity(quantity: Any) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidRequestError(f"Quantity must be a positive whole number, got {quantity!r}.")
    return quantity


def reserve(db, stock_id: ObjectId, size: str, quantity: int, session=None) -> bool:
    """Take ``quantity`` units of ``size``; False when fewer are available."""
    size, quantity = _size(size), _quantity(quantity)
    result = db[COLLECTION].update_one(
        {"_id": stock_id, "sizes": {"$elemMatch": {"size": size, "quantity": {"$gte": quantity}}}},
        {"$inc": {"sizes.$.quantity": -quantity}, "$set": {"updated_at": datetime.now(timezone.utc)}},
        session=session,
    )
    reserved = result.modified_count == 1
    if not reserved:
        logger.info("Reservation refused: stock=%s size=%s quantity=%d", stock_id, size, quantity)
    return reserved


def release(db, stock_id: ObjectId, size: str, quantity: int, session=None) -> bool:
    size, quantity = _size(size), _quantity(quantity)
    result = db[COLLECTION].update_one(
        {"_id": stock_id, "sizes.size": size},
        {"$inc": {"sizes.$.quantity": quantity}, "$set": {"updated_at": datetime.now(timezone.utc)}},
        session=session,
    )
    return result.modified_count == 1


def normalize_sizes(items: Iterable[Any]) -> List[dict]:
    """Validate admin size rows. Quantities may arrive as strings from forms."""
    rows = []
    seen = set()
    for item in items:
        if isinstance(item, SizeQuantity):
            item = item.model_dump()
        quantity = item.get("quantity")
        if isinstance(quantity, str):
            quantity = quantity.strip()
            if not quantity.isdigit():
                raise InvalidRequestError(f"Invalid quantity {quantity!r} for size {item.get('size')!r}.")
            quantity = int(quantity)
        try:
            row = SizeQuantity(size=_size(item.get("size")), quantity=quantity)
        except ValueError:
            raise InvalidRequestError(f"Invalid stock row {item!r}: quantity must be 0 or more.")
        if row.size in seen:
            raise InvalidRequestError(f"Size {row.size} is listed more than once.")
        seen.add(row.size)
        rows.append(row.model_dump())
    if not rows:
        raise InvalidRequestError("At least one size must be specified.")
    return rows


def create_stock(db, product_id: ObjectId, sizes: Iterable[Any], session=None) -> ObjectId:
    doc = Stock(product_id=product_id, sizes=normalize_sizes(sizes)).model_dump()
    doc["updated_at"] = datetime.now(timezone.utc)
    result = db[COLLECTION].insert_one(doc, session=session)
    logger.info("Stock %s created for product %s", result.inserted_id, product_id)
    return result.inserted_id


def set_sizes(db, stock_id: ObjectId, sizes: Iterable[Any], session=None) -> bool:
    result = db[COLLECTION].update_one(
        {"_id": stock_id},
        {"$set": {"sizes": normalize_sizes(sizes), "updated_at": datetime.now(timezone.utc)}},
        session=session,
    )
    return result.matched_count == 1


def get_stock(db, stock_id: Optional[ObjectId], session=None) -> Optional[dict]:
    if stock_id is None:
        return None
    return db[COLLECTION].find_one({"_id": stock_id}, session=session)


def available(stock_doc: Optional[dict], size: str) -> int:
    if not stock_doc:
        return 0
    size = _size(size)
    for row in stock_doc.get("sizes", []):
        if row.get("size") == size:
            return int(row.get("quantity", 0))
    return 0
