"""
Products: admin mutations and catalog reads.

Each product owns exactly one stock record. Creating or updating a product
writes both in one transaction. Uploaded images are compensated by hand: a
failed write deletes what was just uploaded, and images dropped from a
product are deleted only once the update has committed.

Catalog reads attach display prices from the currently active sale. Those
prices are informational; orders recompute their own.
"""
import logging
import math
import random
import re
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import pricing
import stock
from database import Database, serialize, to_object_id
from errors import AssetStoreError, IntegrityError, InvalidRequestError, NotFoundError, log_failure
from saga import Compensation
from schemas import MutationResult, Product, ProductInput
from users import require_role

logger = logging.getLogger(__name__)

COLLECTION = "product"
IMAGE_FOLDER = "products"

SORTS = {
    "newest": ("created_at", -1),
    "price_asc": ("retail_price", 1),
    "price_desc": ("retail_price", -1),
    "title": ("title", 1),
}
MAX_PAGE_SIZE = 100


# ---------- Identifiers ----------

def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def generate_sku(brand: str, product_model: str) -> str:
    parts = [re.sub(r"[^A-Z0-9]", "", p.upper())[:4] for p in (brand, product_model)]
    return "-".join([p for p in parts if p] + [secrets.token_hex(2).upper()])


def ean13_check_digit(digits: str) -> int:
    total = sum(int(d) * (3 if i % 2 else 1) for i, d in enumerate(digits))
    return (10 - total % 10) % 10


def generate_barcode() -> str:
    body = "".join(str(random.randint(0, 9)) for _ in range(12))
    return body + str(ean13_check_digit(body))


# ---------- Mutations ----------

def _upload_images(assets, files, compensation: Compensation) -> List[dict]:
    images = []
    for file in files:
        uploaded = assets.upload(file, IMAGE_FOLDER, resource_type="image")
        if uploaded is None:
            raise AssetStoreError(f"Failed to upload image {file.filename}.")
        compensation.push(f"delete image {uploaded.public_id}", assets.delete, uploaded.public_id, uploaded.resource_type)
        images.append({"url": uploaded.secure_url, "alt_text": file.filename, "public_id": uploaded.public_id})
    return images


def _check_classification(db, category_id, type_id, session=None):
    if not db["category"].find_one({"_id": category_id}, session=session):
        raise NotFoundError("Category not found.")
    type_doc = db["type"].find_one({"_id": type_id}, session=session)
    if not type_doc:
        raise NotFoundError("Type not found.")
    if type_doc.get("category") != category_id:
        raise InvalidRequestError("The selected type does not belong to the selected category.")


def _link_stock(db, product_id, stock_id, session):
    linked = db[COLLECTION].update_one({"_id": product_id}, {"$set": {"stock": stock_id}}, session=session)
    if linked.matched_count == 0:
        logger.error("Failed to link stock %s to product %s", stock_id, product_id)
        db[stock.COLLECTION].delete_one({"_id": stock_id}, session=session)
        raise IntegrityError("Failed to link stock to product after creation.")


def create_product(database: Database, assets, user_id: Optional[str],
                   payload: Union[ProductInput, dict]) -> MutationResult:
    compensation = Compensation()
    try:
        data = payload if isinstance(payload, ProductInput) else ProductInput.model_validate(payload)
        db = database.db
        require_role(db, user_id, "admin")
        if not data.images and not data.new_images:
            raise InvalidRequestError("Please provide at least 1 image.")
        category_id = to_object_id(data.category, "category id")
        type_id = to_object_id(data.type, "type id")
        sizes = stock.normalize_sizes(data.sizes)

        with database.transaction() as session:
            _check_classification(db, category_id, type_id, session)
            images = [img.model_dump() for img in data.images]
            images += _upload_images(assets, data.new_images, compensation)

            product = Product(
                title=data.title,
                slug=data.slug or slugify(data.title),
                sku=data.sku or generate_sku(data.brand, data.product_model),
                barcode=data.barcode or generate_barcode(),
                product_model=data.product_model,
                brand=data.brand,
                description=data.description,
                season=data.season,
                retail_price=data.retail_price,
                wholesale_price=data.wholesale_price,
                category=category_id,
                type=type_id,
                specs=data.specs,
                images=images,
            )
            product_id = database.create_document(COLLECTION, product, session=session)
            stock_id = stock.create_stock(db, product_id, sizes, session=session)
            _link_stock(db, product_id, stock_id, session)

            created = db[COLLECTION].find_one({"_id": product_id}, session=session)
    except Exception as exc:
        reason, message = log_failure("create product", exc)
        compensation.rollback()
        return MutationResult.failed(reason, message)

    compensation.clear()
    logger.info("Product %s created", created["_id"])
    return MutationResult(success=True, message="Product created.", data=serialize(created))


def update_product(database: Database, assets, user_id: Optional[str], product_id: str,
                   payload: Union[ProductInput, dict]) -> MutationResult:
    compensation = Compensation()
    dropped_images: List[dict] = []
    try:
        data = payload if isinstance(payload, ProductInput) else ProductInput.model_validate(payload)
        db = database.db
        require_role(db, user_id, "admin")
        pid = to_object_id(product_id, "product id")
        category_id = to_object_id(data.category, "category id")
        type_id = to_object_id(data.type, "type id")
        sizes = stock.normalize_sizes(data.sizes)

        # The old images stay referenced until the update commits
        uploaded = _upload_images(assets, data.new_images, compensation)

        with database.transaction() as session:
            existing = db[COLLECTION].find_one({"_id": pid}, session=session)
            if not existing:
                raise NotFoundError("Product not found.")
            _check_classification(db, category_id, type_id, session)

            kept = [img.model_dump() for img in data.images]
            images = kept + uploaded
            if not images:
                raise InvalidRequestError("Please provide at least 1 image.")
            kept_ids = {img.get("public_id") for img in kept}
            dropped_images = [
                img for img in existing.get("images", [])
                if img.get("public_id") and img["public_id"] not in kept_ids
            ]

            changes: Dict[str, Any] = {
                "title": data.title,
                "slug": data.slug or slugify(data.title),
                "product_model": data.product_model,
                "brand": data.brand,
                "description": data.description,
                "season": data.season,
                "retail_price": data.retail_price,
                "wholesale_price": data.wholesale_price,
                "category": category_id,
                "type": type_id,
                "specs": [spec.model_dump() for spec in data.specs],
                "images": images,
                "updated_at": datetime.now(timezone.utc),
            }
            if data.sku:
                changes["sku"] = data.sku
            if data.barcode:
                changes["barcode"] = data.barcode
            updated = db[COLLECTION].update_one({"_id": pid}, {"$set": changes}, session=session)
            if updated.matched_count == 0:
                raise NotFoundError("Product not found.")

            current = db[stock.COLLECTION].find_one({"product_id": pid}, session=session)
            if current:
                stock.set_sizes(db, current["_id"], sizes, session=session)
                if existing.get("stock") != current["_id"]:
                    _link_stock(db, pid, current["_id"], session)
            else:
                stock_id = stock.create_stock(db, pid, sizes, session=session)
                _link_stock(db, pid, stock_id, session)

            result = db[COLLECTION].find_one({"_id": pid}, session=session)
    except Exception as exc:
        reason, message = log_failure("update product", exc)
        compensation.rollback()
        return MutationResult.failed(reason, message)

    compensation.clear()
    for image in dropped_images:
        if not assets.delete(image["public_id"], "image"):
            logger.warning("Removed image %s was not deleted. Manual cleanup may be required.", image["public_id"])

    return MutationResult(success=True, message="Product updated.", data=serialize(result))


def delete_product(database: Database, assets, user_id: Optional[str], product_id: str) -> MutationResult:
    try:
        db = database.db
        require_role(db, user_id, "admin")
        pid = to_object_id(product_id, "product id")

        with database.transaction() as session:
            product = db[COLLECTION].find_one({"_id": pid}, session=session)
            if not product:
                raise NotFoundError("Product not found.")
            db[COLLECTION].delete_one({"_id": pid}, session=session)
            removed = db[stock.COLLECTION].delete_one({"product_id": pid}, session=session)
            if removed.deleted_count == 0:
                logger.warning("No stock found for deleted product %s", pid)
            db["user"].update_many({"wishlist": pid}, {"$pull": {"wishlist": pid}}, session=session)
    except Exception as exc:
        reason, message = log_failure("delete product", exc)
        return MutationResult.failed(reason, message)

    for image in product.get("images", []):
        if image.get("public_id") and not assets.delete(image["public_id"], "image"):
            logger.warning("Image %s of deleted product was not removed from the asset store", image["public_id"])

    return MutationResult(
        success=True,
        message="Product deleted.",
        data={"id": str(pid), "stock_deleted": removed.deleted_count == 1},
    )


def set_product_sale(database: Database, user_id: Optional[str], product_id: str, sale_id: str) -> MutationResult:
    try:
        db = database.db
        require_role(db, user_id, "admin")
        pid = to_object_id(product_id, "product id")
        sid = to_object_id(sale_id, "sale id")
        if not db["sale"].find_one({"_id": sid}):
            raise NotFoundError("Sale not found.")
        result = db[COLLECTION].update_one({"_id": pid}, {"$set": {"sale_info": sid}})
        if result.matched_count == 0:
            raise NotFoundError(f"Product with ID {product_id} not found.")
    except Exception as exc:
        reason, message = log_failure("set product sale", exc)
        return MutationResult.failed(reason, message)
    return MutationResult(success=True, message="Sale applied to product.", data=serialize(db[COLLECTION].find_one({"_id": pid})))


def remove_product_sale(database: Database, user_id: Optional[str], product_id: str) -> MutationResult:
    try:
        db = database.db
        require_role(db, user_id, "admin")
        pid = to_object_id(product_id, "product id")
        result = db[COLLECTION].update_one({"_id": pid}, {"$unset": {"sale_info": ""}})
        if result.matched_count == 0:
            raise NotFoundError(f"Product with ID {product_id} not found.")
    except Exception as exc:
        reason, message = log_failure("remove product sale", exc)
        return MutationResult.failed(reason, message)
    return MutationResult(success=True, message="Sale removed from product.", data=serialize(db[COLLECTION].find_one({"_id": pid})))


# ---------- Catalog ----------

def active_sales_for(db, products: List[dict], now: Optional[datetime] = None) -> Dict[Any, dict]:
    sale_ids = list({p["sale_info"] for p in products if p.get("sale_info")})
    if not sale_ids:
        return {}
    query = {"_id": {"$in": sale_ids}, **pricing.active_sale_filter(now)}
    return {s["_id"]: s for s in db["sale"].find(query)}


def present(product: dict, sales: Dict[Any, dict], now: Optional[datetime] = None,
            stock_doc: Optional[dict] = None) -> dict:
    out = serialize(product)
    out.update(pricing.price_summary(product, sales.get(product.get("sale_info")), now))
    if stock_doc is not None:
        out["stock"] = serialize({"_id": stock_doc["_id"], "sizes": stock_doc.get("sizes", [])})
    return out


def _find_by_id_or_slug(collection, value: str) -> Optional[dict]:
    try:
        doc = collection.find_one({"_id": to_object_id(value)})
    except InvalidRequestError:
        doc = None
    return doc or collection.find_one({"slug": value})


def get_product(db, id_or_slug: str) -> Optional[dict]:
    product = _find_by_id_or_slug(db[COLLECTION], id_or_slug)
    if not product:
        return None
    now = datetime.now(timezone.utc)
    return present(product, active_sales_for(db, [product], now), now, stock.get_stock(db, product.get("stock")))


def list_products(db, category: Optional[str] = None, type: Optional[str] = None,
                  brands: Optional[List[str]] = None, sizes: Optional[List[str]] = None,
                  min_price: Optional[float] = None, max_price: Optional[float] = None,
                  q: Optional[str] = None, sort: str = "newest", page: int = 1, limit: int = 12) -> dict:
    page = max(1, page)
    limit = min(max(1, limit), MAX_PAGE_SIZE)
    empty = {"products": [], "total": 0, "page": page, "pages": 0}

    query: Dict[str, Any] = {}
    if category:
        found = _find_by_id_or_slug(db["category"], category)
        if not found:
            return empty
        query["category"] = found["_id"]
    if type:
        found = _find_by_id_or_slug(db["type"], type)
        if not found:
            return empty
        query["type"] = found["_id"]
    if brands:
        query["brand"] = {"$in": brands}
    price = {}
    if min_price is not None:
        price["$gte"] = min_price
    if max_price is not None:
        price["$lte"] = max_price
    if price:
        query["retail_price"] = price
    if sizes:
        wanted = [s.strip().upper() for s in sizes]
        in_stock = db[stock.COLLECTION].find(
            {"sizes": {"$elemMatch": {"size": {"$in": wanted}, "quantity": {"$gt": 0}}}}
        )
        query["_id"] = {"$in": [s["product_id"] for s in in_stock]}
    if q and q.strip():
        query["$or"] = _search_clauses(q)

    field, direction = SORTS.get(sort, SORTS["newest"])
    total = db[COLLECTION].count_documents(query)
    products = list(db[COLLECTION].find(query).sort(field, direction).skip((page - 1) * limit).limit(limit))

    now = datetime.now(timezone.utc)
    sales = active_sales_for(db, products, now)
    return {
        "products": [present(p, sales, now) for p in products],
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit),
    }


def products_on_sale(db, limit: int = 10) -> List[dict]:
    now = datetime.now(timezone.utc)
    active = {s["_id"]: s for s in db["sale"].find(pricing.active_sale_filter(now))}
    if not active:
        return []
    products = db[COLLECTION].find({"sale_info": {"$in": list(active)}}).limit(limit)
    on_sale = [present(p, active, now) for p in products]
    return [p for p in on_sale if p["is_on_sale"]]


def _search_clauses(q: str) -> List[dict]:
    pattern = re.escape(q.strip())
    return [{field: {"$regex": pattern, "$options": "i"}} for field in ("title", "slug", "description")]


def search_products(db, q: str, limit: int = 10) -> List[dict]:
    if not q or not q.strip():
        return []
    products = list(db[COLLECTION].find({"$or": _search_clauses(q)}).limit(limit))
    now = datetime.now(timezone.utc)
    sales = active_sales_for(db, products, now)
    return [present(p, sales, now) for p in products]
