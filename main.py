from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import cart
import categories
import config
import orders
import products
import users
import wishlist
from assets import CloudinaryAssetStore
from database import Database
from errors import StoreError, status_for
from schemas import (
    CartItemInput,
    CategoryInput,
    OrderFailure,
    MutationResult,
    ProductInput,
    SaleLinkInput,
    SeedRequest,
)

config.configure_logging()

app = FastAPI(title="Motoshop Store API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_database: Optional[Database] = None
_assets: Optional[CloudinaryAssetStore] = None


def get_database() -> Database:
    global _database
    if _database is None:
        _database = Database.from_env()
    return _database


def get_asset_store() -> CloudinaryAssetStore:
    global _assets
    if _assets is None:
        _assets = CloudinaryAssetStore()
    return _assets


# ---------- Helpers ----------

def respond(result):
    """Failed results keep their tagged body and get the status of their reason."""
    failed = isinstance(result, OrderFailure) or (isinstance(result, MutationResult) and not result.success)
    if failed:
        return JSONResponse(status_code=status_for(result.reason), content=result.model_dump())
    return result


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(status_code=exc.status_code, content={"reason": exc.reason, "detail": exc.message})


# ---------- Health ----------

@app.get("/")
def root():
    return {"message": "Motoshop Store API running"}


@app.get("/test")
def test_database(database: Database = Depends(get_database)):
    return database.status()


# ---------- Seed Data ----------

SEED_ICON = {
    "public_id": "motoshop/icons/seed",
    "secure_url": "https://res.cloudinary.com/demo/raw/upload/motoshop/icons/seed.svg",
    "resource_type": "raw",
}


@app.post("/api/seed")
def seed(req: SeedRequest, database: Database = Depends(get_database)):
    db = database.db
    # Only seed if empty or force=True
    if not req.force:
        if db["category"].estimated_document_count() > 0 and db["product"].estimated_document_count() > 0:
            return {"status": "ok", "message": "Already seeded"}

    for name in ("category", "type", "product", "stock", "sale"):
        db[name].delete_many({})
    database.ensure_indexes()

    admin = db["user"].find_one({"email": "admin@motoshop.test"})
    admin_id = admin["_id"] if admin else database.create_document(
        "user", {"name": "Store Admin", "email": "admin@motoshop.test", "role": "admin",
                 "wishlist": [], "orders": []}
    )

    catalog = {
        ("Helmets", "helmets", "Riding Gear"): [("Full Face", "full-face"), ("Modular", "modular"), ("Open Face", "open-face")],
        ("Jackets", "jackets", "Riding Gear"): [("Leather Jackets", "leather-jackets"), ("Textile Jackets", "textile-jackets")],
        ("Gloves", "gloves", "Riding Gear"): [("Racing Gloves", "racing-gloves")],
        ("Exhausts", "exhausts", "Motorcycle Parts"): [("Slip-On", "slip-on")],
    }
    types = {}
    category_ids = {}
    for (name, slug, section), entries in catalog.items():
        cid = database.create_document("category", {"name": name, "slug": slug, "section": section,
                                                    "icon": dict(SEED_ICON, public_id=f"motoshop/icons/{slug}"),
                                                    "applicable_types": []})
        category_ids[slug] = cid
        type_ids = []
        for type_name, type_slug in entries:
            tid = database.create_document("type", {"name": type_name, "slug": type_slug, "category": cid})
            types[type_slug] = (cid, tid)
            type_ids.append(tid)
        db["category"].update_one({"_id": cid}, {"$set": {"applicable_types": type_ids}})

    now = datetime.now(timezone.utc)
    sale_id = database.create_document("sale", {
        "name": "Season Opener", "color": "#d32f2f", "banner": None,
        "description": "20% off selected helmets", "discount_type": "percentage", "discount_value": 20,
        "start_date": now - timedelta(days=1), "end_date": now + timedelta(days=30), "is_active": True,
        "applicable_products": [], "applicable_categories": [category_ids["helmets"]],
    })

    sample_products = [
        {
            "title": "Shoei RF-1400", "brand": "Shoei", "product_model": "RF-1400", "type": "full-face",
            "description": "Premium full face helmet with a compact shell.", "retail_price": 6200.0,
            "sizes": [("S", 4), ("M", 6), ("L", 3), ("XL", 1)], "sale": True,
            "image": "https://images.unsplash.com/photo-1591637333184-19aa84b3e01f",
        },
        {
            "title": "Schuberth C5", "brand": "Schuberth", "product_model": "C5", "type": "modular",
            "description": "Flip-up modular touring helmet.", "retail_price": 7400.0,
            "sizes": [("M", 2), ("L", 2)], "sale": True,
            "image": "https://images.unsplash.com/photo-1558981806-ec527fa84c39",
        },
        {
            "title": "Dainese Racing 4 Leather Jacket", "brand": "Dainese", "product_model": "Racing 4",
            "type": "leather-jackets", "description": "Cowhide leather jacket with shoulder sliders.",
            "retail_price": 5900.0, "sizes": [("48", 3), ("50", 5), ("52", 2)], "sale": False,
            "image": "https://images.unsplash.com/photo-1609630875171-b1321377ee65",
        },
        {
            "title": "Alpinestars GP Pro R3 Gloves", "brand": "Alpinestars", "product_model": "GP Pro R3",
            "type": "racing-gloves", "description": "Full gauntlet racing gloves.", "retail_price": 1900.0,
            "sizes": [("S", 5), ("M", 8), ("L", 6)], "sale": False,
            "image": "https://images.unsplash.com/photo-1605559424843-9e4c228bf1c2",
        },
        {
            "title": "Akrapovic Slip-On Line", "brand": "Akrapovic", "product_model": "S-Y6SO11",
            "type": "slip-on", "description": "Titanium slip-on silencer.", "retail_price": 9800.0,
            "sizes": [("ONE SIZE", 2)], "sale": False,
            "image": "https://images.unsplash.com/photo-1568772585407-9361f9bf3a87",
        },
    ]

    for p in sample_products:
        cid, tid = types[p["type"]]
        product_id = database.create_document("product", {
            "title": p["title"], "slug": products.slugify(p["title"]),
            "sku": products.generate_sku(p["brand"], p["product_model"]),
            "barcode": products.generate_barcode(), "product_model": p["product_model"], "brand": p["brand"],
            "description": p["description"], "season": "All seasons", "retail_price": p["retail_price"],
            "wholesale_price": None, "sale_info": sale_id if p["sale"] else None, "category": cid, "type": tid,
            "specs": [], "images": [{"url": p["image"], "alt_text": p["title"], "public_id": None}], "likes": 0,
        })
        stock_id = database.create_document("stock", {
            "product_id": product_id, "sizes": [{"size": s, "quantity": q} for s, q in p["sizes"]],
        })
        db["product"].update_one({"_id": product_id}, {"$set": {"stock": stock_id}})

    return {"status": "ok", "seeded": len(sample_products), "admin_id": str(admin_id)}


# ---------- Categories ----------

@app.get("/api/sections")
def list_sections(database: Database = Depends(get_database)):
    return categories.list_sections(database.db)


@app.get("/api/categories")
def list_categories(database: Database = Depends(get_database)):
    return categories.list_categories(database.db)


@app.get("/api/categories/{id_or_slug}")
def get_category(id_or_slug: str, database: Database = Depends(get_database)):
    doc = categories.get_category(database.db, id_or_slug)
    if not doc:
        raise HTTPException(404, "Category not found")
    return doc


@app.post("/api/categories")
def create_category(payload: CategoryInput, x_user_id: Optional[str] = Header(None),
                    database: Database = Depends(get_database), assets=Depends(get_asset_store)):
    return respond(categories.create_category(database, assets, x_user_id, payload))


@app.put("/api/categories/{category_id}")
def update_category(category_id: str, payload: CategoryInput, x_user_id: Optional[str] = Header(None),
                    database: Database = Depends(get_database), assets=Depends(get_asset_store)):
    return respond(categories.update_category(database, assets, x_user_id, category_id, payload))


# ---------- Products ----------

@app.get("/api/products")
def list_products(
    category: Optional[str] = None,
    ptype: Optional[str] = Query(None, alias="type"),
    brand: Optional[List[str]] = Query(None),
    size: Optional[List[str]] = Query(None),
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    q: Optional[str] = None,
    sort: str = "newest",
    page: int = 1,
    limit: int = 12,
    database: Database = Depends(get_database),
):
    return products.list_products(
        database.db, category=category, type=ptype, brands=brand, sizes=size,
        min_price=min_price, max_price=max_price, q=q, sort=sort, page=page, limit=limit,
    )


@app.get("/api/products/on-sale")
def products_on_sale(limit: int = 10, database: Database = Depends(get_database)):
    return products.products_on_sale(database.db, limit)


@app.get("/api/products/{id_or_slug}")
def get_product(id_or_slug: str, database: Database = Depends(get_database)):
    doc = products.get_product(database.db, id_or_slug)
    if not doc:
        raise HTTPException(404, "Product not found")
    return doc


@app.post("/api/products")
def create_product(payload: ProductInput, x_user_id: Optional[str] = Header(None),
                   database: Database = Depends(get_database), assets=Depends(get_asset_store)):
    return respond(products.create_product(database, assets, x_user_id, payload))


@app.put("/api/products/{product_id}")
def update_product(product_id: str, payload: ProductInput, x_user_id: Optional[str] = Header(None),
                   database: Database = Depends(get_database), assets=Depends(get_asset_store)):
    return respond(products.update_product(database, assets, x_user_id, product_id, payload))


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, x_user_id: Optional[str] = Header(None),
                   database: Database = Depends(get_database), assets=Depends(get_asset_store)):
    return respond(products.delete_product(database, assets, x_user_id, product_id))


@app.put("/api/products/{product_id}/sale")
def set_product_sale(product_id: str, req: SaleLinkInput, x_user_id: Optional[str] = Header(None),
                     database: Database = Depends(get_database)):
    return respond(products.set_product_sale(database, x_user_id, product_id, req.sale_id))


@app.delete("/api/products/{product_id}/sale")
def remove_product_sale(product_id: str, x_user_id: Optional[str] = Header(None),
                        database: Database = Depends(get_database)):
    return respond(products.remove_product_sale(database, x_user_id, product_id))


# ---------- Cart ----------

class UpdateCartRequest(BaseModel):
    product_id: str
    size: str
    quantity: int = Field(..., ge=0)


@app.get("/api/cart")
def get_cart(x_user_id: Optional[str] = Header(None), database: Database = Depends(get_database)):
    return respond(cart.get_cart(database, x_user_id))


@app.post("/api/cart/add")
def cart_add(req: CartItemInput, x_user_id: Optional[str] = Header(None),
             database: Database = Depends(get_database)):
    return respond(cart.add_item(database, x_user_id, req.product_id, req.size, req.quantity))


@app.post("/api/cart/update")
def cart_update(req: UpdateCartRequest, x_user_id: Optional[str] = Header(None),
                database: Database = Depends(get_database)):
    return respond(cart.update_item_quantity(database, x_user_id, req.product_id, req.size, req.quantity))


@app.post("/api/cart/remove")
def cart_remove(req: CartItemInput, x_user_id: Optional[str] = Header(None),
                database: Database = Depends(get_database)):
    return respond(cart.remove_item(database, x_user_id, req.product_id, req.size))


@app.delete("/api/cart")
def cart_clear(x_user_id: Optional[str] = Header(None), database: Database = Depends(get_database)):
    return respond(cart.clear_cart(database, x_user_id))


# ---------- Wishlist ----------

@app.get("/api/wishlist")
def get_wishlist(x_user_id: Optional[str] = Header(None), database: Database = Depends(get_database)):
    return respond(wishlist.list_items(database, x_user_id))


@app.post("/api/wishlist/{product_id}")
def wishlist_add(product_id: str, x_user_id: Optional[str] = Header(None),
                 database: Database = Depends(get_database)):
    return respond(wishlist.add_item(database, x_user_id, product_id))


@app.delete("/api/wishlist/{product_id}")
def wishlist_remove(product_id: str, x_user_id: Optional[str] = Header(None),
                    database: Database = Depends(get_database)):
    return respond(wishlist.remove_item(database, x_user_id, product_id))


# ---------- Orders ----------

@app.post("/api/orders")
def create_order(payload: dict, x_user_id: Optional[str] = Header(None),
                 database: Database = Depends(get_database)):
    # Validation failures come back as a tagged order failure, not a 422
    if x_user_id:
        payload["user_id"] = x_user_id
    else:
        payload.pop("user_id", None)
    return respond(orders.create_order(database, payload))


@app.get("/api/orders")
def list_orders(x_user_id: Optional[str] = Header(None), database: Database = Depends(get_database)):
    user = users.require_user(database.db, x_user_id)
    return orders.list_user_orders(database.db, user["_id"])


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, x_user_id: Optional[str] = Header(None),
              database: Database = Depends(get_database)):
    user = users.require_user(database.db, x_user_id)
    doc = orders.get_order(database.db, order_id)
    # Other shoppers' orders are reported as missing
    if not doc or (user.get("role") != "admin" and doc["user_id"] != str(user["_id"])):
        raise HTTPException(404, "Order not found")
    return doc


# ---------- Users ----------

@app.get("/api/me")
def me(x_user_id: Optional[str] = Header(None), database: Database = Depends(get_database)):
    return users.get_profile(database.db, x_user_id)


# ---------- Search ----------

@app.get("/api/search")
def search_products(q: str = Query(""), limit: int = 10, database: Database = Depends(get_database)):
    return products.search_products(database.db, q, limit)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
