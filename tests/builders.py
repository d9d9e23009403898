"""Documents for tests, inserted straight into the fake database."""
import base64
from datetime import datetime, timedelta, timezone

from schemas import AssetFile

SVG = b'<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 24 24"><circle r="10"/></svg>'
PNG = b"\x89PNG\r\n\x1a\nfake"


def svg_file(name="helmet.svg", content_type="image/svg+xml") -> AssetFile:
    return AssetFile(filename=name, content_type=content_type, data=base64.b64encode(SVG).decode())


def image_file(name="front.png") -> AssetFile:
    return AssetFile(filename=name, content_type="image/png", data=base64.b64encode(PNG).decode())


def insert_user(db, name="Rider", email="rider@motoshop.ma", role="customer"):
    return db["user"].insert_one({
        "name": name, "email": email, "role": role, "wishlist": [], "orders": [], "cart": None,
    }).inserted_id


def insert_category(db, name="Helmets", slug="helmets", section="Riding Gear",
                    type_name="Full Face", type_slug="full-face"):
    category_id = db["category"].insert_one({
        "name": name, "slug": slug, "section": section,
        "icon": {"public_id": f"motoshop/icons/{slug}", "secure_url": f"https://assets.test/{slug}.svg",
                 "resource_type": "raw"},
        "applicable_types": [],
    }).inserted_id
    type_id = db["type"].insert_one({"name": type_name, "slug": type_slug, "category": category_id}).inserted_id
    db["category"].update_one({"_id": category_id}, {"$set": {"applicable_types": [type_id]}})
    return category_id, type_id


def insert_product(db, category_id, type_id, title="Shoei RF-1400", retail_price=100.0,
                   sizes=(("M", 2), ("L", 0)), sale_id=None, brand="Shoei", barcode=None):
    product_id = db["product"].insert_one({
        "title": title,
        "slug": title.lower().replace(" ", "-"),
        "sku": f"{brand.upper()[:4]}-TEST",
        "barcode": barcode or str(db["product"].estimated_document_count() + 4006381333931),
        "product_model": "RF-1400",
        "brand": brand,
        "description": f"{title} for testing",
        "season": "All seasons",
        "retail_price": retail_price,
        "wholesale_price": None,
        "sale_info": sale_id,
        "category": category_id,
        "type": type_id,
        "specs": [],
        "images": [{"url": "https://assets.test/p.png", "alt_text": title, "public_id": f"motoshop/products/{title}"}],
        "likes": 0,
        "created_at": datetime.now(timezone.utc),
    }).inserted_id
    stock_id = db["stock"].insert_one({
        "product_id": product_id,
        "sizes": [{"size": size, "quantity": quantity} for size, quantity in sizes],
    }).inserted_id
    db["product"].update_one({"_id": product_id}, {"$set": {"stock": stock_id}})
    return product_id, stock_id


def insert_sale(db, discount_type="percentage", discount_value=20, active=True, expired=False,
                applicable_products=(), applicable_categories=()):
    now = datetime.now(timezone.utc)
    if expired:
        start, end = now - timedelta(days=10), now - timedelta(days=1)
    else:
        start, end = now - timedelta(days=1), now + timedelta(days=10)
    return db["sale"].insert_one({
        "name": "Test Sale", "color": "#d32f2f", "banner": None, "description": None,
        "discount_type": discount_type, "discount_value": discount_value,
        "start_date": start, "end_date": end, "is_active": active,
        "applicable_products": list(applicable_products),
        "applicable_categories": list(applicable_categories),
    }).inserted_id


def delivery(email="rider@motoshop.ma", name="Yassine Rider"):
    return {
        "full_name": name,
        "phone_number": "+212600000000",
        "email": email,
        "city": "Casablanca",
        "address": "12 Rue des Motards",
        "zipcode": 20000,
    }


def order_payload(lines, user_id=None, delivery_fee=0.0, total=None, method="delivery", email="rider@motoshop.ma"):
    return {
        "user_id": str(user_id) if user_id else None,
        "products": [{"product_id": str(pid), "size": size, "quantity": qty} for pid, size, qty in lines],
        "delivery_fee": delivery_fee,
        "order_total_price": total,
        "payment_method": method,
        "delivery_information": delivery(email),
    }
