from bson import ObjectId

import products
from tests.builders import image_file, insert_category, insert_product, insert_sale, insert_user


def product_payload(catalog, **overrides):
    payload = {
        "title": "Arai RX-7V Evo",
        "product_model": "RX-7V",
        "brand": "Arai",
        "description": "Track-focused full face helmet.",
        "retail_price": 850.0,
        "category": str(catalog.category_id),
        "type": str(catalog.type_id),
        "specs": [{"title": "Shell", "body": "PB-cLc2"}],
        "sizes": [{"size": "s", "quantity": 2}, {"size": "M", "quantity": 4}],
        "new_images": [image_file("front.png"), image_file("side.png")],
    }
    payload.update(overrides)
    return payload


def test_ean13_check_digit():
    assert products.ean13_check_digit("400638133393") == 1
    barcode = products.generate_barcode()
    assert len(barcode) == 13
    assert products.ean13_check_digit(barcode[:12]) == int(barcode[12])


def test_generated_identifiers():
    assert products.slugify("Arai RX-7V Evo!") == "arai-rx-7v-evo"
    assert products.generate_sku("Arai", "RX-7V").startswith("ARAI-RX7V-")


def test_create_product_with_stock(database, db, assets, admin_id, catalog):
    result = products.create_product(database, assets, admin_id, product_payload(catalog))

    assert result.success, result.message
    product = db["product"].find_one({"_id": ObjectId(result.data["id"])})
    stock = db["stock"].find_one({"product_id": product["_id"]})
    assert product["stock"] == stock["_id"]
    assert stock["sizes"] == [{"size": "S", "quantity": 2}, {"size": "M", "quantity": 4}]
    assert product["slug"] == "arai-rx-7v-evo"
    assert len(product["barcode"]) == 13
    assert [img["public_id"] for img in product["images"]] == list(assets.assets)


def test_create_needs_an_image(database, assets, admin_id, catalog):
    result = products.create_product(database, assets, admin_id, product_payload(catalog, new_images=[]))
    assert result.reason == "invalid_request"


def test_create_rejects_type_from_another_category(database, db, assets, admin_id, catalog):
    _, other_type = insert_category(db, name="Gloves", slug="gloves", type_name="Racing", type_slug="racing")

    result = products.create_product(database, assets, admin_id, product_payload(catalog, type=str(other_type)))

    assert result.reason == "invalid_request"
    assert assets.uploads == 0


def test_create_requires_admin(database, assets, customer_id, catalog):
    assert products.create_product(database, assets, customer_id, product_payload(catalog)).reason == "unauthorized"


def test_failed_upload_removes_earlier_uploads(database, db, assets, admin_id, catalog):
    assets.fail_after = 1

    result = products.create_product(database, assets, admin_id, product_payload(catalog))

    assert result.reason == "asset_store"
    assert assets.assets == {}
    assert len(assets.deleted) == 1
    assert db["product"].count_documents({}) == 1


def test_failed_stock_write_rolls_back_product_and_images(database, db, mongo, assets, admin_id, catalog):
    mongo.fail_on("stock", "insert_one")

    result = products.create_product(database, assets, admin_id, product_payload(catalog))

    assert result.reason == "server_error"
    assert db["product"].find_one({"title": "Arai RX-7V Evo"}) is None
    assert assets.assets == {}


def test_duplicate_barcode(database, db, assets, admin_id, catalog):
    existing = db["product"].find_one({"_id": catalog.product_id})["barcode"]

    result = products.create_product(database, assets, admin_id, product_payload(catalog, barcode=existing))

    assert result.reason == "invalid_request"
    assert "already exists" in result.message
    assert assets.assets == {}


def test_update_product_images_and_sizes(database, db, assets, admin_id, catalog):
    created = products.create_product(database, assets, admin_id, product_payload(catalog)).data
    kept, dropped = created["images"]

    result = products.update_product(database, assets, admin_id, created["id"], product_payload(
        catalog, title="Arai RX-7V Evo Racing", retail_price=900.0,
        images=[kept], new_images=[image_file("top.png")],
        sizes=[{"size": "M", "quantity": 1}, {"size": "L", "quantity": 3}],
    ))

    assert result.success, result.message
    product = db["product"].find_one({"_id": ObjectId(created["id"])})
    assert product["retail_price"] == 900.0
    assert product["sku"] == created["sku"]
    assert [img["public_id"] for img in product["images"]][0] == kept["public_id"]
    assert len(product["images"]) == 2
    assert assets.deleted == [dropped["public_id"]]
    stock = db["stock"].find_one({"product_id": product["_id"]})
    assert stock["sizes"] == [{"size": "M", "quantity": 1}, {"size": "L", "quantity": 3}]
    assert db["stock"].count_documents({"product_id": product["_id"]}) == 1


def test_update_creates_missing_stock(database, db, assets, admin_id, catalog):
    db["stock"].delete_one({"_id": catalog.stock_id})
    db["product"].update_one({"_id": catalog.product_id}, {"$unset": {"stock": ""}})
    current = db["product"].find_one({"_id": catalog.product_id})

    result = products.update_product(database, assets, admin_id, str(catalog.product_id), product_payload(
        catalog, images=current["images"], new_images=[],
    ))

    assert result.success, result.message
    stock = db["stock"].find_one({"product_id": catalog.product_id})
    assert db["product"].find_one({"_id": catalog.product_id})["stock"] == stock["_id"]


def test_failed_update_keeps_old_images(database, db, mongo, assets, admin_id, catalog):
    before = db["product"].find_one({"_id": catalog.product_id})
    mongo.fail_on("stock", "update_one")

    result = products.update_product(database, assets, admin_id, str(catalog.product_id), product_payload(catalog))

    assert result.success is False
    assert db["product"].find_one({"_id": catalog.product_id}) == before
    assert assets.assets == {}
    assert before["images"][0]["public_id"] not in assets.deleted


def test_delete_product(database, db, assets, admin_id, catalog):
    fan = insert_user(db, name="Fan", email="fan@motoshop.ma")
    db["user"].update_one({"_id": fan}, {"$push": {"wishlist": catalog.product_id}})

    result = products.delete_product(database, assets, admin_id, str(catalog.product_id))

    assert result.success
    assert result.data["stock_deleted"] is True
    assert db["product"].count_documents({}) == 0
    assert db["stock"].count_documents({}) == 0
    assert db["user"].find_one({"_id": fan})["wishlist"] == []
    assert assets.deleted == ["motoshop/products/Shoei RF-1400"]


def test_delete_unknown_product(database, assets, admin_id):
    assert products.delete_product(database, assets, admin_id, str(ObjectId())).reason == "not_found"


def test_sale_link(database, db, admin_id, catalog):
    sale_id = insert_sale(db)

    linked = products.set_product_sale(database, admin_id, str(catalog.product_id), str(sale_id))
    assert linked.success
    assert products.get_product(db, str(catalog.product_id))["sale_price"] == 80.0

    unlinked = products.remove_product_sale(database, admin_id, str(catalog.product_id))
    assert unlinked.success
    assert "sale_info" not in db["product"].find_one({"_id": catalog.product_id})

    missing = products.set_product_sale(database, admin_id, str(catalog.product_id), str(ObjectId()))
    assert missing.reason == "not_found"


def test_get_product_by_slug_with_stock(db, catalog):
    product = products.get_product(db, "shoei-rf-1400")

    assert product["id"] == str(catalog.product_id)
    assert product["stock"]["sizes"] == [{"size": "M", "quantity": 2}, {"size": "L", "quantity": 0}]
    assert product["is_on_sale"] is False
    assert products.get_product(db, "missing") is None


def test_list_products_filters_and_pages(db, catalog):
    insert_product(db, catalog.category_id, catalog.type_id, title="AGV K6", brand="AGV",
                   retail_price=450.0, sizes=(("L", 1),))
    insert_product(db, catalog.category_id, catalog.type_id, title="HJC RPHA 11", brand="HJC",
                   retail_price=600.0, sizes=(("M", 0),))

    by_price = products.list_products(db, sort="price_desc")
    assert [p["title"] for p in by_price["products"]] == ["HJC RPHA 11", "AGV K6", "Shoei RF-1400"]
    assert by_price["total"] == 3

    assert products.list_products(db, brands=["AGV", "HJC"])["total"] == 2
    assert products.list_products(db, min_price=200, max_price=500)["products"][0]["title"] == "AGV K6"
    assert [p["title"] for p in products.list_products(db, sizes=["m"])["products"]] == ["Shoei RF-1400"]
    assert products.list_products(db, category="helmets", type="full-face")["total"] == 3
    assert products.list_products(db, category="unknown")["total"] == 0

    page = products.list_products(db, sort="title", page=2, limit=2)
    assert page["pages"] == 2
    assert [p["title"] for p in page["products"]] == ["Shoei RF-1400"]


def test_products_on_sale(db, catalog):
    assert products.products_on_sale(db) == []

    sale_id = insert_sale(db, discount_type="fixed_amount", discount_value=10)
    db["product"].update_one({"_id": catalog.product_id}, {"$set": {"sale_info": sale_id}})

    on_sale = products.products_on_sale(db)
    assert [p["sale_price"] for p in on_sale] == [90.0]


def test_search_escapes_the_query(db, catalog):
    assert [p["title"] for p in products.search_products(db, "shoei")] == ["Shoei RF-1400"]
    assert products.search_products(db, "rf-1400 (") == []
    assert products.search_products(db, "   ") == []
    assert products.search_products(db, ".*") == []
