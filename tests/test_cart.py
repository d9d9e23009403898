from bson import ObjectId

import cart
from tests.builders import insert_sale


def test_empty_cart(database, customer_id):
    result = cart.get_cart(database, customer_id)
    assert result.success
    assert result.data["products"] == []
    assert result.data["total_amount"] == 0.0


def test_first_add_creates_and_links_cart(database, db, catalog, customer_id):
    result = cart.add_item(database, customer_id, str(catalog.product_id), "m", 1)

    assert result.success, result.message
    assert result.data["quantity"] == 1
    assert result.data["total_amount"] == 100.0
    user = db["user"].find_one({"_id": ObjectId(customer_id)})
    assert str(user["cart"]) == result.data["id"]


def test_adding_same_line_merges(database, catalog, customer_id):
    cart.add_item(database, customer_id, str(catalog.product_id), "M", 1)
    result = cart.add_item(database, customer_id, str(catalog.product_id), "M", 1)

    assert len(result.data["products"]) == 1
    assert result.data["products"][0]["quantity"] == 2
    assert result.data["total_amount"] == 200.0


def test_cannot_add_more_than_in_stock(database, catalog, customer_id):
    cart.add_item(database, customer_id, str(catalog.product_id), "M", 2)

    more = cart.add_item(database, customer_id, str(catalog.product_id), "M", 1)
    empty_size = cart.add_item(database, customer_id, str(catalog.product_id), "L", 1)

    assert more.reason == "out_of_stock"
    assert empty_size.reason == "out_of_stock"
    assert cart.get_cart(database, customer_id).data["quantity"] == 2


def test_cart_uses_display_price_from_active_sale(database, db, catalog, customer_id):
    sale_id = insert_sale(db, discount_value=25)
    db["product"].update_one({"_id": catalog.product_id}, {"$set": {"sale_info": sale_id}})

    result = cart.add_item(database, customer_id, str(catalog.product_id), "M", 2)

    assert result.data["products"][0]["unit_price"] == 75.0
    assert result.data["total_amount"] == 150.0


def test_update_quantity_and_remove(database, catalog, customer_id):
    pid = str(catalog.product_id)
    cart.add_item(database, customer_id, pid, "M", 2)

    lowered = cart.update_item_quantity(database, customer_id, pid, "M", 1)
    assert lowered.data["quantity"] == 1
    assert lowered.changed is True

    too_many = cart.update_item_quantity(database, customer_id, pid, "M", 5)
    assert too_many.reason == "out_of_stock"

    missing = cart.remove_item(database, customer_id, pid, "XL")
    assert missing.success and missing.changed is False

    removed = cart.update_item_quantity(database, customer_id, pid, "M", 0)
    assert removed.data["products"] == []


def test_update_needs_existing_cart(database, catalog, customer_id):
    result = cart.update_item_quantity(database, customer_id, str(catalog.product_id), "M", 1)
    assert result.reason == "not_found"


def test_clear_cart(database, db, catalog, customer_id):
    cart.add_item(database, customer_id, str(catalog.product_id), "M", 1)

    result = cart.clear_cart(database, customer_id)

    assert result.success and result.changed is True
    assert db["cart"].count_documents({}) == 0
    assert "cart" not in db["user"].find_one({"_id": ObjectId(customer_id)})


def test_deleted_products_drop_out(database, db, catalog, customer_id):
    cart.add_item(database, customer_id, str(catalog.product_id), "M", 1)
    db["product"].delete_one({"_id": catalog.product_id})

    assert cart.get_cart(database, customer_id).data["products"] == []


def test_cart_needs_a_user(database, catalog):
    assert cart.get_cart(database, None).reason == "unauthorized"
    assert cart.add_item(database, str(ObjectId()), str(catalog.product_id), "M", 1).reason == "not_found"
    assert cart.add_item(database, "bogus", str(catalog.product_id), "M", 1).reason == "invalid_request"
