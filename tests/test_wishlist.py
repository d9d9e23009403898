from bson import ObjectId

import wishlist


def test_add_is_idempotent(database, db, catalog, customer_id):
    first = wishlist.add_item(database, customer_id, str(catalog.product_id))
    again = wishlist.add_item(database, customer_id, str(catalog.product_id))

    assert first.changed is True
    assert again.success and again.changed is False
    assert db["user"].find_one({"_id": ObjectId(customer_id)})["wishlist"] == [catalog.product_id]


def test_remove(database, catalog, customer_id):
    wishlist.add_item(database, customer_id, str(catalog.product_id))

    assert wishlist.remove_item(database, customer_id, str(catalog.product_id)).changed is True
    assert wishlist.remove_item(database, customer_id, str(catalog.product_id)).changed is False


def test_list_items_with_prices(database, catalog, customer_id):
    wishlist.add_item(database, customer_id, str(catalog.product_id))

    result = wishlist.list_items(database, customer_id)

    assert [p["title"] for p in result.data["products"]] == ["Shoei RF-1400"]
    assert result.data["products"][0]["sale_price"] == 100.0


def test_failures_are_tagged(database, catalog, customer_id):
    assert wishlist.add_item(database, customer_id, "bad-id").reason == "invalid_request"
    assert wishlist.add_item(database, customer_id, str(ObjectId())).reason == "not_found"
    assert wishlist.add_item(database, None, str(catalog.product_id)).reason == "unauthorized"
    assert wishlist.list_items(database, str(ObjectId())).reason == "not_found"
