from types import SimpleNamespace

import pytest

from database import Database
from tests.builders import insert_category, insert_product, insert_user
from tests.fakes import FakeAssetStore, FakeClient


@pytest.fixture
def mongo():
    return FakeClient()


@pytest.fixture
def database(mongo):
    database = Database(name="motoshop_test", client=mongo)
    database.ensure_indexes()
    return database


@pytest.fixture
def db(database):
    return database.db


@pytest.fixture
def assets():
    return FakeAssetStore()


@pytest.fixture
def admin_id(db):
    return str(insert_user(db, name="Admin", email="admin@motoshop.ma", role="admin"))


@pytest.fixture
def customer_id(db):
    return str(insert_user(db))


@pytest.fixture
def catalog(db):
    """One helmet priced 100.00 with M:2 and L:0 in stock."""
    category_id, type_id = insert_category(db)
    product_id, stock_id = insert_product(db, category_id, type_id)
    return SimpleNamespace(category_id=category_id, type_id=type_id, product_id=product_id, stock_id=stock_id)
