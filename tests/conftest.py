import mongomock
import pytest
from fastapi.testclient import TestClient

import database
import main


@pytest.fixture
def mock_db(monkeypatch):
    test_db = mongomock.MongoClient()["green_haven_test"]
    monkeypatch.setattr(database, "db", test_db)
    monkeypatch.setattr(main, "db", test_db)
    monkeypatch.setattr(main, "ADMIN_KEY", None)
    return test_db


@pytest.fixture
def client(mock_db):
    with TestClient(main.app) as c:
        yield c


@pytest.fixture
def category(client):
    res = client.post("/api/categories", json={"name": "Indoor Plants", "description": "Leafy friends"})
    assert res.status_code == 201
    return res.json()["category"]


@pytest.fixture
def make_product(client, category):
    def _make(**overrides):
        payload = {
            "title": "Fiddle Leaf Fig",
            "description": "Tall and glossy",
            "price": 25.0,
            "quantity": 10,
            "rating": 4.5,
            "image": "https://i.ibb.co/fig.png",
            "category": category["id"],
        }
        payload.update(overrides)
        res = client.post("/api/products", json=payload)
        assert res.status_code == 201, res.text
        return res.json()["product"]
    return _make


@pytest.fixture
def order_payload():
    def _payload(items, **overrides):
        payload = {
            "customer_name": "Rowan Ash",
            "email": "rowan@greenhaven.io",
            "phone": "555-0100",
            "address": {"street": "1 Fern Way", "city": "Portland", "state": "OR", "zip_code": "97201"},
            "items": items,
        }
        payload.update(overrides)
        return payload
    return _payload


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._payload is None:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


@pytest.fixture
def fake_response():
    return FakeResponse
