import pytest
from bson import ObjectId
from fastapi import HTTPException

import main


def stock(mock_db, product):
    doc = mock_db["product"].find_one({"_id": ObjectId(product["id"])})
    return doc["quantity"], doc["in_stock"]


def test_order_decrements_stock_and_captures_price(client, mock_db, make_product, order_payload):
    fern = make_product(title="Fern", price=12.5, quantity=5)
    pot = make_product(title="Pot", price=4.0, quantity=2)
    res = client.post("/api/orders", json=order_payload([
        {"product": fern["id"], "quantity": 2},
        {"product": pot["id"], "quantity": 2},
    ]))
    assert res.status_code == 201, res.text
    order = res.json()["order"]
    assert order["total_amount"] == 33.0
    assert order["payment_method"] == "COD"
    assert order["payment_status"] == "PENDING"
    assert order["order_status"] == "PENDING"
    assert [it["price"] for it in order["items"]] == [12.5, 4.0]

    assert stock(mock_db, fern) == (3, True)
    assert stock(mock_db, pot) == (0, False)


def test_item_price_is_point_in_time(client, mock_db, make_product, order_payload):
    fern = make_product(price=10.0)
    order = client.post("/api/orders", json=order_payload([{"product": fern["id"], "quantity": 1}])).json()["order"]
    client.patch(f"/api/products/{fern['id']}", json={"price": 99.0})
    stored = client.get(f"/api/orders/{order['id']}").json()["order"]
    assert stored["items"][0]["price"] == 10.0
    assert stored["items"][0]["product"]["price"] == 99.0


def test_insufficient_stock_changes_nothing(client, mock_db, make_product, order_payload):
    fern = make_product(title="Fern", quantity=5)
    rare = make_product(title="Rare Orchid", quantity=1)
    res = client.post("/api/orders", json=order_payload([
        {"product": fern["id"], "quantity": 2},
        {"product": rare["id"], "quantity": 2},
    ]))
    assert res.status_code == 400
    assert res.json()["detail"] == "Insufficient stock for Rare Orchid"
    assert stock(mock_db, fern) == (5, True)
    assert stock(mock_db, rare) == (1, True)
    assert mock_db["order"].count_documents({}) == 0


def test_repeated_lines_are_summed_for_stock(client, mock_db, make_product, order_payload):
    fern = make_product(quantity=3)
    lines = [{"product": fern["id"], "quantity": 2}, {"product": fern["id"], "quantity": 2}]
    assert client.post("/api/orders", json=order_payload(lines)).status_code == 400
    assert stock(mock_db, fern) == (3, True)


def test_unknown_product(client, order_payload):
    res = client.post("/api/orders", json=order_payload([{"product": str(ObjectId()), "quantity": 1}]))
    assert res.status_code == 400
    assert res.json()["detail"].startswith("Product not found")


@pytest.mark.parametrize("override", [
    {"items": []},
    {"email": "not-an-email"},
    {"address": {"street": "1 Fern Way"}},
    {"payment_method": "BITCOIN"},
])
def test_order_validation(client, make_product, order_payload, override):
    fern = make_product()
    payload = order_payload([{"product": fern["id"], "quantity": 1}])
    payload.update(override)
    assert client.post("/api/orders", json=payload).status_code == 422


def test_reserve_stock_releases_on_race(mock_db, make_product):
    fern = make_product(title="Fern", quantity=5)
    ivy = make_product(title="Ivy", quantity=1)
    # someone else bought the last ivy after the availability check
    mock_db["product"].update_one({"_id": ObjectId(ivy["id"])}, {"$set": {"quantity": 0}})

    with pytest.raises(HTTPException) as exc:
        main.reserve_stock({fern["id"]: 2, ivy["id"]: 1}, {ivy["id"]: "Ivy"})
    assert exc.value.status_code == 400
    assert stock(mock_db, fern) == (5, True)


def test_order_clears_cart(client, mock_db, make_product, order_payload):
    fern = make_product()
    client.post("/api/cart/add", params={"cart_id": "c1"}, json={"product_id": fern["id"], "quantity": 1})
    payload = order_payload([{"product": fern["id"], "quantity": 1}], cart_id="c1")
    assert client.post("/api/orders", json=payload).status_code == 201
    assert mock_db["cart"].find_one({"cart_id": "c1"}) is None


def test_list_orders_joins_products(client, make_product, order_payload):
    fern = make_product(title="Fern")
    for _ in range(3):
        client.post("/api/orders", json=order_payload([{"product": fern["id"], "quantity": 1}]))
    body = client.get("/api/orders", params={"limit": 2}).json()
    assert body["totalOrders"] == 3
    assert body["totalPages"] == 2
    assert len(body["orders"]) == 2
    product = body["orders"][0]["items"][0]["product"]
    assert product["title"] == "Fern"
    assert set(product) == {"id", "title", "price", "image"}


def test_update_order_status(client, make_product, order_payload):
    fern = make_product()
    order = client.post("/api/orders", json=order_payload([{"product": fern["id"], "quantity": 1}])).json()["order"]
    res = client.patch(f"/api/orders/{order['id']}", json={"order_status": "SHIPPED"})
    assert res.status_code == 200
    assert res.json()["order"]["order_status"] == "SHIPPED"
    assert client.patch(f"/api/orders/{order['id']}", json={"order_status": "LOST"}).status_code == 422
    assert client.patch(f"/api/orders/{order['id']}", json={}).status_code == 400

    shipped = client.get("/api/orders", params={"orderStatus": "SHIPPED"}).json()
    assert [o["id"] for o in shipped["orders"]] == [order["id"]]


def test_get_missing_order(client):
    assert client.get(f"/api/orders/{ObjectId()}").status_code == 404


class InterleavedProducts:
    """Product collection that runs the next hook right after a stock `$inc` lands."""

    def __init__(self, real, hooks):
        self._real = real
        self._hooks = hooks

    def _after_inc(self, update):
        if "$inc" in update and self._hooks:
            self._hooks.pop(0)()

    def find_one_and_update(self, filter, update, *args, **kwargs):
        doc = self._real.find_one_and_update(filter, update, *args, **kwargs)
        self._after_inc(update)
        return doc

    def update_one(self, filter, update, *args, **kwargs):
        res = self._real.update_one(filter, update, *args, **kwargs)
        self._after_inc(update)
        return res

    def __getattr__(self, name):
        return getattr(self._real, name)


class InterleavedDB:
    def __init__(self, real, hooks):
        self._real = real
        self._products = InterleavedProducts(real["product"], hooks)

    def __getitem__(self, name):
        return self._products if name == "product" else self._real[name]


def test_in_stock_follows_concurrent_reservations(mock_db, make_product, monkeypatch):
    fern = make_product(title="Fern", quantity=2)
    hooks = [lambda: main.reserve_stock({fern["id"]: 1}, {})]
    monkeypatch.setattr(main, "db", InterleavedDB(mock_db, hooks))

    main.reserve_stock({fern["id"]: 1}, {})

    assert hooks == []
    assert stock(mock_db, fern) == (0, False)


def test_in_stock_follows_reservation_during_release(mock_db, make_product, monkeypatch):
    fern = make_product(title="Fern", quantity=1)
    main.reserve_stock({fern["id"]: 1}, {})
    assert stock(mock_db, fern) == (0, False)

    # another order grabs the unit between the release increment and its in_stock write
    hooks = [lambda: main.reserve_stock({fern["id"]: 1}, {})]
    monkeypatch.setattr(main, "db", InterleavedDB(mock_db, hooks))
    main.release_stock([(fern["id"], 1)])

    assert hooks == []
    assert stock(mock_db, fern) == (0, False)
