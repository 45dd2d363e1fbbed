import pytest

pytestmark = pytest.mark.anyio

RESTAURANT = {
    "name": "Luigi's Trattoria",
    "address": "12 Mulberry St",
    "phone": "555-123-4567",
    "opening_time": "09:00:00",
    "closing_time": "22:00:00",
}


async def _seed(client, stock=3, price="50.00"):
    response = await client.post("/api/restaurants", json=RESTAURANT)
    assert response.status_code == 201
    restaurant = response.json()

    response = await client.post(
        f"/api/restaurants/{restaurant['id']}/menu-items",
        json={"name": "Pizza Margherita", "price": price, "stock_quantity": stock},
    )
    assert response.status_code == 201
    return restaurant, response.json()


def _order_body(restaurant, item, quantity):
    return {
        "restaurant_id": restaurant["id"],
        "customer_name": "Jane Doe",
        "customer_phone": "555-123-4567",
        "delivery_address": "350 Fifth Avenue",
        "items": [{"menu_item_id": item["id"], "quantity": quantity}],
    }


async def test_root_and_health(client):
    assert (await client.get("/")).status_code == 200

    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["database"] == "healthy"


async def test_restaurant_crud(client):
    restaurant, _ = await _seed(client)
    assert restaurant["opening_time"] == "09:00:00"

    response = await client.get(f"/api/restaurants/{restaurant['id']}")
    assert response.status_code == 200
    assert response.json()["name"] == "Luigi's Trattoria"

    response = await client.get("/api/restaurants/search", params={"keyword": "luigi"})
    assert [r["id"] for r in response.json()] == [restaurant["id"]]

    response = await client.delete(f"/api/restaurants/{restaurant['id']}")
    assert response.status_code == 204
    response = await client.get("/api/restaurants", params={"active_only": True})
    assert response.json() == []


async def test_duplicate_restaurant_name(client):
    await _seed(client)

    response = await client.post("/api/restaurants", json=RESTAURANT)

    assert response.status_code == 400
    assert response.json()["error"] == "restaurant_name_taken"


async def test_unknown_restaurant_is_404(client):
    response = await client.get("/api/restaurants/999")

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "not_found"


async def test_is_open_uses_server_clock(client):
    restaurant, _ = await _seed(client)

    response = await client.get(f"/api/restaurants/{restaurant['id']}/is-open")

    assert response.status_code == 200
    assert response.json()["is_open"] is True


async def test_menu_item_money_is_a_string(client):
    _, item = await _seed(client, price="14.99")
    assert item["price"] == "14.99"


async def test_stock_endpoints(client):
    _, item = await _seed(client, stock=3)
    base = f"/api/menu-items/{item['id']}"

    response = await client.post(f"{base}/stock/reserve", json={"quantity": 2})
    assert response.status_code == 200
    assert response.json()["stock_quantity"] == 1

    response = await client.post(f"{base}/stock/reserve", json={"quantity": 2})
    assert response.status_code == 409
    assert response.json()["error"] == "insufficient_stock"

    response = await client.get(f"{base}/availability", params={"quantity": 1})
    assert response.json()["available"] is True

    response = await client.post(f"{base}/stock/release", json={"quantity": 2})
    assert response.json()["stock_quantity"] == 3

    response = await client.post(f"{base}/stock/reserve", json={"quantity": 0})
    assert response.status_code == 422


async def test_order_flow(client):
    restaurant, item = await _seed(client, stock=3)

    response = await client.post("/api/orders", json=_order_body(restaurant, item, 3))
    assert response.status_code == 201
    order = response.json()
    assert order["status"] == "PENDING"
    assert order["total_amount"] == "150.00"
    assert order["items"][0]["unit_price"] == "50.00"

    response = await client.post("/api/orders", json=_order_body(restaurant, item, 1))
    assert response.status_code == 409
    assert response.json()["error"] == "insufficient_stock"

    response = await client.get(f"/api/orders/by-number/{order['order_number']}")
    assert response.json()["id"] == order["id"]

    response = await client.post(f"/api/orders/{order['id']}/cancel")
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"

    response = await client.get(f"/api/menu-items/{item['id']}")
    assert response.json()["stock_quantity"] == 3

    response = await client.post(f"/api/orders/{order['id']}/cancel")
    assert response.status_code == 409
    assert response.json()["error"] == "invalid_transition"


async def test_status_workflow(client):
    restaurant, item = await _seed(client)
    order = (await client.post("/api/orders", json=_order_body(restaurant, item, 1))).json()
    url = f"/api/orders/{order['id']}/status"

    response = await client.patch(url, json={"status": "DELIVERED"})
    assert response.status_code == 409

    response = await client.patch(url, json={"status": "CONFIRMED"})
    assert response.status_code == 200
    assert response.json()["status"] == "CONFIRMED"

    response = await client.patch(url, json={"status": "LOST"})
    assert response.status_code == 422


async def test_list_orders(client):
    restaurant, item = await _seed(client)
    await client.post("/api/orders", json=_order_body(restaurant, item, 1))

    response = await client.get("/api/orders", params={"status": "pending"})
    body = response.json()
    assert body["total"] == 1
    assert len(body["orders"]) == 1

    response = await client.get("/api/orders", params={"status": "nonsense"})
    assert response.status_code == 400


async def test_order_for_closed_restaurant(client):
    restaurant, item = await _seed(client)
    await client.delete(f"/api/restaurants/{restaurant['id']}")

    response = await client.post("/api/orders", json=_order_body(restaurant, item, 1))

    assert response.status_code == 409
    assert response.json()["error"] == "restaurant_closed"


async def test_order_validation(client):
    restaurant, item = await _seed(client)

    body = _order_body(restaurant, item, 1)
    body["items"] = []
    assert (await client.post("/api/orders", json=body)).status_code == 422

    body = _order_body(restaurant, item, 0)
    assert (await client.post("/api/orders", json=body)).status_code == 422

    body = _order_body(restaurant, {"id": 999}, 1)
    assert (await client.post("/api/orders", json=body)).status_code == 404


async def test_menu_item_edit_leaves_held_stock_alone(client):
    restaurant, item = await _seed(client, stock=3)
    url = f"/api/menu-items/{item['id']}"
    order = (await client.post("/api/orders", json=_order_body(restaurant, item, 3))).json()

    response = await client.put(url, json={"price": "55.00"})
    assert response.status_code == 200
    assert response.json()["price"] == "55.00"
    assert response.json()["stock_quantity"] == 0

    response = await client.put(url, json={"price": "55.00", "stock_quantity": 3})
    assert response.status_code == 422

    await client.post(f"/api/orders/{order['id']}/cancel")
    assert (await client.get(url)).json()["stock_quantity"] == 3
