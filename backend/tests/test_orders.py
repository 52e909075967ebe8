"""
Order placement tests.

Verifies:
- Totals are computed from snapshotted prices
- Stock is decremented exactly once per placement
- Invalid requests leave stock untouched
- Availability and stock failures are all-or-nothing
- Listings page through every order with limit/offset
"""

import pytest

from canteen.errors import (
    InsufficientStockError,
    ItemUnavailableError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from canteen.extensions import db
from canteen.models import MenuItem, Notification, Order
from canteen.services import order_service

from canteen.validation import MAX_ID, MAX_STOCK

from conftest import make_menu_item, make_user


def _stock(menu_item_id: int) -> int:
    return db.session.query(MenuItem.stock).filter_by(id=menu_item_id).scalar()


# =============================================================================
# SERVICE LAYER
# =============================================================================


class TestCreateOrder:

    def test_two_item_scenario(self, student_user, item_a, item_b):
        order = order_service.create_order(
            student_user,
            [
                {"menu_item_id": item_a.id, "quantity": 2},
                {"menu_item_id": item_b.id, "quantity": 1},
            ],
        )

        assert order.status == "pending"
        assert order.total_amount_cents == 380
        assert order.customer_id == student_user.id
        assert order.customer_name == "Student One"
        assert _stock(item_a.id) == 8
        assert _stock(item_b.id) == 4

    def test_total_is_sum_of_lines(self, student_user, item_a, item_b):
        order = order_service.create_order(
            student_user,
            [
                {"menu_item_id": item_a.id, "quantity": 3},
                {"menu_item_id": item_b.id, "quantity": 4},
            ],
        )

        assert order.total_amount_cents == sum(line.line_total_cents for line in order.lines)
        assert order.total_amount_cents == 3 * 150 + 4 * 80
        for line in order.lines:
            assert line.line_total_cents == line.unit_price_cents * line.quantity

    def test_lines_snapshot_name_and_price(self, student_user, item_a):
        order = order_service.create_order(student_user, [{"menu_item_id": item_a.id, "quantity": 1}])
        order_id = order.id

        item = db.session.get(MenuItem, item_a.id)
        item.name = "Renamed"
        item.price_cents = 999
        db.session.commit()

        order = db.session.get(Order, order_id)
        assert order.lines[0].name == "Item A"
        assert order.lines[0].unit_price_cents == 150
        assert order.total_amount_cents == 150

    def test_duplicate_lines_are_merged(self, student_user, item_a):
        order = order_service.create_order(
            student_user,
            [
                {"menu_item_id": item_a.id, "quantity": 2},
                {"menu_item_id": item_a.id, "quantity": 3},
            ],
        )

        assert len(order.lines) == 1
        assert order.lines[0].quantity == 5
        assert _stock(item_a.id) == 5

    def test_duplicate_lines_checked_against_combined_quantity(self, student_user, item_b):
        with pytest.raises(InsufficientStockError):
            order_service.create_order(
                student_user,
                [
                    {"menu_item_id": item_b.id, "quantity": 3},
                    {"menu_item_id": item_b.id, "quantity": 3},
                ],
            )
        assert _stock(item_b.id) == 5

    def test_default_payment_method_is_cash(self, student_user, item_a):
        order = order_service.create_order(student_user, [{"menu_item_id": item_a.id, "quantity": 1}])
        assert order.payment_method == "cash"

    def test_placement_notifies_customer(self, student_user, item_a):
        order = order_service.create_order(student_user, [{"menu_item_id": item_a.id, "quantity": 1}])

        notes = db.session.query(Notification).filter_by(order_id=order.id).all()
        assert [n.status for n in notes] == ["pending"]
        assert notes[0].message == "Your order has been received"


class TestCreateOrderRejections:

    @pytest.mark.parametrize(
        "quantity",
        [0, -1, 1.5, "two", True, None, "+-1", "\u00b2", "\u0663", "1.0", MAX_STOCK + 1, 10**30],
    )
    def test_bad_quantity(self, student_user, item_a, quantity):
        with pytest.raises(ValidationError):
            order_service.create_order(student_user, [{"menu_item_id": item_a.id, "quantity": quantity}])
        assert _stock(item_a.id) == 10

    @pytest.mark.parametrize("menu_item_id", [10**30, str(MAX_ID + 1), "9" * 5000])
    def test_out_of_range_menu_item_id(self, student_user, item_a, menu_item_id):
        with pytest.raises(ValidationError):
            order_service.create_order(student_user, [{"menu_item_id": menu_item_id, "quantity": 1}])
        assert _stock(item_a.id) == 10

    @pytest.mark.parametrize("items", [[], None, "abc", {"menu_item_id": 1, "quantity": 1}])
    def test_empty_or_malformed_items(self, student_user, items):
        with pytest.raises(ValidationError):
            order_service.create_order(student_user, items)

    def test_missing_menu_item_id(self, student_user):
        with pytest.raises(ValidationError):
            order_service.create_order(student_user, [{"quantity": 1}])

    def test_unknown_payment_method(self, student_user, item_a):
        with pytest.raises(ValidationError):
            order_service.create_order(
                student_user,
                [{"menu_item_id": item_a.id, "quantity": 1}],
                payment_method="bitcoin",
            )

    def test_unknown_menu_item_leaves_stock(self, student_user, item_a):
        with pytest.raises(NotFoundError):
            order_service.create_order(
                student_user,
                [
                    {"menu_item_id": item_a.id, "quantity": 2},
                    {"menu_item_id": 999999, "quantity": 1},
                ],
            )
        assert _stock(item_a.id) == 10
        assert db.session.query(Order).count() == 0

    def test_unavailable_item(self, db_session, student_user, item_a):
        item = db.session.get(MenuItem, item_a.id)
        item.is_available = False
        db.session.commit()

        with pytest.raises(ItemUnavailableError):
            order_service.create_order(student_user, [{"menu_item_id": item_a.id, "quantity": 1}])
        assert _stock(item_a.id) == 10

    def test_insufficient_stock_is_all_or_nothing(self, student_user, item_a, item_b):
        with pytest.raises(InsufficientStockError) as exc_info:
            order_service.create_order(
                student_user,
                [
                    {"menu_item_id": item_a.id, "quantity": 2},
                    {"menu_item_id": item_b.id, "quantity": 6},
                ],
            )

        short = exc_info.value.details["items"]
        assert [entry["menu_item_id"] for entry in short] == [item_b.id]
        assert short[0]["available"] == 5
        assert _stock(item_a.id) == 10
        assert _stock(item_b.id) == 5
        assert db.session.query(Order).count() == 0

    def test_exact_stock_succeeds_then_next_fails(self, student_user, item_b):
        order_service.create_order(student_user, [{"menu_item_id": item_b.id, "quantity": 5}])
        assert _stock(item_b.id) == 0

        with pytest.raises(InsufficientStockError):
            order_service.create_order(student_user, [{"menu_item_id": item_b.id, "quantity": 1}])
        assert _stock(item_b.id) == 0

    def test_requires_authentication(self, item_a):
        with pytest.raises(UnauthorizedError):
            order_service.create_order(None, [{"menu_item_id": item_a.id, "quantity": 1}])

    def test_inactive_user_denied(self, db_session, item_a):
        blocked = make_user(db_session, "Blocked", "blocked@canteen.test", "student", is_active=False)
        with pytest.raises(UnauthorizedError):
            order_service.create_order(blocked, [{"menu_item_id": item_a.id, "quantity": 1}])


# =============================================================================
# HTTP
# =============================================================================


class TestOrderRoutes:

    def test_place_order(self, client, student_headers, item_a, item_b):
        resp = client.post(
            "/api/orders",
            json={
                "items": [
                    {"menu_item_id": item_a.id, "quantity": 2},
                    {"menu_item_id": item_b.id, "quantity": 1},
                ],
                "payment_method": "mobile",
                "notes": "extra spicy",
            },
            headers=student_headers,
        )

        assert resp.status_code == 201
        order = resp.json["order"]
        assert order["status"] == "pending"
        assert order["total_amount_cents"] == 380
        assert order["payment_method"] == "mobile"
        assert order["notes"] == "extra spicy"
        assert len(order["items"]) == 2

    def test_zero_quantity_is_400(self, client, student_headers, item_a):
        resp = client.post(
            "/api/orders",
            json={"items": [{"menu_item_id": item_a.id, "quantity": 0}]},
            headers=student_headers,
        )
        assert resp.status_code == 400
        assert resp.json["kind"] == "validation_error"

    @pytest.mark.parametrize(
        "line",
        [
            {"quantity": "+-1"},
            {"quantity": "\u00b2"},
            {"quantity": 1, "menu_item_id": 10**30},
        ],
    )
    def test_malformed_numbers_are_400(self, client, student_headers, item_a, line):
        resp = client.post(
            "/api/orders",
            json={"items": [{"menu_item_id": item_a.id, **line}]},
            headers=student_headers,
        )
        assert resp.status_code == 400
        assert resp.json["kind"] == "validation_error"
        assert _stock(item_a.id) == 10

    def test_unknown_item_is_404(self, client, student_headers):
        resp = client.post(
            "/api/orders",
            json={"items": [{"menu_item_id": 424242, "quantity": 1}]},
            headers=student_headers,
        )
        assert resp.status_code == 404
        assert resp.json["kind"] == "not_found"

    def test_insufficient_stock_is_409(self, client, student_headers, item_b):
        resp = client.post(
            "/api/orders",
            json={"items": [{"menu_item_id": item_b.id, "quantity": 50}]},
            headers=student_headers,
        )
        assert resp.status_code == 409
        assert resp.json["kind"] == "insufficient_stock"
        assert resp.json["details"]["items"][0]["requested"] == 50

    def test_requires_auth(self, client, db_session):
        resp = client.post("/api/orders", json={"items": []})
        assert resp.status_code == 401

    def test_student_lists_only_own_orders(self, client, student_user, other_student, student_headers, item_a):
        mine = order_service.create_order(student_user, [{"menu_item_id": item_a.id, "quantity": 1}])
        order_service.create_order(other_student, [{"menu_item_id": item_a.id, "quantity": 1}])

        resp = client.get("/api/orders", headers=student_headers)
        assert resp.status_code == 200
        assert [o["id"] for o in resp.json["orders"]] == [mine.id]

    def test_staff_lists_all_orders_with_status_filter(self, client, student_user, other_student, staff_user, staff_headers, item_a):
        first = order_service.create_order(student_user, [{"menu_item_id": item_a.id, "quantity": 1}])
        second = order_service.create_order(other_student, [{"menu_item_id": item_a.id, "quantity": 1}])
        order_service.transition_status(staff_user, second.id, "preparing")

        resp = client.get("/api/orders", headers=staff_headers)
        assert {o["id"] for o in resp.json["orders"]} == {first.id, second.id}

        resp = client.get("/api/orders?status=preparing", headers=staff_headers)
        assert [o["id"] for o in resp.json["orders"]] == [second.id]

    def test_bad_status_filter_is_400(self, client, staff_headers):
        resp = client.get("/api/orders?status=lost", headers=staff_headers)
        assert resp.status_code == 400

    def test_staff_pages_past_first_page(self, client, db_session, student_user, staff_headers):
        tea = make_menu_item(db_session, "Tea", price_cents=50, stock=1000)
        placed = [
            order_service.create_order(student_user, [{"menu_item_id": tea.id, "quantity": 1}]).id
            for _ in range(105)
        ]

        first = client.get("/api/orders", headers=staff_headers).json
        second = client.get("/api/orders?offset=100", headers=staff_headers).json
        everything = client.get("/api/orders?limit=500", headers=staff_headers).json

        assert first["count"] == 105
        assert (first["limit"], first["offset"]) == (100, 0)
        assert len(first["orders"]) == 100
        assert len(second["orders"]) == 5
        assert {o["id"] for o in first["orders"] + second["orders"]} == set(placed)
        assert len(everything["orders"]) == 105

    def test_paging_params_are_clamped(self, client, student_user, student_headers, item_a):
        order_service.create_order(student_user, [{"menu_item_id": item_a.id, "quantity": 1}])

        resp = client.get("/api/orders?limit=0&offset=-5", headers=student_headers)
        assert resp.status_code == 200
        assert (resp.json["limit"], resp.json["offset"]) == (1, 0)
        assert len(resp.json["orders"]) == 1

        resp = client.get(f"/api/orders?limit=9999&offset={10**30}", headers=student_headers)
        assert resp.status_code == 200
        assert resp.json["limit"] == 500
        assert resp.json["orders"] == []
        assert resp.json["count"] == 1
