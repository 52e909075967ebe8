"""
Menu catalog tests.

Verifies:
- Public listing with category / availability filters
- Create and patch validation (allow-list, types, non-negative amounts)
- Stock reservation primitives never drive stock below zero
"""

import pytest

from canteen.errors import NotFoundError, PermissionDeniedError, ValidationError
from canteen.extensions import db
from canteen.models import MenuItem
from canteen.services import catalog_service

from conftest import make_menu_item


class TestListing:

    def test_filters(self, client, db_session):
        tea = make_menu_item(db_session, "Tea", 1000, 20, category="Beverages")
        make_menu_item(db_session, "Coffee", 2500, 0, category="Beverages")
        make_menu_item(db_session, "Juice", 4000, 5, category="Beverages", is_available=False)
        make_menu_item(db_session, "Samosa", 1500, 50, category="Snacks")

        everything = client.get("/api/menu").json["items"]
        beverages = client.get("/api/menu?category=Beverages").json["items"]
        orderable = client.get("/api/menu?category=Beverages&available=true").json["items"]

        assert len(everything) == 4
        assert {item["name"] for item in beverages} == {"Tea", "Coffee", "Juice"}
        assert [item["id"] for item in orderable] == [tea.id]

    def test_get_item(self, client, item_a):
        resp = client.get(f"/api/menu/{item_a.id}")
        assert resp.status_code == 200
        assert resp.json["item"]["price_cents"] == 150

    def test_get_missing_item(self, client, db_session):
        resp = client.get("/api/menu/999999")
        assert resp.status_code == 404


class TestMenuManagement:

    def test_staff_creates_item(self, client, staff_headers):
        resp = client.post(
            "/api/menu",
            json={"name": "Egg Bhurji", "category": "Breakfast", "price_cents": 4000, "stock": 12},
            headers=staff_headers,
        )
        assert resp.status_code == 201
        assert resp.json["item"]["stock"] == 12
        assert resp.json["item"]["is_available"] is True

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "X", "category": "Snacks"},
            {"name": "X", "category": "Snacks", "price_cents": -1},
            {"name": "X", "category": "Snacks", "price_cents": 100, "stock": -5},
            {"name": "X", "category": "Snacks", "price_cents": "12.50"},
            {"name": "X", "category": "Snacks", "price_cents": 100, "is_available": "false"},
            {"name": "", "category": "Snacks", "price_cents": 100},
            {"name": "X", "category": "Snacks", "price_cents": 100, "id": 7},
        ],
    )
    def test_invalid_payloads(self, staff_user, payload):
        with pytest.raises(ValidationError):
            catalog_service.create_menu_item(staff_user, payload)
        assert db.session.query(MenuItem).count() == 0

    def test_patch_item(self, client, staff_headers, item_a):
        resp = client.patch(
            f"/api/menu/{item_a.id}",
            json={"stock": 42, "is_available": False},
            headers=staff_headers,
        )
        assert resp.status_code == 200
        assert resp.json["item"]["stock"] == 42
        assert resp.json["item"]["is_available"] is False
        assert resp.json["item"]["name"] == "Item A"

    def test_patch_missing_item(self, staff_user, db_session):
        with pytest.raises(NotFoundError):
            catalog_service.update_menu_item(staff_user, 121212, {"stock": 1})

    def test_student_cannot_manage_menu(self, student_user, item_a):
        with pytest.raises(PermissionDeniedError):
            catalog_service.update_menu_item(student_user, item_a.id, {"price_cents": 1})


class TestStockPrimitives:

    def test_reserve_within_stock(self, item_b):
        assert catalog_service.reserve_stock(item_b.id, 5) is True
        db.session.commit()
        assert db.session.get(MenuItem, item_b.id).stock == 0

    def test_reserve_beyond_stock_changes_nothing(self, item_b):
        assert catalog_service.reserve_stock(item_b.id, 6) is False
        db.session.commit()
        assert db.session.get(MenuItem, item_b.id).stock == 5

    def test_reserve_unavailable_item(self, item_b):
        item = db.session.get(MenuItem, item_b.id)
        item.is_available = False
        db.session.commit()

        assert catalog_service.reserve_stock(item_b.id, 1) is False
        db.session.rollback()

    def test_loaded_instance_sees_new_stock(self, item_b):
        item = db.session.get(MenuItem, item_b.id)
        assert item.stock == 5

        catalog_service.reserve_stock(item_b.id, 2)
        assert item.stock == 3

        catalog_service.release_stock(item_b.id, 2)
        assert item.stock == 5
        db.session.commit()
