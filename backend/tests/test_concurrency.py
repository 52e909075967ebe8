"""
Concurrency tests.

Runs real threads against a file-backed SQLite database (each thread in its
own app context and session) to verify:
- Concurrent placements never oversell stock
- Invoice numbers stay unique and strictly increasing under load
- Delivery racing a manual issue leaves exactly one invoice
- Concurrent auto-issues for one order converge on one invoice
"""

import os
import tempfile
import threading

import pytest

from canteen import create_app
from canteen.errors import InsufficientStockError, InvoiceAlreadyExistsError
from canteen.extensions import db
from canteen.models import Invoice, MenuItem, Order, User
from canteen.services import invoice_service, order_service

from conftest import FAST_PASSWORD_HASH


@pytest.fixture
def file_app():
    tmpdir = tempfile.TemporaryDirectory()
    db_path = os.path.join(tmpdir.name, "concurrency.db")
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
    })

    with app.app_context():
        db.drop_all()
        db.create_all()

        for name, email, role in [
            ("Concurrent Staff", "staff@concurrency.test", "staff"),
            ("Concurrent Student", "student@concurrency.test", "student"),
        ]:
            db.session.add(User(name=name, email=email, role=role, password_hash=FAST_PASSWORD_HASH))
        db.session.add(MenuItem(name="Limited Pie", category="Snacks", price_cents=200, stock=5))
        db.session.add(MenuItem(name="Plenty Tea", category="Beverages", price_cents=50, stock=10_000))
        db.session.commit()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()
    tmpdir.cleanup()


def _ids(app):
    with app.app_context():
        staff_id = db.session.query(User.id).filter_by(role="staff").scalar()
        student_id = db.session.query(User.id).filter_by(role="student").scalar()
        pie_id = db.session.query(MenuItem.id).filter_by(name="Limited Pie").scalar()
        tea_id = db.session.query(MenuItem.id).filter_by(name="Plenty Tea").scalar()
    return staff_id, student_id, pie_id, tea_id


def _run_threads(app, target, args_list):
    """Start one thread per args tuple, all released together by a barrier."""
    results = []
    lock = threading.Lock()
    barrier = threading.Barrier(len(args_list))

    def worker(*args):
        with app.app_context():
            try:
                barrier.wait()
                outcome = target(*args)
            except Exception as exc:
                outcome = exc
            finally:
                db.session.remove()
            with lock:
                results.append(outcome)

    threads = [threading.Thread(target=worker, args=args) for args in args_list]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def _place_and_deliver(app, staff_id, student_id, tea_id, count):
    order_ids = []
    with app.app_context():
        staff = db.session.get(User, staff_id)
        student = db.session.get(User, student_id)
        for _ in range(count):
            order = order_service.create_order(student, [{"menu_item_id": tea_id, "quantity": 1}])
            order_ids.append(order.id)
            for status in ("preparing", "ready"):
                order_service.transition_status(staff, order.id, status)
        db.session.remove()
    return order_ids


def test_concurrent_orders_never_oversell(file_app):
    _staff_id, student_id, pie_id, _tea_id = _ids(file_app)

    def place():
        student = db.session.get(User, student_id)
        order = order_service.create_order(student, [{"menu_item_id": pie_id, "quantity": 1}])
        return order.id

    results = _run_threads(file_app, place, [() for _ in range(12)])

    placed = [r for r in results if isinstance(r, int)]
    rejected = [r for r in results if isinstance(r, InsufficientStockError)]
    assert len(placed) == 5
    assert len(rejected) == 7
    assert len(placed) + len(rejected) == len(results)

    with file_app.app_context():
        assert db.session.get(MenuItem, pie_id).stock == 0
        assert db.session.query(Order).count() == 5


def test_invoice_numbers_unique_and_increasing_under_load(file_app):
    staff_id, student_id, _pie_id, tea_id = _ids(file_app)
    order_ids = _place_and_deliver(file_app, staff_id, student_id, tea_id, 50)

    def issue(order_id):
        staff = db.session.get(User, staff_id)
        return invoice_service.issue_invoice(staff, order_id).invoice_number

    results = _run_threads(file_app, issue, [(order_id,) for order_id in order_ids])

    assert all(isinstance(r, str) for r in results), [r for r in results if not isinstance(r, str)]
    assert len(set(results)) == 50

    with file_app.app_context():
        invoices = db.session.query(Invoice).order_by(Invoice.id.asc()).all()
        sequence = [int(invoice.invoice_number.rsplit("-", 1)[1]) for invoice in invoices]
        year = invoices[0].issued_at.year

    assert sequence == list(range(1, 51))
    assert all(number.startswith(f"INV-{year}-") for number in results)


def test_delivery_racing_manual_issue_leaves_one_invoice(file_app):
    staff_id, student_id, _pie_id, tea_id = _ids(file_app)
    order_ids = _place_and_deliver(file_app, staff_id, student_id, tea_id, 5)

    def deliver(order_id):
        staff = db.session.get(User, staff_id)
        return order_service.transition_status(staff, order_id, "delivered").status

    def manual_issue(order_id):
        staff = db.session.get(User, staff_id)
        return invoice_service.issue_invoice(staff, order_id).invoice_number

    for order_id in order_ids:
        results = _run_threads(
            file_app,
            lambda fn, oid: fn(oid),
            [(deliver, order_id), (manual_issue, order_id)],
        )
        unexpected = [
            r for r in results
            if isinstance(r, Exception) and not isinstance(r, InvoiceAlreadyExistsError)
        ]
        assert unexpected == []
        assert "delivered" in results

    with file_app.app_context():
        for order_id in order_ids:
            assert db.session.query(Invoice).filter_by(order_id=order_id).count() == 1


def test_concurrent_auto_issue_converges(file_app):
    staff_id, student_id, _pie_id, tea_id = _ids(file_app)
    (order_id,) = _place_and_deliver(file_app, staff_id, student_id, tea_id, 1)

    with file_app.app_context():
        order = db.session.get(Order, order_id)
        order.status = "delivered"
        db.session.commit()

    def auto_issue():
        invoice = invoice_service.auto_issue_invoice(order_id)
        return invoice.id, invoice.invoice_number

    results = _run_threads(file_app, auto_issue, [() for _ in range(8)])

    assert all(isinstance(r, tuple) for r in results), results
    assert len(set(results)) == 1

    with file_app.app_context():
        assert db.session.query(Invoice).filter_by(order_id=order_id).count() == 1
