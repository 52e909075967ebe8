# Overview: Service-layer operations for orders; placement, lifecycle transitions and lookups.

"""
Order Engine

PLACEMENT is all-or-nothing. One write transaction:
1. load every requested menu item (missing id -> NotFoundError)
2. check availability and stock against the combined quantity per item
3. conditionally decrement stock (catalog_service.reserve_stock)
4. snapshot name/price into lines, compute the total, insert as pending
Any failure rolls the whole transaction back; stock is never touched
by a rejected order.

LIFECYCLE (strict mode, ORDER_STATUS_STRICT=True):
    pending   -> preparing | cancelled
    preparing -> ready     | cancelled
    ready     -> delivered | cancelled
    delivered, cancelled: terminal

Cancelling returns the order's quantities to stock. Every applied
transition writes a customer notification in the same transaction.
Reaching delivered triggers invoice auto-issue after the commit; that step
is best-effort and never changes the transition result.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import (
    InsufficientStockError,
    InvalidTransitionError,
    ItemUnavailableError,
    NotFoundError,
    ValidationError,
)
from ..models import MenuItem, Order, OrderLine, User
from ..models.orders import ORDER_STATUSES, PAYMENT_METHODS
from ..validation import MAX_STOCK, clamp_page, coerce_positive_int
from .catalog_service import release_stock, reserve_stock
from .concurrency import begin_write, lock_for_update, run_with_retry
from .invoice_service import auto_issue_invoice
from .notification_service import record_status_change
from .permission_service import (
    require_authenticated,
    require_order_access,
    require_permission,
    user_has_permission,
)


TERMINAL_STATUSES = {"delivered", "cancelled"}

ALLOWED_TRANSITIONS = {
    "pending": {"preparing", "cancelled"},
    "preparing": {"ready", "cancelled"},
    "ready": {"delivered", "cancelled"},
    "delivered": set(),
    "cancelled": set(),
}

MAX_NOTES_LENGTH = 500


def validate_status(status) -> str:
    if not isinstance(status, str) or status.strip().lower() not in ORDER_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(ORDER_STATUSES)}"
        )
    return status.strip().lower()


def can_transition(from_status: str, to_status: str) -> bool:
    """
    Check a status change against the lifecycle rules.

    Same-status writes are always allowed (the caller treats them as no-ops).
    With ORDER_STATUS_STRICT disabled any known status may follow any other.
    """
    if from_status == to_status:
        return True
    if not current_app.config.get("ORDER_STATUS_STRICT", True):
        return to_status in ORDER_STATUSES
    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())


def _normalize_items(items) -> dict[int, int]:
    """
    Validate the requested lines and merge duplicates.

    Returns {menu_item_id: total_quantity} in request order.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("Order must contain at least one item")

    requested: dict[int, int] = {}
    for index, entry in enumerate(items):
        if not isinstance(entry, dict):
            raise ValidationError(f"items[{index}] must be an object")
        if entry.get("menu_item_id") is None:
            raise ValidationError(f"items[{index}].menu_item_id is required")

        menu_item_id = coerce_positive_int(entry.get("menu_item_id"), f"items[{index}].menu_item_id")
        quantity = coerce_positive_int(entry.get("quantity"), f"items[{index}].quantity", maximum=MAX_STOCK)
        requested[menu_item_id] = requested.get(menu_item_id, 0) + quantity

    return requested


def _normalize_payment_method(payment_method) -> str:
    if payment_method is None:
        return "cash"
    if not isinstance(payment_method, str) or payment_method.strip().lower() not in PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment_method '{payment_method}'. Must be one of: {', '.join(PAYMENT_METHODS)}"
        )
    return payment_method.strip().lower()


def _normalize_notes(notes) -> str | None:
    if notes is None:
        return None
    if not isinstance(notes, str):
        raise ValidationError("notes must be a string")
    notes = notes.strip()
    if len(notes) > MAX_NOTES_LENGTH:
        raise ValidationError(f"notes exceeds max length {MAX_NOTES_LENGTH}")
    return notes or None


def _check_stock(requested: dict[int, int], menu: dict[int, MenuItem]) -> None:
    missing = [menu_item_id for menu_item_id in requested if menu_item_id not in menu]
    if missing:
        raise NotFoundError(
            f"Menu item {missing[0]} not found",
            details={"menu_item_ids": missing},
        )

    unavailable = [menu[menu_item_id] for menu_item_id in requested if not menu[menu_item_id].is_available]
    if unavailable:
        raise ItemUnavailableError(
            f"{unavailable[0].name} is not available",
            details={"items": [{"menu_item_id": item.id, "name": item.name} for item in unavailable]},
        )

    short = [
        {
            "menu_item_id": menu_item_id,
            "name": menu[menu_item_id].name,
            "requested": quantity,
            "available": menu[menu_item_id].stock,
        }
        for menu_item_id, quantity in requested.items()
        if menu[menu_item_id].stock < quantity
    ]
    if short:
        raise InsufficientStockError(
            f"Insufficient stock for {short[0]['name']}",
            details={"items": short},
        )


def create_order(
    actor: User,
    items,
    *,
    payment_method=None,
    notes=None,
) -> Order:
    """
    Place an order for the calling customer.

    Raises:
        ValidationError: empty/malformed item list, bad quantity or payment method
        NotFoundError: a menu item id does not resolve
        ItemUnavailableError: an item is marked unavailable
        InsufficientStockError: stock cannot cover a line (details list every short item)
    """
    require_permission(actor, "PLACE_ORDER", resource="orders")

    requested = _normalize_items(items)
    payment_method = _normalize_payment_method(payment_method)
    notes = _normalize_notes(notes)
    customer_id = actor.id
    customer_name = actor.name

    def _op() -> Order:
        begin_write()

        menu_items = (
            lock_for_update(db.session.query(MenuItem).filter(MenuItem.id.in_(list(requested))))
            .populate_existing()
            .all()
        )
        menu = {item.id: item for item in menu_items}
        _check_stock(requested, menu)

        # Snapshot before the bulk UPDATEs expire the stock attribute
        snapshots = [
            (menu_item_id, menu[menu_item_id].name, menu[menu_item_id].price_cents, quantity)
            for menu_item_id, quantity in requested.items()
        ]

        for menu_item_id, name, _price, quantity in snapshots:
            if not reserve_stock(menu_item_id, quantity):
                raise InsufficientStockError(
                    f"Insufficient stock for {name}",
                    details={"items": [{"menu_item_id": menu_item_id, "name": name, "requested": quantity}]},
                )

        order = Order(
            customer_id=customer_id,
            customer_name=customer_name,
            payment_method=payment_method,
            notes=notes,
            status="pending",
            total_amount_cents=sum(price * quantity for _id, _name, price, quantity in snapshots),
        )
        db.session.add(order)
        db.session.flush()

        for menu_item_id, name, price, quantity in snapshots:
            db.session.add(OrderLine(
                order_id=order.id,
                menu_item_id=menu_item_id,
                name=name,
                unit_price_cents=price,
                quantity=quantity,
                line_total_cents=price * quantity,
            ))

        record_status_change(order, "pending")
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "Order %s placed by user %s (total_cents=%s)", order.id, customer_id, order.total_amount_cents
    )
    return order


def get_order(actor: User, order_id: int) -> Order:
    require_authenticated(actor)

    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")

    require_order_access(actor, order)
    return order


def list_orders(
    actor: User,
    *,
    status: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> tuple[list[Order], int]:
    """
    Staff/admin see every order; students only their own.

    Returns (page, total) where total counts every matching order.
    """
    require_authenticated(actor)

    q = db.session.query(Order)
    if not user_has_permission(actor, "VIEW_ALL_ORDERS"):
        q = q.filter(Order.customer_id == actor.id)
    if status:
        q = q.filter(Order.status == validate_status(status))

    limit, offset = clamp_page(limit, offset)
    total = q.count()
    rows = q.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def _apply_transition(
    actor: User,
    order_id: int,
    target: str,
    *,
    owner_rules: bool = False,
) -> Order:
    """
    Lock the order, validate and apply one status change.

    owner_rules: the caller is a customer acting on their own order; it must
    own the order and may only move it out of pending.
    """
    def _op() -> tuple[Order, str]:
        begin_write()

        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).populate_existing().first()
        if order is None:
            raise NotFoundError("Order not found")
        if owner_rules:
            require_order_access(actor, order)

        previous = order.status
        if previous == target:
            # Nothing to write; end the transaction to release the write lock
            db.session.commit()
            return order, previous

        if owner_rules and previous != "pending":
            raise InvalidTransitionError(
                "Orders can only be cancelled while pending",
                details={"from": previous, "to": target},
            )
        if not can_transition(previous, target):
            raise InvalidTransitionError(
                f"Cannot change order status from {previous} to {target}",
                details={"from": previous, "to": target},
            )

        lines = db.session.query(OrderLine).filter_by(order_id=order.id).all()
        if target == "cancelled":
            for line in lines:
                release_stock(line.menu_item_id, line.quantity)
        elif previous == "cancelled":
            # Only reachable with ORDER_STATUS_STRICT off: take the stock back
            for line in lines:
                if not reserve_stock(line.menu_item_id, line.quantity):
                    raise InsufficientStockError(
                        f"Insufficient stock to reopen order {order.id}",
                        details={"items": [{"menu_item_id": line.menu_item_id, "name": line.name}]},
                    )

        order.status = target
        record_status_change(order, target)
        db.session.commit()
        return order, previous

    order, previous = run_with_retry(_op)

    if previous != target:
        current_app.logger.info(
            "Order %s status %s -> %s by user %s", order_id, previous, target, actor.id
        )
        if target == "delivered":
            _issue_after_delivery(order_id)

    return order


def _issue_after_delivery(order_id: int) -> None:
    # The transition is already committed; an invoice failure here is
    # retried lazily by the invoice read path and the backfill command.
    try:
        auto_issue_invoice(order_id)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Automatic invoice issue failed for order %s", order_id)


def transition_status(actor: User, order_id: int, status) -> Order:
    """
    Move an order to a new status (staff/admin).

    Raises:
        ValidationError: unknown status value
        InvalidTransitionError: change not allowed from the current status
        NotFoundError: order does not exist
    """
    require_permission(actor, "UPDATE_ORDER_STATUS", resource=f"order:{order_id}")
    target = validate_status(status)
    return _apply_transition(actor, order_id, target)


def cancel_order(actor: User, order_id: int) -> Order:
    """
    Cancel an order.

    Customers may cancel their own orders while pending. Operators holding
    UPDATE_ORDER_STATUS may cancel any order that is not yet terminal.
    """
    require_permission(actor, "CANCEL_OWN_ORDER", resource=f"order:{order_id}")
    owner_rules = not user_has_permission(actor, "UPDATE_ORDER_STATUS")
    return _apply_transition(actor, order_id, "cancelled", owner_rules=owner_rules)
