# Overview: Service-layer operations for the menu catalog; lookups, edits and atomic stock updates.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..errors import NotFoundError
from ..models import MenuItem, User
from ..validation import MAX_PRICE_CENTS, MAX_STOCK, ModelValidationPolicy, validate_payload
from .permission_service import require_permission


MENU_ITEM_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "description", "category", "price_cents", "stock", "is_available"}),
    required_on_create=frozenset({"name", "category", "price_cents"}),
    bounds={"price_cents": (0, MAX_PRICE_CENTS), "stock": (0, MAX_STOCK)},
)


def get_menu_item(menu_item_id: int) -> MenuItem:
    item = db.session.get(MenuItem, menu_item_id)
    if item is None:
        raise NotFoundError(f"Menu item {menu_item_id} not found")
    return item


def list_menu_items(*, category: str | None = None, available_only: bool = False) -> list[MenuItem]:
    q = db.session.query(MenuItem)
    if category:
        q = q.filter(MenuItem.category == category.strip())
    if available_only:
        q = q.filter(MenuItem.is_available.is_(True), MenuItem.stock > 0)
    return q.order_by(MenuItem.category.asc(), MenuItem.name.asc()).all()


def create_menu_item(actor: User, payload: dict) -> MenuItem:
    require_permission(actor, "MANAGE_MENU", resource="menu")

    patch = validate_payload(model=MenuItem, payload=payload, policy=MENU_ITEM_POLICY, partial=False)

    item = MenuItem(**patch)
    db.session.add(item)
    db.session.commit()
    return item


def update_menu_item(actor: User, menu_item_id: int, payload: dict) -> MenuItem:
    """
    Patch a menu item. Last write wins, including for stock: an explicit
    stock edit overwrites whatever reservations have done since it was read.
    """
    require_permission(actor, "MANAGE_MENU", resource=f"menu_item:{menu_item_id}")

    item = get_menu_item(menu_item_id)
    patch = validate_payload(model=MenuItem, payload=payload, policy=MENU_ITEM_POLICY, partial=True)

    for key, value in patch.items():
        setattr(item, key, value)

    db.session.commit()
    return item


# =============================================================================
# Stock reservation primitives
# =============================================================================
#
# Both run inside the caller's transaction and never commit. They issue a
# single UPDATE so concurrent writers can never interleave a read and a write
# of the same stock value.


def reserve_stock(menu_item_id: int, quantity: int) -> bool:
    """
    Conditionally decrement stock.

    UPDATE menu_items SET stock = stock - :q
    WHERE id = :id AND stock >= :q AND is_available

    Returns False when no row matched (item gone, unavailable, or short),
    in which case nothing was changed.
    """
    stmt = (
        update(MenuItem)
        .where(
            MenuItem.id == menu_item_id,
            MenuItem.stock >= quantity,
            MenuItem.is_available.is_(True),
        )
        .values(stock=MenuItem.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    _expire_stock(menu_item_id)
    return result.rowcount == 1


def release_stock(menu_item_id: int, quantity: int) -> None:
    """Return previously reserved quantity to stock (order cancellation)."""
    stmt = (
        update(MenuItem)
        .where(MenuItem.id == menu_item_id)
        .values(stock=MenuItem.stock + quantity)
        .execution_options(synchronize_session=False)
    )
    db.session.execute(stmt)
    _expire_stock(menu_item_id)


def _expire_stock(menu_item_id: int) -> None:
    # Loaded instances must re-read stock after a bulk UPDATE
    item = db.session.identity_map.get(db.session.identity_key(MenuItem, menu_item_id))
    if item is not None:
        db.session.expire(item, ["stock"])
