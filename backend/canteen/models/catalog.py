from __future__ import annotations

from ..extensions import db
from canteen.time_utils import to_utc_z


class MenuItem(db.Model):
    """
    Menu item with price and on-hand stock.

    STOCK INVARIANT: stock >= 0 at all times. Enforced twice:
    - CHECK constraint at the database level
    - order placement only ever decrements with a conditional UPDATE
      (see catalog_service.reserve_stock), never read-then-write

    Prices are integer minor units. Orders snapshot name and price at
    placement, so edits here never rewrite history.
    """
    __tablename__ = "menu_items"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_menu_items_stock_nonneg"),
        db.CheckConstraint("price_cents >= 0", name="ck_menu_items_price_nonneg"),
        db.Index("ix_menu_items_category_available", "category", "is_available"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=False)

    price_cents = db.Column(db.Integer, nullable=False)
    stock = db.Column(db.Integer, nullable=False, default=0)
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<MenuItem id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price_cents": self.price_cents,
            "stock": self.stock,
            "is_available": self.is_available,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
