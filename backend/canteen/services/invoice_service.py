# Overview: Service-layer operations for invoices; numbering, issuance and lookups.

"""
Invoice Generator

IDEMPOTENCY: an order has at most one invoice (unique invoices.order_id).
Two issuers racing for the same order both try to insert; the loser gets
an IntegrityError, rolls back and re-reads. Auto-issue then returns the
winner's invoice, manual issue raises InvoiceAlreadyExistsError.

NUMBERING: "INV-<year>-<6 digits>" from the per-year InvoiceSequence row,
bumped with a single UPDATE inside the issuing transaction. Numbers are
never derived from a row count.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import (
    InvoiceAlreadyExistsError,
    InvoiceNotYetAvailableError,
    NotFoundError,
    ValidationError,
)
from ..models import Invoice, InvoiceLine, InvoiceSequence, Order, User
from ..validation import MAX_PRICE_CENTS, clamp_page, coerce_non_negative_int, coerce_positive_int
from .concurrency import begin_write, run_with_retry
from .permission_service import (
    require_authenticated,
    require_invoice_access,
    require_order_access,
    require_permission,
    user_has_permission,
)
from canteen.time_utils import utcnow


# Unique-constraint losers are retried; the retry observes the winner's row
ISSUE_RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)

INVOICE_NUMBER_PAD = 6


def next_invoice_number(year: int) -> str:
    """
    Allocate the next invoice number for a year.

    Runs inside the caller's transaction and does not commit. The first
    number of a year inserts the sequence row; two first-of-year issuers
    collide on uq_invoice_sequences_year and the loser's IntegrityError is
    retried by the caller.
    """
    stmt = (
        update(InvoiceSequence)
        .where(InvoiceSequence.year == year)
        .values(next_number=InvoiceSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(InvoiceSequence.next_number)
            .filter_by(year=year)
            .scalar()
        )
        next_num = current - 1
    else:
        db.session.add(InvoiceSequence(year=year, next_number=2))
        db.session.flush()
        next_num = 1

    return f"INV-{year}-{next_num:0{INVOICE_NUMBER_PAD}d}"


def _find_for_order(order_id: int) -> Invoice | None:
    return (
        db.session.query(Invoice)
        .filter_by(order_id=order_id)
        .populate_existing()
        .first()
    )


def _build_invoice(
    order: Order,
    *,
    status: str,
    tax_cents: int = 0,
    discount_cents: int = 0,
    notes: str | None = None,
    issued_by_user_id: int | None = None,
) -> Invoice:
    """Create the invoice and its lines from the order's snapshots. Does not commit."""
    issued_at = utcnow()
    subtotal = order.total_amount_cents
    customer = order.customer

    invoice = Invoice(
        invoice_number=next_invoice_number(issued_at.year),
        order_id=order.id,
        customer_id=order.customer_id,
        customer_name=order.customer_name,
        customer_email=customer.email if customer else None,
        customer_phone=customer.phone if customer else None,
        subtotal_cents=subtotal,
        tax_cents=tax_cents,
        discount_cents=discount_cents,
        total_cents=subtotal + tax_cents - discount_cents,
        payment_method=order.payment_method,
        status=status,
        notes=notes,
        issued_by_user_id=issued_by_user_id,
        issued_at=issued_at,
    )
    db.session.add(invoice)
    db.session.flush()

    for line in order.lines:
        db.session.add(InvoiceLine(
            invoice_id=invoice.id,
            name=line.name,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            total_cents=line.line_total_cents,
        ))

    return invoice


def auto_issue_invoice(order_id: int) -> Invoice:
    """
    Issue the invoice for a delivered order, or return the existing one.

    Idempotent: any number of calls (concurrent or not) leave exactly one
    invoice and all return it.

    Raises:
        NotFoundError: order does not exist
        InvoiceNotYetAvailableError: order is not delivered
    """
    def _op() -> tuple[Invoice, bool]:
        begin_write()

        existing = _find_for_order(order_id)
        if existing is not None:
            db.session.commit()
            return existing, False

        order = db.session.get(Order, order_id, populate_existing=True)
        if order is None:
            raise NotFoundError("Order not found")
        if order.status != "delivered":
            raise InvoiceNotYetAvailableError(
                "Invoice not yet generated. It is issued once the order is delivered."
            )

        invoice = _build_invoice(order, status="paid")
        db.session.commit()
        return invoice, True

    invoice, created = run_with_retry(_op, retry_on=ISSUE_RETRYABLE_ERRORS)
    if created:
        current_app.logger.info(
            "Invoice %s issued automatically for order %s", invoice.invoice_number, order_id
        )
    return invoice


def issue_invoice(
    actor: User,
    order_id,
    *,
    tax_cents=None,
    discount_cents=None,
    notes=None,
) -> Invoice:
    """
    Manually issue an invoice (staff/admin).

    status is "paid" for delivered orders and "pending" otherwise.

    Raises:
        ValidationError: bad amounts, discount larger than subtotal + tax, cancelled order
        NotFoundError: order does not exist
        InvoiceAlreadyExistsError: the order already has an invoice
    """
    require_permission(actor, "ISSUE_INVOICE", resource=f"order:{order_id}")

    order_id = coerce_positive_int(order_id, "order_id")
    tax = coerce_non_negative_int(tax_cents, "tax_cents", maximum=MAX_PRICE_CENTS)
    discount = coerce_non_negative_int(discount_cents, "discount_cents", maximum=MAX_PRICE_CENTS)
    if notes is not None and not isinstance(notes, str):
        raise ValidationError("notes must be a string")
    notes = (notes or "").strip() or None
    actor_id = actor.id

    def _op() -> Invoice:
        begin_write()

        order = db.session.get(Order, order_id, populate_existing=True)
        if order is None:
            raise NotFoundError("Order not found")

        existing = _find_for_order(order_id)
        if existing is not None:
            raise InvoiceAlreadyExistsError(
                "Invoice already exists for this order",
                details={"invoice_id": existing.id, "invoice_number": existing.invoice_number},
            )

        if order.status == "cancelled":
            raise ValidationError("Cannot invoice a cancelled order")
        if discount > order.total_amount_cents + tax:
            raise ValidationError("discount_cents cannot exceed subtotal plus tax")

        invoice = _build_invoice(
            order,
            status="paid" if order.status == "delivered" else "pending",
            tax_cents=tax,
            discount_cents=discount,
            notes=notes,
            issued_by_user_id=actor_id,
        )
        db.session.commit()
        return invoice

    invoice = run_with_retry(_op, retry_on=ISSUE_RETRYABLE_ERRORS)
    current_app.logger.info(
        "Invoice %s issued for order %s by user %s", invoice.invoice_number, order_id, actor_id
    )
    return invoice


def get_invoice_for_order(actor: User, order_id: int) -> Invoice:
    """
    Return the order's invoice, issuing it now if the order was delivered
    but the automatic issue never happened.

    Raises:
        NotFoundError: order does not exist
        ForbiddenError: caller may not see this order
        InvoiceNotYetAvailableError: order is not delivered and has no invoice
    """
    require_authenticated(actor)

    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    require_order_access(actor, order)

    invoice = _find_for_order(order_id)
    if invoice is not None:
        return invoice

    if order.status != "delivered":
        raise InvoiceNotYetAvailableError(
            "Invoice not yet generated. It is issued once the order is delivered.",
            details={"order_status": order.status},
        )
    return auto_issue_invoice(order_id)


def get_invoice(actor: User, invoice_id: int) -> Invoice:
    require_authenticated(actor)

    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError("Invoice not found")

    require_invoice_access(actor, invoice)
    return invoice


def list_invoices(
    actor: User,
    *,
    status: str | None = None,
    limit: int | None = None,
    offset: int | None = None,
) -> tuple[list[Invoice], int]:
    """Students see their own invoices, staff/admin all. Returns (page, total)."""
    require_authenticated(actor)

    q = db.session.query(Invoice)
    if not user_has_permission(actor, "VIEW_ALL_INVOICES"):
        q = q.filter(Invoice.customer_id == actor.id)
    if status:
        q = q.filter(Invoice.status == status.strip().lower())

    limit, offset = clamp_page(limit, offset)
    total = q.count()
    rows = q.order_by(Invoice.issued_at.desc(), Invoice.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def backfill_missing_invoices() -> tuple[list[Invoice], list[int]]:
    """
    Issue invoices for delivered orders that have none.

    Returns (issued invoices, order ids that failed). A failure on one order
    is logged and does not stop the rest.
    """
    order_ids = [
        order_id
        for (order_id,) in (
            db.session.query(Order.id)
            .outerjoin(Invoice, Invoice.order_id == Order.id)
            .filter(Order.status == "delivered", Invoice.id.is_(None))
            .order_by(Order.id.asc())
            .all()
        )
    ]

    issued: list[Invoice] = []
    failed: list[int] = []
    for order_id in order_ids:
        try:
            issued.append(auto_issue_invoice(order_id))
        except Exception:
            current_app.logger.exception("Backfill failed for order %s", order_id)
            failed.append(order_id)

    return issued, failed
