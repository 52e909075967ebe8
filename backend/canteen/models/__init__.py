from .auth import User, SessionToken
from .security import SecurityEvent
from .catalog import MenuItem
from .orders import Order, OrderLine
from .invoices import Invoice, InvoiceLine, InvoiceSequence
from .notifications import Notification

__all__ = [
    'User', 'SessionToken', 'SecurityEvent',
    'MenuItem',
    'Order', 'OrderLine',
    'Invoice', 'InvoiceLine', 'InvoiceSequence',
    'Notification',
]
