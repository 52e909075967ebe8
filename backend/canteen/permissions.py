"""
Permission System Constants and Definitions

WHY: Centralized permission definitions ensure consistency across the application.
All permission codes and role mappings defined here.

DESIGN PRINCIPLES:
- Permissions are granular (one action per permission)
- Roles are fixed (admin, staff, student); the mapping below is the policy
- Ownership (a student may only touch their own orders/invoices) is checked
  per record in permission_service, on top of these codes
"""

# =============================================================================
# PERMISSION CATEGORIES
# =============================================================================

class PermissionCategory:
    """Permission categories for organization."""
    ORDERS = "ORDERS"
    INVOICES = "INVOICES"
    MENU = "MENU"
    USERS = "USERS"


# =============================================================================
# PERMISSION DEFINITIONS
# =============================================================================

# Each permission is defined as: (code, name, description, category)
PERMISSION_DEFINITIONS = [
    # ORDER PERMISSIONS
    (
        "PLACE_ORDER",
        "Place Order",
        "Place orders for yourself",
        PermissionCategory.ORDERS
    ),
    (
        "VIEW_ALL_ORDERS",
        "View All Orders",
        "View every customer's orders (not just your own)",
        PermissionCategory.ORDERS
    ),
    (
        "UPDATE_ORDER_STATUS",
        "Update Order Status",
        "Move orders through the fulfillment pipeline",
        PermissionCategory.ORDERS
    ),
    (
        "CANCEL_OWN_ORDER",
        "Cancel Own Order",
        "Cancel your own order while it is still pending",
        PermissionCategory.ORDERS
    ),

    # INVOICE PERMISSIONS
    (
        "VIEW_ALL_INVOICES",
        "View All Invoices",
        "View every customer's invoices (not just your own)",
        PermissionCategory.INVOICES
    ),
    (
        "ISSUE_INVOICE",
        "Issue Invoice",
        "Manually issue an invoice with custom tax/discount",
        PermissionCategory.INVOICES
    ),

    # MENU PERMISSIONS
    (
        "MANAGE_MENU",
        "Manage Menu",
        "Create and edit menu items, prices and stock",
        PermissionCategory.MENU
    ),

    # USER PERMISSIONS
    (
        "MANAGE_USERS",
        "Manage Users",
        "Create users, change roles, block accounts",
        PermissionCategory.USERS
    ),
]

ALL_PERMISSION_CODES = frozenset(code for code, _, _, _ in PERMISSION_DEFINITIONS)


# =============================================================================
# DEFAULT ROLE PERMISSIONS
# =============================================================================

DEFAULT_ROLE_PERMISSIONS = {
    # Admin: everything
    "admin": set(ALL_PERMISSION_CODES),

    # Staff: run the counter, no user administration
    "staff": {
        "PLACE_ORDER",
        "VIEW_ALL_ORDERS",
        "UPDATE_ORDER_STATUS",
        "CANCEL_OWN_ORDER",
        "VIEW_ALL_INVOICES",
        "ISSUE_INVOICE",
        "MANAGE_MENU",
    },

    # Student: own orders and own invoices only
    "student": {
        "PLACE_ORDER",
        "CANCEL_OWN_ORDER",
    },
}
