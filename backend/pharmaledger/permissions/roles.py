# Overview: Default capability grants per role.

from .definitions import PERMISSION_DEFINITIONS

ROLE_ADMIN = "ADMIN"
ROLE_CASHIER = "CASHIER"
ROLE_WAREHOUSE = "WAREHOUSE"

ROLES = (ROLE_ADMIN, ROLE_CASHIER, ROLE_WAREHOUSE)


DEFAULT_ROLE_PERMISSIONS = {
    # Admin gets ALL capabilities, on every branch
    ROLE_ADMIN: [perm[0] for perm in PERMISSION_DEFINITIONS],

    ROLE_CASHIER: [
        "VIEW_INVENTORY",
        "CREATE_SALE",
        "VIEW_SALES",
        "UPDATE_SALE_STATUS",
        "VIEW_REGISTER",
        "OPEN_REGISTER",
        "CLOSE_REGISTER",
        "VIEW_EXPENSES",
        "MANAGE_EXPENSES",
        "RECORD_NURSING_SERVICE",
        "VIEW_SUPPLIERS",
    ],

    ROLE_WAREHOUSE: [
        "VIEW_INVENTORY",
        "MANAGE_PRODUCTS",
        "RESTOCK_PRODUCTS",
        "TRANSFER_STOCK",
        "VIEW_SUPPLIERS",
        "MANAGE_SUPPLIERS",
        "MANAGE_PURCHASES",
    ],
}
