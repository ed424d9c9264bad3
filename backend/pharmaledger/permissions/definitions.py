# Overview: All capability definitions organized by category.
# Each capability is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "VIEW_INVENTORY",
        "View Inventory",
        "View products, stock levels and branch stock",
        PermissionCategory.INVENTORY,
    ),
    (
        "MANAGE_PRODUCTS",
        "Manage Products",
        "Create, edit and delete catalog products and lookup values",
        PermissionCategory.INVENTORY,
    ),
    (
        "RESTOCK_PRODUCTS",
        "Restock Products",
        "Add received quantities to central stock (reposition)",
        PermissionCategory.INVENTORY,
    ),
    (
        "TRANSFER_STOCK",
        "Transfer Stock",
        "Move stock from the central catalog into a branch",
        PermissionCategory.INVENTORY,
    ),
]


# -- SALES --

SALES_PERMISSIONS = [
    (
        "CREATE_SALE",
        "Create Sale",
        "Ring up point-of-sale checkouts",
        PermissionCategory.SALES,
    ),
    (
        "VIEW_SALES",
        "View Sales",
        "View sales and online orders",
        PermissionCategory.SALES,
    ),
    (
        "UPDATE_SALE_STATUS",
        "Update Order Status",
        "Move online orders through pending/processing/completed/rejected",
        PermissionCategory.SALES,
    ),
    (
        "DELETE_SALE",
        "Delete Sale",
        "Delete sales, restoring stock and reversing the cash ledger",
        PermissionCategory.SALES,
    ),
]


# -- REGISTERS --

REGISTER_PERMISSIONS = [
    (
        "VIEW_REGISTER",
        "View Register",
        "View the current register session and its movements",
        PermissionCategory.REGISTERS,
    ),
    (
        "OPEN_REGISTER",
        "Open Register",
        "Open a cash register session with an opening balance",
        PermissionCategory.REGISTERS,
    ),
    (
        "CLOSE_REGISTER",
        "Close Register",
        "Close a register session the user opened",
        PermissionCategory.REGISTERS,
    ),
    (
        "CLOSE_ANY_REGISTER",
        "Close Any Register",
        "Close register sessions opened by other users",
        PermissionCategory.REGISTERS,
    ),
]


# -- EXPENSES --

EXPENSE_PERMISSIONS = [
    (
        "VIEW_EXPENSES",
        "View Expenses",
        "View recorded expenses",
        PermissionCategory.EXPENSES,
    ),
    (
        "MANAGE_EXPENSES",
        "Manage Expenses",
        "Record, edit and delete expenses",
        PermissionCategory.EXPENSES,
    ),
]


# -- NURSING --

NURSING_PERMISSIONS = [
    (
        "RECORD_NURSING_SERVICE",
        "Record Nursing Service",
        "Bill nursing services (injections, blood pressure, ...)",
        PermissionCategory.NURSING,
    ),
    (
        "DELETE_NURSING_RECORD",
        "Delete Nursing Record",
        "Delete nursing records and reverse their income",
        PermissionCategory.NURSING,
    ),
]


# -- SUPPLIERS --

SUPPLIER_PERMISSIONS = [
    (
        "VIEW_SUPPLIERS",
        "View Suppliers",
        "View suppliers and purchase history",
        PermissionCategory.SUPPLIERS,
    ),
    (
        "MANAGE_SUPPLIERS",
        "Manage Suppliers",
        "Create, edit and delete suppliers",
        PermissionCategory.SUPPLIERS,
    ),
    (
        "MANAGE_PURCHASES",
        "Manage Purchases",
        "Record, edit and delete supplier purchases",
        PermissionCategory.SUPPLIERS,
    ),
    (
        "PAY_PURCHASES",
        "Pay Purchases",
        "Settle credit purchases (creates the payment expense)",
        PermissionCategory.SUPPLIERS,
    ),
]


# -- BRANCHES --

BRANCH_PERMISSIONS = [
    (
        "MANAGE_BRANCHES",
        "Manage Branches",
        "Create, edit, delete and promote branches",
        PermissionCategory.BRANCHES,
    ),
]


# -- REPORTS --

REPORT_PERMISSIONS = [
    (
        "VIEW_REPORTS",
        "View Reports",
        "Run date-range reports",
        PermissionCategory.REPORTS,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    (
        "MANAGE_USERS",
        "Manage Users",
        "Create user profiles and assign branches",
        PermissionCategory.USERS,
    ),
]


# Combined list of all capabilities (preserves original ordering)
PERMISSION_DEFINITIONS = (
    INVENTORY_PERMISSIONS
    + SALES_PERMISSIONS
    + REGISTER_PERMISSIONS
    + EXPENSE_PERMISSIONS
    + NURSING_PERMISSIONS
    + SUPPLIER_PERMISSIONS
    + BRANCH_PERMISSIONS
    + REPORT_PERMISSIONS
    + USER_PERMISSIONS
)
