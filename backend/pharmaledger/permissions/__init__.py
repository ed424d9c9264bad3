# Overview: Capability system package.
# Re-exports all public APIs.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    INVENTORY_PERMISSIONS,
    SALES_PERMISSIONS,
    REGISTER_PERMISSIONS,
    EXPENSE_PERMISSIONS,
    NURSING_PERMISSIONS,
    SUPPLIER_PERMISSIONS,
    BRANCH_PERMISSIONS,
    REPORT_PERMISSIONS,
    USER_PERMISSIONS,
)
from .roles import (
    DEFAULT_ROLE_PERMISSIONS,
    ROLE_ADMIN,
    ROLE_CASHIER,
    ROLE_WAREHOUSE,
    ROLES,
)
from .helpers import (
    get_all_permission_codes,
    get_permissions_by_category,
    get_permission_definition,
    get_role_permissions,
    validate_permission_code,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "INVENTORY_PERMISSIONS",
    "SALES_PERMISSIONS",
    "REGISTER_PERMISSIONS",
    "EXPENSE_PERMISSIONS",
    "NURSING_PERMISSIONS",
    "SUPPLIER_PERMISSIONS",
    "BRANCH_PERMISSIONS",
    "REPORT_PERMISSIONS",
    "USER_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "ROLE_ADMIN",
    "ROLE_CASHIER",
    "ROLE_WAREHOUSE",
    "ROLES",
    "get_all_permission_codes",
    "get_permissions_by_category",
    "get_permission_definition",
    "get_role_permissions",
    "validate_permission_code",
]
