# Overview: Permission category constants for grouping related capabilities.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    INVENTORY = "INVENTORY"
    SALES = "SALES"
    REGISTERS = "REGISTERS"
    EXPENSES = "EXPENSES"
    NURSING = "NURSING"
    SUPPLIERS = "SUPPLIERS"
    BRANCHES = "BRANCHES"
    REPORTS = "REPORTS"
    USERS = "USERS"
