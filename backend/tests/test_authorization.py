"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Cashier role denied privileged operations (403)
- Capabilities are scoped to the branches a user is assigned to
- Admin role can perform privileged operations
"""

import pytest

from pharmaledger.services import session_service, user_service

from conftest import BRIDGE_SECRET, auth_headers


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/session"),
            ("GET", "/api/branches"),
            ("POST", "/api/branches"),
            ("GET", "/api/products"),
            ("POST", "/api/products/restock"),
            ("GET", "/api/catalog/categories"),
            ("POST", "/api/transfers"),
            ("POST", "/api/registers/open"),
            ("GET", "/api/registers/current"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("GET", "/api/expenses"),
            ("GET", "/api/nursing"),
            ("GET", "/api/suppliers"),
            ("GET", "/api/purchases"),
            ("GET", "/api/reports/sales"),
            ("GET", "/api/users"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client):
        resp = client.get("/api/branches", headers=auth_headers("not-a-token"))
        assert resp.status_code == 401

    def test_public_endpoints(self, client, branch, product):
        assert client.get("/api/health").status_code == 200
        assert client.get("/api/store/products").status_code == 200


# =============================================================================
# CASHIER DENIED PRIVILEGED OPERATIONS (403)
# =============================================================================


class TestCashierDenied:
    """Cashier role cannot perform privileged operations."""

    def test_cannot_list_users(self, client, cashier_headers):
        resp = client.get("/api/users", headers=cashier_headers)
        assert resp.status_code == 403
        assert resp.json["required_permission"] == "MANAGE_USERS"

    def test_cannot_create_branch(self, client, cashier_headers):
        resp = client.post("/api/branches", json={"name": "Sur", "address": "x"}, headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_create_product(self, client, cashier_headers):
        resp = client.post(
            "/api/products",
            json={"commercial_name": "X", "category": "Y", "selling_price_cents": 100},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_delete_sale(self, client, cashier_headers, branch, product):
        created = client.post(
            "/api/sales",
            json={"items": [{"product_id": product["id"], "quantity": 1, "unit_price_cents": 2500}]},
            headers=cashier_headers,
        )
        assert created.status_code == 201

        resp = client.delete(f"/api/sales/{created.json['sale']['id']}", headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_view_reports(self, client, cashier_headers):
        resp = client.get("/api/reports/sales", headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_read_other_branch(self, client, cashier_headers, other_branch):
        resp = client.get(f"/api/sales?branch_id={other_branch.id}", headers=cashier_headers)
        assert resp.status_code == 403


# =============================================================================
# ADMIN ALLOWED
# =============================================================================


class TestAdminAllowed:

    def test_can_list_users(self, client, admin_headers):
        resp = client.get("/api/users", headers=admin_headers)
        assert resp.status_code == 200
        assert [u["uid"] for u in resp.json] == ["admin-1"]

    def test_can_create_branch(self, client, admin_headers):
        resp = client.post("/api/branches", json={"name": "Sur", "address": "Calle 1"}, headers=admin_headers)
        assert resp.status_code == 201
        assert resp.json["is_main"] is False

    def test_can_read_all_branches(self, client, admin_headers):
        resp = client.get("/api/sales", headers=admin_headers)
        assert resp.status_code == 200


# =============================================================================
# SESSIONS
# =============================================================================


class TestSessions:

    def test_bridge_requires_secret(self, client, branch):
        user_service.create_user(uid="u-1", display_name="Uno", role="CASHIER")

        resp = client.post("/api/session", json={"uid": "u-1"})
        assert resp.status_code == 403

        resp = client.post(
            "/api/session",
            json={"uid": "u-1"},
            headers={"X-Identity-Bridge-Secret": BRIDGE_SECRET},
        )
        assert resp.status_code == 201
        assert session_service.validate_session(resp.json["token"]) is not None

    def test_bridge_rejects_unknown_uid(self, client):
        resp = client.post(
            "/api/session",
            json={"uid": "ghost"},
            headers={"X-Identity-Bridge-Secret": BRIDGE_SECRET},
        )
        assert resp.status_code == 401

    def test_logout_revokes(self, client, admin_headers):
        assert client.delete("/api/session", headers=admin_headers).status_code == 200
        assert client.get("/api/session", headers=admin_headers).status_code == 401

    def test_select_unassigned_branch_refused(self, client, cashier_headers, other_branch):
        resp = client.put("/api/session/branch", json={"branch_id": other_branch.id}, headers=cashier_headers)
        assert resp.status_code == 400

    def test_deactivated_user_loses_access(self, client, cashier_headers):
        user_service.update_user("cashier-1", {"is_active": False})
        assert client.get("/api/branches", headers=cashier_headers).status_code == 401

    def test_session_lists_capabilities(self, client, cashier_headers, branch):
        resp = client.get("/api/session", headers=cashier_headers)
        assert resp.status_code == 200
        assert resp.json["active_branch_id"] == branch.id
        assert "CREATE_SALE" in resp.json["capabilities"]
        assert "DELETE_SALE" not in resp.json["capabilities"]
