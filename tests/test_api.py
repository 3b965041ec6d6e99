"""HTTP surface: auth, role gating and the fabric / admin / notification routes."""

import pytest


def create_fabric(client, headers, code="WV-100", initial_stock=100, category="Woven"):
    response = client.post(
        "/fabrics/",
        json={"code": code, "name": "Woven PP 90gsm", "category": category, "initialStock": initial_stock},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestAuth:

    def test_requests_without_token_are_rejected(self, client):
        assert client.get("/fabrics/").status_code == 401

    def test_wrong_password(self, client, admin_headers):
        response = client.post("/auth/login", json={"username": "admin", "password": "nope"})
        assert response.status_code == 400

    def test_form_login(self, client, admin_headers):
        response = client.post("/auth/login", data={"username": "admin", "password": "secret123"})
        assert response.status_code == 200
        assert response.json()["role"] == "Admin"

    def test_me(self, client, user_headers):
        response = client.get("/users/me", headers=user_headers)
        assert response.status_code == 200
        assert response.json()["role"] == "User"

    def test_admin_registers_users(self, client, admin_headers, user_headers):
        body = {"full_name": "Line Lead", "email": "lead@techtex-bd.com", "username": "lead", "password": "secret123", "role": "User"}
        assert client.post("/auth/register", json=body, headers=user_headers).status_code == 403
        response = client.post("/auth/register", json=body, headers=admin_headers)
        assert response.status_code == 201
        assert response.json()["username"] == "lead"


class TestFabricRoutes:

    def test_create_and_list(self, client, user_headers):
        created = create_fabric(client, user_headers)
        assert created["availableStock"] == 100
        assert created["isLowStock"] is False

        listed = client.get("/fabrics/", params={"category": "Woven", "search": "wv"}, headers=user_headers).json()
        assert [f["code"] for f in listed] == ["WV-100"]
        assert client.get("/fabrics/", params={"category": "Non-woven"}, headers=user_headers).json() == []

    def test_duplicate_code_conflicts(self, client, user_headers):
        create_fabric(client, user_headers)
        response = client.post("/fabrics/", json={"code": "WV-100", "name": "Again"}, headers=user_headers)
        assert response.status_code == 409

    def test_negative_initial_stock_is_invalid(self, client, user_headers):
        response = client.post("/fabrics/", json={"code": "X", "name": "X", "initialStock": -1}, headers=user_headers)
        assert response.status_code == 422

    def test_user_cannot_change_initial_stock(self, client, user_headers, admin_headers):
        fabric = create_fabric(client, user_headers)
        response = client.put(f"/fabrics/{fabric['id']}", json={"initialStock": 10}, headers=user_headers)
        assert response.status_code == 400

        response = client.put(f"/fabrics/{fabric['id']}", json={"initialStock": 10}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["isLowStock"] is True

    def test_unknown_fabric_is_404(self, client, user_headers):
        assert client.get("/fabrics/Woven-0", headers=user_headers).status_code == 404

    def test_only_admin_deletes_and_restores(self, client, user_headers, admin_headers):
        fabric = create_fabric(client, user_headers)
        url = f"/fabrics/{fabric['id']}"
        assert client.delete(url, headers=user_headers).status_code == 403

        response = client.request("DELETE", url, json={"reason": "discontinued"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["isDeleted"] is True
        assert client.get(url, headers=user_headers).status_code == 404
        assert client.get("/fabrics/", headers=user_headers).json() == []

        bin_ = client.get("/admin/recycle-bin", headers=admin_headers).json()
        assert [f["deletionReason"] for f in bin_["fabrics"]] == ["discontinued"]

        assert client.post(f"{url}/restore", headers=admin_headers).status_code == 200
        assert len(client.get("/fabrics/", headers=user_headers).json()) == 1


class TestUsageFlow:

    def test_request_approve_and_trace(self, client, user_headers, admin_headers, usage_payload):
        fabric = create_fabric(client, user_headers)
        client.post(f"/fabrics/{fabric['id']}/purchases", json={"quantity": 50, "invoiceNumber": "INV-9"}, headers=user_headers)

        response = client.post(f"/fabrics/{fabric['id']}/usages", json=usage_payload, headers=user_headers)
        assert response.status_code == 201, response.text
        usage = response.json()
        assert usage["status"] == "Pending"
        assert usage["submittedBy"] == "User"
        assert usage["totalFabricUsed"] == 20

        approve_url = f"/fabrics/{fabric['id']}/usages/{usage['id']}/approve"
        assert client.post(approve_url, headers=user_headers).status_code == 403

        approved = client.post(approve_url, headers=admin_headers).json()
        assert approved["status"] == "Confirmed"
        assert approved["actionBy"] == "admin"
        assert client.post(approve_url, headers=admin_headers).status_code == 400

        detail = client.get(f"/fabrics/{fabric['id']}", headers=user_headers).json()
        assert detail["availableStock"] == 130
        assert [p["invoiceNumber"] for p in detail["purchases"]] == ["INV-9"]
        assert [u["status"] for u in detail["usages"]] == ["Confirmed"]

        queue = client.get("/admin/usages/approved", headers=admin_headers).json()
        assert [(row["id"], row["fabricCode"]) for row in queue] == [(usage["id"], "WV-100")]

    def test_usage_over_stock_is_refused(self, client, user_headers, usage_payload):
        fabric = create_fabric(client, user_headers, initial_stock=10)
        response = client.post(f"/fabrics/{fabric['id']}/usages", json=usage_payload, headers=user_headers)
        assert response.status_code == 400
        assert "Insufficient stock" in response.json()["detail"]

    def test_usage_needs_bags(self, client, user_headers, usage_payload):
        fabric = create_fabric(client, user_headers)
        response = client.post(f"/fabrics/{fabric['id']}/usages", json={**usage_payload, "bags": []}, headers=user_headers)
        assert response.status_code == 422

    def test_reject_then_delete_and_restore(self, client, user_headers, admin_headers, usage_payload):
        fabric = create_fabric(client, user_headers)
        usage = client.post(f"/fabrics/{fabric['id']}/usages", json=usage_payload, headers=user_headers).json()
        base = f"/fabrics/{fabric['id']}/usages/{usage['id']}"

        assert client.post(f"{base}/reject", headers=admin_headers).json()["status"] == "Rejected"
        assert [row["id"] for row in client.get("/admin/usages/rejected", headers=admin_headers).json()] == [usage["id"]]

        deleted = client.request("DELETE", base, json={"reason": "typo"}, headers=admin_headers).json()
        assert deleted["isDeleted"] is True
        assert deleted["originalStatusBeforeDelete"] == "Rejected"
        assert client.get("/admin/usages/rejected", headers=admin_headers).json() == []

        bin_ = client.get("/admin/recycle-bin", headers=admin_headers).json()
        assert [row["id"] for row in bin_["transactions"]] == [usage["id"]]

        restored = client.post(f"{base}/restore", headers=admin_headers).json()
        assert restored["isDeleted"] is False
        assert restored["status"] == "Rejected"
        assert restored["deletedBy"] is None

    def test_deleted_usage_must_be_restored_before_approval(self, client, user_headers, admin_headers, usage_payload):
        fabric = create_fabric(client, user_headers)
        usage = client.post(f"/fabrics/{fabric['id']}/usages", json=usage_payload, headers=user_headers).json()
        base = f"/fabrics/{fabric['id']}/usages/{usage['id']}"

        client.delete(base, headers=admin_headers)
        response = client.post(f"{base}/approve", headers=admin_headers)
        assert response.status_code == 400
        assert "deleted" in response.json()["detail"]

        restored = client.post(f"{base}/restore", headers=admin_headers).json()
        assert restored["status"] == "Pending"
        assert client.get(f"/fabrics/{fabric['id']}", headers=user_headers).json()["availableStock"] == 100
        assert [row["id"] for row in client.get("/admin/usages/pending", headers=admin_headers).json()] == [usage["id"]]


class TestNotificationRoutes:

    def test_admin_sees_and_reads_notifications(self, client, user_headers, admin_headers, usage_payload, outbox):
        fabric = create_fabric(client, user_headers)
        usage = client.post(f"/fabrics/{fabric['id']}/usages", json=usage_payload, headers=user_headers).json()

        assert client.get("/notifications/", headers=user_headers).status_code == 403

        listing = client.get("/notifications/", headers=admin_headers).json()
        assert listing["unreadCount"] == 2
        assert {n["id"] for n in listing["notifications"]} == {f"pending-{usage['id']}", f"shipment-{usage['id']}"}
        assert len(outbox.sent) == 2

        read = client.post(f"/notifications/pending-{usage['id']}/read", headers=admin_headers)
        assert read.json()["isRead"] is True
        assert client.get("/notifications/", headers=admin_headers).json()["unreadCount"] == 1

        assert client.post("/notifications/read-all", headers=admin_headers).json() == {"updated": 1}
        assert client.post("/notifications/missing/read", headers=admin_headers).status_code == 404
        assert len(outbox.sent) == 2


class TestSnapshotRoutes:

    def test_export_then_import(self, client, user_headers, admin_headers):
        create_fabric(client, user_headers, initial_stock=5)
        exported = client.get("/admin/snapshot", headers=admin_headers).json()
        assert [f["code"] for f in exported["fabrics"]] == ["WV-100"]
        assert [n["type"] for n in exported["notifications"]] == ["low_stock"]

        response = client.put("/admin/snapshot", json={"fabrics": [], "notifications": exported["notifications"]}, headers=admin_headers)
        assert response.json() == {"fabrics": 0, "notifications": 0}
        assert client.get("/fabrics/", headers=user_headers).json() == []

    @pytest.mark.parametrize("path", ["/admin/snapshot", "/admin/recycle-bin", "/admin/usages/pending"])
    def test_admin_routes_need_admin(self, client, user_headers, path):
        assert client.get(path, headers=user_headers).status_code == 403

    def test_import_with_naive_timestamps(self, client, admin_headers):
        usage = {
            "type": "usage", "submittedBy": "User", "clientName": "Acme", "poNumber": "PO-1",
            "machineNameAndCapacity": "Loom 1", "drawingNumber": "D-1", "orderNumber": "O-1",
            "shipmentDate": "2024-05-01", "orderReceivedDate": "2024-03-01",
            "bags": [{"size": "40x60", "quantity": 1}], "fabricConsumptionPerPiece": 1.0,
        }
        snapshot = {"fabrics": [{
            "id": "Woven-1", "code": "WV-5", "name": "Thin weave", "category": "Woven", "initialStock": 5,
            "transactions": [
                {**usage, "id": "t-u-1", "date": "2024-03-09T10:00:00"},
                {**usage, "id": "t-u-2", "date": "2024-03-07T10:00:00", "isDeleted": True, "deletedAt": "2024-03-08T10:00:00"},
            ],
        }], "notifications": []}
        assert client.put("/admin/snapshot", json=snapshot, headers=admin_headers).status_code == 200

        notifications = client.get("/notifications/", headers=admin_headers)
        assert notifications.status_code == 200
        assert [n["id"] for n in notifications.json()["notifications"]] == ["low-stock-Woven-1", "pending-t-u-1"]

        recycle_bin = client.get("/admin/recycle-bin", headers=admin_headers)
        assert recycle_bin.status_code == 200
        assert [row["id"] for row in recycle_bin.json()["transactions"]] == ["t-u-2"]


class TestUserRoutes:

    def test_duplicate_registration_conflicts(self, client, admin_headers, user_headers):
        body = {"full_name": "Operator Two", "email": "operator@techtex-bd.com", "username": "operator2", "password": "secret123"}
        assert client.post("/auth/register", json=body, headers=admin_headers).status_code == 409

    def test_change_password(self, client, user_headers):
        short = client.post("/users/change-password", json={"old_password": "secret123", "new_password": "abc"}, headers=user_headers)
        assert short.status_code == 422
        wrong = client.post("/users/change-password", json={"old_password": "nope", "new_password": "better456"}, headers=user_headers)
        assert wrong.status_code == 400

        ok = client.post("/users/change-password", json={"old_password": "secret123", "new_password": "better456"}, headers=user_headers)
        assert ok.status_code == 200
        assert client.post("/auth/login", json={"username": "operator", "password": "better456"}).status_code == 200
        assert client.post("/auth/login", json={"username": "operator", "password": "secret123"}).status_code == 400

    def test_deactivated_user_is_locked_out(self, client, admin_headers, user_headers):
        operator = client.get("/users/me", headers=user_headers).json()
        assert [u["username"] for u in client.get("/users/", headers=admin_headers).json()] == ["admin", "operator"]
        assert client.get("/users/", headers=user_headers).status_code == 403

        response = client.post(f"/users/{operator['id']}/deactivate", headers=admin_headers)
        assert response.json()["is_active"] is False
        assert client.get("/users/me", headers=user_headers).status_code == 401
        assert client.post("/auth/login", json={"username": "operator", "password": "secret123"}).status_code == 400

    def test_admin_cannot_deactivate_self(self, client, admin_headers):
        me = client.get("/users/me", headers=admin_headers).json()
        assert client.post(f"/users/{me['id']}/deactivate", headers=admin_headers).status_code == 400
        assert client.post("/users/999/deactivate", headers=admin_headers).status_code == 404
