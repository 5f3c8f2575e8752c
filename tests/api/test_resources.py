"""API resource tests."""

import asyncio
import csv
import io
import json
from uuid import uuid4

import pytest
from falcon.testing import TestClient

from tests.api.conftest import CLERK, ROOT


def _create_role(client: TestClient, body: dict, headers=ROOT):
    return client.simulate_post("/v1/roles", json=body, headers=headers)


def _published_role(client: TestClient, role_id: str, permissions: list[dict], **extra) -> None:
    result = _create_role(client, {"id": role_id, "permissions": permissions, **extra})
    assert result.status_code == 201
    assert client.simulate_post(f"/v1/roles/{role_id}/publish", headers=ROOT).status_code == 200


class TestAuthentication:
    def test_missing_identity_is_unauthorized(self, client: TestClient) -> None:
        result = client.simulate_post("/v1/check", json={"resource_type": "tasks", "action": "read"})
        assert result.status_code == 401

    def test_health_does_not_need_identity(self, client: TestClient) -> None:
        assert client.simulate_get("/v1/health").status_code == 200


class TestCheck:
    def test_own_permission_allowed(self, client: TestClient) -> None:
        result = client.simulate_post(
            "/v1/check", json={"resource_type": "tasks", "action": "read"}, headers=CLERK
        )
        assert result.status_code == 200
        assert result.json["allowed"] is True
        assert result.json["outcome"] == "allow"
        assert result.json["reason"] == "granted"
        assert result.json["user_id"] == "clerk-1"
        assert "/role:user/direct" in result.json["matched_rule"]

    def test_deny_is_a_normal_response(self, client: TestClient) -> None:
        result = client.simulate_post(
            "/v1/check", json={"resource_type": "settings", "action": "configure"}, headers=CLERK
        )
        assert result.status_code == 200
        assert result.json["allowed"] is False
        assert result.json["reason"] == "no matching grant"

    def test_malformed_request_is_denied(self, client: TestClient) -> None:
        result = client.simulate_post(
            "/v1/check",
            json={"resource_type": "spaceships", "action": "read"},
            headers=CLERK,
        )
        assert result.status_code == 200
        assert result.json["allowed"] is False
        assert result.json["reason"] == "malformed request"

    def test_checking_other_user_needs_users_read(self, client: TestClient) -> None:
        body = {"user_id": "root", "resource_type": "audit", "action": "read"}
        assert client.simulate_post("/v1/check", json=body, headers=CLERK).status_code == 403

        body = {"user_id": "clerk-1", "resource_type": "audit", "action": "read"}
        result = client.simulate_post("/v1/check", json=body, headers=ROOT)
        assert result.status_code == 200
        assert result.json["allowed"] is False

    def test_scope_context_is_applied(self, client: TestClient) -> None:
        _published_role(client, "store_manager", [{"resource_type": "tickets", "actions": ["close"]}])
        client.simulate_post(
            "/v1/assignments",
            json={
                "user_id": "sm-1",
                "role_id": "store_manager",
                "scope": {"type": "department", "values": ["08"]},
            },
            headers=ROOT,
        )

        def check(department: str) -> dict:
            return client.simulate_post(
                "/v1/check",
                json={
                    "resource_type": "tickets",
                    "action": "close",
                    "scope_context": {"department": department},
                },
                headers={"X-User-Id": "sm-1"},
            ).json

        assert check("08")["allowed"] is True
        denied = check("10")
        assert denied["allowed"] is False
        assert denied["reason"] == "scope not covered"

    def test_request_context_drives_contextual_rules(self, client: TestClient) -> None:
        _published_role(
            client,
            "contractor",
            [{"resource_type": "reports", "actions": ["read"]}],
            contextual_rules=[
                {
                    "id": "office-only",
                    "condition": {"locations": ["office"], "negate": True},
                    "denied_permissions": [{"resource_type": "reports", "actions": ["read"]}],
                }
            ],
        )
        client.simulate_post(
            "/v1/assignments", json={"user_id": "temp-1", "role_id": "contractor"}, headers=ROOT
        )
        headers = {"X-User-Id": "temp-1"}

        def check(location: str) -> dict:
            return client.simulate_post(
                "/v1/check",
                json={"resource_type": "reports", "action": "read", "context": {"location": location}},
                headers=headers,
            ).json

        assert check("office")["allowed"] is True
        remote = check("home")
        assert remote["allowed"] is False
        assert remote["reason"] == "denied by contextual rule"

    def test_invalid_body(self, client: TestClient) -> None:
        result = client.simulate_post(
            "/v1/check", body="not json", headers={**CLERK, "Content-Type": "application/json"}
        )
        assert result.status_code == 400
        assert "error" in result.json

        result = client.simulate_post(
            "/v1/check",
            json={"resource_type": "tasks", "action": "read", "context": {"now": "yesterday"}},
            headers=CLERK,
        )
        assert result.status_code == 400

    def test_batch_check(self, client: TestClient) -> None:
        body = {
            "checks": [
                {"resource_type": "settings", "action": "configure"},
                {"resource_type": "tasks", "action": "read"},
            ]
        }
        result = client.simulate_post("/v1/check/batch", json=body, headers=CLERK)

        assert result.status_code == 200
        assert [i["allowed"] for i in result.json["items"]] == [False, True]
        assert result.json["items"][1]["action"] == "read"
        assert result.json["any_allowed"] is True

    def test_batch_check_validation(self, client: TestClient) -> None:
        result = client.simulate_post("/v1/check/batch", json={"checks": "tasks"}, headers=CLERK)
        assert result.status_code == 400
        body = {"user_id": "root", "checks": [{"resource_type": "tasks", "action": "read"}]}
        assert client.simulate_post("/v1/check/batch", json=body, headers=CLERK).status_code == 403

    def test_conditional_entries_follow_request_flags(self, client: TestClient, api_engine) -> None:
        permissions = [
            {"resource_type": "reports", "actions": ["read", "export"]},
            {
                "resource_type": "reports",
                "actions": ["export"],
                "effect": "deny",
                "conditions": ["off_network"],
            },
        ]
        _published_role(client, "analyst", permissions)
        asyncio.run(api_engine.assignment_store.assign("an-1", "analyst"))
        headers = {"X-User-Id": "an-1"}
        body = {"resource_type": "reports", "action": "export"}

        office = client.simulate_post("/v1/check", json=body, headers=headers)
        away = client.simulate_post(
            "/v1/check", json={**body, "context": {"flags": ["off_network"]}}, headers=headers
        )

        assert office.json["allowed"] is True
        assert away.json["allowed"] is False
        assert away.json["reason"] == "explicit deny"


class TestEffectivePermissions:
    def test_own_permissions(self, client: TestClient) -> None:
        result = client.simulate_get("/v1/users/clerk-1/permissions", headers=CLERK)
        assert result.status_code == 200
        items = {(i["resource_type"], i["action"]) for i in result.json["items"]}
        assert items == {
            ("tasks", "read"),
            ("tasks", "update"),
            ("documents", "read"),
            ("documents", "create"),
            ("calendar", "read"),
        }

    def test_other_users_permissions_need_users_read(self, client: TestClient) -> None:
        assert client.simulate_get("/v1/users/root/permissions", headers=CLERK).status_code == 403
        result = client.simulate_get(
            "/v1/users/clerk-1/permissions", params={"department": "08"}, headers=ROOT
        )
        assert result.status_code == 200
        assert result.json["scope_context"] == {"department": "08"}


class TestRoles:
    def test_create_get_publish(self, client: TestClient) -> None:
        result = _create_role(
            client,
            {
                "id": "employee",
                "name": "Employee",
                "permissions": [{"resource_type": "documents", "actions": ["read"]}],
            },
        )
        assert result.status_code == 201
        assert result.json["status"] == "draft"
        assert result.json["created_by"] == "root"

        _create_role(
            client,
            {
                "id": "team_lead",
                "parent_id": "employee",
                "permissions": [{"resource_type": "documents", "actions": ["write"]}],
            },
        )
        role = client.simulate_get("/v1/roles/team_lead", headers=ROOT).json
        assert role["level"] == 1
        provenance = {(p["action"], p["provenance"]) for p in role["effective_permissions"]}
        assert provenance == {("write", "direct"), ("read", "inherited-from:employee")}

        published = client.simulate_post("/v1/roles/employee/publish", headers=ROOT)
        assert published.status_code == 200
        assert published.json["status"] == "published"

        published_ids = [
            r["id"] for r in client.simulate_get("/v1/roles", params={"status": "published"}, headers=ROOT).json["items"]
        ]
        assert "employee" in published_ids
        assert "team_lead" not in published_ids

    def test_duplicate_role_conflicts(self, client: TestClient) -> None:
        assert _create_role(client, {"id": "dup"}).status_code == 201
        result = _create_role(client, {"id": "dup"})
        assert result.status_code == 409
        assert "already exists" in result.json["error"]

    def test_invalid_role_definition(self, client: TestClient) -> None:
        result = _create_role(
            client, {"id": "bad", "permissions": [{"resource_type": "documents", "actions": ["fly"]}]}
        )
        assert result.status_code == 400
        assert _create_role(client, {"name": "No id"}).status_code == 400

    def test_cycle_is_rejected(self, client: TestClient) -> None:
        _create_role(client, {"id": "A"})
        _create_role(client, {"id": "B", "parent_id": "A"})

        result = client.simulate_patch("/v1/roles/A", json={"parent_id": "B"}, headers=ROOT)

        assert result.status_code == 400
        assert "cycle detected" in result.json["error"]
        assert client.simulate_get("/v1/roles/A", headers=ROOT).json["parent_id"] is None

    def test_patch_draft_role(self, client: TestClient) -> None:
        _create_role(client, {"id": "editable"})
        result = client.simulate_patch(
            "/v1/roles/editable",
            json={"description": "now with grants", "permissions": [{"resource_type": "tasks", "actions": ["read"]}]},
            headers=ROOT,
        )
        assert result.status_code == 200
        assert result.json["version"] == 2
        assert result.json["permissions"][0]["resource_type"] == "tasks"

    def test_system_role_is_immutable(self, client: TestClient) -> None:
        result = client.simulate_patch("/v1/roles/admin", json={"description": "x"}, headers=ROOT)
        assert result.status_code == 400
        assert "immutable" in result.json["error"]

    def test_hierarchy(self, client: TestClient) -> None:
        _create_role(client, {"id": "root_role"})
        _create_role(client, {"id": "mid_role", "parent_id": "root_role"})
        _create_role(client, {"id": "leaf_role", "parent_id": "mid_role"})

        result = client.simulate_get("/v1/roles/mid_role/hierarchy", headers=ROOT)

        assert result.status_code == 200
        assert result.json["chain"] == ["mid_role", "root_role"]
        assert [a["id"] for a in result.json["ancestors"]] == ["root_role"]
        assert [c["id"] for c in result.json["subtree"]["children"]] == ["leaf_role"]

        tree = client.simulate_get("/v1/roles", params={"view": "tree"}, headers=ROOT).json["items"]
        assert "root_role" in {node["id"] for node in tree}

    def test_archive_returns_impacted_assignments(self, client: TestClient) -> None:
        _published_role(client, "seasonal", [{"resource_type": "tasks", "actions": ["read"]}])
        client.simulate_post(
            "/v1/assignments", json={"user_id": "temp-2", "role_id": "seasonal"}, headers=ROOT
        )

        result = client.simulate_post("/v1/roles/seasonal/archive", headers=ROOT)

        assert result.status_code == 200
        assert result.json["role"]["status"] == "archived"
        assert [a["user_id"] for a in result.json["impacted_assignments"]] == ["temp-2"]
        again = client.simulate_post(
            "/v1/assignments", json={"user_id": "temp-3", "role_id": "seasonal"}, headers=ROOT
        )
        assert again.status_code == 400

    def test_delete_draft_role(self, client: TestClient) -> None:
        _create_role(client, {"id": "scratch"})
        assert client.simulate_delete("/v1/roles/scratch", headers=ROOT).status_code == 204
        assert client.simulate_get("/v1/roles/scratch", headers=ROOT).status_code == 404

    def test_clerk_cannot_manage_roles(self, client: TestClient) -> None:
        assert _create_role(client, {"id": "sneaky"}, headers=CLERK).status_code == 403
        assert client.simulate_get("/v1/roles", headers=CLERK).status_code == 403

    def test_unknown_role(self, client: TestClient) -> None:
        result = client.simulate_get("/v1/roles/ghost", headers=ROOT)
        assert result.status_code == 404
        assert "ghost" in result.json["error"]

    def test_unknown_status_filter(self, client: TestClient) -> None:
        assert client.simulate_get("/v1/roles", params={"status": "sleeping"}, headers=ROOT).status_code == 400

    def test_clone_role(self, client: TestClient) -> None:
        _published_role(client, "auditor", [{"resource_type": "audit", "actions": ["read"]}])

        result = client.simulate_post("/v1/roles/auditor/clone", headers=ROOT)
        assert result.status_code == 201
        assert result.json["id"] == "auditor_copy"
        assert result.json["status"] == "draft"

        named = client.simulate_post(
            "/v1/roles/auditor/clone", json={"id": "auditor_eu", "name": "EU Auditor"}, headers=ROOT
        )
        assert named.status_code == 201
        assert named.json["name"] == "EU Auditor"
        assert client.simulate_post("/v1/roles/auditor/clone", headers=ROOT).status_code == 409
        assert client.simulate_post("/v1/roles/auditor/clone", headers=CLERK).status_code == 403

    def test_export_and_import_role(self, client: TestClient) -> None:
        _published_role(
            client, "auditor", [{"resource_type": "audit", "actions": ["read", "export"]}]
        )

        exported = client.simulate_get("/v1/roles/auditor/export", headers=ROOT)
        assert exported.status_code == 200
        assert "auditor.json" in exported.headers["content-disposition"]
        assert exported.json["id"] == "auditor"

        imported = client.simulate_post("/v1/roles/import", body=exported.text, headers=ROOT)
        assert imported.status_code == 201
        assert imported.json["id"] == "auditor_imported"
        assert imported.json["status"] == "draft"
        assert imported.json["permissions"] == exported.json["permissions"]

        renamed = client.simulate_post(
            "/v1/roles/import", body=exported.text, params={"id": "auditor_b"}, headers=ROOT
        )
        assert renamed.json["id"] == "auditor_b"
        assert client.simulate_post("/v1/roles/import", body="nope", headers=ROOT).status_code == 400
        assert (
            client.simulate_post("/v1/roles/import", body=exported.text, headers=CLERK).status_code
            == 403
        )
        assert client.simulate_get("/v1/roles/ghost/export", headers=ROOT).status_code == 404


class TestAssignments:
    def test_assign_list_revoke(self, client: TestClient) -> None:
        created = client.simulate_post(
            "/v1/assignments",
            json={
                "user_id": "u-9",
                "role_id": "manager",
                "scope": {"type": "project", "values": ["apollo"]},
                "reason": "project lead",
            },
            headers=ROOT,
        )
        assert created.status_code == 201
        assert created.json["created_by"] == "root"
        assert created.json["scope"] == {"type": "project", "values": ["apollo"]}

        listed = client.simulate_get("/v1/assignments", params={"user_id": "u-9"}, headers=ROOT)
        assert [a["id"] for a in listed.json["items"]] == [created.json["id"]]

        revoked = client.simulate_delete(f"/v1/assignments/{created.json['id']}", headers=ROOT)
        assert revoked.status_code == 200
        assert revoked.json["revoked_by"] == "root"

        listed = client.simulate_get("/v1/assignments", params={"user_id": "u-9"}, headers=ROOT)
        assert listed.json["items"] == []
        with_revoked = client.simulate_get(
            "/v1/assignments", params={"user_id": "u-9", "include_revoked": "true"}, headers=ROOT
        )
        assert len(with_revoked.json["items"]) == 1

    def test_own_assignments_are_visible(self, client: TestClient) -> None:
        own = client.simulate_get("/v1/assignments", params={"user_id": "clerk-1"}, headers=CLERK)
        assert own.status_code == 200
        assert [a["role_id"] for a in own.json["items"]] == ["user"]

        others = client.simulate_get("/v1/assignments", params={"role_id": "super_admin"}, headers=CLERK)
        assert others.status_code == 403

    def test_duplicate_assignment_conflicts(self, client: TestClient) -> None:
        body = {"user_id": "clerk-1", "role_id": "user"}
        result = client.simulate_post("/v1/assignments", json=body, headers=ROOT)
        assert result.status_code == 409

    def test_unknown_role_is_not_found(self, client: TestClient) -> None:
        body = {"user_id": "u-1", "role_id": "astronaut"}
        assert client.simulate_post("/v1/assignments", json=body, headers=ROOT).status_code == 404

    def test_malformed_scope(self, client: TestClient) -> None:
        body = {"user_id": "u-1", "role_id": "guest", "scope": {"type": "department"}}
        result = client.simulate_post("/v1/assignments", json=body, headers=ROOT)
        assert result.status_code == 400
        assert "malformed scope" in result.json["error"]

    def test_clerk_cannot_assign(self, client: TestClient) -> None:
        body = {"user_id": "clerk-1", "role_id": "super_admin"}
        assert client.simulate_post("/v1/assignments", json=body, headers=CLERK).status_code == 403

    def test_revoke_bad_ids(self, client: TestClient) -> None:
        assert client.simulate_delete("/v1/assignments/not-a-uuid", headers=ROOT).status_code == 400
        assert client.simulate_delete(f"/v1/assignments/{uuid4()}", headers=ROOT).status_code == 404


class TestAudit:
    @pytest.fixture
    def audited(self, client: TestClient, api_engine) -> TestClient:
        for resource, action in [("tasks", "read"), ("settings", "configure"), ("audit", "read")]:
            client.simulate_post(
                "/v1/check", json={"resource_type": resource, "action": action}, headers=CLERK
            )
        asyncio.run(api_engine.audit_log.flush())
        return client

    def test_query(self, audited: TestClient) -> None:
        result = audited.simulate_get(
            "/v1/audit", params={"user_id": "clerk-1", "outcome": "deny"}, headers=ROOT
        )
        assert result.status_code == 200
        assert [e["decision"]["resource_type"] for e in result.json["items"]] == ["settings", "audit"]
        assert all(e["hash"] for e in result.json["items"])

    def test_query_requires_audit_read(self, audited: TestClient) -> None:
        assert audited.simulate_get("/v1/audit", headers=CLERK).status_code == 403

    def test_export_csv(self, audited: TestClient) -> None:
        result = audited.simulate_get("/v1/audit/export", params={"user_id": "clerk-1"}, headers=ROOT)
        assert result.status_code == 200
        assert result.headers["content-type"].startswith("text/csv")
        assert "audit.csv" in result.headers["content-disposition"]
        rows = list(csv.DictReader(io.StringIO(result.text)))
        assert [r["outcome"] for r in rows] == ["allow", "deny", "deny"]

    def test_export_json(self, audited: TestClient) -> None:
        result = audited.simulate_get("/v1/audit/export", params={"format": "json"}, headers=ROOT)
        assert result.status_code == 200
        assert len(json.loads(result.text)) >= 3

    def test_export_unknown_format(self, audited: TestClient) -> None:
        result = audited.simulate_get("/v1/audit/export", params={"format": "xml"}, headers=ROOT)
        assert result.status_code == 400

    def test_risk_score(self, audited: TestClient) -> None:
        result = audited.simulate_get("/v1/audit/risk/clerk-1", headers=ROOT)
        assert result.status_code == 200
        assert result.json["window_hours"] == 24
        assert 0 < result.json["risk_score"] <= 100

    def test_security_report(self, audited: TestClient) -> None:
        result = audited.simulate_get("/v1/audit/report", params={"window_hours": 48}, headers=ROOT)
        assert result.status_code == 200
        assert result.json["total_checks"] >= 3
        assert result.json["denied_checks"] >= 2


class TestMetrics:
    def test_metrics_exposition(self, client: TestClient) -> None:
        client.simulate_post("/v1/check", json={"resource_type": "tasks", "action": "read"}, headers=CLERK)
        result = client.simulate_get("/v1/metrics")
        assert result.status_code == 200
        assert "rolegate_decisions_total" in result.text
