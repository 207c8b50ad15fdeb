"""
Tests for the FastAPI transfer-session surface
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from trustpay_transfer.app import app, get_client_factory, get_manager, get_settings
from trustpay_transfer.context.session_manager import SessionManager

AUTH = {"Authorization": "Bearer tok-1"}


@pytest.fixture
def manager():
    return SessionManager()


@pytest.fixture
def api(manager, client_factory, settings):
    app.dependency_overrides[get_manager] = lambda: manager
    app.dependency_overrides[get_client_factory] = lambda: client_factory
    app.dependency_overrides[get_settings] = lambda: settings
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _open_session(api) -> str:
    r = api.post("/api/transfer-sessions", headers=AUTH)
    assert r.status_code == 201, r.text
    return r.json()["session_id"]


def test_health(api):
    assert api.get("/health").json() == {"status": "healthy"}


def test_internal_transfer_end_to_end(api, bank):
    r = api.post("/api/transfer-sessions", headers=AUTH)
    assert r.status_code == 201
    body = r.json()
    sid = body["session_id"]
    assert body["snapshot"]["loaded"] is True
    assert [a["id"] for a in body["snapshot"]["accounts"]] == ["acc-1", "acc-2"]

    r = api.patch(f"/api/transfer-sessions/{sid}/form", json={"amount": "300"})
    assert Decimal(r.json()["snapshot"]["summary"]["total"]) == Decimal("300")

    r = api.post(f"/api/transfer-sessions/{sid}/review")
    assert r.json()["ok"] is True
    assert r.json()["snapshot"]["state"] == "review"

    r = api.post(f"/api/transfer-sessions/{sid}/confirm")
    assert r.json()["snapshot"]["state"] == "authorizing"

    r = api.post(f"/api/transfer-sessions/{sid}/authorize", json={"pin": "1234"})
    payload = r.json()
    assert payload["ok"] is True
    assert payload["outcome"]["status"] == "submitted"
    assert payload["outcome"]["redirect_to"] == "/dashboard"
    balances = {a["id"]: Decimal(a["balance"]) for a in payload["snapshot"]["accounts"]}
    assert balances == {"acc-1": Decimal("200"), "acc-2": Decimal("1300")}
    assert bank.calls("POST", "/transfers")[0].headers["Authorization"] == "Bearer tok-1"


def test_review_blocked_reports_field_errors(api):
    sid = _open_session(api)
    api.patch(f"/api/transfer-sessions/{sid}/form", json={"amount": "5000"})

    r = api.post(f"/api/transfer-sessions/{sid}/review")

    assert r.json()["ok"] is False
    assert r.json()["snapshot"]["errors"]["amount"] == "Insufficient balance."


def test_malformed_routing_reported_without_lookup(api, bank):
    sid = _open_session(api)

    r = api.patch(
        f"/api/transfer-sessions/{sid}/form",
        json={"transfer_type": "external", "routing_code": "000000000"},
    )

    routing = r.json()["snapshot"]["routing"]
    assert routing["bank_name"] is None
    assert routing["error"]["kind"] == "format"
    assert bank.calls("GET", "/api/v1/routing/lookup") == []


def test_routing_resolution_through_form_update(api):
    sid = _open_session(api)
    r = api.patch(
        f"/api/transfer-sessions/{sid}/form",
        json={"transfer_type": "external", "routing_code": "021000021", "account_number": "987654321"},
    )
    snapshot = r.json()["snapshot"]
    assert snapshot["form"]["bank_name"] == "JPMorgan Chase Bank"
    assert snapshot["account_verification"]["verified"]["account_number"] == "987654321"


def test_bad_field_value_is_400(api):
    sid = _open_session(api)
    r = api.patch(f"/api/transfer-sessions/{sid}/form", json={"transfer_type": "wire"})
    assert r.status_code == 400
    assert r.json()["error"]["field"] == "transfer_type"


def test_quick_amount_above_ceiling(api):
    sid = _open_session(api)
    r = api.post(f"/api/transfer-sessions/{sid}/quick-amount", json={"amount": 1000})
    assert r.status_code == 400
    assert r.json()["error"]["kind"] == "limit"

    r = api.post(f"/api/transfer-sessions/{sid}/quick-amount", json={"amount": 100})
    assert r.json()["snapshot"]["form"]["amount"] == "100"


def test_out_of_order_action_is_409(api):
    sid = _open_session(api)
    r = api.post(f"/api/transfer-sessions/{sid}/confirm")
    assert r.status_code == 409


def test_missing_token(api):
    assert api.post("/api/transfer-sessions").status_code == 401
    assert api.post("/api/transfer-sessions", headers={"Authorization": "Basic abc"}).status_code == 401


def test_expired_token(api, bank, manager):
    bank.accounts_status = 401
    r = api.post("/api/transfer-sessions", headers=AUTH)
    assert r.status_code == 401
    assert manager.sessions == {}


def test_pin_setup_flow(api, bank):
    bank.accounts[0]["pin_required"] = True
    sid = _open_session(api)
    api.patch(f"/api/transfer-sessions/{sid}/form", json={"amount": "100"})

    r = api.post(f"/api/transfer-sessions/{sid}/review")
    assert r.json()["ok"] is False
    assert r.json()["snapshot"]["authorization"]["state"] == "pin_setup_prompted"

    r = api.post(f"/api/transfer-sessions/{sid}/pin", json={"pin": "2468", "confirm_pin": "2468"})
    assert r.json()["ok"] is True
    assert r.json()["snapshot"]["authorization"]["has_pin"] is True

    assert api.post(f"/api/transfer-sessions/{sid}/review").json()["ok"] is True


def test_delete_session(api):
    sid = _open_session(api)
    assert api.delete(f"/api/transfer-sessions/{sid}").status_code == 204
    assert api.get(f"/api/transfer-sessions/{sid}").status_code == 404
    assert api.delete(f"/api/transfer-sessions/{sid}").status_code == 404
