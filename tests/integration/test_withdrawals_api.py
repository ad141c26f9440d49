"""
Integration Tests for the Withdrawals API

Reliability Level: L6 Critical

End-to-end HTTP flow: request -> confirm x2 -> timelock -> execute,
plus role gating, error code to status mapping and the confirm cooldown.
"""

from decimal import Decimal

import pytest

from app.api.errors import ERROR_STATUS

PREFIX = "/api/v1/withdrawals"
RECIPIENT = "0x" + "ab" * 20
TWO_DAYS = 2 * 24 * 60 * 60


def _request(client, headers, amount="1", to=RECIPIENT):
    response = client.post(PREFIX, json={"amount": amount, "to": to}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()["data"]


def _confirm(client, withdrawal_id, headers):
    return client.put(f"{PREFIX}/{withdrawal_id}/confirm", headers=headers)


class TestCreate:

    def test_create(self, client, user, auth_headers) -> None:
        response = client.post(
            PREFIX, json={"amount": "1.5", "to": RECIPIENT}, headers=auth_headers(user)
        )
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["correlation_id"]
        data = body["data"]
        assert data["status"] == "pending"
        assert data["amount"] == "1.5"
        assert data["token_address"] == "0x" + "00" * 20
        assert data["confirmation_count"] == 0
        assert data["required_confirmations"] == 2

    @pytest.mark.parametrize("body", [
        {"amount": "0", "to": RECIPIENT},
        {"amount": "-1", "to": RECIPIENT},
        {"amount": 1.5, "to": RECIPIENT},
        {"amount": "0.0000000000000000001", "to": RECIPIENT},
        {"amount": "1", "to": "0x1234"},
        {"amount": "1", "to": "0x" + "00" * 20},
        {"amount": "1"},
    ])
    def test_validation(self, client, user, auth_headers, body) -> None:
        assert client.post(PREFIX, json=body, headers=auth_headers(user)).status_code == 422

    def test_requires_auth(self, client) -> None:
        response = client.post(PREFIX, json={"amount": "1", "to": RECIPIENT})
        assert response.status_code == 401


class TestConfirmAndExecute:

    def test_full_flow(
        self, client, user, withdrawer, second_withdrawer, auth_headers, clock, vault
    ) -> None:
        withdrawal = _request(client, auth_headers(user), amount="2")

        first = _confirm(client, withdrawal["id"], auth_headers(withdrawer))
        assert first.status_code == 200
        assert first.json()["data"]["status"] == "pending"

        second = _confirm(client, withdrawal["id"], auth_headers(second_withdrawer))
        assert second.json()["data"]["status"] == "confirmed"
        assert "executed" not in second.json()

        early = client.put(f"{PREFIX}/{withdrawal['id']}/execute", headers=auth_headers(withdrawer))
        assert early.status_code == 425
        assert early.json()["detail"]["error_code"] == "WDR-010"

        clock.advance(TWO_DAYS)
        executed = client.put(
            f"{PREFIX}/{withdrawal['id']}/execute", headers=auth_headers(withdrawer)
        )
        assert executed.status_code == 200
        body = executed.json()
        assert body["executed"] is True
        assert body["data"]["status"] == "executed"
        assert body["data"]["tx_hash"].startswith("0x")
        assert vault.recipient_balance(None, RECIPIENT) == Decimal("2")

    def test_auto_execute_on_final_confirmation(
        self, client, user, withdrawer, second_withdrawer, auth_headers, clock
    ) -> None:
        withdrawal = _request(client, auth_headers(user))
        _confirm(client, withdrawal["id"], auth_headers(withdrawer))
        clock.advance(TWO_DAYS)

        body = _confirm(client, withdrawal["id"], auth_headers(second_withdrawer)).json()

        assert body["executed"] is True
        assert body["data"]["status"] == "executed"

    def test_blocked_auto_execute_reports_reason(
        self, client, user, withdrawer, second_withdrawer, auth_headers, clock, vault
    ) -> None:
        withdrawal = _request(client, auth_headers(user))
        _confirm(client, withdrawal["id"], auth_headers(withdrawer))
        clock.advance(TWO_DAYS)
        vault.pause()

        response = _confirm(client, withdrawal["id"], auth_headers(second_withdrawer))

        assert response.status_code == 200
        assert response.json()["blocked_reason"] == "Withdrawals are paused"
        assert response.json()["data"]["status"] == "confirmed"

    def test_duplicate_confirmation(self, client, user, withdrawer, auth_headers) -> None:
        withdrawal = _request(client, auth_headers(user))
        _confirm(client, withdrawal["id"], auth_headers(withdrawer))
        response = _confirm(client, withdrawal["id"], auth_headers(withdrawer))
        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "WDR-001"

    def test_plain_user_cannot_confirm(self, client, user, auth_headers) -> None:
        withdrawal = _request(client, auth_headers(user))
        response = _confirm(client, withdrawal["id"], auth_headers(user))
        assert response.status_code == 403
        assert response.json()["detail"]["error_code"] == "SEC-090"

    def test_confirm_missing(self, client, withdrawer, auth_headers) -> None:
        response = _confirm(client, "missing", auth_headers(withdrawer))
        assert response.status_code == 404

    def test_paused_execution(
        self, client, user, withdrawer, second_withdrawer, admin, auth_headers
    ) -> None:
        withdrawal = _request(client, auth_headers(user))
        _confirm(client, withdrawal["id"], auth_headers(withdrawer))
        _confirm(client, withdrawal["id"], auth_headers(second_withdrawer))
        client.put("/api/v1/token/pause", headers=auth_headers(admin))

        response = client.put(
            f"{PREFIX}/{withdrawal['id']}/execute", headers=auth_headers(withdrawer)
        )
        assert response.status_code == 423

    def test_daily_limit(
        self, client, user, withdrawer, second_withdrawer, auth_headers, clock
    ) -> None:
        first = _request(client, auth_headers(user), amount="7")
        second = _request(client, auth_headers(user), amount="4")
        for withdrawal in (first, second):
            _confirm(client, withdrawal["id"], auth_headers(withdrawer))
            _confirm(client, withdrawal["id"], auth_headers(second_withdrawer))
        clock.advance(TWO_DAYS)

        ok = client.put(f"{PREFIX}/{first['id']}/execute", headers=auth_headers(withdrawer))
        blocked = client.put(f"{PREFIX}/{second['id']}/execute", headers=auth_headers(withdrawer))

        assert ok.status_code == 200
        assert blocked.status_code == 409
        assert blocked.json()["detail"]["error_code"] == "WDR-020"


class TestCancel:

    def test_admin_cancels(self, client, user, admin, auth_headers) -> None:
        withdrawal = _request(client, auth_headers(user))
        response = client.put(
            f"{PREFIX}/{withdrawal['id']}/cancel",
            json={"reason": "Suspicious recipient"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "cancelled"
        assert response.json()["data"]["cancel_reason"] == "Suspicious recipient"

    def test_cancel_without_body(self, client, user, admin, auth_headers) -> None:
        withdrawal = _request(client, auth_headers(user))
        response = client.put(f"{PREFIX}/{withdrawal['id']}/cancel", headers=auth_headers(admin))
        assert response.status_code == 200

    def test_withdrawer_cannot_cancel(self, client, user, withdrawer, auth_headers) -> None:
        withdrawal = _request(client, auth_headers(user))
        response = client.put(
            f"{PREFIX}/{withdrawal['id']}/cancel", headers=auth_headers(withdrawer)
        )
        assert response.status_code == 403

    def test_cancel_twice(self, client, user, admin, auth_headers) -> None:
        withdrawal = _request(client, auth_headers(user))
        client.put(f"{PREFIX}/{withdrawal['id']}/cancel", headers=auth_headers(admin))
        response = client.put(f"{PREFIX}/{withdrawal['id']}/cancel", headers=auth_headers(admin))
        assert response.status_code == 400
        assert response.json()["detail"]["error_code"] == "WDR-030"


class TestQueries:

    def test_owner_can_view(self, client, user, auth_headers) -> None:
        withdrawal = _request(client, auth_headers(user))
        response = client.get(f"{PREFIX}/{withdrawal['id']}", headers=auth_headers(user))
        assert response.status_code == 200

    def test_non_owner_denied(self, client, user, other_user, auth_headers) -> None:
        withdrawal = _request(client, auth_headers(user))
        response = client.get(f"{PREFIX}/{withdrawal['id']}", headers=auth_headers(other_user))
        assert response.status_code == 401
        assert response.json()["detail"]["error_code"] == "SEC-090"

    def test_list_is_admin_only(self, client, user, admin, auth_headers) -> None:
        _request(client, auth_headers(user))
        assert client.get(PREFIX, headers=auth_headers(user)).status_code == 403
        body = client.get(f"{PREFIX}?status=pending", headers=auth_headers(admin)).json()
        assert body["count"] == 1

    def test_pending_for_withdrawers(self, client, user, withdrawer, auth_headers) -> None:
        _request(client, auth_headers(user))
        body = client.get(f"{PREFIX}/pending", headers=auth_headers(withdrawer)).json()
        assert body["count"] == 1
        assert client.get(f"{PREFIX}/pending", headers=auth_headers(user)).status_code == 403

    def test_my_withdrawals(self, client, user, other_user, auth_headers) -> None:
        _request(client, auth_headers(user))
        _request(client, auth_headers(other_user))
        body = client.get(f"{PREFIX}/me/withdrawals", headers=auth_headers(user)).json()
        assert body["count"] == 1


class TestRateLimit:

    def test_confirm_cooldown(
        self, client, user, withdrawer, auth_headers, withdrawal_config
    ) -> None:
        withdrawal_config.confirm_cooldown_seconds = 60.0
        withdrawal = _request(client, auth_headers(user))

        _confirm(client, withdrawal["id"], auth_headers(withdrawer))
        response = _confirm(client, withdrawal["id"], auth_headers(withdrawer))

        assert response.status_code == 429
        assert response.json()["detail"]["error_code"] == "RATE-001"


class TestErrorMapping:

    @pytest.mark.parametrize("code,status", [
        ("WDR-001", 400),
        ("WDR-010", 425),
        ("WDR-020", 409),
        ("WDR-030", 409),
        ("WDR-040", 423),
        ("WDR-050", 502),
        ("WDR-404", 404),
        ("SEC-090", 401),
        ("RATE-001", 429),
    ])
    def test_status_codes(self, code, status) -> None:
        assert ERROR_STATUS[code] == status
