"""
API tests: sign-in, identity resolution, decisions and audit over HTTP.
"""

import pytest
from sqlalchemy import func, select

from agora_authz.kernel.models import AccessCodeType, SecurityEvent, SecurityEventType
from tests.factories import add_access_code, add_message

API = "/api/v1"


def _session(jwt_manager, principal) -> dict:
    token = jwt_manager.create_session_token(principal.id, principal.role).session_token
    return {"X-Session-Token": token}


async def _count_events(session_maker, event_type: SecurityEventType) -> int:
    async with session_maker() as session:
        return await session.scalar(
            select(func.count(SecurityEvent.id)).where(SecurityEvent.event_type == event_type.value)
        )


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert "X-Request-ID" in response.headers


class TestErrorResponses:

    @pytest.mark.asyncio
    async def test_error_body_is_documented(self, client):
        schema = (await client.get("/openapi.json")).json()

        me_responses = schema["paths"][f"{API}/principals/me"]["get"]["responses"]
        assert me_responses["401"]["content"]["application/json"]["schema"] == {
            "$ref": "#/components/schemas/ErrorResponse"
        }
        assert set(schema["components"]["schemas"]["ErrorResponse"]["properties"]) == {
            "detail",
            "reason",
            "blocked_until",
        }

    @pytest.mark.asyncio
    async def test_rate_limited_body_carries_blocked_until(self, client):
        headers = {"X-Forwarded-For": "203.0.113.61"}
        for i in range(5):
            await client.post(f"{API}/access-codes/sign-in", json={"code": f"WRONGCODE{i}"}, headers=headers)

        blocked = await client.post(f"{API}/access-codes/sign-in", json={"code": "WRONGCODE9"}, headers=headers)

        assert set(blocked.json()) == {"detail", "reason", "blocked_until"}


class TestAccessCodeFlow:

    @pytest.mark.asyncio
    async def test_validate_never_errors(self, client, db_session):
        await add_access_code(db_session, "K7MP4QRX2T", max_uses=2)

        ok = await client.post(f"{API}/access-codes/validate", json={"code": "k7mp4qrx2t"})
        malformed = await client.post(f"{API}/access-codes/validate", json={"code": "??"})

        assert ok.status_code == 200
        assert ok.json()["valid"] is True
        assert ok.json()["remaining_uses"] == 2
        assert malformed.status_code == 200
        assert malformed.json() == {
            "valid": False,
            "reason": "invalid_format",
            "code_type": None,
            "remaining_uses": None,
            "blocked_until": None,
        }

    @pytest.mark.asyncio
    async def test_sign_in_then_use_session(self, client, db_session):
        await add_access_code(db_session, "K7MP4QRX2T")

        signed_in = await client.post(f"{API}/access-codes/sign-in", json={"code": "K7MP4QRX2T"})
        assert signed_in.status_code == 200
        body = signed_in.json()
        assert body["token_type"] == "session"
        assert body["principal"]["role"] == "user"

        me = await client.get(f"{API}/principals/me", headers={"X-Session-Token": body["session_token"]})
        assert me.status_code == 200
        assert me.json()["id"] == body["principal"]["id"]

        # The bound code also identifies its holder
        by_code = await client.get(f"{API}/principals/me", headers={"X-Access-Code": "K7MP4QRX2T"})
        assert by_code.json()["id"] == body["principal"]["id"]

    @pytest.mark.asyncio
    async def test_sign_in_again_is_the_same_holder(self, client, db_session):
        await add_access_code(db_session, "0000000001", AccessCodeType.ADMIN)

        first = await client.post(f"{API}/access-codes/sign-in", json={"code": "0000000001"})
        second = await client.post(f"{API}/access-codes/sign-in", json={"code": "0000000001"})

        assert first.json()["principal"]["role"] == "admin"
        assert second.json()["principal"]["id"] == first.json()["principal"]["id"]

    @pytest.mark.asyncio
    async def test_failed_sign_in_is_audited(self, client, session_maker):
        response = await client.post(
            f"{API}/access-codes/sign-in",
            json={"code": "NOSUCHCODE"},
            headers={"X-Forwarded-For": "198.51.100.4"},
        )

        assert response.status_code == 401
        assert response.json()["reason"] == "code_not_found"
        assert await _count_events(session_maker, SecurityEventType.ACCESS_CODE_VALIDATION_FAILED) == 1

    @pytest.mark.asyncio
    async def test_repeated_failures_are_rate_limited(self, client):
        headers = {"X-Forwarded-For": "203.0.113.50"}
        for i in range(5):
            await client.post(f"{API}/access-codes/sign-in", json={"code": f"WRONGCODE{i}"}, headers=headers)

        blocked = await client.post(f"{API}/access-codes/sign-in", json={"code": "WRONGCODE7"}, headers=headers)
        validate = await client.post(f"{API}/access-codes/validate", json={"code": "WRONGCODE8"}, headers=headers)

        assert blocked.status_code == 429
        assert blocked.json()["reason"] == "rate_limited"
        assert int(blocked.headers["Retry-After"]) > 0
        assert validate.json()["reason"] == "rate_limited"
        assert validate.json()["blocked_until"] is not None

    @pytest.mark.asyncio
    async def test_consume_conflict(self, client, db_session):
        await add_access_code(db_session, "K7MP4QRX2T", max_uses=1)

        first = await client.post(f"{API}/access-codes/K7MP4QRX2T/consume")
        second = await client.post(f"{API}/access-codes/K7MP4QRX2T/consume")

        assert first.status_code == 200
        assert first.json() == {"success": True, "code_type": "user", "remaining_uses": 0}
        assert second.status_code == 409
        assert second.json()["reason"] == "max_uses_exceeded"

    @pytest.mark.asyncio
    async def test_admin_issues_and_deactivates(self, client, jwt_manager, admin):
        headers = _session(jwt_manager, admin)

        issued = await client.post(
            f"{API}/access-codes",
            json={"code_type": "admin", "max_uses": 3},
            headers=headers,
        )
        assert issued.status_code == 201
        code = issued.json()["code"]
        assert issued.json()["state"] == "unused"

        deactivated = await client.post(f"{API}/access-codes/{code}/deactivate", headers=headers)
        assert deactivated.json()["is_active"] is False

        reset = await client.post(f"{API}/access-codes/{code}/reset", headers=headers)
        assert reset.status_code == 400

    @pytest.mark.asyncio
    async def test_anonymous_issue_is_single_use_user_code(self, client):
        issued = await client.post(f"{API}/access-codes", json={})
        refused = await client.post(f"{API}/access-codes", json={"code_type": "admin"})

        assert issued.status_code == 201
        assert issued.json()["code_type"] == "user"
        assert issued.json()["max_uses"] == 1
        assert refused.status_code == 403


class TestIdentity:

    @pytest.mark.asyncio
    async def test_no_credentials(self, client):
        response = await client.get(f"{API}/principals/me")

        assert response.status_code == 401
        assert response.json()["reason"] == "unauthenticated"

    @pytest.mark.asyncio
    async def test_access_code_header_guesses_are_rate_limited(self, client, db_session, session_maker, user_b):
        await add_access_code(db_session, "K7MP4QRX2T", used_by=user_b.id, current_uses=1, is_used=True)
        source = {"X-Forwarded-For": "203.0.113.77"}

        for i in range(5):
            guess = await client.get(f"{API}/principals/me", headers={**source, "X-Access-Code": f"WRONGCODE{i}"})
            assert guess.status_code == 401

        real = await client.get(f"{API}/principals/me", headers={**source, "X-Access-Code": "K7MP4QRX2T"})

        assert real.status_code == 401
        assert await _count_events(session_maker, SecurityEventType.ACCESS_CODE_VALIDATION_FAILED) == 5
        assert await _count_events(session_maker, SecurityEventType.ACCESS_CODE_BRUTE_FORCE_BLOCKED) == 1

    @pytest.mark.asyncio
    async def test_garbage_token(self, client):
        response = await client.get(f"{API}/principals/me", headers={"X-Session-Token": "garbage"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_update_me(self, client, jwt_manager, user_b):
        headers = _session(jwt_manager, user_b)

        renamed = await client.patch(f"{API}/principals/me", json={"display_name": "Bea"}, headers=headers)
        promoted = await client.patch(f"{API}/principals/me", json={"role": "admin"}, headers=headers)

        assert renamed.json()["display_name"] == "Bea"
        assert promoted.status_code == 403


class TestEvaluate:

    @pytest.mark.asyncio
    async def test_tenant_isolation(self, client, db_session, jwt_manager, user_b, user_c, d1, d2):
        message = await add_message(db_session, d2, user_c)

        response = await client.post(
            f"{API}/authz/evaluate",
            json={"action": "read", "resource_type": "message", "resource_id": str(message.id)},
            headers=_session(jwt_manager, user_b),
        )

        assert response.status_code == 200
        assert response.json() == {"effect": "deny", "allowed": False, "reason": "forbidden", "violation": "forbidden"}

    @pytest.mark.asyncio
    async def test_participant_allowed(self, client, jwt_manager, user_b, d1):
        response = await client.post(
            f"{API}/authz/evaluate",
            json={"action": "create", "resource_type": "message", "resource_id": str(d1.id)},
            headers=_session(jwt_manager, user_b),
        )

        assert response.json()["allowed"] is True

    @pytest.mark.asyncio
    async def test_role_change_requires_new_role(self, client, jwt_manager, admin, user_b):
        response = await client.post(
            f"{API}/authz/evaluate",
            json={"action": "update_role", "resource_type": "profile", "resource_id": str(user_b.id)},
            headers=_session(jwt_manager, admin),
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_action_rejected(self, client, jwt_manager, user_b):
        response = await client.post(
            f"{API}/authz/evaluate",
            json={"action": "publish", "resource_type": "message"},
            headers=_session(jwt_manager, user_b),
        )

        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"


class TestRoleChanges:

    @pytest.mark.asyncio
    async def test_last_admin_self_demotion(self, client, session_maker, jwt_manager, admin):
        response = await client.put(
            f"{API}/principals/{admin.id}/role",
            json={"role": "user"},
            headers=_session(jwt_manager, admin),
        )

        assert response.status_code == 400
        assert response.json() == {"detail": "would leave no admins", "reason": "constraint_violation"}
        # The refusal is kept even though the change is not
        assert await _count_events(session_maker, SecurityEventType.ADMIN_SELF_DEMOTION_BLOCKED) == 1
        me = await client.get(f"{API}/principals/me", headers=_session(jwt_manager, admin))
        assert me.json()["role"] == "admin"

    @pytest.mark.asyncio
    async def test_non_admin_gets_403(self, client, session_maker, jwt_manager, admin, user_b, user_c):
        response = await client.put(
            f"{API}/principals/{user_c.id}/role",
            json={"role": "admin"},
            headers=_session(jwt_manager, user_b),
        )

        assert response.status_code == 403
        assert await _count_events(session_maker, SecurityEventType.ROLE_CHANGE_DENIED) == 1

    @pytest.mark.asyncio
    async def test_admin_promotes(self, client, jwt_manager, admin, user_b):
        response = await client.put(
            f"{API}/principals/{user_b.id}/role",
            json={"role": "moderator"},
            headers=_session(jwt_manager, admin),
        )

        assert response.status_code == 200
        assert response.json()["allowed"] is True

    @pytest.mark.asyncio
    async def test_archive_and_lockout(self, client, jwt_manager, admin, user_b):
        user_headers = _session(jwt_manager, user_b)

        archived = await client.post(
            f"{API}/principals/{user_b.id}/archive",
            json={"reason": "duplicate account"},
            headers=_session(jwt_manager, admin),
        )
        assert archived.json()["archived"] is True

        # Still identified, but every decision is now Deny
        response = await client.post(
            f"{API}/authz/evaluate",
            json={"action": "read", "resource_type": "profile", "resource_id": str(user_b.id)},
            headers=user_headers,
        )
        assert response.json()["reason"] == "principal_archived"


class TestAudit:

    @pytest.mark.asyncio
    async def test_record_and_list(self, client, jwt_manager, admin, user_b):
        recorded = await client.post(
            f"{API}/audit/events",
            json={"details": {"note": "downloaded export"}, "resource_type": "deliberation"},
            headers=_session(jwt_manager, user_b),
        )
        assert recorded.status_code == 201
        assert recorded.json()["event_type"] == "custom"

        own_listing = await client.get(
            f"{API}/audit/principals/{user_b.id}/events",
            headers=_session(jwt_manager, user_b),
        )
        admin_listing = await client.get(
            f"{API}/audit/principals/{user_b.id}/events",
            headers=_session(jwt_manager, admin),
        )

        assert own_listing.status_code == 403
        assert [e["event_type"] for e in admin_listing.json()] == ["custom"]

    @pytest.mark.asyncio
    async def test_builtin_event_types_need_admin(self, client, jwt_manager, admin, user_b):
        response = await client.post(
            f"{API}/audit/events",
            json={"event_type": "principal.role_changed"},
            headers=_session(jwt_manager, user_b),
        )

        assert response.status_code == 403
