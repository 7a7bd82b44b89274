"""
Role changes, profile updates and archiving.
"""

import pytest
from sqlalchemy import select

from agora_authz.kernel.errors import ConstraintViolation, Forbidden
from agora_authz.kernel.identity import IdentityService
from agora_authz.kernel.models import PrincipalRole, SecurityEvent, SecurityEventType
from agora_authz.kernel.permissions import Violation
from agora_authz.kernel.permissions.policy import REASON_ADMIN_ONLY, REASON_LAST_ADMIN
from tests.factories import make_principal


async def _events(session, event_type):
    await session.flush()
    result = await session.execute(select(SecurityEvent).where(SecurityEvent.event_type == event_type.value))
    return list(result.scalars().all())


class TestLastAdminGuard:
    """At least one active admin must remain."""

    @pytest.mark.asyncio
    async def test_sole_admin_cannot_demote_self(self, db_session, admin):
        service = IdentityService(db_session)

        decision = await service.change_role(admin, admin.id, PrincipalRole.USER, ip_address="10.0.0.1")

        assert not decision.allowed
        assert decision.reason == REASON_LAST_ADMIN
        assert decision.violation == Violation.CONSTRAINT
        assert (await service.get_principal(admin.id)).role == PrincipalRole.ADMIN.value

        events = await _events(db_session, SecurityEventType.ADMIN_SELF_DEMOTION_BLOCKED)
        assert len(events) == 1
        assert events[0].is_high_risk
        assert events[0].details == {"new_role": "user", "reason": REASON_LAST_ADMIN}

        with pytest.raises(ConstraintViolation):
            decision.raise_for_deny()

    @pytest.mark.asyncio
    async def test_self_demotion_allowed_with_another_admin(self, db_session, admin):
        await make_principal(db_session, PrincipalRole.ADMIN, "Admin Two")
        service = IdentityService(db_session)

        decision = await service.change_role(admin, admin.id, PrincipalRole.MODERATOR)

        assert decision.allowed
        assert (await service.get_principal(admin.id)).role == PrincipalRole.MODERATOR.value
        assert len(await _events(db_session, SecurityEventType.ROLE_CHANGED)) == 1

    @pytest.mark.asyncio
    async def test_archived_admin_does_not_count(self, db_session, admin):
        await make_principal(db_session, PrincipalRole.ADMIN, "Former admin", archived=True)

        decision = await IdentityService(db_session).change_role(admin, admin.id, PrincipalRole.USER)

        assert decision.reason == REASON_LAST_ADMIN

    @pytest.mark.asyncio
    async def test_admin_may_demote_another_admin(self, db_session, admin):
        other = await make_principal(db_session, PrincipalRole.ADMIN, "Admin Two")

        decision = await IdentityService(db_session).change_role(admin, other.id, PrincipalRole.USER)

        assert decision.allowed

    @pytest.mark.asyncio
    async def test_keeping_own_admin_role_is_a_no_op(self, db_session, admin):
        decision = await IdentityService(db_session).change_role(admin, admin.id, PrincipalRole.ADMIN)

        assert decision.allowed
        assert await _events(db_session, SecurityEventType.ROLE_CHANGED) == []

    @pytest.mark.asyncio
    async def test_cannot_archive_last_admin(self, db_session, admin):
        with pytest.raises(ConstraintViolation):
            await IdentityService(db_session).archive_principal(admin, admin.id)

        assert not admin.archived


class TestRoleChangeAuthorization:

    @pytest.mark.asyncio
    async def test_admin_promotes_user(self, db_session, admin, user_b):
        decision = await IdentityService(db_session).change_role(admin, user_b.id, "moderator")

        assert decision.allowed
        assert user_b.role == PrincipalRole.MODERATOR.value
        events = await _events(db_session, SecurityEventType.ROLE_CHANGED)
        assert events[0].details == {"previous_role": "user", "new_role": "moderator"}
        assert events[0].resource_id == str(user_b.id)

    @pytest.mark.asyncio
    async def test_non_admin_denied_and_audited(self, db_session, admin, user_b, user_c):
        decision = await IdentityService(db_session).change_role(user_b, user_c.id, PrincipalRole.ADMIN)

        assert not decision.allowed
        assert decision.reason == REASON_ADMIN_ONLY
        assert decision.violation == Violation.FORBIDDEN
        assert user_c.role == PrincipalRole.USER.value
        assert len(await _events(db_session, SecurityEventType.ROLE_CHANGE_DENIED)) == 1

    @pytest.mark.asyncio
    async def test_non_admin_cannot_promote_self(self, db_session, admin, user_b):
        decision = await IdentityService(db_session).change_role(user_b, user_b.id, PrincipalRole.ADMIN)

        with pytest.raises(Forbidden):
            decision.raise_for_deny()


class TestProfileUpdates:

    @pytest.mark.asyncio
    async def test_update_own_display_name(self, db_session, user_b):
        updated = await IdentityService(db_session).update_profile(user_b, user_b.id, display_name="  Bea  ")

        assert updated.display_name == "Bea"
        assert len(await _events(db_session, SecurityEventType.PRINCIPAL_UPDATED)) == 1

    @pytest.mark.asyncio
    async def test_role_cannot_ride_along(self, db_session, user_b):
        service = IdentityService(db_session)

        with pytest.raises(Forbidden):
            await service.update_profile(user_b, user_b.id, display_name="Boss", role=PrincipalRole.ADMIN)

        # Restating the current role is harmless
        await service.update_profile(user_b, user_b.id, role="user")

    @pytest.mark.asyncio
    async def test_cannot_update_someone_else(self, db_session, user_b, user_c):
        with pytest.raises(Forbidden):
            await IdentityService(db_session).update_profile(user_b, user_c.id, display_name="Hacked")


class TestArchiving:

    @pytest.mark.asyncio
    async def test_admin_archives_and_restores(self, db_session, admin, user_b):
        service = IdentityService(db_session)

        archived = await service.archive_principal(admin, user_b.id, reason="left the programme")

        assert archived.archived
        assert archived.archived_by == admin.id
        assert archived.archive_reason == "left the programme"
        assert len(await _events(db_session, SecurityEventType.PRINCIPAL_ARCHIVED)) == 1

        restored = await service.unarchive_principal(admin, user_b.id)

        assert not restored.archived
        assert restored.archived_at is None

    @pytest.mark.asyncio
    async def test_archived_principal_loses_access(self, db_session, admin, user_b, d1):
        service = IdentityService(db_session)
        await service.archive_principal(admin, user_b.id)

        decision = await service.evaluator.evaluate(user_b, "read", "deliberation", d1.id)

        assert not decision.allowed

    @pytest.mark.asyncio
    async def test_non_admin_cannot_archive(self, db_session, admin, user_b, user_c):
        with pytest.raises(Forbidden):
            await IdentityService(db_session).archive_principal(user_b, user_c.id)

    @pytest.mark.asyncio
    async def test_admin_archived_when_another_admin_remains(self, db_session, admin):
        other = await make_principal(db_session, PrincipalRole.ADMIN, "Admin Two")

        archived = await IdentityService(db_session).archive_principal(admin, other.id)

        assert archived.archived


class TestAuditEvents:

    @pytest.mark.asyncio
    async def test_anyone_may_record_custom_events(self, db_session, user_b):
        event = await IdentityService(db_session).audit_event(
            SecurityEventType.CUSTOM, user_b, details={"note": "exported transcript"}
        )

        assert event.principal_id == user_b.id
        assert event.details == {"note": "exported transcript"}

    @pytest.mark.asyncio
    async def test_builtin_types_are_admin_only(self, db_session, admin, user_b):
        service = IdentityService(db_session)

        with pytest.raises(Forbidden):
            await service.audit_event(SecurityEventType.ROLE_CHANGED, user_b)

        event = await service.audit_event(SecurityEventType.ACCESS_DENIED, admin, risk_level="medium")
        assert event.risk_level == "medium"


class TestMutualDemotion:
    """Two admins acting in separate sessions cannot leave zero admins."""

    @pytest.mark.asyncio
    async def test_stale_requester_cannot_demote_the_last_active_admin(self, db_session, session_maker, admin):
        other = await make_principal(db_session, PrincipalRole.ADMIN, "Admin Two")

        async with session_maker() as second:
            stale_admin = await IdentityService(second).get_principal(admin.id)

            await IdentityService(db_session).archive_principal(other, admin.id)
            await db_session.commit()

            decision = await IdentityService(second).change_role(stale_admin, other.id, PrincipalRole.USER)
            await second.flush()

            assert not decision.allowed
            assert decision.reason == REASON_LAST_ADMIN
            assert (await IdentityService(second).get_principal(other.id)).role == PrincipalRole.ADMIN.value
            assert len(await _events(second, SecurityEventType.ADMIN_SELF_DEMOTION_BLOCKED)) == 1
            await second.rollback()

    @pytest.mark.asyncio
    async def test_admins_demoting_each_other(self, db_session, session_maker, admin):
        other = await make_principal(db_session, PrincipalRole.ADMIN, "Admin Two")

        async with session_maker() as second:
            stale_other = await IdentityService(second).get_principal(other.id)

            first = await IdentityService(db_session).change_role(admin, other.id, PrincipalRole.USER)
            await db_session.commit()

            answer = await IdentityService(second).change_role(stale_other, admin.id, PrincipalRole.USER)
            await second.rollback()

        assert first.allowed
        assert not answer.allowed
        assert (await IdentityService(db_session).get_principal(admin.id)).role == PrincipalRole.ADMIN.value
