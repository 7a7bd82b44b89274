"""
Tests for the append-only security event log.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from agora_authz.kernel.errors import AuditLogImmutableError
from agora_authz.kernel.events.event_store import SecurityEventLog
from agora_authz.kernel.models import RiskLevel, SecurityEvent, SecurityEventType
from agora_authz.logging_config import ALERT_LOGGER_NAME


class TestRecord:

    @pytest.mark.asyncio
    async def test_event_joins_caller_transaction(self, db_session, user_b):
        log = SecurityEventLog(db_session)

        log.record(SecurityEventType.CUSTOM, principal_id=user_b.id, details={"note": "x"})
        await db_session.rollback()

        assert (await db_session.execute(select(SecurityEvent))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_high_risk_by_level_or_type(self, db_session, user_b):
        log = SecurityEventLog(db_session)

        by_level = log.record(SecurityEventType.CUSTOM, principal_id=user_b.id, risk_level=RiskLevel.CRITICAL)
        by_type = log.record(SecurityEventType.ROLE_CHANGED, principal_id=user_b.id)
        ordinary = log.record(SecurityEventType.PARTICIPANT_JOINED, principal_id=user_b.id)

        assert by_level.is_high_risk
        assert by_type.is_high_risk
        assert by_type.risk_level == RiskLevel.LOW.value
        assert not ordinary.is_high_risk

    def test_payload_serialization(self):
        log = SecurityEventLog(session=None)
        ident = uuid.uuid4()
        when = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)

        payload = log._serialize_payload({
            "id": ident,
            "at": when,
            "role": RiskLevel.HIGH,
            "nested": {"ids": [ident, when, "plain"]},
        })

        assert payload == {
            "id": str(ident),
            "at": "2026-10-18T09:30:00+00:00",
            "role": "high",
            "nested": {"ids": [str(ident), "2026-10-18T09:30:00+00:00", "plain"]},
        }


class TestAlerts:
    """High-risk alerts follow the transaction outcome."""

    @staticmethod
    def _alerts(caplog):
        return [r for r in caplog.records if r.name == ALERT_LOGGER_NAME]

    @pytest.mark.asyncio
    async def test_alert_waits_for_commit(self, db_session, user_b, caplog):
        log = SecurityEventLog(db_session)

        with caplog.at_level(logging.WARNING, logger=ALERT_LOGGER_NAME):
            log.record(SecurityEventType.ROLE_CHANGED, principal_id=user_b.id, ip_address="10.0.0.3")
            log.record(SecurityEventType.PARTICIPANT_JOINED, principal_id=user_b.id)
            assert self._alerts(caplog) == []

            await db_session.commit()

        alerts = self._alerts(caplog)
        assert len(alerts) == 1
        assert alerts[0].event_type == SecurityEventType.ROLE_CHANGED.value
        assert alerts[0].ip_address == "10.0.0.3"

    @pytest.mark.asyncio
    async def test_rolled_back_event_raises_no_alert(self, db_session, user_b, caplog):
        log = SecurityEventLog(db_session)
        await db_session.execute(select(SecurityEvent))

        with caplog.at_level(logging.WARNING, logger=ALERT_LOGGER_NAME):
            log.record(SecurityEventType.CUSTOM, principal_id=user_b.id, risk_level=RiskLevel.CRITICAL)
            await db_session.rollback()
            await db_session.commit()

        assert self._alerts(caplog) == []
        assert (await db_session.execute(select(SecurityEvent))).scalars().all() == []


class TestImmutability:

    @pytest.mark.asyncio
    async def test_update_refused(self, db_session, user_b):
        event = SecurityEventLog(db_session).record(SecurityEventType.CUSTOM, principal_id=user_b.id)
        await db_session.commit()

        event.risk_level = RiskLevel.LOW.value
        event.details = {"rewritten": True}
        with pytest.raises(AuditLogImmutableError):
            await db_session.flush()

    @pytest.mark.asyncio
    async def test_delete_refused(self, db_session, user_b):
        event = SecurityEventLog(db_session).record(SecurityEventType.CUSTOM, principal_id=user_b.id)
        await db_session.commit()

        await db_session.delete(event)
        with pytest.raises(AuditLogImmutableError):
            await db_session.flush()


class TestQueries:

    @pytest.mark.asyncio
    async def test_recent_for_principal(self, db_session, user_b, user_c):
        log = SecurityEventLog(db_session)
        now = datetime.now(timezone.utc)
        db_session.add(SecurityEvent(
            event_type=SecurityEventType.CUSTOM.value,
            principal_id=user_b.id,
            created_at=now - timedelta(days=2),
        ))
        log.record(SecurityEventType.ROLE_CHANGED, principal_id=user_b.id)
        log.record(SecurityEventType.CUSTOM, principal_id=user_c.id)
        await db_session.flush()

        everything = await log.recent_for_principal(user_b.id)
        high_risk = await log.recent_for_principal(user_b.id, high_risk_only=True)
        recent = await log.recent_for_principal(user_b.id, since=now - timedelta(hours=1))

        assert [e.event_type for e in everything] == ["principal.role_changed", "custom"]
        assert [e.event_type for e in high_risk] == ["principal.role_changed"]
        assert len(recent) == 1

    @pytest.mark.asyncio
    async def test_for_resource(self, db_session, admin, user_b):
        log = SecurityEventLog(db_session)
        log.record(SecurityEventType.PRINCIPAL_UPDATED, principal_id=user_b.id, resource_type="profile", resource_id=user_b.id)
        log.record(SecurityEventType.PRINCIPAL_UPDATED, principal_id=admin.id, resource_type="profile", resource_id=admin.id)
        await db_session.flush()

        history = await log.for_resource("profile", user_b.id)

        assert len(history) == 1
        assert history[0].resource_id == str(user_b.id)
