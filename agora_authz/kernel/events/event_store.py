"""
Security event log service.

Every guarded mutation records its event through here, in the caller's
session and therefore the caller's transaction. Nothing is committed
here; a rollback of the mutation rolls back its audit row too.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import and_, desc, event, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from agora_authz.kernel.models.security_event import (
    HIGH_RISK_EVENT_TYPES,
    RiskLevel,
    SecurityEvent,
    SecurityEventType,
)
from agora_authz.logging_config import get_alert_logger, get_logger

logger = get_logger(__name__)
alerts = get_alert_logger()

_HIGH_RISK_LEVELS = {RiskLevel.HIGH.value, RiskLevel.CRITICAL.value}


# session.info key holding alerts for events not yet committed
_PENDING_ALERTS = "agora_authz.pending_alerts"


def _value(item: Any) -> Any:
    return item.value if hasattr(item, "value") else item


@event.listens_for(Session, "after_commit")
def _emit_pending_alerts(session: Session) -> None:
    """High-risk events reach the alert logger only once they are durable."""
    for message, args, extra in session.info.pop(_PENDING_ALERTS, []):
        alerts.warning(message, *args, extra=extra)


@event.listens_for(Session, "after_transaction_end")
def _drop_pending_alerts(session: Session, transaction) -> None:
    # Outermost transaction ended without a commit: its events are gone
    if transaction.parent is None:
        session.info.pop(_PENDING_ALERTS, None)


class SecurityEventLog:
    """
    Service for the append-only security event log.

    Usage:
        audit = SecurityEventLog(session)
        audit.record(
            SecurityEventType.ROLE_CHANGED,
            principal_id=admin.id,
            resource_type="profile",
            resource_id=target.id,
            details={"previous_role": "user", "new_role": "moderator"},
            risk_level=RiskLevel.HIGH,
        )
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    def record(
        self,
        event_type: Union[SecurityEventType, str],
        principal_id: Optional[uuid.UUID] = None,
        resource_type: Optional[str] = None,
        resource_id: Union[uuid.UUID, str, None] = None,
        details: Optional[Dict[str, Any]] = None,
        risk_level: Union[RiskLevel, str] = RiskLevel.LOW,
        ip_address: Optional[str] = None,
    ) -> SecurityEvent:
        """
        Append an event to the caller's transaction.

        High-risk events (by level or by type) are flagged on the row and
        echoed to the alert logger once the caller's transaction commits;
        a rolled-back event raises no alert.
        """
        event_type = _value(event_type)
        risk = _value(risk_level)
        high_risk = risk in _HIGH_RISK_LEVELS or event_type in {e.value for e in HIGH_RISK_EVENT_TYPES}

        row = SecurityEvent(
            event_type=event_type,
            principal_id=principal_id,
            resource_type=_value(resource_type),
            resource_id=str(resource_id) if resource_id is not None else None,
            details=self._serialize_payload(details or {}),
            risk_level=risk,
            is_high_risk=high_risk,
            ip_address=ip_address,
        )
        self.session.add(row)

        if high_risk:
            self.session.info.setdefault(_PENDING_ALERTS, []).append((
                "High-risk security event %s",
                (event_type,),
                {
                    "event_type": event_type,
                    "risk_level": risk,
                    "principal_id": str(principal_id) if principal_id else None,
                    "resource_type": row.resource_type,
                    "resource_id": row.resource_id,
                    "ip_address": ip_address,
                },
            ))
        else:
            logger.debug("Security event %s", event_type)

        return row

    async def count_failed_validations(self, ip_address: str, since: datetime) -> int:
        """Failed access-code validations from one source since a point in time."""
        query = select(func.count(SecurityEvent.id)).where(
            and_(
                SecurityEvent.event_type == SecurityEventType.ACCESS_CODE_VALIDATION_FAILED.value,
                SecurityEvent.ip_address == ip_address,
                SecurityEvent.created_at > since,
            )
        )
        result = await self.session.execute(query)
        return result.scalar() or 0

    async def recent_for_principal(
        self,
        principal_id: uuid.UUID,
        since: Optional[datetime] = None,
        high_risk_only: bool = False,
        limit: int = 100,
    ) -> List[SecurityEvent]:
        """Events triggered by a principal, newest first."""
        query = select(SecurityEvent).where(SecurityEvent.principal_id == principal_id)

        if since:
            query = query.where(SecurityEvent.created_at >= since)
        if high_risk_only:
            query = query.where(SecurityEvent.is_high_risk.is_(True))

        query = query.order_by(desc(SecurityEvent.created_at)).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def for_resource(
        self,
        resource_type: str,
        resource_id: Union[uuid.UUID, str],
        limit: int = 100,
    ) -> List[SecurityEvent]:
        """History of one resource, newest first."""
        query = (
            select(SecurityEvent)
            .where(
                and_(
                    SecurityEvent.resource_type == _value(resource_type),
                    SecurityEvent.resource_id == str(resource_id),
                )
            )
            .order_by(desc(SecurityEvent.created_at))
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    def _serialize_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Convert payload values to JSON-serializable types."""
        result = {}
        for key, value in payload.items():
            if isinstance(value, uuid.UUID):
                result[key] = str(value)
            elif isinstance(value, datetime):
                result[key] = value.isoformat()
            elif isinstance(value, dict):
                result[key] = self._serialize_payload(value)
            elif isinstance(value, list):
                result[key] = [
                    self._serialize_payload(v) if isinstance(v, dict)
                    else str(v) if isinstance(v, uuid.UUID)
                    else v.isoformat() if isinstance(v, datetime)
                    else _value(v)
                    for v in value
                ]
            else:
                result[key] = _value(value)
        return result
