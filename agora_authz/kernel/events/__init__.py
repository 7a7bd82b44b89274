"""
Append-only security event log.
"""

from agora_authz.kernel.events.event_store import SecurityEventLog

__all__ = ["SecurityEventLog"]
