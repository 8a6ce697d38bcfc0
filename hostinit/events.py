"""Audit events for host provisioning."""

import logging
from dataclasses import dataclass, field
from datetime import datetime

from hostinit.host.types import utcnow

logger = logging.getLogger(__name__)

EVENT_HOST_PROVISION_ERROR = "host-provision-error"
EVENT_HOST_PROVISION_FAILED = "host-provision-failed"
EVENT_HOST_PROVISIONED = "host-provisioned"


@dataclass
class Event:
    resource_id: str
    event_type: str
    timestamp: datetime = field(default_factory=utcnow)
    data: dict = field(default_factory=dict)


class EventLog:
    """Append-only, in-memory audit log. Every event is also logged."""

    def __init__(self):
        self.events: list[Event] = []

    def _log(self, host_id, event_type, **data):
        event = Event(resource_id=host_id, event_type=event_type, data=data)
        self.events.append(event)
        logger.info(f"event {event_type} host={host_id}")
        return event

    def log_provision_error(self, host_id: str) -> Event:
        """One provisioning attempt failed; the host may still be retried."""
        return self._log(host_id, EVENT_HOST_PROVISION_ERROR)

    def log_provision_failed(self, host_id: str, logs: str = "") -> Event:
        """Provisioning gave up on the host."""
        return self._log(host_id, EVENT_HOST_PROVISION_FAILED, logs=logs)

    def log_provisioned(self, host_id: str) -> Event:
        return self._log(host_id, EVENT_HOST_PROVISIONED)

    def find(self, host_id: str, event_type: str | None = None) -> list[Event]:
        return [
            e for e in self.events if e.resource_id == host_id and (event_type is None or e.event_type == event_type)
        ]
