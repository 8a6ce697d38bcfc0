"""Tests for the provisioning audit log."""

from hostinit.events import (
    EVENT_HOST_PROVISION_ERROR,
    EVENT_HOST_PROVISION_FAILED,
    EVENT_HOST_PROVISIONED,
    EventLog,
)


def test_event_log_records_in_order():
    log = EventLog()
    log.log_provision_error("h-1")
    log.log_provision_failed("h-1", logs="ssh: connection refused")
    log.log_provisioned("h-2")

    assert [e.event_type for e in log.events] == [
        EVENT_HOST_PROVISION_ERROR,
        EVENT_HOST_PROVISION_FAILED,
        EVENT_HOST_PROVISIONED,
    ]
    assert log.events[1].data == {"logs": "ssh: connection refused"}


def test_event_log_find():
    log = EventLog()
    log.log_provision_error("h-1")
    log.log_provision_error("h-1")
    log.log_provisioned("h-1")
    log.log_provisioned("h-2")

    assert len(log.find("h-1")) == 3
    assert len(log.find("h-1", EVENT_HOST_PROVISION_ERROR)) == 2
    assert log.find("h-3") == []
