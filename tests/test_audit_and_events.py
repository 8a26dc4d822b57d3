"""
Tests for the audit logger and the event bus.
"""

import json
from unittest.mock import Mock

from lifecycle_engine.audit import AuditLogger
from lifecycle_engine.events import STEP_COMPLETED, WILDCARD, EventBus, WorkflowEvent


class TestAuditLogger:

    def test_in_memory_most_recent_first(self):
        audit = AuditLogger()
        audit.record("alice", "instance.create", instance_id="wf-1")
        audit.record("bob", "step.transition", instance_id="wf-1", details={"to": "completed"})
        audit.record("bob", "instance.create", instance_id="wf-2")

        assert [r.action for r in audit.get_events(instance_id="wf-1")] == ["step.transition", "instance.create"]
        assert len(audit.get_events(actor="bob")) == 2
        assert len(audit.get_events(limit=1)) == 1

    def test_writes_json_lines(self, tmp_path):
        audit = AuditLogger(str(tmp_path / "audit"))
        record_id = audit.record("alice", "instance.cancel", instance_id="wf-1", details={"reason": "declined"})

        files = list((tmp_path / "audit").glob("audit_*.jsonl"))
        assert len(files) == 1
        line = json.loads(files[0].read_text().splitlines()[0])
        assert line["id"] == record_id
        assert line["details"] == {"reason": "declined"}

        reread = AuditLogger(str(tmp_path / "audit")).get_events(instance_id="wf-1")
        assert reread[0].actor == "alice"


class TestEventBus:

    def test_failing_handler_does_not_stop_others(self):
        bus = EventBus()
        broken = Mock(side_effect=RuntimeError("smtp down"))
        working = Mock()
        bus.subscribe(STEP_COMPLETED, broken)
        bus.subscribe(STEP_COMPLETED, working)

        bus.publish(WorkflowEvent(STEP_COMPLETED, "wf-1", {"step_id": "s1"}))

        broken.assert_called_once()
        working.assert_called_once()

    def test_wildcard_and_unsubscribe(self):
        bus = EventBus()
        everything = Mock()
        bus.subscribe(WILDCARD, everything)

        bus.publish_all([WorkflowEvent(STEP_COMPLETED, "wf-1"), WorkflowEvent("instance.completed", "wf-1")])
        assert everything.call_count == 2

        bus.unsubscribe(WILDCARD, everything)
        bus.publish(WorkflowEvent(STEP_COMPLETED, "wf-1"))
        assert everything.call_count == 2
