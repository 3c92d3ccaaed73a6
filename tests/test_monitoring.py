"""Tests for structured logging, the audit trail and metrics."""

import json
import logging

import pytest
from structlog.contextvars import get_contextvars

from monitoring.logger import AuditLogger, LogContext, mask_dict, setup_logging
from monitoring.metrics import MetricsCollector


class TestMasking:

    def test_sensitive_keys_are_masked(self):
        masked = mask_dict({
            "api_key": "abcd1234efgh5678",
            "trello": {"token": "short"},
            "board_id": "board1",
        })

        assert masked["api_key"] == "abcd****5678"
        assert masked["trello"]["token"] == "****"
        assert masked["board_id"] == "board1"

    def test_non_string_secrets_are_masked(self):
        assert mask_dict({"password": 12345})["password"] == "****"


class TestLogContext:

    def test_binds_and_unbinds(self):
        with LogContext(ticket_id="card1", agent="manager"):
            bound = get_contextvars()
            assert bound["ticket_id"] == "card1"
            assert bound["agent"] == "manager"

        assert "ticket_id" not in get_contextvars()


class TestSetupLogging:

    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_file_output_is_json_with_bound_context(self, tmp_path):
        log_file = tmp_path / "agent.log"
        setup_logging(level="DEBUG", fmt="text", log_file=str(log_file))

        with LogContext(ticket_id="card7"):
            logging.getLogger("orchestrator.test").info("Posted question")
        for handler in logging.getLogger().handlers:
            handler.flush()

        record = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert record["event"] == "Posted question"
        assert record["ticket_id"] == "card7"
        assert record["level"] == "info"

    def test_level_is_applied(self):
        root = setup_logging(level="WARNING")

        assert root.level == logging.WARNING


class TestAuditLogger:

    def test_events_are_json_lines(self, audit):
        audit.log_state_transition("card1", "OPENED", "CLARIFICATION_POSTED", "manager", {"trigger": "question_posted"})
        audit.log_child_ticket("card1", "Add model", child_id="card2")
        audit.log_error("workflow", "ReplyTimeout", "no reply", ticket_id="card1")

        with open(audit.output_path) as f:
            events = [json.loads(line) for line in f]

        assert [e["event_type"] for e in events] == ["state_transition", "child_ticket", "error"]
        assert events[0]["trigger"] == "question_posted"
        assert events[1]["created"] is True
        assert "timestamp" in events[2]

    def test_secrets_are_masked_in_details(self, audit):
        audit.log_state_transition("card1", "A", "B", "manager", {"api_token": "abcd1234efgh5678"})

        with open(audit.output_path) as f:
            event = json.loads(f.readline())

        assert event["api_token"] == "abcd****5678"


class TestMetrics:

    def test_collectors_do_not_share_registries(self):
        first, second = MetricsCollector(), MetricsCollector()

        first.record_ticket_processed("manager", "children_created")

        assert first.get_value("tickets_processed_total", {"agent": "manager", "result": "children_created"}) == 1.0
        assert second.get_value("tickets_processed_total", {"agent": "manager", "result": "children_created"}) == 0.0

    def test_zero_dropped_segments_are_not_recorded(self):
        metrics = MetricsCollector()

        metrics.record_parse_degradation(0)

        assert metrics.get_value("task_parse_dropped_segments_total") == 0.0

    def test_export_is_prometheus_text(self):
        metrics = MetricsCollector()
        metrics.record_child_ticket(created=False)

        assert b'child_tickets_total{result="failed"} 1.0' in metrics.export()
