"""Tests for the agent interaction log."""

import dataclasses
import json

import pytest

from transcript_analyst.interaction_log import InteractionLog, LogAction
from transcript_analyst.llm_client import TokenUsage


class TestInteractionLog:

    def test_request_then_response(self):
        log = InteractionLog()
        log_id = log.log_request("Writer Agent", "writer", "sys", "user prompt", "azure/gpt-4o")
        log.log_response(log_id, "the answer", 250, TokenUsage(3, 4, 7))

        request, response = log.get_logs()
        assert request.id == log_id
        assert request.action == LogAction.REQUEST
        assert request.prompt.system == "sys"
        assert request.prompt.user == "user prompt"
        assert request.model == "azure/gpt-4o"

        assert response.action == LogAction.RESPONSE
        assert response.request_id == log_id
        assert response.id != log_id
        assert response.agent_name == "Writer Agent"
        assert response.role_id == "writer"
        assert response.response == "the answer"
        assert response.duration_ms == 250
        assert response.tokens == TokenUsage(3, 4, 7)
        assert response.model == "azure/gpt-4o"

    def test_ids_are_unique(self):
        log = InteractionLog()
        ids = {log.log_request("A", "a", None, "x") for _ in range(50)}
        assert len(ids) == 50

    def test_response_to_unknown_request(self):
        with pytest.raises(ValueError):
            InteractionLog().log_response("log-missing", "text", 1)

    def test_second_response_rejected(self):
        log = InteractionLog()
        log_id = log.log_request("A", "a", None, "x")
        log.log_response(log_id, "first", 1)
        with pytest.raises(ValueError):
            log.log_response(log_id, "second", 1)
        assert len(log.get_logs()) == 2

    def test_error_entry(self):
        log = InteractionLog()
        log.log_error("Critic Agent", "critic", "timeout")
        (entry,) = log.get_logs()
        assert entry.action == LogAction.ERROR
        assert entry.error == "timeout"

    def test_entries_are_immutable(self):
        log = InteractionLog()
        log.log_request("A", "a", None, "x")
        with pytest.raises(dataclasses.FrozenInstanceError):
            log.get_logs()[0].agent_name = "B"

    def test_subscribers_get_snapshots_in_order(self):
        log = InteractionLog()
        seen = []
        log.subscribe(lambda entries: seen.append(("first", len(entries))))
        log.subscribe(lambda entries: seen.append(("second", len(entries))))

        log.log_request("A", "a", None, "x")
        log.log_error("A", "a", "boom")

        assert seen == [("first", 1), ("second", 1), ("first", 2), ("second", 2)]

    def test_snapshot_does_not_change_later(self):
        log = InteractionLog()
        snapshots = []
        log.subscribe(snapshots.append)

        log.log_request("A", "a", None, "x")
        log.log_request("A", "a", None, "y")

        assert len(snapshots[0]) == 1
        assert len(snapshots[1]) == 2

    def test_unsubscribe(self):
        log = InteractionLog()
        seen = []
        unsubscribe = log.subscribe(seen.append)
        log.log_request("A", "a", None, "x")
        unsubscribe()
        unsubscribe()
        log.log_request("A", "a", None, "y")
        assert len(seen) == 1

    def test_clear_notifies_with_empty_log(self):
        log = InteractionLog()
        log_id = log.log_request("A", "a", None, "x")
        seen = []
        log.subscribe(seen.append)

        log.clear_logs()

        assert seen == [()]
        assert log.get_logs() == ()
        with pytest.raises(ValueError):
            log.log_response(log_id, "late", 1)

    def test_to_dicts_is_json_serializable(self):
        log = InteractionLog()
        log_id = log.log_request("A", "a", "sys", "x", "m")
        log.log_response(log_id, "y", 5, TokenUsage(1, 1, 2))

        data = log.to_dicts()
        json.dumps(data)
        assert data[0]["action"] == "request"
        assert data[0]["prompt"] == {"system": "sys", "user": "x"}
        assert data[1]["tokens"] == {"prompt": 1, "completion": 1, "total": 2}
