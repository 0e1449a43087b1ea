"""Tests for logging_utils module."""

from __future__ import annotations

import json

from kanban_engine.board.intents import BulkMove, CreateTask, MoveTask
from kanban_engine.domain.models import ChangeEvent
from kanban_engine.logging_utils import pretty, summarize_event, summarize_intent


class TestSummarizeIntent:
    """Test summarize_intent function."""

    def test_none(self):
        assert summarize_intent(None) == {"intent": None}

    def test_scalar_fields(self):
        """Test that plain fields are copied through."""
        result = summarize_intent(MoveTask("t1", "doing", 2))
        assert result == {"intent": "MoveTask", "task_id": "t1", "stage_id": "doing", "position": 2}

    def test_sequences_are_sampled(self):
        """Test that long id lists are reduced to a count and a sample."""
        result = summarize_intent(BulkMove(("a", "b", "c", "d"), "done"))
        assert result["task_ids_n"] == 4
        assert result["task_ids_sample"] == ["a", "b", "c"]

    def test_long_strings_are_truncated(self):
        """Test that long field values are shortened."""
        result = summarize_intent(CreateTask("todo", {"title": "x" * 200}))
        assert len(result["fields"]["title"]) == 81
        assert result["fields"]["title"].endswith("…")


class TestSummarizeEvent:
    """Test summarize_event function."""

    def test_insert_uses_new_row(self):
        event = ChangeEvent("insert", "tasks", new={"id": "t1", "project_id": "p1"})
        assert summarize_event(event) == {"event": "insert", "table": "tasks", "row_id": "t1"}

    def test_delete_uses_old_row(self):
        event = ChangeEvent("delete", "tasks", old={"id": "t9"})
        assert summarize_event(event)["row_id"] == "t9"

    def test_none(self):
        assert summarize_event(None) == {"event": None}


class TestPretty:
    """Test pretty function."""

    def test_json_serializable(self):
        assert json.loads(pretty({"a": [1, 2]})) == {"a": [1, 2]}

    def test_non_serializable_values_use_str(self):
        """Test that unknown objects fall back to their string form."""
        result = pretty({"when": object()})
        assert "object object" in result
