"""Tests for relay.plan module."""

import json
from unittest.mock import MagicMock

from relay.extension import AgentMessage
from relay.plan import (
    PlanTracker,
    PriorityConfig,
    TodoItem,
    determine_priority,
    extract_todo_list_from_message,
    is_todo_list_message,
    parse_todo_list,
    todo_list_to_plan_update,
)


def todo_payload(*todos: tuple[str, str]) -> str:
    return json.dumps(
        {"tool": "updateTodoList", "todos": [{"content": c, "status": s} for c, s in todos]}
    )


class TestParseTodoList:
    """Tests for parse_todo_list function."""

    def test_parses_items(self):
        text = todo_payload(("Write tests", "completed"), ("Fix bug", "in_progress"))

        assert parse_todo_list(text) == [
            TodoItem("Write tests", "completed"),
            TodoItem("Fix bug", "in_progress"),
        ]

    def test_unknown_status_becomes_pending(self):
        text = todo_payload(("Ship", "blocked"))
        assert parse_todo_list(text) == [TodoItem("Ship", "pending")]

    def test_other_tools_are_ignored(self):
        assert parse_todo_list(json.dumps({"tool": "readFile", "path": "a.py"})) is None

    def test_invalid_json_is_ignored(self):
        assert parse_todo_list('{"tool": "updateTodoList", "todos": [') is None

    def test_malformed_items_are_skipped(self):
        text = json.dumps({"tool": "updateTodoList", "todos": [{"status": "pending"}, "x", {"content": "ok"}]})
        assert parse_todo_list(text) == [TodoItem("ok", "pending")]


class TestExtractTodoList:
    """Tests for message-level todo list detection."""

    def test_tool_ask(self):
        message = AgentMessage(ts=1, type="ask", ask="tool", text=todo_payload(("a", "pending")))
        assert extract_todo_list_from_message(message) == [TodoItem("a")]
        assert is_todo_list_message(message)

    def test_user_edit_todos_say(self):
        message = AgentMessage(ts=1, type="say", say="user_edit_todos", text=todo_payload(("a", "pending")))
        assert extract_todo_list_from_message(message) == [TodoItem("a")]

    def test_plain_text_is_not_a_todo_list(self):
        message = AgentMessage(ts=1, type="say", say="text", text=todo_payload(("a", "pending")))
        assert not is_todo_list_message(message)


class TestPriorities:
    """Tests for priority assignment."""

    def test_in_progress_is_high_by_default(self):
        config = PriorityConfig()
        assert determine_priority(TodoItem("a", "in_progress"), 0, 1, config) == "high"
        assert determine_priority(TodoItem("b", "pending"), 1, 2, config) == "medium"

    def test_order_based_priorities(self):
        # Given
        config = PriorityConfig(prioritize_in_progress=False, prioritize_by_order=True, high_priority_count=1)
        todos = [TodoItem(str(i)) for i in range(6)]

        # When
        priorities = [determine_priority(item, i, len(todos), config) for i, item in enumerate(todos)]

        # Then
        assert priorities == ["high", "medium", "medium", "low", "low", "low"]

    def test_plan_update_entries(self):
        update = todo_list_to_plan_update([TodoItem("a", "completed"), TodoItem("b", "in_progress")])

        assert update.session_update == "plan"
        assert [(e.content, e.priority, e.status) for e in update.entries] == [
            ("a", "medium", "completed"),
            ("b", "high", "in_progress"),
        ]


class TestPlanTracker:
    """Tests for PlanTracker."""

    def test_sends_plan_on_change_only(self):
        # Given
        send = MagicMock()
        tracker = PlanTracker(send)
        message = AgentMessage(ts=1, type="ask", ask="tool", text=todo_payload(("a", "pending")))

        # When
        first = tracker.handle_message(message)
        second = tracker.handle_message(message)

        # Then
        assert first and second
        assert send.call_count == 1

    def test_sends_again_when_status_changes(self):
        send = MagicMock()
        tracker = PlanTracker(send)

        tracker.handle_message(AgentMessage(ts=1, type="ask", ask="tool", text=todo_payload(("a", "pending"))))
        tracker.handle_message(AgentMessage(ts=2, type="ask", ask="tool", text=todo_payload(("a", "completed"))))

        assert send.call_count == 2
        assert send.call_args.args[0].entries[0].status == "completed"

    def test_empty_list_sends_nothing(self):
        send = MagicMock()
        tracker = PlanTracker(send)

        handled = tracker.handle_message(AgentMessage(ts=1, type="ask", ask="tool", text=todo_payload()))

        assert handled
        send.assert_not_called()

    def test_other_messages_are_not_handled(self):
        tracker = PlanTracker(MagicMock())
        assert not tracker.handle_message(AgentMessage(ts=1, type="say", say="text", text="hello"))

    def test_reset_allows_resending(self):
        send = MagicMock()
        tracker = PlanTracker(send)
        message = AgentMessage(ts=1, type="ask", ask="tool", text=todo_payload(("a", "pending")))

        tracker.handle_message(message)
        tracker.reset()
        tracker.handle_message(message)

        assert send.call_count == 2
