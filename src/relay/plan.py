"""Plan updates derived from the agent's todo list."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from acp import plan_entry, update_plan

from relay.extension import AgentMessage
from relay.utils import parse_json_object

logger = logging.getLogger(__name__)

SendUpdate = Callable[[Any], None]

PlanEntryPriority = Literal["high", "medium", "low"]
PlanEntryStatus = Literal["pending", "in_progress", "completed"]

_STATUSES: tuple[PlanEntryStatus, ...] = ("pending", "in_progress", "completed")


@dataclass(frozen=True)
class TodoItem:
    """A single item of the agent's todo list."""

    content: str
    status: PlanEntryStatus = "pending"


@dataclass(frozen=True)
class PriorityConfig:
    """How plan entry priorities are assigned.

    By default in-progress items are high priority and everything else gets
    ``default_priority``. With ``prioritize_by_order`` the first
    ``high_priority_count`` items are high, the rest of the first half medium,
    and the remainder low.
    """

    default_priority: PlanEntryPriority = "medium"
    prioritize_in_progress: bool = True
    prioritize_by_order: bool = False
    high_priority_count: int = 3


DEFAULT_PRIORITY_CONFIG = PriorityConfig()


def determine_priority(item: TodoItem, index: int, total: int, config: PriorityConfig) -> PlanEntryPriority:
    if config.prioritize_in_progress and item.status == "in_progress":
        return "high"

    if config.prioritize_by_order and total > 0:
        if index < config.high_priority_count:
            return "high"
        if index < total // 2:
            return "medium"
        return "low"

    return config.default_priority


def todo_list_to_plan_update(todos: list[TodoItem], config: PriorityConfig = DEFAULT_PRIORITY_CONFIG) -> Any:
    total = len(todos)
    entries = [
        plan_entry(item.content, priority=determine_priority(item, index, total, config), status=item.status)
        for index, item in enumerate(todos)
    ]
    return update_plan(entries)


def parse_todo_list(text: str) -> list[TodoItem] | None:
    """Parse ``{"tool": "updateTodoList", "todos": [...]}`` into todo items."""
    parsed = parse_json_object(text, repair=False)
    if parsed is None or parsed.get("tool") != "updateTodoList":
        return None

    raw_todos = parsed.get("todos")
    if not isinstance(raw_todos, list):
        return None

    todos: list[TodoItem] = []
    for raw in raw_todos:
        if not isinstance(raw, dict) or not isinstance(raw.get("content"), str):
            continue
        status = raw.get("status")
        todos.append(TodoItem(content=raw["content"], status=status if status in _STATUSES else "pending"))
    return todos


def extract_todo_list_from_message(message: AgentMessage) -> list[TodoItem] | None:
    """Todo list carried by a tool ask or a ``user_edit_todos`` say, if any."""
    if not message.text:
        return None
    if message.type == "ask" and message.ask == "tool":
        return parse_todo_list(message.text)
    if message.type == "say" and message.say == "user_edit_todos":
        return parse_todo_list(message.text)
    return None


def is_todo_list_message(message: AgentMessage) -> bool:
    return extract_todo_list_from_message(message) is not None


class PlanTracker:
    """Sends a plan update whenever the agent's todo list changes."""

    def __init__(self, send_update: SendUpdate, config: PriorityConfig = DEFAULT_PRIORITY_CONFIG) -> None:
        """Initialize the plan tracker.

        Args:
            send_update: Callback that queues a session update.
            config: Priority assignment rules.
        """
        self._send_update = send_update
        self._config = config
        self.todos: list[TodoItem] = []

    def handle_message(self, message: AgentMessage) -> bool:
        """Emit a plan update for a todo list message.

        Returns:
            True if the message carried a todo list (whether or not it changed).
        """
        todos = extract_todo_list_from_message(message)
        if todos is None:
            return False

        if not todos or todos == self.todos:
            return True

        self.todos = todos
        self._send_update(todo_list_to_plan_update(todos, self._config))
        logger.info(f"Plan updated: {len(todos)} entries")
        return True

    def reset(self) -> None:
        self.todos = []
