"""Shared fixtures for Relay tests."""

from __future__ import annotations

from collections import defaultdict
from typing import Any

import pytest

from relay.extension import AgentEvent, AgentState, EventHandler


class FakeAgent:
    """In-memory agent that records commands and lets tests emit events."""

    def __init__(self) -> None:
        self.handlers: dict[str, list[EventHandler]] = defaultdict(list)
        self.state = AgentState()
        self.sent: list[dict[str, Any]] = []
        self.responses: list[tuple[str, list[str] | None]] = []
        self.approvals = 0
        self.rejections = 0
        self.disposed = False

    def on(self, event: AgentEvent, handler: EventHandler) -> None:
        self.handlers[event].append(handler)

    def off(self, event: AgentEvent, handler: EventHandler) -> None:
        if handler in self.handlers[event]:
            self.handlers[event].remove(handler)

    def emit(self, event: AgentEvent, payload: Any) -> None:
        for handler in list(self.handlers[event]):
            handler(payload)

    def handler_count(self) -> int:
        return sum(len(handlers) for handlers in self.handlers.values())

    def get_agent_state(self) -> AgentState:
        return self.state

    def send(self, message: dict[str, Any]) -> None:
        self.sent.append(message)

    def approve(self) -> None:
        self.approvals += 1

    def reject(self) -> None:
        self.rejections += 1

    def respond(self, text: str, images: list[str] | None = None) -> None:
        self.responses.append((text, images))

    async def dispose(self) -> None:
        self.disposed = True


@pytest.fixture
def fake_agent() -> FakeAgent:
    return FakeAgent()
