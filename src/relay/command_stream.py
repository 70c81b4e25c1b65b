"""Streaming of live shell output for approved command tool calls."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from acp import text_block, update_agent_message, update_tool_call

from relay.delta_tracker import DeltaTracker
from relay.extension import AgentMessage

logger = logging.getLogger(__name__)

SendUpdate = Callable[[Any], None]

OPEN_FENCE = "```\n"
CLOSE_FENCE = "```\n"


@dataclass
class PendingCommand:
    """An approved command whose output has not completed yet."""

    tool_call_id: str
    command: str
    started_at: int


class CommandStreamManager:
    """Wraps live command output in one code fence per tool call.

    Output is attributed to the most recently tracked command: the agent does
    not correlate execution ids with tool calls, so last-registered wins.
    """

    def __init__(self, delta_tracker: DeltaTracker, send_update: SendUpdate) -> None:
        """Initialize the command stream manager.

        Args:
            delta_tracker: Tracker shared with the session's other streams.
            send_update: Callback that queues a session update.
        """
        self._delta_tracker = delta_tracker
        self._send_update = send_update
        # Insertion order is registration order; re-tracking moves to the end.
        self._pending: dict[str, PendingCommand] = {}
        self._open_fences: set[str] = set()

    def is_command_output_message(self, message: AgentMessage) -> bool:
        return message.type == "say" and message.say == "command_output"

    def track_command(self, tool_call_id: str, command: str, ts: int) -> None:
        """Register a command tool call awaiting output.

        A second call with the same id replaces the earlier command.
        """
        self._pending.pop(tool_call_id, None)
        self._pending[tool_call_id] = PendingCommand(tool_call_id=tool_call_id, command=command, started_at=ts)
        logger.debug(f"Tracking command {tool_call_id}: {command}")

    def handle_execution_output(self, execution_id: str, output: str) -> None:
        """Stream a growing chunk of live output for the current command."""
        pending = self._most_recent()
        if pending is None:
            logger.debug(f"Ignoring output for execution {execution_id}: no pending command")
            return

        delta = self._delta_tracker.get_delta(f"command-output-{execution_id}", output)
        if not delta:
            return

        if pending.tool_call_id not in self._open_fences:
            self._open_fences.add(pending.tool_call_id)
            self._send_update(update_agent_message(text_block(OPEN_FENCE)))

        self._send_update(update_agent_message(text_block(delta)))

    def handle_command_output(self, message: AgentMessage) -> None:
        """Finish the current command when its final output message arrives."""
        if message.partial:
            return

        pending = self._most_recent()
        if pending is None:
            logger.debug("Command output without a pending command, ignoring")
            return

        tool_call_id = pending.tool_call_id
        if tool_call_id in self._open_fences:
            self._open_fences.discard(tool_call_id)
            self._send_update(update_agent_message(text_block(CLOSE_FENCE)))

        self._send_update(
            update_tool_call(
                tool_call_id=tool_call_id,
                status="completed",
                raw_output={"output": message.text or ""},
            )
        )
        del self._pending[tool_call_id]
        logger.debug(f"Command {tool_call_id} completed")

    def get_pending_command(self, tool_call_id: str) -> PendingCommand | None:
        return self._pending.get(tool_call_id)

    def get_pending_command_count(self) -> int:
        return len(self._pending)

    def has_open_code_fences(self) -> bool:
        return bool(self._open_fences)

    def reset(self) -> None:
        self._pending.clear()
        self._open_fences.clear()

    def _most_recent(self) -> PendingCommand | None:
        if not self._pending:
            return None
        return next(reversed(self._pending.values()))
