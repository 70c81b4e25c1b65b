"""Translate agent events into ACP session updates for one session."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from acp import text_block, update_agent_message, update_agent_thought
from acp.schema import CurrentModeUpdate, SessionMode

from relay.command_stream import CommandStreamManager
from relay.delta_tracker import DeltaTracker
from relay.extension import (
    AgentClient,
    AgentEvent,
    AgentMessage,
    CommandExecutionOutput,
    EventHandler,
    ExtensionState,
    TaskCompleted,
    WaitingForInput,
)
from relay.plan import PlanTracker
from relay.prompt_state import PromptStateMachine
from relay.tool_content_stream import ToolContentStreamManager
from relay.tools import ToolHandlerRegistry
from relay.translator import is_completion_ask, is_permission_ask, translate_to_acp_update
from relay.utils import is_user_echo, parse_json_object

logger = logging.getLogger(__name__)

SendUpdate = Callable[[Any], None]
TaskCompletedCallback = Callable[[bool], None]

# Seconds before an unanswered follow-up question is auto-continued.
DEFAULT_FOLLOWUP_TIMEOUT = 30.0


@dataclass(frozen=True)
class StreamConfig:
    """How a streamed say subtype becomes a chunk update."""

    update_type: Literal["agent_message_chunk", "agent_thought_chunk"]
    text_transform: Callable[[str], str] | None = None

    def prepare(self, text: str) -> str:
        return self.text_transform(text) if self.text_transform else text

    def to_update(self, delta: str) -> Any:
        if self.update_type == "agent_thought_chunk":
            return update_agent_thought(text_block(delta))
        return update_agent_message(text_block(delta))


# Say subtypes streamed as deltas. Anything else goes through the translator.
DELTA_STREAM_CONFIG: dict[str, StreamConfig] = {
    "text": StreamConfig("agent_message_chunk"),
    "command_output": StreamConfig("agent_message_chunk"),
    "completion_result": StreamConfig("agent_message_chunk"),
    "reasoning": StreamConfig("agent_thought_chunk"),
    "error": StreamConfig("agent_message_chunk", lambda text: f"Error: {text}"),
}


class SessionEventHandler:
    """Routes agent events through the streaming managers and tool handlers.

    All state here is mutated synchronously inside event callbacks; updates
    leave through ``send_update``, which only queues them.
    """

    def __init__(
        self,
        *,
        client: AgentClient,
        prompt_state: PromptStateMachine,
        delta_tracker: DeltaTracker,
        command_stream: CommandStreamManager,
        tool_content_stream: ToolContentStreamManager,
        tool_handlers: ToolHandlerRegistry,
        plan_tracker: PlanTracker,
        send_update: SendUpdate,
        workspace_path: str,
        initial_mode_id: str,
        available_modes: list[SessionMode] | None = None,
        followup_timeout: float = DEFAULT_FOLLOWUP_TIMEOUT,
    ) -> None:
        self._client = client
        self._prompt_state = prompt_state
        self._delta_tracker = delta_tracker
        self._command_stream = command_stream
        self._tool_content_stream = tool_content_stream
        self._tool_handlers = tool_handlers
        self._plan_tracker = plan_tracker
        self._send_update = send_update
        self._workspace_path = workspace_path
        self._followup_timeout = followup_timeout

        self._current_mode_id = initial_mode_id
        self._available_modes: list[SessionMode] = list(available_modes or [])

        self._task_completed_callback: TaskCompletedCallback | None = None
        self._subscriptions: list[tuple[AgentEvent, EventHandler]] = []

        # The agent can repeat a permission ask while its message is finalized.
        self._processed_permissions: set[tuple[str, str]] = set()
        self._followup_handle: asyncio.TimerHandle | None = None

    def setup_event_handlers(self) -> None:
        self._subscribe("message", self._handle_message)
        self._subscribe("messageUpdated", self._handle_message)
        self._subscribe("waitingForInput", self._handle_waiting_for_input)
        self._subscribe("commandExecutionOutput", self._handle_command_execution_output)
        self._subscribe("taskCompleted", self._handle_task_completed)
        self._subscribe("extensionState", self._handle_extension_state)

    def cleanup(self) -> None:
        """Unsubscribe from the agent and stop pending timers."""
        for event, handler in self._subscriptions:
            self._client.off(event, handler)
        self._subscriptions.clear()
        self.cancel_followup()

    def on_task_completed(self, callback: TaskCompletedCallback) -> None:
        self._task_completed_callback = callback

    def get_current_mode_id(self) -> str:
        return self._current_mode_id

    def set_current_mode_id(self, mode_id: str) -> None:
        """Record a mode selected by the client; no update is emitted."""
        self._current_mode_id = mode_id

    def get_available_modes(self) -> list[SessionMode]:
        return list(self._available_modes)

    @property
    def has_pending_followup(self) -> bool:
        return self._followup_handle is not None

    def reset(self) -> None:
        """Clear per-prompt stream and permission state."""
        self._delta_tracker.reset()
        self._command_stream.reset()
        self._tool_content_stream.reset()
        self._processed_permissions.clear()
        self.cancel_followup()

    def answer_followup(self, text: str, images: list[str] | None = None) -> bool:
        """Answer a pending follow-up question with user text.

        Returns:
            True if a question was pending and has been answered.
        """
        if self._followup_handle is None:
            return False
        self.cancel_followup()
        self._client.respond(text, images)
        return True

    def _subscribe(self, event: AgentEvent, handler: EventHandler) -> None:
        self._client.on(event, handler)
        self._subscriptions.append((event, handler))

    def _handle_message(self, message: AgentMessage) -> None:
        logger.debug(
            f"Message received: type={message.type}, say={message.say}, ask={message.ask}, "
            f"ts={message.ts}, partial={message.partial}"
        )

        if self._plan_tracker.handle_message(message):
            return

        if self._tool_content_stream.is_tool_ask_message(message):
            self._tool_content_stream.handle_tool_content_streaming(message)
            return

        if message.type == "say" and message.text and message.say:
            if (
                self._command_stream.is_command_output_message(message)
                and self._command_stream.get_pending_command_count() > 0
            ):
                self._command_stream.handle_command_output(message)
                return

            config = DELTA_STREAM_CONFIG.get(message.say)
            if config is not None:
                self._stream_say_message(message, config)
                return

        update = translate_to_acp_update(message)
        if update is not None:
            self._send_update(update)

    def _stream_say_message(self, message: AgentMessage, config: StreamConfig) -> None:
        text = message.text or ""
        if message.say == "text" and is_user_echo(text, self._prompt_state.get_prompt_text()):
            logger.debug(f"Skipping user echo ({len(text)} chars)")
            return

        delta = self._delta_tracker.get_delta(message.ts, config.prepare(text))
        if delta:
            self._send_update(config.to_update(delta))

    def _handle_waiting_for_input(self, event: WaitingForInput) -> None:
        ask = event.ask
        logger.debug(f"Waiting for input: ask={ask}")

        if is_permission_ask(ask):
            logger.info(f"Permission request: {ask}")
            self._handle_permission_request(event.message, ask)
            return

        if ask == "api_req_failed":
            logger.warning("API request failed, auto-retrying")
            self._client.approve()
            return

        if is_completion_ask(ask):
            # Completion is reported through the taskCompleted event.
            return

        if ask == "followup":
            self._handle_followup(event.message)
            return

        if ask == "resume_task":
            logger.debug("Auto-approving resume_task")
            self._client.approve()
            return

        logger.debug(f"Auto-approving unhandled ask: {ask}")
        self._client.approve()

    def _handle_permission_request(self, message: AgentMessage, ask: str) -> None:
        """Announce a tool call and auto-approve it.

        A repeated request is approved again without emitting updates; the
        agent blocks until it sees an approval.
        """
        permission_key = (ask, message.text or "")
        if permission_key in self._processed_permissions:
            logger.debug(f"Skipping duplicate permission request: {ask}")
            self._client.approve()
            return
        self._processed_permissions.add(permission_key)

        context = ToolHandlerRegistry.create_context(message, ask, self._workspace_path)
        result = self._tool_handlers.handle(context)

        self._send_update(result.initial_update)

        pending = result.track_as_pending_command
        if pending is not None:
            self._command_stream.track_command(pending.tool_call_id, pending.command, pending.ts)

        if result.completion_update is not None:
            self._send_update(result.completion_update)

        self._client.approve()

    def _handle_followup(self, message: AgentMessage) -> None:
        question = message.text or ""
        payload = parse_json_object(question, repair=False) if question.startswith("{") else None
        if payload is not None and isinstance(payload.get("question"), str):
            question = payload["question"]
        if question:
            self._send_update(update_agent_message(text_block(f"{question}\n")))

        self.cancel_followup()
        if self._followup_timeout <= 0:
            logger.debug("Auto-responding to followup")
            self._client.respond("")
            return

        loop = asyncio.get_running_loop()
        self._followup_handle = loop.call_later(self._followup_timeout, self._auto_continue_followup)
        logger.debug(f"Followup question pending, auto-continuing in {self._followup_timeout}s")

    def _auto_continue_followup(self) -> None:
        self._followup_handle = None
        logger.info("Followup question unanswered, auto-continuing")
        self._client.respond("")

    def cancel_followup(self) -> None:
        """Drop a pending follow-up question without answering it."""
        if self._followup_handle is not None:
            self._followup_handle.cancel()
            self._followup_handle = None

    def _handle_command_execution_output(self, event: CommandExecutionOutput) -> None:
        self._command_stream.handle_execution_output(event.execution_id, event.output)

    def _handle_task_completed(self, event: TaskCompleted) -> None:
        logger.info(f"Task completed: success={event.success}")
        self.cancel_followup()
        if self._task_completed_callback is not None:
            self._task_completed_callback(event.success)

    def _handle_extension_state(self, state: ExtensionState) -> None:
        if state.custom_modes:
            self._available_modes = [
                SessionMode(id=mode.slug, name=mode.name, description=mode.description)
                for mode in state.custom_modes
            ]
            logger.debug(f"Updated available modes: {len(self._available_modes)} modes")

        if state.mode and state.mode != self._current_mode_id:
            previous = self._current_mode_id
            self._current_mode_id = state.mode
            logger.info(f"Mode changed: {previous} -> {state.mode}")

            self._send_update(
                CurrentModeUpdate(session_update="current_mode_update", current_mode_id=state.mode)
            )
