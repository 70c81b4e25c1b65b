"""One ACP session bound to one agent instance."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from acp import PromptResponse
from acp.schema import SessionMode, SessionModeState

from relay.command_stream import CommandStreamManager
from relay.delta_tracker import DeltaTracker
from relay.extension import SETTLED_RUN_STATES, AgentClient, AgentFactory, AgentOptions, RunState, StateChange
from relay.outbox import UpdateQueue
from relay.plan import PlanTracker
from relay.prompt_state import PromptStateMachine
from relay.protocol import PromptBlock, extract_prompt_images, extract_prompt_resources, extract_prompt_text
from relay.session_events import DEFAULT_FOLLOWUP_TIMEOUT, SessionEventHandler
from relay.tool_content_stream import ToolContentStreamManager
from relay.tools import ToolHandlerRegistry

if TYPE_CHECKING:
    from acp.interfaces import Client

logger = logging.getLogger(__name__)


class Session:
    """Drives an agent for one ACP session.

    Owns the prompt lifecycle, the streaming managers and the outbound update
    queue. All agent events are handled synchronously; updates are delivered
    to the connection in order by the queue's worker task.
    """

    def __init__(
        self,
        session_id: str,
        agent: AgentClient,
        conn: Client,
        workspace_path: str,
        *,
        initial_mode: str = "code",
        model: str | None = None,
        available_modes: list[SessionMode] | None = None,
        followup_timeout: float = DEFAULT_FOLLOWUP_TIMEOUT,
    ) -> None:
        self.session_id = session_id
        self.workspace_path = workspace_path
        self._agent = agent
        self._conn = conn
        self._current_model_id = model
        self._is_cancelling = False

        self._prompt_state = PromptStateMachine()
        self._outbox = UpdateQueue(self.send_update)

        delta_tracker = DeltaTracker()
        self._event_handler = SessionEventHandler(
            client=agent,
            prompt_state=self._prompt_state,
            delta_tracker=delta_tracker,
            command_stream=CommandStreamManager(delta_tracker, self._outbox.put),
            tool_content_stream=ToolContentStreamManager(delta_tracker, self._outbox.put),
            tool_handlers=ToolHandlerRegistry(),
            plan_tracker=PlanTracker(self._outbox.put),
            send_update=self._outbox.put,
            workspace_path=workspace_path,
            initial_mode_id=initial_mode,
            available_modes=available_modes,
            followup_timeout=followup_timeout,
        )
        self._event_handler.on_task_completed(self._handle_task_completed)

    @classmethod
    async def create(
        cls,
        session_id: str,
        conn: Client,
        agent_factory: AgentFactory,
        options: AgentOptions,
        *,
        available_modes: list[SessionMode] | None = None,
        followup_timeout: float = DEFAULT_FOLLOWUP_TIMEOUT,
    ) -> Session:
        """Build the agent through the factory and wire a session around it.

        Args:
            session_id: Protocol session id.
            conn: Connection used to deliver session updates.
            agent_factory: Async callable producing the agent.
            options: Options passed to the factory.
            available_modes: Modes offered until the agent reports its own.
            followup_timeout: Seconds before an unanswered follow-up question
                is auto-continued.

        Returns:
            A session subscribed to the agent's events.
        """
        agent = await agent_factory(options)
        session = cls(
            session_id,
            agent,
            conn,
            options.workspace_path,
            initial_mode=options.mode,
            model=options.model,
            available_modes=available_modes,
            followup_timeout=followup_timeout,
        )
        session._setup()
        logger.info(f"Session {session_id} created in {options.workspace_path} (mode={options.mode})")
        return session

    @property
    def agent(self) -> AgentClient:
        return self._agent

    @property
    def prompt_state(self) -> PromptStateMachine:
        return self._prompt_state

    @property
    def event_handler(self) -> SessionEventHandler:
        return self._event_handler

    @property
    def is_cancelling(self) -> bool:
        return self._is_cancelling

    @property
    def current_model_id(self) -> str | None:
        return self._current_model_id

    def _setup(self) -> None:
        self._event_handler.setup_event_handlers()
        self._agent.on("stateChange", self._handle_state_change)

    def _handle_state_change(self, event: StateChange) -> None:
        current = event.current_state
        if event.changed():
            logger.info(
                f"Agent state: {event.previous_state.run_state.value} -> {current.run_state.value} "
                f"(running={current.is_running}, streaming={current.is_streaming}, ask={current.current_ask})"
            )

        if not self._is_cancelling:
            return

        stopped = current.run_state in SETTLED_RUN_STATES or (not current.is_running and not current.is_streaming)
        if stopped:
            logger.info("Agent stopped after cancellation")
            self._is_cancelling = False
            self._event_handler.cancel_followup()
            self._prompt_state.transition_to_complete("cancelled")

    def _handle_task_completed(self, success: bool) -> None:
        if self._is_cancelling:
            self._is_cancelling = False
            self._prompt_state.transition_to_complete("cancelled")
            return
        self._prompt_state.complete(success)

    async def prompt(self, prompt: list[PromptBlock]) -> PromptResponse:
        """Run one prompt turn and wait for it to finish.

        A resumable task or a pending follow-up question is answered with the
        prompt text; otherwise a new task is started, cancelling any task that
        is still running.

        Returns:
            The turn's stop reason. Every update produced during the turn has
            been handed to the connection when this returns.
        """
        text = extract_prompt_text(prompt)
        images = extract_prompt_images(prompt)
        resources = extract_prompt_resources(prompt)
        logger.info(
            f"Prompt for session {self.session_id}: {len(text)} chars, "
            f"{len(images)} images, {len(resources)} resources"
        )

        state = self._agent.get_agent_state()
        if self._event_handler.has_pending_followup:
            logger.info("Answering pending followup question")
            self._is_cancelling = False
            outcome_future = self._prompt_state.start_prompt(text)
            self._event_handler.answer_followup(text, images or None)
        elif state.run_state is RunState.RESUMABLE and state.current_ask == "resume_task":
            logger.info("Resuming task")
            self._is_cancelling = False
            self._event_handler.reset()
            outcome_future = self._prompt_state.start_prompt(text)
            self._agent.respond(text, images or None)
        else:
            if self._prompt_state.is_processing():
                self.cancel()
            self._is_cancelling = False
            self._event_handler.reset()
            outcome_future = self._prompt_state.start_prompt(text)

            message: dict[str, Any] = {"type": "newTask", "text": text}
            if images:
                message["images"] = images
            try:
                self._agent.send(message)
            except Exception:
                self._prompt_state.reset()
                raise

        outcome = await outcome_future
        await self._outbox.drain()
        logger.info(f"Prompt for session {self.session_id} finished: {outcome.stop_reason}")
        return PromptResponse(stop_reason=outcome.stop_reason)

    def cancel(self) -> None:
        """Ask the agent to stop the running task and settle the prompt as cancelled."""
        if not self._prompt_state.is_processing():
            logger.debug(f"Nothing to cancel in session {self.session_id}")
            return

        logger.info(f"Cancelling prompt in session {self.session_id}")
        self._is_cancelling = True
        self._event_handler.cancel_followup()
        self._agent.send({"type": "cancelTask"})
        self._prompt_state.cancel()

    def set_mode(self, mode_id: str) -> None:
        logger.info(f"Setting mode for session {self.session_id}: {mode_id}")
        self._agent.send({"type": "updateSettings", "updatedSettings": {"mode": mode_id}})
        self._event_handler.set_current_mode_id(mode_id)

    def set_model(self, model_id: str) -> None:
        logger.info(f"Setting model for session {self.session_id}: {model_id}")
        self._agent.send({"type": "updateSettings", "updatedSettings": {"apiModelId": model_id}})
        self._current_model_id = model_id

    def get_mode_state(self) -> SessionModeState:
        return SessionModeState(
            current_mode_id=self._event_handler.get_current_mode_id(),
            available_modes=self._event_handler.get_available_modes(),
        )

    async def send_update(self, update: Any) -> bool:
        """Deliver one session update to the connection.

        Returns:
            True on success. Failures are logged and reported as False.
        """
        try:
            await self._conn.session_update(session_id=self.session_id, update=update)
        except Exception as e:
            logger.warning(f"Failed to send update for session {self.session_id}: {e}")
            return False
        return True

    async def dispose(self) -> None:
        """Stop the agent and release the session.

        Subscriptions are removed before the agent is disposed.
        """
        logger.info(f"Disposing session {self.session_id}")
        self.cancel()
        self._event_handler.cleanup()
        self._agent.off("stateChange", self._handle_state_change)
        self._prompt_state.reset()
        await self._outbox.close()
        await self._agent.dispose()
