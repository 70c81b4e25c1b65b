"""ACP server exposing agent sessions to an editor.

Architecture: Editor <-> Relay (ACP) <-> Agent (event-driven extension host)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any
from uuid import uuid4

from acp import (
    InitializeResponse,
    NewSessionResponse,
    PromptResponse,
    RequestError,
    run_agent,
)
from acp.interfaces import Agent, Client
from acp.schema import (
    AgentCapabilities,
    AuthenticateResponse,
    ClientCapabilities,
    HttpMcpServer,
    Implementation,
    ListSessionsResponse,
    LoadSessionResponse,
    McpServerStdio,
    PromptCapabilities,
    SessionInfo,
    SessionMode,
    SetSessionModelResponse,
    SetSessionModeResponse,
    SseMcpServer,
)

from relay.extension import AgentFactory, AgentOptions
from relay.protocol import PromptBlock
from relay.session import Session
from relay.session_events import DEFAULT_FOLLOWUP_TIMEOUT

logger = logging.getLogger(__name__)

# Stdio buffer limit; base64 image content overflows the 64KB default.
STDIO_BUFFER_LIMIT = 16 * 1024 * 1024

AVAILABLE_MODES: list[SessionMode] = [
    SessionMode(id="code", name="Code", description="Write, modify, and refactor code"),
    SessionMode(id="architect", name="Architect", description="Plan and design before implementation"),
    SessionMode(id="ask", name="Ask", description="Get answers and explanations"),
    SessionMode(id="debug", name="Debug", description="Diagnose and fix software issues"),
]


class RelayAgent(Agent):
    """ACP agent that drives one agent instance per session."""

    _conn: Client

    def __init__(
        self,
        agent_factory: AgentFactory,
        mode: str = "code",
        model: str | None = None,
        followup_timeout: float = DEFAULT_FOLLOWUP_TIMEOUT,
    ) -> None:
        """Initialize the Relay agent.

        Args:
            agent_factory: Async callable creating an agent for a session.
            mode: Initial mode for new sessions.
            model: Optional model id passed to new agents.
            followup_timeout: Seconds before an unanswered follow-up question
                is auto-continued.
        """
        self.sessions: dict[str, Session] = {}
        self.agent_factory = agent_factory
        self.mode = mode
        self.model = model
        self.followup_timeout = followup_timeout

    def on_connect(self, conn: Client) -> None:
        """Handle connection from editor."""
        self._conn = conn

    def _get_session(self, session_id: str) -> Session:
        session = self.sessions.get(session_id)
        if session is None:
            raise RequestError.invalid_params({"message": f"Session not found: {session_id}"})
        return session

    async def initialize(
        self,
        protocol_version: int,
        client_capabilities: ClientCapabilities | None = None,
        client_info: Implementation | None = None,
        **kwargs: Any,
    ) -> InitializeResponse:
        """Handle initialization request."""
        logger.info(f"Initializing with protocol version {protocol_version}")
        return InitializeResponse(
            protocol_version=protocol_version,
            agent_capabilities=AgentCapabilities(
                load_session=False,
                prompt_capabilities=PromptCapabilities(
                    image=True,
                    embedded_context=True,
                ),
            ),
        )

    async def new_session(
        self,
        cwd: str,
        mcp_servers: list[HttpMcpServer | SseMcpServer | McpServerStdio],
        **kwargs: Any,
    ) -> NewSessionResponse:
        """Create a new session backed by a fresh agent."""
        logger.info(f"Creating new session, cwd={cwd}")
        session_id = uuid4().hex
        options = AgentOptions(workspace_path=cwd, mode=self.mode, model=self.model)

        session = await Session.create(
            session_id,
            self._conn,
            self.agent_factory,
            options,
            available_modes=AVAILABLE_MODES,
            followup_timeout=self.followup_timeout,
        )
        self.sessions[session_id] = session

        return NewSessionResponse(session_id=session_id, modes=session.get_mode_state())

    async def load_session(
        self,
        cwd: str,
        mcp_servers: list[HttpMcpServer | SseMcpServer | McpServerStdio],
        session_id: str,
        **kwargs: Any,
    ) -> LoadSessionResponse | None:
        """Sessions live only as long as the process; nothing to load."""
        return None

    async def list_sessions(
        self,
        cursor: str | None = None,
        cwd: str | None = None,
        **kwargs: Any,
    ) -> ListSessionsResponse:
        """List live sessions."""
        sessions = [
            SessionInfo(session_id=session_id, cwd=session.workspace_path)
            for session_id, session in self.sessions.items()
            if cwd is None or session.workspace_path == cwd
        ]
        return ListSessionsResponse(sessions=sessions, next_cursor=None)

    async def set_session_mode(
        self,
        mode_id: str,
        session_id: str,
        **kwargs: Any,
    ) -> SetSessionModeResponse | None:
        """Switch the agent's mode."""
        session = self._get_session(session_id)
        if mode_id not in {mode.id for mode in AVAILABLE_MODES}:
            raise RequestError.invalid_params({"message": f"Unknown mode: {mode_id}"})

        session.set_mode(mode_id)
        return SetSessionModeResponse()

    async def set_session_model(
        self,
        model_id: str,
        session_id: str,
        **kwargs: Any,
    ) -> SetSessionModelResponse | None:
        """Switch the agent's model."""
        session = self._get_session(session_id)
        session.set_model(model_id)
        return SetSessionModelResponse()

    async def authenticate(
        self,
        method_id: str,
        **kwargs: Any,
    ) -> AuthenticateResponse | None:
        """Handle authentication."""
        return None

    async def prompt(
        self,
        prompt: list[PromptBlock],
        session_id: str,
        **kwargs: Any,
    ) -> PromptResponse:
        """Run a prompt turn in the given session."""
        logger.info(f"Received prompt for session {session_id}")
        session = self._get_session(session_id)
        return await session.prompt(prompt)

    async def cancel(
        self,
        session_id: str,
        **kwargs: Any,
    ) -> None:
        """Cancel current operation."""
        session = self.sessions.get(session_id)
        if session is None:
            logger.warning(f"Cancel requested for unknown session {session_id}")
            return
        session.cancel()

    async def ext_method(
        self,
        method: str,
        params: dict[str, Any],
    ) -> dict[str, Any]:
        """Handle extension method."""
        return {}

    async def ext_notification(
        self,
        method: str,
        params: dict[str, Any],
    ) -> None:
        """Handle extension notification."""
        pass

    async def dispose(self) -> None:
        """Dispose every session and forget them."""
        sessions = list(self.sessions.values())
        self.sessions.clear()
        if sessions:
            logger.info(f"Disposing {len(sessions)} sessions")
            await asyncio.gather(*(session.dispose() for session in sessions))


async def run_server(
    agent_factory: AgentFactory,
    mode: str = "code",
    model: str | None = None,
    followup_timeout: float = DEFAULT_FOLLOWUP_TIMEOUT,
) -> None:
    """Run the Relay ACP server over stdio.

    Args:
        agent_factory: Async callable creating an agent for each session.
        mode: Initial mode for new sessions.
        model: Optional model id for new agents.
        followup_timeout: Seconds before unanswered follow-up questions are
            auto-continued.
    """
    from acp import stdio_streams

    agent = RelayAgent(
        agent_factory,
        mode=mode,
        model=model,
        followup_timeout=followup_timeout,
    )

    output_stream, input_stream = await stdio_streams(limit=STDIO_BUFFER_LIMIT)
    try:
        await run_agent(agent, input_stream=input_stream, output_stream=output_stream)
    finally:
        await agent.dispose()
