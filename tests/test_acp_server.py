"""Tests for relay.acp_server module.

These tests drive RelayAgent through its ACP methods with a fake agent
factory and a mocked connection.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from acp import RequestError

from relay.acp_server import AVAILABLE_MODES, RelayAgent
from relay.extension import AgentOptions, TaskCompleted


class TestAcpServerImports:
    """Verify all imports in acp_server resolve correctly."""

    def test_relay_agent_imports(self) -> None:
        # When
        from relay.acp_server import RelayAgent

        # Then
        assert RelayAgent is not None

    def test_run_server_imports(self) -> None:
        # When
        from relay.acp_server import run_server

        # Then
        assert run_server is not None


@pytest.fixture
def mock_conn():
    conn = MagicMock()
    conn.session_update = AsyncMock()
    return conn


@pytest.fixture
def agent_factory(fake_agent):
    return AsyncMock(return_value=fake_agent)


@pytest.fixture
def relay_agent(agent_factory, mock_conn):
    agent = RelayAgent(agent_factory, mode="code", model="model-a", followup_timeout=5.0)
    agent.on_connect(mock_conn)
    return agent


class TestRelayAgentInstantiation:
    """Verify RelayAgent can be instantiated."""

    def test_given_factory_when_instantiated_then_has_no_sessions(self, agent_factory) -> None:
        # When
        agent = RelayAgent(agent_factory)

        # Then
        assert agent.sessions == {}
        assert agent.mode == "code"
        assert agent.model is None

    def test_available_modes(self) -> None:
        assert [mode.id for mode in AVAILABLE_MODES] == ["code", "architect", "ask", "debug"]


class TestInitialize:
    @pytest.mark.asyncio
    async def test_echoes_protocol_version_and_capabilities(self, relay_agent) -> None:
        response = await relay_agent.initialize(protocol_version=1)

        assert response.protocol_version == 1
        assert response.agent_capabilities.load_session is False
        assert response.agent_capabilities.prompt_capabilities.image is True
        assert response.agent_capabilities.prompt_capabilities.embedded_context is True


class TestSessions:
    """Tests for session creation and routing."""

    @pytest.mark.asyncio
    async def test_new_session_creates_agent_with_options(self, relay_agent, agent_factory) -> None:
        # When
        response = await relay_agent.new_session(cwd="/workspace", mcp_servers=[])

        # Then
        agent_factory.assert_awaited_once_with(AgentOptions(workspace_path="/workspace", mode="code", model="model-a"))
        assert response.session_id in relay_agent.sessions
        assert response.modes.current_mode_id == "code"
        assert [m.id for m in response.modes.available_modes] == ["code", "architect", "ask", "debug"]
        await relay_agent.dispose()

    @pytest.mark.asyncio
    async def test_prompt_routes_to_session(self, relay_agent, fake_agent) -> None:
        # Given
        session_id = (await relay_agent.new_session(cwd="/workspace", mcp_servers=[])).session_id

        # When
        task = asyncio.create_task(relay_agent.prompt(prompt=[{"type": "text", "text": "hi"}], session_id=session_id))
        await asyncio.sleep(0)
        fake_agent.emit("taskCompleted", TaskCompleted(success=True))
        response = await task

        # Then
        assert response.stop_reason == "end_turn"
        assert fake_agent.sent[0] == {"type": "newTask", "text": "hi"}
        await relay_agent.dispose()

    @pytest.mark.asyncio
    async def test_prompt_for_unknown_session_raises(self, relay_agent) -> None:
        with pytest.raises(RequestError):
            await relay_agent.prompt(prompt=[], session_id="missing")

    @pytest.mark.asyncio
    async def test_cancel_unknown_session_only_warns(self, relay_agent, caplog) -> None:
        await relay_agent.cancel(session_id="missing")
        assert "unknown session" in caplog.text

    @pytest.mark.asyncio
    async def test_cancel_routes_to_session(self, relay_agent, fake_agent) -> None:
        # Given
        session_id = (await relay_agent.new_session(cwd="/workspace", mcp_servers=[])).session_id
        task = asyncio.create_task(relay_agent.prompt(prompt=[{"type": "text", "text": "hi"}], session_id=session_id))
        await asyncio.sleep(0)

        # When
        await relay_agent.cancel(session_id=session_id)

        # Then
        assert (await task).stop_reason == "cancelled"
        assert fake_agent.sent[-1] == {"type": "cancelTask"}
        await relay_agent.dispose()

    @pytest.mark.asyncio
    async def test_list_sessions(self, relay_agent) -> None:
        session_id = (await relay_agent.new_session(cwd="/workspace", mcp_servers=[])).session_id

        response = await relay_agent.list_sessions()

        assert [(s.session_id, s.cwd) for s in response.sessions] == [(session_id, "/workspace")]
        assert (await relay_agent.list_sessions(cwd="/elsewhere")).sessions == []
        await relay_agent.dispose()

    @pytest.mark.asyncio
    async def test_load_session_is_unsupported(self, relay_agent) -> None:
        assert await relay_agent.load_session(cwd="/w", mcp_servers=[], session_id="x") is None

    @pytest.mark.asyncio
    async def test_dispose_disposes_all_sessions(self, relay_agent, fake_agent) -> None:
        await relay_agent.new_session(cwd="/workspace", mcp_servers=[])

        await relay_agent.dispose()

        assert relay_agent.sessions == {}
        assert fake_agent.disposed


class TestSettings:
    """Tests for mode and model selection."""

    @pytest.mark.asyncio
    async def test_set_session_mode(self, relay_agent, fake_agent) -> None:
        session_id = (await relay_agent.new_session(cwd="/workspace", mcp_servers=[])).session_id

        await relay_agent.set_session_mode(mode_id="architect", session_id=session_id)

        assert fake_agent.sent == [{"type": "updateSettings", "updatedSettings": {"mode": "architect"}}]
        assert relay_agent.sessions[session_id].get_mode_state().current_mode_id == "architect"
        await relay_agent.dispose()

    @pytest.mark.asyncio
    async def test_set_unknown_mode_raises(self, relay_agent, fake_agent) -> None:
        session_id = (await relay_agent.new_session(cwd="/workspace", mcp_servers=[])).session_id

        with pytest.raises(RequestError):
            await relay_agent.set_session_mode(mode_id="yolo", session_id=session_id)

        assert fake_agent.sent == []
        await relay_agent.dispose()

    @pytest.mark.asyncio
    async def test_set_mode_for_unknown_session_raises(self, relay_agent) -> None:
        with pytest.raises(RequestError):
            await relay_agent.set_session_mode(mode_id="code", session_id="missing")

    @pytest.mark.asyncio
    async def test_set_session_model(self, relay_agent, fake_agent) -> None:
        session_id = (await relay_agent.new_session(cwd="/workspace", mcp_servers=[])).session_id

        await relay_agent.set_session_model(model_id="model-b", session_id=session_id)

        assert fake_agent.sent == [{"type": "updateSettings", "updatedSettings": {"apiModelId": "model-b"}}]
        await relay_agent.dispose()


class TestExtensions:
    @pytest.mark.asyncio
    async def test_ext_method_returns_empty(self, relay_agent) -> None:
        assert await relay_agent.ext_method("relay/anything", {}) == {}

    @pytest.mark.asyncio
    async def test_authenticate_returns_none(self, relay_agent) -> None:
        assert await relay_agent.authenticate(method_id="none") is None
