"""Interface to the agent (extension) side of the bridge.

The agent is an opaque event source. Relay only depends on the shapes
defined here: the event payloads it emits and the commands it accepts.
"""

from __future__ import annotations

import importlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Protocol

AgentEvent = Literal[
    "message",
    "messageUpdated",
    "waitingForInput",
    "commandExecutionOutput",
    "taskCompleted",
    "stateChange",
    "extensionState",
]

EventHandler = Callable[[Any], None]


class RunState(Enum):
    """Coarse run state reported by the agent loop."""

    NO_TASK = "no_task"
    RUNNING = "running"
    STREAMING = "streaming"
    WAITING_FOR_INPUT = "waiting_for_input"
    IDLE = "idle"
    RESUMABLE = "resumable"


# States in which a cancelled task is considered stopped.
SETTLED_RUN_STATES = frozenset({RunState.NO_TASK, RunState.IDLE, RunState.RESUMABLE})


@dataclass
class AgentMessage:
    """A say/ask message, delivered repeatedly while it grows.

    All deliveries of one logical message share the same ``ts``.
    """

    ts: int
    type: Literal["say", "ask"]
    say: str | None = None
    ask: str | None = None
    text: str | None = None
    partial: bool = False


@dataclass
class AgentState:
    """Snapshot of the agent loop state."""

    run_state: RunState = RunState.NO_TASK
    is_running: bool = False
    is_streaming: bool = False
    current_ask: str | None = None


@dataclass
class WaitingForInput:
    ask: str
    message: AgentMessage


@dataclass
class CommandExecutionOutput:
    execution_id: str
    output: str


@dataclass
class TaskCompleted:
    success: bool


@dataclass
class StateChange:
    previous_state: AgentState
    current_state: AgentState

    def changed(self) -> bool:
        """Whether any observable field differs between the two snapshots."""
        return self.previous_state != self.current_state


@dataclass
class ModeConfig:
    slug: str
    name: str
    description: str | None = None


@dataclass
class ExtensionState:
    """Extension settings snapshot, used for mode tracking."""

    mode: str | None = None
    custom_modes: list[ModeConfig] | None = None


class AgentClient(Protocol):
    """Commands and subscriptions the bridge needs from an agent."""

    def on(self, event: AgentEvent, handler: EventHandler) -> None: ...

    def off(self, event: AgentEvent, handler: EventHandler) -> None: ...

    def get_agent_state(self) -> AgentState: ...

    def send(self, message: dict[str, Any]) -> None:
        """Send a ``newTask``, ``cancelTask`` or ``updateSettings`` message."""
        ...

    def approve(self) -> None: ...

    def reject(self) -> None: ...

    def respond(self, text: str, images: list[str] | None = None) -> None: ...

    async def dispose(self) -> None: ...


@dataclass
class AgentOptions:
    """Options handed to the agent factory for each new session."""

    workspace_path: str
    mode: str = "code"
    model: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


AgentFactory = Callable[[AgentOptions], Awaitable[AgentClient]]


def load_agent_factory(target: str) -> AgentFactory:
    """Resolve an agent factory from a ``package.module:attribute`` string.

    Args:
        target: Import path of the factory callable.

    Returns:
        The factory callable.

    Raises:
        ValueError: If the target is malformed, cannot be imported, or is not
            callable.
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Agent factory must look like 'module:attribute', got {target!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Cannot import agent module {module_name!r}: {e}") from e

    factory = module
    for part in attr.split("."):
        try:
            factory = getattr(factory, part)
        except AttributeError as e:
            raise ValueError(f"Agent factory {target!r} not found") from e

    if not callable(factory):
        raise ValueError(f"Agent factory {target!r} is not callable")
    return factory
