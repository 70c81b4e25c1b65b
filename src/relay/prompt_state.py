"""Lifecycle of the single in-flight prompt and its outcome."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Literal

logger = logging.getLogger(__name__)

StopReason = Literal["end_turn", "max_tokens", "max_turn_requests", "refusal", "cancelled"]


class PromptState(Enum):
    IDLE = "idle"
    PROCESSING = "processing"


@dataclass(frozen=True)
class PromptOutcome:
    """How a prompt ended, paired with the text that started it."""

    stop_reason: StopReason
    prompt_text: str


class CancellationSignal:
    """One-shot signal that notifies registered listeners when triggered."""

    def __init__(self) -> None:
        self._triggered = False
        self._listeners: list[Callable[[], None]] = []

    @property
    def triggered(self) -> bool:
        return self._triggered

    def add_listener(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def detach(self) -> None:
        """Drop all listeners without triggering them."""
        self._listeners.clear()

    def trigger(self) -> None:
        if self._triggered:
            return
        self._triggered = True
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener()


class PromptStateMachine:
    """Owns the prompt lifecycle: idle -> processing -> idle.

    Each prompt gets an ``asyncio.Future`` that settles exactly once. The
    first terminal condition wins; later completions, cancellations or
    transitions for the same prompt are no-ops.
    """

    def __init__(self) -> None:
        self._state = PromptState.IDLE
        self._future: asyncio.Future[PromptOutcome] | None = None
        self._signal: CancellationSignal | None = None
        self._prompt_text: str | None = None
        self._has_settled = True

    def get_state(self) -> PromptState:
        return self._state

    def is_processing(self) -> bool:
        return self._state is PromptState.PROCESSING

    def can_start_prompt(self) -> bool:
        return self._state is PromptState.IDLE

    def get_prompt_text(self) -> str | None:
        return self._prompt_text

    @property
    def cancel_signal(self) -> CancellationSignal | None:
        return self._signal

    def start_prompt(self, prompt_text: str) -> asyncio.Future[PromptOutcome]:
        """Begin a new prompt and return the future for its outcome.

        A prompt that is still processing is resolved as ``cancelled`` first.
        Must be called from within a running event loop.
        """
        if self._state is PromptState.PROCESSING:
            logger.info("New prompt supersedes the one in flight, resolving it as cancelled")
            if self._signal is not None:
                self._signal.detach()
            self._settle("cancelled")

        future: asyncio.Future[PromptOutcome] = asyncio.get_running_loop().create_future()
        signal = CancellationSignal()
        signal.add_listener(self._on_cancel_signal)

        self._state = PromptState.PROCESSING
        self._prompt_text = prompt_text
        self._future = future
        self._signal = signal
        self._has_settled = False

        logger.debug(f"Prompt started ({len(prompt_text)} chars)")
        return future

    def complete(self, success: bool) -> StopReason:
        """Settle the prompt as ``end_turn`` (success) or ``refusal``."""
        stop_reason: StopReason = "end_turn" if success else "refusal"
        self.transition_to_complete(stop_reason)
        return stop_reason

    def cancel(self) -> None:
        """Trigger the cancellation signal of the current prompt, if any."""
        if self._state is not PromptState.PROCESSING or self._signal is None:
            return
        logger.debug("Prompt cancellation requested")
        self._signal.trigger()

    def reset(self) -> None:
        """Force the machine back to idle, aborting any pending prompt."""
        if self._signal is not None:
            self._signal.trigger()
        self._state = PromptState.IDLE
        self._future = None
        self._signal = None
        self._prompt_text = None
        self._has_settled = True

    def transition_to_complete(self, stop_reason: StopReason) -> None:
        if self._state is not PromptState.PROCESSING or self._has_settled:
            return
        self._settle(stop_reason)

    def _on_cancel_signal(self) -> None:
        if self._state is PromptState.PROCESSING:
            self.transition_to_complete("cancelled")

    def _settle(self, stop_reason: StopReason) -> None:
        future = self._future
        outcome = PromptOutcome(stop_reason=stop_reason, prompt_text=self._prompt_text or "")

        self._has_settled = True
        self._state = PromptState.IDLE
        self._future = None
        self._signal = None
        self._prompt_text = None

        if future is not None and not future.done():
            future.set_result(outcome)
        logger.info(f"Prompt finished: {stop_reason}")
