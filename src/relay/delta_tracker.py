"""Incremental text differ for streamed, repeatedly-delivered messages."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

StreamKey = str | int


class DeltaTracker:
    """Remembers the last text seen per stream key and yields only new suffixes.

    A text that does not extend the stored value (it shrank or diverged) is
    treated as a new stream: the full text is returned and replaces the
    stored value. Output may then repeat, but is never lost.
    """

    def __init__(self) -> None:
        self._texts: dict[StreamKey, str] = {}

    def get_delta(self, key: StreamKey, full_text: str) -> str:
        """Return the part of ``full_text`` not yet emitted for ``key``."""
        last = self._texts.get(key)
        self._texts[key] = full_text

        if last is None:
            return full_text
        if full_text.startswith(last):
            return full_text[len(last):]

        logger.debug(
            f"Stream {key!r} restarted ({len(last)} -> {len(full_text)} chars), re-emitting"
        )
        return full_text

    def peek_delta(self, key: StreamKey, full_text: str) -> str:
        """Like ``get_delta`` but without updating the stored text."""
        last = self._texts.get(key)
        if last is not None and full_text.startswith(last):
            return full_text[len(last):]
        return full_text

    def get_position(self, key: StreamKey) -> int:
        return len(self._texts.get(key, ""))

    def reset_id(self, key: StreamKey) -> None:
        self._texts.pop(key, None)

    def reset(self) -> None:
        self._texts.clear()
