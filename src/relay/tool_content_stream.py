"""Streaming preview of file content written by file-write tools."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from acp import text_block, update_agent_message

from relay.delta_tracker import DeltaTracker
from relay.extension import AgentMessage
from relay.tool_registry import is_file_write_tool
from relay.utils import has_valid_file_path, parse_json_object

logger = logging.getLogger(__name__)

SendUpdate = Callable[[Any], None]

# Lines of file content streamed before switching to progress markers.
DEFAULT_PREVIEW_LINES = 100

CLOSE_MARKER = "\n```\n"


def _header(path: str) -> str:
    return f"\n**Creating {path}**\n```\n"


def _progress_marker(chars: int) -> str:
    return f"\n... streaming ({chars} chars)\n"


@dataclass
class _ContentStream:
    path: str
    lines_sent: int = 0


class ToolContentStreamManager:
    """Streams the body of files as the agent writes them.

    The header is withheld until a message names a plausible file (one with
    an extension) and carries some content. Content then streams as deltas
    up to ``preview_lines`` lines; after that each new delta only produces a
    progress marker. The final (non-partial) delivery closes the block.
    """

    def __init__(
        self,
        delta_tracker: DeltaTracker,
        send_update: SendUpdate,
        preview_lines: int = DEFAULT_PREVIEW_LINES,
    ) -> None:
        self._delta_tracker = delta_tracker
        self._send_update = send_update
        self._preview_lines = preview_lines
        self._streams: dict[int, _ContentStream] = {}

    def is_tool_ask_message(self, message: AgentMessage) -> bool:
        return message.type == "ask" and message.ask == "tool"

    def handle_tool_content_streaming(self, message: AgentMessage) -> bool:
        """Process one delivery of a tool ask message.

        Returns:
            Always True: tool asks are consumed here even when nothing is
            streamed (incomplete JSON, non-file tools).
        """
        # Partial payloads are usually incomplete JSON; wait for a parseable one.
        params = parse_json_object(message.text or "", repair=False)
        if params is None:
            return True

        tool_name = params.get("tool") if isinstance(params.get("tool"), str) else "tool"
        if not is_file_write_tool(tool_name):
            logger.debug(f"Skipping content streaming for non-file tool: {tool_name}")
            return True

        path = params.get("path") if isinstance(params.get("path"), str) else ""
        content = params.get("content") if isinstance(params.get("content"), str) else ""

        if message.partial:
            self._handle_partial(message.ts, path, content)
        else:
            self._handle_complete(message.ts, path, content)
        return True

    def get_active_header_count(self) -> int:
        return len(self._streams)

    def reset(self) -> None:
        self._streams.clear()
        logger.debug("Reset tool content stream state")

    def _handle_partial(self, ts: int, path: str, content: str) -> None:
        stream = self._streams.get(ts)
        if stream is None:
            if not (has_valid_file_path(path) and content):
                return
            stream = _ContentStream(path=path)
            self._streams[ts] = stream
            logger.debug(f"Sending tool content header for {path}")
            self._send_update(update_agent_message(text_block(_header(path))))

        self._stream_delta(ts, stream, content)

    def _handle_complete(self, ts: int, path: str, content: str) -> None:
        stream = self._streams.pop(ts, None)
        if stream is not None:
            self._stream_delta(ts, stream, content)
            self._send_update(update_agent_message(text_block(CLOSE_MARKER)))
        self._delta_tracker.reset_id(f"tool-content-{ts}")
        logger.debug(f"Tool content streaming complete for {path}: {len(content)} chars")

    def _stream_delta(self, ts: int, stream: _ContentStream, content: str) -> None:
        delta = self._delta_tracker.get_delta(f"tool-content-{ts}", content)
        if not delta:
            return

        remaining = self._preview_lines - stream.lines_sent
        if remaining <= 0:
            self._send_update(update_agent_message(text_block(_progress_marker(len(content)))))
            return

        lines = delta.split("\n")
        if len(lines) - 1 < remaining:
            stream.lines_sent += len(lines) - 1
            self._send_update(update_agent_message(text_block(delta)))
            return

        # Cut the delta at the preview cap.
        preview = "\n".join(lines[:remaining]) + "\n"
        stream.lines_sent = self._preview_lines
        self._send_update(update_agent_message(text_block(preview)))
