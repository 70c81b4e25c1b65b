"""Translate agent messages into ACP tool calls and session updates."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from acp import (
    start_tool_call,
    text_block,
    tool_diff_content,
    update_agent_message,
    update_agent_thought,
    update_tool_call,
)
from acp.schema import PermissionOption, ToolCallLocation

from relay.diff_parser import parse_unified_diff
from relay.extension import AgentMessage
from relay.tool_registry import is_edit_tool, is_list_files_tool, is_search_tool, map_tool_to_kind
from relay.utils import parse_json_object, resolve_file_path_unsafe

logger = logging.getLogger(__name__)

_TOOL_NAME_PATTERN = re.compile(r"(?:Using|Executing|Running)\s+(\w+)", re.IGNORECASE)
_SEARCH_HEADER_PATTERN = re.compile(r"^#+\s+(.+?\.[a-zA-Z0-9]+)\s*$", re.MULTILINE)

_PATH_PARAMS = ("path", "file", "filePath", "file_path")
_DIR_PARAMS = ("directory", "dir")

# Say subtypes that describe a tool invocation rather than plain output.
TOOL_SAY_SUBTYPES = frozenset({"shell_integration_warning", "mcp_server_request_started", "mcp_server_response"})

PERMISSION_ASKS = frozenset({"tool", "command", "browser_action_launch", "use_mcp_server"})
COMPLETION_ASKS = frozenset({"completion_result", "api_req_failed", "mistake_limit_reached"})

TitleFormatter = Callable[[str | None, str | None], str]

_TOOL_TITLES: dict[tuple[str, ...], TitleFormatter] = {
    ("newFileCreated", "create_file"): lambda name, path: f"Creating {name}" if name else "Creating file",
    ("write_to_file",): lambda name, path: f"Writing {name}" if name else "Writing file",
    ("editedExistingFile", "apply_diff", "appliedDiff", "modify_file"): (
        lambda name, path: f"Edit {name}" if name else "Edit file"
    ),
    ("read_file", "readFile"): lambda name, path: f"Read {name}" if name else "Read file",
    ("list_files", "listFiles"): lambda name, path: f"Listing files in {path}" if path else "Listing files",
    ("search_files", "searchFiles"): lambda name, path: "Searching files",
    ("execute_command", "executeCommand"): lambda name, path: "Running command",
    ("browser_action", "browserAction"): lambda name, path: "Browser action",
}


@dataclass
class ToolCallInfo:
    """Tool call description derived from one agent message.

    The id depends only on the message timestamp, so repeated deliveries of
    the same message describe the same tool call.
    """

    id: str
    name: str
    title: str
    params: dict[str, Any] = field(default_factory=dict)
    locations: list[ToolCallLocation] = field(default_factory=list)
    content: list[Any] | None = None


def tool_call_id_for(ts: int) -> str:
    return f"tool-{ts}"


def generate_tool_title(tool_name: str, file_path: str | None = None) -> str:
    """Human-readable title for a tool operation."""
    file_name = os.path.basename(file_path) if file_path else None

    for names, formatter in _TOOL_TITLES.items():
        if tool_name in names:
            return formatter(file_name, file_path)

    return f"{tool_name}: {file_name}" if file_name else tool_name


def extract_file_paths_from_search_results(
    content: str, workspace_path: str | None = None
) -> list[ToolCallLocation]:
    """Mine ``# path/to/file.ext`` headers from search output, first-seen order."""
    locations: list[ToolCallLocation] = []
    seen: set[str] = set()

    for match in _SEARCH_HEADER_PATTERN.finditer(content):
        file_path = match.group(1).strip()
        if file_path in seen:
            continue
        seen.add(file_path)
        locations.append(ToolCallLocation(path=resolve_file_path_unsafe(file_path, workspace_path)))

    return locations


def extract_locations(params: dict[str, Any], workspace_path: str | None = None) -> list[ToolCallLocation]:
    """Collect the file locations a tool call touches.

    For search tools ``path`` is the search scope, not a file, so locations
    come from the result text instead. For list tools ``path`` is the
    directory being listed.
    """
    tool_name = params.get("tool")
    tool_name = tool_name if isinstance(tool_name, str) else ""

    if is_search_tool(tool_name):
        content = params.get("content")
        if isinstance(content, str) and content:
            return extract_file_paths_from_search_results(content, workspace_path)
        return []

    if is_list_files_tool(tool_name):
        dir_path = params.get("path")
        if isinstance(dir_path, str) and dir_path:
            return [ToolCallLocation(path=resolve_file_path_unsafe(dir_path, workspace_path))]
        return []

    locations: list[ToolCallLocation] = []
    for name in (*_PATH_PARAMS, *_DIR_PARAMS):
        value = params.get(name)
        if isinstance(value, str):
            locations.append(ToolCallLocation(path=resolve_file_path_unsafe(value, workspace_path)))

    paths = params.get("paths")
    if isinstance(paths, list):
        for value in paths:
            if isinstance(value, str):
                locations.append(ToolCallLocation(path=resolve_file_path_unsafe(value, workspace_path)))

    return locations


def extract_tool_content(params: dict[str, Any], workspace_path: str | None = None) -> list[Any] | None:
    """Build diff content for edit tools whose ``content`` holds the change."""
    file_path = params.get("path")
    diff = params.get("content")
    tool_name = params.get("tool")

    if not (isinstance(file_path, str) and file_path and isinstance(diff, str) and diff):
        return None
    if not isinstance(tool_name, str) or not is_edit_tool(tool_name):
        return None

    parsed = parse_unified_diff(diff)
    if parsed is None:
        return None

    absolute_path = resolve_file_path_unsafe(file_path, workspace_path)
    return [tool_diff_content(absolute_path, parsed.new_text, parsed.old_text)]


def parse_tool_from_message(message: AgentMessage, workspace_path: str | None = None) -> ToolCallInfo | None:
    """Describe the tool call carried by a message.

    JSON payloads (``{"tool": ..., "path": ..., "content": ...}``) are parsed
    fully; other text falls back to a "Using X" style name match, and finally
    to ``unknown``.

    Returns:
        ToolCallInfo, or None when the message has no text.
    """
    text = message.text
    if not text:
        return None

    tool_call_id = tool_call_id_for(message.ts)

    if text.startswith("{"):
        params = parse_json_object(text)
        if params is not None:
            name = params.get("tool")
            name = name if isinstance(name, str) and name else "unknown"
            path = params.get("path")
            return ToolCallInfo(
                id=tool_call_id,
                name=name,
                title=generate_tool_title(name, path if isinstance(path, str) and path else None),
                params=params,
                locations=extract_locations(params, workspace_path),
                content=extract_tool_content(params, workspace_path),
            )
        logger.debug(f"Tool payload for {tool_call_id} is not a JSON object, using text match")

    match = _TOOL_NAME_PATTERN.search(text)
    return ToolCallInfo(
        id=tool_call_id,
        name=match.group(1) if match else "unknown",
        title=text[:100],
    )


def build_tool_call_from_message(message: AgentMessage, workspace_path: str | None = None) -> Any:
    """Build a pending ``tool_call`` update for a message."""
    info = parse_tool_from_message(message, workspace_path)
    if info is None:
        return start_tool_call(
            tool_call_id=tool_call_id_for(message.ts),
            title="Tool execution",
            kind="other",
            status="pending",
            locations=[],
            raw_input={},
        )

    return start_tool_call(
        tool_call_id=info.id,
        title=info.title or "Tool execution",
        kind=map_tool_to_kind(info.name),
        status="pending",
        content=info.content or None,
        locations=info.locations,
        raw_input=info.params,
    )


def _translate_tool_say_message(message: AgentMessage) -> Any | None:
    info = parse_tool_from_message(message)
    if info is None:
        return None

    if message.partial:
        return start_tool_call(
            tool_call_id=info.id,
            title=info.title,
            kind=map_tool_to_kind(info.name),
            status="in_progress",
            locations=info.locations,
            raw_input=info.params,
        )
    return update_tool_call(
        tool_call_id=info.id,
        status="completed",
        content=[],
        raw_output=info.params,
    )


def translate_to_acp_update(message: AgentMessage) -> Any | None:
    """Map a non-streamed message to one session update, or None to suppress it.

    Ask messages, completion results, API lifecycle chatter and command
    output are handled elsewhere and always map to None.
    """
    if message.type != "say":
        return None

    text = message.text or ""
    say = message.say

    if say == "text":
        return update_agent_message(text_block(text))
    if say == "reasoning":
        return update_agent_thought(text_block(text))
    if say == "error":
        return update_agent_message(text_block(f"Error: {text}"))
    if say in TOOL_SAY_SUBTYPES:
        return _translate_tool_say_message(message)
    return None


def is_permission_ask(ask: str | None) -> bool:
    return ask in PERMISSION_ASKS


def is_completion_ask(ask: str | None) -> bool:
    return ask in COMPLETION_ASKS


def create_permission_options(ask: str) -> list[PermissionOption]:
    """Permission choices offered for an ask; tools and commands can be always-allowed."""
    options = [
        PermissionOption(option_id="allow", name="Allow", kind="allow_once"),
        PermissionOption(option_id="reject", name="Reject", kind="reject_once"),
    ]
    if ask in ("tool", "command"):
        options.insert(0, PermissionOption(option_id="allow_always", name="Always Allow", kind="allow_always"))
    return options
