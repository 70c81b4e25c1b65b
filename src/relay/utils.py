"""Utility functions for Relay."""

from __future__ import annotations

import json
import os
import re
from typing import Any

import json_repair

# Maximum lines shown for file reads before truncating.
MAX_READ_LINES = 100

_CONTENT_FIELDS = ("content", "text", "result", "output", "fileContent", "data")
_SEARCH_FILE_HEADER = re.compile(r"^# (.+)$", re.MULTILINE)
_SEARCH_RESULT_COUNT = re.compile(r"Found (\d+) results?")
_FILE_EXTENSION = re.compile(r"\.[a-zA-Z0-9]+$")


def parse_json(text: str, repair: bool = True) -> dict[str, Any] | list[Any]:
    """Parse JSON text emitted by the agent.

    Uses json_repair as fallback when standard json.loads fails on malformed
    JSON (for example, tool payloads truncated mid-string).

    Args:
        text: Raw JSON text.
        repair: Whether to attempt repair on malformed input.

    Returns:
        Parsed JSON as dict or list.

    Raises:
        ValueError: If the text is not valid (or repairable) JSON.
    """
    try:
        result: dict[str, Any] | list[Any] = json.loads(text)
    except json.JSONDecodeError as e:
        if not repair:
            raise ValueError(f"Invalid JSON: {e}") from e
        repaired = json_repair.loads(text)
        if not isinstance(repaired, (dict, list)):
            raise ValueError(f"Repaired JSON is not dict or list: {type(repaired)}") from e
        result = repaired
    return result


def parse_json_object(text: str, repair: bool = True) -> dict[str, Any] | None:
    """Parse a JSON object, returning None for anything else."""
    try:
        parsed = parse_json(text, repair=repair)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def format_search_results(content: str) -> str:
    """Summarize search tool output as a sorted, de-duplicated file list.

    Args:
        content: Raw search output with ``# path`` header lines.

    Returns:
        A summary line followed by ``- path`` entries, or the first line of
        the output when no file headers are present.
    """
    files = sorted({match.strip() for match in _SEARCH_FILE_HEADER.findall(content) if match.strip()})
    if not files:
        return content.split("\n")[0] or content

    count_match = _SEARCH_RESULT_COUNT.search(content)
    if count_match:
        summary = f"Found {_plural(int(count_match.group(1)), 'result')} in {_plural(len(files), 'file')}"
    else:
        summary = f"Found matches in {_plural(len(files), 'file')}"

    file_list = "\n".join(f"- {f}" for f in files)
    return f"{summary}\n\n{file_list}"


def format_read_content(content: str, max_lines: int = MAX_READ_LINES) -> str:
    """Truncate file content to ``max_lines`` lines with a remainder note."""
    lines = content.split("\n")
    if len(lines) <= max_lines:
        return content

    truncated = "\n".join(lines[:max_lines])
    return f"{truncated}\n\n... ({len(lines) - max_lines} more lines)"


def wrap_in_code_block(content: str, language: str | None = None) -> str:
    fence = f"```{language}" if language else "```"
    return f"{fence}\n{content}\n```"


def extract_content_from_params(params: dict[str, Any]) -> str | None:
    """Return the first non-empty string among the usual output fields."""
    for name in _CONTENT_FIELDS:
        value = params.get(name)
        if isinstance(value, str) and value:
            return value
    return None


def _inside(path: str, root: str) -> bool:
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


def resolve_file_path(file_path: str, workspace_path: str | None = None) -> str:
    """Resolve a tool path against the workspace.

    Args:
        file_path: Absolute or workspace-relative path.
        workspace_path: Workspace root; when given, results must stay inside it.

    Returns:
        The normalized absolute (or normalized relative, without workspace) path.

    Raises:
        ValueError: If the path escapes the workspace.
    """
    normalized = os.path.normpath(file_path)
    if not workspace_path:
        return normalized

    workspace = os.path.normpath(workspace_path)
    resolved = normalized if os.path.isabs(normalized) else os.path.normpath(os.path.join(workspace, normalized))
    if not _inside(resolved, workspace):
        raise ValueError(f"Path traversal detected: {file_path} is outside workspace {workspace_path}")
    return resolved


def resolve_file_path_unsafe(file_path: str, workspace_path: str | None = None) -> str:
    """Like ``resolve_file_path`` but falls back to the raw path on error."""
    try:
        return resolve_file_path(file_path, workspace_path)
    except ValueError:
        return file_path


def is_user_echo(text: str, prompt_text: str | None) -> bool:
    """Detect agent text that merely repeats the user's prompt."""
    if not prompt_text:
        return False

    prompt = prompt_text.strip().lower()
    candidate = text.strip().lower()

    if candidate == prompt:
        return True
    if len(candidate) > 10 and candidate in prompt:
        return True
    if len(prompt) > 10 and prompt in candidate:
        return True
    return False


def has_valid_file_path(file_path: str) -> bool:
    """A path is plausible once it ends with a file extension."""
    return bool(_FILE_EXTENSION.search(file_path))
