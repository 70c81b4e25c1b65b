"""Tool category lookup by exact, normalized tool name.

Names are normalized (lowercased, ``-`` and ``_`` removed) and matched
against fixed per-category name sets. Matching is exact:
``custom_search_tool`` is not a search tool.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Literal

ToolKind = Literal[
    "read",
    "edit",
    "delete",
    "move",
    "search",
    "execute",
    "think",
    "fetch",
    "switch_mode",
    "other",
]


class ToolCategory(Enum):
    EDIT = "edit"
    READ = "read"
    SEARCH = "search"
    LIST = "list"
    EXECUTE = "execute"
    DELETE = "delete"
    MOVE = "move"
    THINK = "think"
    FETCH = "fetch"
    SWITCH_MODE = "switchMode"
    FILE_WRITE = "fileWrite"


TOOL_CATEGORIES: MappingProxyType[ToolCategory, frozenset[str]] = MappingProxyType(
    {
        ToolCategory.EDIT: frozenset(
            {
                "newfilecreated",
                "editedexistingfile",
                "writetofile",
                "applydiff",
                "applieddiff",
                "createfile",
                "modifyfile",
            }
        ),
        ToolCategory.READ: frozenset({"readfile"}),
        ToolCategory.SEARCH: frozenset({"searchfiles", "codebasesearch", "grep", "ripgrep"}),
        ToolCategory.LIST: frozenset({"listfiles", "listfilestoplevel", "listfilesrecursive"}),
        ToolCategory.EXECUTE: frozenset({"executecommand", "runcommand"}),
        ToolCategory.DELETE: frozenset({"deletefile", "removefile"}),
        ToolCategory.MOVE: frozenset({"movefile", "renamefile"}),
        ToolCategory.THINK: frozenset({"think", "reason", "plan", "analyze"}),
        ToolCategory.FETCH: frozenset({"fetch", "httpget", "httppost", "urlfetch", "webrequest"}),
        ToolCategory.SWITCH_MODE: frozenset({"switchmode", "setmode"}),
        # Tools whose content is a file body worth streaming as it is written.
        ToolCategory.FILE_WRITE: frozenset(
            {
                "newfilecreated",
                "writetofile",
                "createfile",
                "editedexistingfile",
                "applydiff",
                "modifyfile",
            }
        ),
    }
)

# Checked in order; the first matching category decides the protocol kind.
_KIND_PRIORITY: tuple[tuple[ToolCategory, ToolKind], ...] = (
    (ToolCategory.SWITCH_MODE, "switch_mode"),
    (ToolCategory.THINK, "think"),
    (ToolCategory.SEARCH, "search"),
    (ToolCategory.DELETE, "delete"),
    (ToolCategory.MOVE, "move"),
    (ToolCategory.EDIT, "edit"),
    (ToolCategory.FETCH, "fetch"),
    (ToolCategory.READ, "read"),
    (ToolCategory.LIST, "read"),
    (ToolCategory.EXECUTE, "execute"),
)


def normalize_tool_name(name: str) -> str:
    return name.lower().replace("-", "").replace("_", "")


def is_tool_in_category(tool_name: str, category: ToolCategory) -> bool:
    return normalize_tool_name(tool_name) in TOOL_CATEGORIES[category]


def get_tool_categories(tool_name: str) -> list[ToolCategory]:
    """All categories a tool belongs to, in declaration order."""
    normalized = normalize_tool_name(tool_name)
    return [category for category, names in TOOL_CATEGORIES.items() if normalized in names]


def get_tool_category(tool_name: str) -> ToolCategory | None:
    """The primary category of a tool, or None for unknown tools."""
    categories = get_tool_categories(tool_name)
    return categories[0] if categories else None


def is_edit_tool(tool_name: str) -> bool:
    return is_tool_in_category(tool_name, ToolCategory.EDIT)


def is_read_tool(tool_name: str) -> bool:
    return is_tool_in_category(tool_name, ToolCategory.READ)


def is_search_tool(tool_name: str) -> bool:
    return is_tool_in_category(tool_name, ToolCategory.SEARCH)


def is_list_files_tool(tool_name: str) -> bool:
    return is_tool_in_category(tool_name, ToolCategory.LIST)


def is_execute_tool(tool_name: str) -> bool:
    return is_tool_in_category(tool_name, ToolCategory.EXECUTE)


def is_file_write_tool(tool_name: str) -> bool:
    return is_tool_in_category(tool_name, ToolCategory.FILE_WRITE)


def map_tool_to_kind(tool_name: str) -> ToolKind:
    """Map a tool name to its ACP tool kind (``other`` when unknown)."""
    normalized = normalize_tool_name(tool_name)
    for category, kind in _KIND_PRIORITY:
        if normalized in TOOL_CATEGORIES[category]:
            return kind
    return "other"
