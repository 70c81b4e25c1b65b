"""Tool call handling for Relay.

Permission asks are dispatched to the first handler (in declaration order)
whose ``can_handle`` accepts them. ``DefaultToolHandler`` accepts everything
and must stay last.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from acp import start_tool_call, text_block, tool_content, update_tool_call

from relay.extension import AgentMessage
from relay.protocol import read_file_content
from relay.tool_registry import (
    ToolKind,
    is_edit_tool,
    is_list_files_tool,
    is_read_tool,
    is_search_tool,
    map_tool_to_kind,
)
from relay.translator import ToolCallInfo, parse_tool_from_message, tool_call_id_for
from relay.utils import (
    extract_content_from_params,
    format_read_content,
    format_search_results,
    wrap_in_code_block,
)

logger = logging.getLogger(__name__)


@dataclass
class ToolHandlerContext:
    """Everything a handler needs about one permission ask."""

    message: AgentMessage
    ask: str
    workspace_path: str
    tool_info: ToolCallInfo | None

    @property
    def tool_name(self) -> str:
        return self.tool_info.name if self.tool_info else ""

    @property
    def params(self) -> dict[str, Any]:
        return self.tool_info.params if self.tool_info else {}


@dataclass
class PendingCommandRequest:
    tool_call_id: str
    command: str
    ts: int


@dataclass
class ToolHandleResult:
    """Updates produced for a tool call.

    ``completion_update`` is None for commands, whose completion arrives
    later with their output.
    """

    initial_update: Any
    completion_update: Any | None = None
    track_as_pending_command: PendingCommandRequest | None = None


class BaseToolHandler(ABC):
    """Shared tool call construction for handlers."""

    @abstractmethod
    def can_handle(self, context: ToolHandlerContext) -> bool: ...

    @abstractmethod
    def handle(self, context: ToolHandlerContext) -> ToolHandleResult: ...

    def _tool_call_id(self, context: ToolHandlerContext) -> str:
        if context.tool_info:
            return context.tool_info.id
        return tool_call_id_for(context.message.ts)

    def _initial_update(
        self,
        context: ToolHandlerContext,
        kind: ToolKind | None = None,
        content: list[Any] | None = None,
    ) -> Any:
        """Build the ``tool_call`` update announcing the call as in progress."""
        info = context.tool_info
        title = (info.title if info else "") or (context.message.text or "")[:100] or "Tool execution"
        if kind is None:
            kind = map_tool_to_kind(info.name) if info else "other"

        return start_tool_call(
            tool_call_id=self._tool_call_id(context),
            title=title,
            kind=kind,
            status="in_progress",
            content=content,
            locations=info.locations if info else [],
            raw_input=context.params,
        )

    def _completion_update(self, context: ToolHandlerContext, content: list[Any] | None = None) -> Any:
        return update_tool_call(
            tool_call_id=self._tool_call_id(context),
            status="completed",
            content=content,
            raw_output=context.params,
        )

    def _text_completion(self, context: ToolHandlerContext, text: str | None) -> Any:
        content = [tool_content(text_block(text))] if text else None
        return self._completion_update(context, content)


class CommandToolHandler(BaseToolHandler):
    """Commands complete later, when their output message arrives."""

    def can_handle(self, context: ToolHandlerContext) -> bool:
        return context.ask == "command"

    def handle(self, context: ToolHandlerContext) -> ToolHandleResult:
        tool_call_id = self._tool_call_id(context)
        logger.info(f"Handling command: {tool_call_id}")

        return ToolHandleResult(
            initial_update=self._initial_update(context, kind="execute"),
            track_as_pending_command=PendingCommandRequest(
                tool_call_id=tool_call_id,
                command=context.message.text or "",
                ts=context.message.ts,
            ),
        )


class FileEditToolHandler(BaseToolHandler):
    """File writes and edits, carrying diff content when available."""

    def can_handle(self, context: ToolHandlerContext) -> bool:
        return context.ask == "tool" and is_edit_tool(context.tool_name)

    def handle(self, context: ToolHandlerContext) -> ToolHandleResult:
        diff_content = context.tool_info.content if context.tool_info else None
        logger.info(f"Handling file edit: {self._tool_call_id(context)}")

        return ToolHandleResult(
            initial_update=self._initial_update(context, kind="edit", content=diff_content),
            completion_update=self._completion_update(context, diff_content),
        )


class FileReadToolHandler(BaseToolHandler):
    """File reads. The tool params hold the path, so the file is read here."""

    def can_handle(self, context: ToolHandlerContext) -> bool:
        return context.ask == "tool" and is_read_tool(context.tool_name)

    def handle(self, context: ToolHandlerContext) -> ToolHandleResult:
        logger.info(f"Handling file read: {self._tool_call_id(context)}")

        try:
            file_content = read_file_content(context.params, context.workspace_path)
        except ValueError as e:
            file_content = str(e)

        text = wrap_in_code_block(format_read_content(file_content)) if file_content else None
        return ToolHandleResult(
            initial_update=self._initial_update(context, kind="read"),
            completion_update=self._text_completion(context, text),
        )


class SearchToolHandler(BaseToolHandler):
    """Searches, summarized as a list of matching files."""

    def can_handle(self, context: ToolHandlerContext) -> bool:
        return context.ask == "tool" and is_search_tool(context.tool_name)

    def handle(self, context: ToolHandlerContext) -> ToolHandleResult:
        logger.info(f"Handling search: {self._tool_call_id(context)}")

        raw = context.params.get("content")
        text = wrap_in_code_block(format_search_results(raw)) if isinstance(raw, str) and raw else None
        return ToolHandleResult(
            initial_update=self._initial_update(context, kind="search"),
            completion_update=self._text_completion(context, text),
        )


class ListFilesToolHandler(BaseToolHandler):
    def can_handle(self, context: ToolHandlerContext) -> bool:
        return context.ask == "tool" and is_list_files_tool(context.tool_name)

    def handle(self, context: ToolHandlerContext) -> ToolHandleResult:
        logger.info(f"Handling list files: {self._tool_call_id(context)}")
        return ToolHandleResult(
            initial_update=self._initial_update(context, kind="read"),
            completion_update=self._text_completion(context, extract_content_from_params(context.params)),
        )


class DefaultToolHandler(BaseToolHandler):
    """Fallback for every other ask; always matches."""

    def can_handle(self, context: ToolHandlerContext) -> bool:
        return True

    def handle(self, context: ToolHandlerContext) -> ToolHandleResult:
        logger.info(f"Handling tool: {self._tool_call_id(context)} ({context.tool_name or 'unknown'})")
        return ToolHandleResult(
            initial_update=self._initial_update(context),
            completion_update=self._text_completion(context, extract_content_from_params(context.params)),
        )


class ToolHandlerRegistry:
    """Ordered handler dispatch; stateless apart from the handler list."""

    def __init__(self, handlers: list[BaseToolHandler] | None = None) -> None:
        self._handlers: tuple[BaseToolHandler, ...] = tuple(
            handlers
            if handlers is not None
            else (
                CommandToolHandler(),
                FileEditToolHandler(),
                FileReadToolHandler(),
                SearchToolHandler(),
                ListFilesToolHandler(),
                DefaultToolHandler(),
            )
        )

    @property
    def handlers(self) -> tuple[BaseToolHandler, ...]:
        return self._handlers

    def get_handler(self, context: ToolHandlerContext) -> BaseToolHandler:
        for handler in self._handlers:
            if handler.can_handle(context):
                return handler
        raise LookupError(f"No tool handler accepts ask {context.ask!r}; DefaultToolHandler must be last")

    def handle(self, context: ToolHandlerContext) -> ToolHandleResult:
        return self.get_handler(context).handle(context)

    @staticmethod
    def create_context(message: AgentMessage, ask: str, workspace_path: str) -> ToolHandlerContext:
        return ToolHandlerContext(
            message=message,
            ask=ask,
            workspace_path=workspace_path,
            tool_info=parse_tool_from_message(message, workspace_path),
        )
