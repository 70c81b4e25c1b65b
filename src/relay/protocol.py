"""ACP prompt adapters and file content extraction."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from acp.schema import (
    AudioContentBlock,
    EmbeddedResourceContentBlock,
    ImageContentBlock,
    ResourceContentBlock,
    TextContentBlock,
)

from relay.utils import resolve_file_path

logger = logging.getLogger(__name__)

PromptBlock = (
    TextContentBlock
    | ImageContentBlock
    | AudioContentBlock
    | ResourceContentBlock
    | EmbeddedResourceContentBlock
)


def _block_fields(block: PromptBlock | dict[str, Any]) -> dict[str, Any]:
    """Normalize a prompt block (pydantic model or plain dict) to a dict."""
    if isinstance(block, dict):
        return block
    return block.model_dump(by_alias=False)


def extract_prompt_text(blocks: list[PromptBlock]) -> str:
    """Flatten prompt blocks into the task text sent to the agent.

    Text is kept verbatim, resource links become ``@uri`` mentions, embedded
    text resources are inlined, and media blocks leave a placeholder.
    """
    parts: list[str] = []

    for block in blocks:
        fields = _block_fields(block)
        block_type = fields.get("type")

        if block_type == "text":
            parts.append(fields.get("text", ""))
        elif block_type == "resource_link":
            parts.append(f"@{fields.get('uri', '')}")
        elif block_type == "resource":
            resource = fields.get("resource") or {}
            if "text" in resource:
                parts.append(f"Content from {resource.get('uri', '')}:\n{resource['text']}")
        elif block_type in ("image", "audio"):
            parts.append(f"[{block_type} content]")

    return "\n".join(parts)


def extract_prompt_images(blocks: list[PromptBlock]) -> list[str]:
    """Collect base64 image payloads from the prompt."""
    images: list[str] = []
    for block in blocks:
        fields = _block_fields(block)
        if fields.get("type") == "image" and fields.get("data"):
            images.append(fields["data"])
    return images


def extract_prompt_resources(blocks: list[PromptBlock]) -> list[str]:
    """Collect URIs of linked and embedded resources."""
    uris: list[str] = []
    for block in blocks:
        fields = _block_fields(block)
        block_type = fields.get("type")
        if block_type == "resource_link":
            uris.append(fields.get("uri", ""))
        elif block_type == "resource" and fields.get("resource"):
            uris.append(fields["resource"].get("uri", ""))
    return uris


def read_file_content(params: dict[str, Any], workspace_path: str) -> str:
    """Read the file a read-style tool refers to.

    The path is taken from ``content`` (read tools put the path there) or
    from ``path``, resolved inside the workspace.

    Args:
        params: Tool parameters.
        workspace_path: Workspace root.

    Returns:
        The file contents.

    Raises:
        ValueError: If no path is present, the path escapes the workspace, or
            the file cannot be read.
    """
    raw_path = params.get("content") or params.get("path")
    if not isinstance(raw_path, str) or not raw_path:
        raise ValueError("readFile tool has no path")

    file_path = resolve_file_path(raw_path, workspace_path)
    try:
        return Path(file_path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Failed to read file {file_path}: {e}")
        raise ValueError(f"Failed to read file {file_path}: {e}") from e
