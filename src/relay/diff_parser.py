"""Reconstruct old/new text from unified diff content of edit tools."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ParsedDiff:
    """Old and new text of a file change. ``old_text`` is None for new files."""

    old_text: str | None
    new_text: str


def is_unified_diff(content: str) -> bool:
    return "@@" in content or ("---" in content and "+++" in content)


def parse_unified_diff(diff: str) -> ParsedDiff | None:
    """Parse a unified diff into old and new text.

    Content without any diff markers is treated as the full new text.

    Args:
        diff: Diff (or plain content) string.

    Returns:
        ParsedDiff, or None for empty input.
    """
    if not diff:
        return None

    if not is_unified_diff(diff):
        return ParsedDiff(old_text=None, new_text=diff)

    old_lines: list[str] = []
    new_lines: list[str] = []
    in_hunk = False
    is_new_file = False

    for line in diff.split("\n"):
        if line.startswith("--- /dev/null"):
            is_new_file = True
            continue

        if line.startswith(("===", "---", "+++", "@@")):
            if line.startswith("@@"):
                in_hunk = True
            continue

        if not in_hunk:
            continue

        if line.startswith("-"):
            old_lines.append(line[1:])
        elif line.startswith("+"):
            new_lines.append(line[1:])
        elif line.startswith(" ") or line == "":
            context = line[1:] if line else line
            old_lines.append(context)
            new_lines.append(context)

    old_text = "\n".join(old_lines)
    return ParsedDiff(
        old_text=None if is_new_file or not old_text else old_text,
        new_text="\n".join(new_lines),
    )
