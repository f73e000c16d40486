"""
livecheck — Position Arithmetic

Conversions between absolute offsets and (line, column) positions, and
application of editor edits to document text.
"""

from __future__ import annotations

import os
from collections.abc import Iterable

from livecheck.verification.types import EditDescription, FullEdit, Position, RangeEdit


def offset_to_position(text: str, offset: int) -> Position:
    """Position of `offset` in `text` (clamped to the text bounds)."""
    offset = max(0, min(offset, len(text)))
    line = text.count("\n", 0, offset) + 1
    last_newline = text.rfind("\n", 0, offset)
    return Position(line=line, column=offset - (last_newline + 1), offset=offset)


def position_to_offset(text: str, line: int, column: int) -> int:
    """
    Absolute offset of (line, column) in `text`.

    Lines past the end clamp to the end of the text; columns past the end
    of their line clamp to the line end.
    """
    if line < 1:
        return 0
    offset = 0
    for _ in range(line - 1):
        newline = text.find("\n", offset)
        if newline == -1:
            return len(text)
        offset = newline + 1
    line_end = text.find("\n", offset)
    if line_end == -1:
        line_end = len(text)
    return min(offset + max(column, 0), line_end)


def post_edit_end(edit: RangeEdit) -> Position:
    """Where the replacement text ends once the edit is applied."""
    text = edit.text
    newlines = text.count("\n")
    if newlines == 0:
        return Position(line=edit.start.line, column=edit.start.column + len(text))
    return Position(
        line=edit.start.line + newlines,
        column=len(text) - (text.rfind("\n") + 1),
    )


def apply_range_edit(text: str, edit: RangeEdit) -> str:
    start = position_to_offset(text, edit.start.line, edit.start.column)
    end = position_to_offset(text, edit.end.line, edit.end.column)
    if end < start:
        start, end = end, start
    return text[:start] + edit.text + text[end:]


def apply_edits(text: str, edits: Iterable[EditDescription]) -> str:
    """Apply edits in order, each against the result of the previous one."""
    for edit in edits:
        if isinstance(edit, FullEdit):
            text = edit.text
        else:
            text = apply_range_edit(text, edit)
    return text


def first_divergence(previous: str, current: str) -> int:
    """Offset of the first differing character (the shorter length if one is a prefix)."""
    return len(os.path.commonprefix([previous, current]))
