"""
livecheck — Edit Locator

Maps an edit to the earliest statement it could have invalidated.

A statement's verdict depends only on its own text and on the statements
before it, so everything before the located index is kept and everything
from it onward is re-checked. The locator only has to produce a lower
bound: over-estimating the affected span re-checks more than necessary,
never less.
"""

from __future__ import annotations

from collections.abc import Sequence

from livecheck.verification.positions import first_divergence, offset_to_position, post_edit_end
from livecheck.verification.types import (
    EditDescription,
    EditRegion,
    FullEdit,
    Statement,
)


def region_for_edit(edit: EditDescription) -> EditRegion | None:
    """Affected region of an explicit edit. `None` means the whole document."""
    if isinstance(edit, FullEdit):
        return None
    end = post_edit_end(edit)
    # Multi-line insertions are caught by the line comparison alone
    length = end.column - edit.start.column if end.line == edit.start.line else 0
    return EditRegion(line=edit.start.line, column=edit.start.column, length=length)


def region_from_divergence(previous: str, current: str) -> EditRegion:
    """
    Approximate the edit region when the caller supplied no range.

    This is not a diff: the region starts at the first differing character
    and its length is how much the text grew. Deleted text has no extent in
    the new document, so a shrinking edit gets length 0.
    """
    pos = offset_to_position(current, first_divergence(previous, current))
    return EditRegion(
        line=pos.line,
        column=pos.column,
        length=max(0, len(current) - len(previous)),
    )


def locate_affected_index(
    region: EditRegion | None,
    statements: Sequence[Statement],
) -> int | None:
    """
    Index of the first statement whose end lies at or after the region.

    Returns None for an empty statement sequence, 0 for a full edit, and
    the last index when the edit falls after every statement.
    """
    if not statements:
        return None
    if region is None:
        return 0

    for stmt in statements:
        end = stmt.end
        if end.line > region.line:
            return stmt.index
        if end.line == region.line and end.column >= region.column + region.length:
            return stmt.index

    return statements[-1].index


def locate_edits(
    edits: Sequence[EditDescription] | None,
    statements: Sequence[Statement],
    previous_text: str | None,
    current_text: str,
) -> int | None:
    """
    Lower-bound affected index for one editor change event.

    With explicit edits the earliest located index wins. Without edits the
    region is derived by divergence from the previous text; unknown
    previous text means everything is affected.
    """
    if not statements:
        return None

    if edits:
        located = [locate_affected_index(region_for_edit(e), statements) for e in edits]
        return min(i for i in located if i is not None)

    if previous_text is None:
        return 0
    return locate_affected_index(region_from_divergence(previous_text, current_text), statements)

