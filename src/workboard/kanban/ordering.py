"""Position planning for Kanban lists and cards.

Pure functions that turn the current order of a container (the lists of a
board or the cards of a list) into the positions every member should have
after an append, reorder, move or removal. The board service applies a plan
inside one transaction together with a compare-and-swap on the container's
version, so a plan computed from a stale read is never written.

Every plan except ``next_position`` returns a complete ``{id: position}``
assignment for the container with positions 0..n-1.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Sequence
from typing import TypeVar

from workboard.errors import ValidationError

K = TypeVar("K", bound=Hashable)

TERMINAL_LIST_MARKER = "hoàn thành"
TERMINAL_LIST_LITERAL = "done"

CANONICAL_LISTS: tuple[str, ...] = ("Cần làm", "Đang làm", "Cần review", "Hoàn thành")
TODO_LIST_TITLE = CANONICAL_LISTS[0]


def next_position(positions: Iterable[int]) -> int:
    """Append position: max(existing) + 1, or 0 for an empty container."""
    return max(positions, default=-1) + 1


def plan_compaction(ids_in_order: Sequence[K]) -> dict[K, int]:
    """Renumber a container densely, keeping its current order."""
    return {item_id: index for index, item_id in enumerate(ids_in_order)}


def plan_reorder(current_ids: Iterable[K], ordered_ids: Sequence[K]) -> dict[K, int]:
    """Positions for an explicit reorder.

    Args:
        current_ids: Every member of the container right now.
        ordered_ids: Requested order; must be a permutation of current_ids.

    Returns:
        Mapping of each ID to its index in ordered_ids.

    Raises:
        ValidationError: If ordered_ids repeats an ID, omits a member, or
            names something outside the container.
    """
    current = set(current_ids)
    if len(set(ordered_ids)) != len(ordered_ids):
        raise ValidationError("Danh sách sắp xếp có phần tử trùng lặp", code="invalid_order")
    if set(ordered_ids) != current:
        raise ValidationError(
            "Danh sách sắp xếp phải chứa đúng toàn bộ phần tử hiện có",
            code="invalid_order",
            missing=len(current - set(ordered_ids)),
            unknown=len(set(ordered_ids) - current),
        )
    return plan_compaction(ordered_ids)


def clamp_index(target_index: int, size: int) -> int:
    """Clamp an insertion index into [0, size]."""
    return max(0, min(target_index, size))


def plan_move(
    destination_ids: Sequence[K],
    moved_id: K,
    target_index: int,
) -> dict[K, int]:
    """Positions for inserting a card into a list at a target index.

    Args:
        destination_ids: Destination list in display order. May already
            contain moved_id (a move within the same list).
        moved_id: Card being moved.
        target_index: Requested index; clamped to the list bounds.

    Returns:
        Dense assignment for the whole destination list, the moved card
        included. Cards before the target keep their index and cards at or
        after it shift up by one.
    """
    others = [item_id for item_id in destination_ids if item_id != moved_id]
    index = clamp_index(target_index, len(others))
    others.insert(index, moved_id)
    return plan_compaction(others)


def is_terminal_list(title: str | None) -> bool:
    """Whether a list is the completion column.

    Matches the Vietnamese completion label anywhere in the title, or the
    literal 'done', ignoring case and surrounding whitespace.
    """
    if not title:
        return False
    normalized = title.strip().lower()
    return TERMINAL_LIST_MARKER in normalized or normalized == TERMINAL_LIST_LITERAL
