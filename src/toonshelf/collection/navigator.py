"""Predecessor/successor lookup within an ordered collection.

Drives the reader's previous/next episode buttons, the swipe-past-last-page
jump to the next episode, and the "start from the first episode" shortcut.
The collection must already be sorted by its scope's canonical ordering
key; OrderedCollection.from_records() guarantees that for baselines.
"""

from __future__ import annotations

from dataclasses import dataclass

from toonshelf.collection.models import OrderedCollection

__all__ = ["Neighbors", "locate", "first_id"]


@dataclass(frozen=True)
class Neighbors:
    """Ids adjacent to the current item; None where absent."""

    previous_id: str | None = None
    next_id: str | None = None


def locate(baseline: OrderedCollection, current_id: str) -> Neighbors:
    """Resolve the ids before and after current_id.

    An id that is not in the collection has no neighbours.

    Examples:
        >>> locate(abc, "B")
        Neighbors(previous_id='A', next_id='C')
        >>> locate(abc, "A")
        Neighbors(previous_id=None, next_id='B')

    """
    ids = [item.id for item in baseline.items]
    try:
        index = ids.index(current_id)
    except ValueError:
        return Neighbors()
    previous_id = ids[index - 1] if index > 0 else None
    next_id = ids[index + 1] if index + 1 < len(ids) else None
    return Neighbors(previous_id=previous_id, next_id=next_id)


def first_id(baseline: OrderedCollection) -> str | None:
    """Id at the head of the collection, None when empty."""
    if not baseline.items:
        return None
    return baseline.items[0].id
