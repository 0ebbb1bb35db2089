"""
One-directional collection diff.

Only additions are reported. Removals show up solely as a shrinking snapshot.
"""

from typing import Any, Callable, Hashable, List, Mapping, Sequence


def item_id(item: Mapping[str, Any]) -> Hashable:
    return item.get("id")


def diff_new_items(
    new_items: Sequence[Mapping[str, Any]],
    old_items: Sequence[Mapping[str, Any]],
    key: Callable[[Mapping[str, Any]], Hashable] = item_id,
) -> List[Mapping[str, Any]]:
    """
    Return the items of `new_items` whose identity is absent from `old_items`.

    Args:
        new_items: Freshly fetched collection
        old_items: Previous snapshot
        key: Identity function, `item["id"]` by default

    Returns:
        New-only items in `new_items` order
    """
    old_ids = {key(item) for item in old_items}
    return [item for item in new_items if key(item) not in old_ids]
