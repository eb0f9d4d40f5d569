"""Collection helpers used by the matching engine."""
from typing import Any, Callable, Dict, Hashable, Iterable, List, Optional, TypeVar, Union

T = TypeVar("T")


def unique(items: Optional[Iterable[T]], key: Optional[Callable[[T], Hashable]] = None) -> List[T]:
    """Remove duplicates, keeping the first occurrence of each key."""
    if items is None:
        return []

    seen = set()
    result = []
    for item in items:
        marker = key(item) if key else item
        if marker in seen:
            continue
        seen.add(marker)
        result.append(item)
    return result


def group_by(
    items: Optional[Iterable[T]],
    key: Union[str, Callable[[T], Hashable]],
) -> Dict[Hashable, List[T]]:
    """
    Group items by a key function or attribute/key name.

    Groups keep first-seen order, and items keep their order within a group.
    """
    if items is None:
        return {}

    if callable(key):
        get_key = key
    else:
        def get_key(item: Any) -> Hashable:
            if isinstance(item, dict):
                return item.get(key)
            return getattr(item, key, None)

    groups: Dict[Hashable, List[T]] = {}
    for item in items:
        groups.setdefault(get_key(item), []).append(item)
    return groups


def chunk(items: Optional[Iterable[T]], size: int) -> List[List[T]]:
    """Split items into consecutive lists of at most ``size`` elements."""
    if items is None or size <= 0:
        return []

    items = list(items)
    return [items[i:i + size] for i in range(0, len(items), size)]
