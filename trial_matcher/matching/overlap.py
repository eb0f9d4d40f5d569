"""Lexical overlap between patient terms and criterion terms.

Cheap first filter before the semantic oracle. Fuzzy mode accepts substring
containment and shared words longer than three characters, so
"malignant tumors" overlaps "tumor" but "the dog" does not overlap "the cat".
"""
from typing import Any, Callable, List, Union

# Shared words must be longer than this to count as a fuzzy overlap
MIN_SHARED_WORD_LENGTH = 3

EqualityFn = Callable[[Any, Any], bool]


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _normalize(value: Any) -> str:
    return str(value).lower().strip()


def _fuzzy_pair(left: str, right: str) -> bool:
    if left in right or right in left:
        return True

    right_words = right.split()
    for word in left.split():
        if len(word) > MIN_SHARED_WORD_LENGTH and word in right_words:
            return True
    return False


def arrays_overlap(a: Any, b: Any, fuzzy: Union[bool, EqualityFn] = False) -> bool:
    """
    Check whether two term lists share a concept.

    Args:
        a: A single term or a sequence of terms
        b: A single term or a sequence of terms
        fuzzy: True for substring / word-level matching, or a two-argument
            equality predicate used instead of string comparison

    Returns:
        True if any element of ``a`` matches any element of ``b``
    """
    if a is None or b is None:
        return False

    left_items = _as_list(a)
    right_items = _as_list(b)

    if callable(fuzzy):
        return any(fuzzy(left, right) for left in left_items for right in right_items)

    left = {_normalize(item) for item in left_items}
    right = {_normalize(item) for item in right_items}

    if left & right:
        return True

    if fuzzy is True:
        for left_term in left:
            for right_term in right:
                if _fuzzy_pair(left_term, right_term):
                    return True

    return False
