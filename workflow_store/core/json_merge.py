"""
Deep merge of JSON documents with selectable array handling.

This is the reference implementation of the ``jsonb_deep_merge_with_options``
procedure installed by the migrations. The two must stay behaviourally
identical: the repository uses the procedure on PostgreSQL and this module on
every other dialect.

Rules:
  * a ``null`` patch at the top level leaves the stored document unchanged;
  * an object patch merges key by key into the stored object (a stored value
    that is not an object counts as ``{}``); a ``null`` value removes the key;
  * an array patch over a stored array follows the ArrayMergeOption;
  * in every other case the patch value wins.
"""
from __future__ import annotations

import copy
import enum
from typing import Any, Optional


class ArrayMergeOption(str, enum.Enum):
    """How arrays present in both the stored document and the patch are combined."""

    BY_ID = "by_id"
    BY_INDEX = "by_index"
    CONCAT = "concat"
    REPLACE = "replace"


# PUBLIC_INTERFACE
def deep_merge(base: Any, patch: Any, option: ArrayMergeOption = ArrayMergeOption.BY_ID) -> Any:
    """Return ``patch`` deep-merged into ``base``. Neither argument is mutated."""
    option = ArrayMergeOption(option)
    if patch is None:
        return copy.deepcopy(base)
    if isinstance(patch, dict):
        return _merge_objects(base if isinstance(base, dict) else {}, patch, option)
    if isinstance(patch, list) and isinstance(base, list):
        return _merge_arrays(base, patch, option)
    return copy.deepcopy(patch)


def _merge_objects(base: dict, patch: dict, option: ArrayMergeOption) -> dict:
    merged = copy.deepcopy(base)
    for key, value in patch.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = deep_merge(merged.get(key), value, option)
    return merged


def _merge_arrays(base: list, patch: list, option: ArrayMergeOption) -> list:
    if option is ArrayMergeOption.REPLACE:
        return copy.deepcopy(patch)
    if option is ArrayMergeOption.CONCAT:
        return copy.deepcopy(base) + copy.deepcopy(patch)
    if option is ArrayMergeOption.BY_INDEX:
        return _merge_by_index(base, patch, option)
    return _merge_by_id(base, patch, option)


def _merge_by_index(base: list, patch: list, option: ArrayMergeOption) -> list:
    merged = []
    for index in range(max(len(base), len(patch))):
        if index >= len(patch):
            merged.append(copy.deepcopy(base[index]))
        elif index >= len(base):
            merged.append(copy.deepcopy(patch[index]))
        elif patch[index] is None:
            # null keeps the stored element at this position
            merged.append(copy.deepcopy(base[index]))
        else:
            merged.append(deep_merge(base[index], patch[index], option))
    return merged


def _merge_by_id(base: list, patch: list, option: ArrayMergeOption) -> list:
    merged = copy.deepcopy(base)
    for element in patch:
        position = _position_of(merged, element)
        if position is None:
            merged.append(copy.deepcopy(element))
        else:
            merged[position] = deep_merge(merged[position], element, option)
    return merged


def _position_of(elements: list, element: Any) -> Optional[int]:
    """Index of the first object in ``elements`` sharing ``element``'s id."""
    if not isinstance(element, dict) or element.get("id") is None:
        return None
    element_id = element["id"]
    for index, candidate in enumerate(elements):
        if isinstance(candidate, dict) and "id" in candidate and _same_json(candidate["id"], element_id):
            return index
    return None


def _same_json(left: Any, right: Any) -> bool:
    # jsonb equality: true/false never equal 1/0, strings never equal numbers
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    return type(left) is type(right) and left == right or (
        isinstance(left, (int, float)) and isinstance(right, (int, float)) and left == right
    )
