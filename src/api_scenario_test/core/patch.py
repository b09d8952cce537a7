# src/api_scenario_test/core/patch.py
"""JSON patch helpers for resourceUpdate/requestUpdate/responseUpdate lists."""

from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional

import jsonpatch
import jsonpointer

from .errors import PatchApplicationError

PATCH_OPERATIONS = ("add", "remove", "replace", "copy", "move", "test")


def to_json_patch(patch_list: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Normalize a patch list to RFC 6902 operations.

    Accepts both ``{"op": "replace", "path": "/a", "value": 1}`` and the
    shorthand ``{"replace": "/a", "value": 1}`` used in test definitions.
    """
    operations = []
    for index, item in enumerate(patch_list):
        if not isinstance(item, dict):
            raise ValueError(f"Patch operation #{index} must be an object: {item!r}")

        if "op" in item:
            operations.append(dict(item))
            continue

        names = [name for name in PATCH_OPERATIONS if name in item]
        if len(names) != 1:
            raise ValueError(f"Patch operation #{index} must name exactly one of "
                             f"{', '.join(PATCH_OPERATIONS)}: {item!r}")
        op = names[0]
        operation: Dict[str, Any] = {"op": op, "path": item[op]}
        if "value" in item:
            operation["value"] = item["value"]
        if "from" in item:
            operation["from"] = item["from"]
        operations.append(operation)
    return operations


def apply_patch(document: Any,
                patch_list: List[Dict[str, Any]],
                step: Optional[str] = None,
                target: Optional[str] = None) -> Any:
    """Apply ``patch_list`` to a deep copy of ``document`` and return it."""
    if not patch_list:
        return copy.deepcopy(document)
    try:
        patch = jsonpatch.JsonPatch(to_json_patch(patch_list))
        return patch.apply(document, in_place=False)
    except (ValueError,
            jsonpatch.JsonPatchException,
            jsonpointer.JsonPointerException) as e:
        raise PatchApplicationError(f"Failed to apply patch: {e}", step=step, target=target) from e
