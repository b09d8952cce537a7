# src/api_scenario_test/core/variables.py
"""Run-scoped variable storage and placeholder substitution."""

from __future__ import annotations

import copy
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional
import logging

logger = logging.getLogger(__name__)

MASK = "***"

_NAME_WORD_PATTERN = re.compile(r"[A-Z]?[a-z0-9]+|[A-Z]+(?![a-z])")
_SECRET_WORDS = ("secret", "password", "token")


def is_secret_key(name: str) -> bool:
    """Return True when a variable name looks like it holds a credential.

    Names are split on camel case and separators. ``key`` only counts as
    the last word, so ``storageKey`` is masked but ``keyVaultName`` is not.
    """
    words = [w.lower() for w in _NAME_WORD_PATTERN.findall(name)]
    if not words:
        return False
    return any(w in _SECRET_WORDS for w in words) or words[-1] == "key"


class VariableScope:
    """Flat mutable mapping from variable name to value.

    Values keep their original type; ``type_tag`` records the declared type
    when a caller supplies one (e.g. ``"string"``). Templated strings are
    resolved with :meth:`resolve_string`, which never raises on unknown
    placeholders so partially populated templates stay readable.
    """

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Any] = {}
        self._types: Dict[str, str] = {}
        if values:
            self.set_batch(values)

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def set(self, name: str, value: Any, type_tag: Optional[str] = None) -> None:
        self._values[name] = value
        if type_tag is not None:
            self._types[name] = type_tag
        else:
            self._types.pop(name, None)

    def set_batch(self, values: Mapping[str, Any]) -> None:
        """Merge a mapping into the scope, later keys overwriting earlier ones."""
        for name, value in values.items():
            self.set(name, value)

    def has(self, name: str) -> bool:
        return name in self._values

    def type_of(self, name: str) -> Optional[str]:
        return self._types.get(name)

    def keys(self) -> List[str]:
        return list(self._values.keys())

    def missing(self, required: Iterable[str]) -> List[str]:
        """Names from ``required`` that have no value in this scope."""
        return sorted({name for name in required if self.get(name) is None})

    def copy(self) -> "VariableScope":
        """Independent deep copy; the two scopes never share state."""
        scope = VariableScope()
        scope._values = copy.deepcopy(self._values)
        scope._types = dict(self._types)
        return scope

    def derive(self, *overrides: Optional[Mapping[str, Any]]) -> "VariableScope":
        """Copy of this scope with each override mapping merged in order."""
        scope = self.copy()
        for mapping in overrides:
            if mapping:
                scope.set_batch(mapping)
        return scope

    def to_dict(self, mask_secrets: bool = False) -> Dict[str, Any]:
        result = copy.deepcopy(self._values)
        if mask_secrets:
            for name in result:
                if is_secret_key(name) and result[name] is not None:
                    result[name] = MASK
        return result

    def _pattern(self, prefix: str, suffix: str) -> re.Pattern:
        if suffix:
            return re.compile(re.escape(prefix) + r"\s*([A-Za-z_][\w.\-]*)\s*" + re.escape(suffix))
        # Empty suffix: placeholder ends where the identifier ends (":name")
        return re.compile(re.escape(prefix) + r"([A-Za-z_]\w*)")

    def resolve_string(self, text: str, prefix: str = "{{", suffix: str = "}}") -> Any:
        """Substitute every known placeholder in ``text``.

        If the whole string is a single known placeholder the raw value is
        returned, so non-string variables keep their type.
        """
        if not isinstance(text, str):
            return text

        pattern = self._pattern(prefix, suffix)
        whole = pattern.fullmatch(text)
        if whole and self.has(whole.group(1)):
            return self._values[whole.group(1)]

        def replace(match: re.Match) -> str:
            name = match.group(1)
            if not self.has(name) or self._values[name] is None:
                return match.group(0)
            value = self._values[name]
            return value if isinstance(value, str) else str(value)

        return pattern.sub(replace, text)

    def resolve_object_values(self, obj: Any, prefix: str = "{{", suffix: str = "}}") -> Any:
        """Deep-resolve placeholders inside dicts, lists and strings."""
        if isinstance(obj, str):
            return self.resolve_string(obj, prefix, suffix)
        if isinstance(obj, dict):
            return {k: self.resolve_object_values(v, prefix, suffix) for k, v in obj.items()}
        if isinstance(obj, list):
            return [self.resolve_object_values(v, prefix, suffix) for v in obj]
        return obj

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"VariableScope({self.to_dict(mask_secrets=True)!r})"
