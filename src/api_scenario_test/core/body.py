# src/api_scenario_test/core/body.py
"""Schema guided conversion between request and response payloads."""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, Optional
import logging

logger = logging.getLogger(__name__)

# (schema, base_path) -> schema with any top-level "$ref" followed
SchemaResolver = Callable[[Dict[str, Any], Optional[str]], Dict[str, Any]]

_MAX_DEPTH = 64


def deep_merge(target: Any, source: Any) -> Any:
    """Merge ``source`` into ``target`` in place and return the result.

    Nested dicts are merged key by key; any other value in ``source``
    replaces the one in ``target``.
    """
    if not isinstance(target, dict) or not isinstance(source, dict):
        return copy.deepcopy(source)
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target


class BodyTransformer:
    """Converts payloads between the request and response shapes of a schema.

    A response body becomes a request body by dropping ``readOnly``
    properties. A request body becomes an expected response by dropping
    secrets (``x-ms-secret``) and properties that are not readable
    (``x-ms-mutability`` without ``read``).
    """

    def __init__(self, schema_resolver: Optional[SchemaResolver] = None):
        self.schema_resolver = schema_resolver

    def deep_merge(self, target: Any, source: Any) -> Any:
        return deep_merge(target, source)

    def response_to_request(self, body: Any, schema: Optional[Dict[str, Any]],
                            base_path: Optional[str] = None) -> Any:
        return self._transform(copy.deepcopy(body), schema, base_path, self._is_read_only, 0)

    def request_to_response(self, body: Any, schema: Optional[Dict[str, Any]],
                            base_path: Optional[str] = None) -> Any:
        return self._transform(copy.deepcopy(body), schema, base_path, self._is_write_only, 0)

    @staticmethod
    def _is_read_only(prop_schema: Dict[str, Any]) -> bool:
        return prop_schema.get("readOnly") is True

    @staticmethod
    def _is_write_only(prop_schema: Dict[str, Any]) -> bool:
        if prop_schema.get("x-ms-secret") is True:
            return True
        mutability = prop_schema.get("x-ms-mutability")
        return mutability is not None and "read" not in mutability

    def _resolve(self, schema: Dict[str, Any], base_path: Optional[str]) -> Dict[str, Any]:
        if "$ref" in schema and self.schema_resolver is not None:
            return self.schema_resolver(schema, base_path)
        return schema

    def _collect_properties(self, schema: Dict[str, Any], base_path: Optional[str],
                            depth: int) -> Dict[str, Dict[str, Any]]:
        properties: Dict[str, Dict[str, Any]] = {}
        for parent in schema.get("allOf", []):
            if depth < _MAX_DEPTH:
                parent = self._resolve(parent, base_path)
                properties.update(self._collect_properties(parent, base_path, depth + 1))
        properties.update(schema.get("properties", {}))
        return properties

    def _transform(self, body: Any, schema: Optional[Dict[str, Any]], base_path: Optional[str],
                   should_drop: Callable[[Dict[str, Any]], bool], depth: int) -> Any:
        if schema is None or depth > _MAX_DEPTH:
            return body
        schema = self._resolve(schema, base_path)

        if isinstance(body, list):
            items = schema.get("items")
            if isinstance(items, dict):
                return [self._transform(item, items, base_path, should_drop, depth + 1) for item in body]
            return body

        if not isinstance(body, dict):
            return body

        properties = self._collect_properties(schema, base_path, depth)
        additional = schema.get("additionalProperties")
        for key in list(body.keys()):
            prop_schema = properties.get(key)
            if prop_schema is None:
                if isinstance(additional, dict):
                    body[key] = self._transform(body[key], additional, base_path, should_drop, depth + 1)
                continue
            resolved = self._resolve(prop_schema, base_path)
            if should_drop(prop_schema) or should_drop(resolved):
                del body[key]
                continue
            body[key] = self._transform(body[key], resolved, base_path, should_drop, depth + 1)
        return body
