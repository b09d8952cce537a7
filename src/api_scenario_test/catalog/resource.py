# src/api_scenario_test/catalog/resource.py
"""Resource provider and type helpers for ARM style path templates."""

from __future__ import annotations

import re
from typing import List, Optional

_PROVIDER_PATTERN = re.compile(r"/providers/([^/{}]+)", re.IGNORECASE)


def get_provider(path: Optional[str]) -> Optional[str]:
    """Return the last resource provider named in ``path``.

    ``/subscriptions/{s}/providers/Microsoft.Compute/virtualMachines``
    yields ``Microsoft.Compute``. A path ending in ``/providers/`` yields
    ``None``; an empty path is an error.
    """
    if not path:
        raise ValueError("Path template must be a non-empty string")
    matches = _PROVIDER_PATTERN.findall(path)
    if not matches:
        return None
    return matches[-1]


def _segments_after_provider(path: str) -> List[str]:
    index = path.lower().rfind("/providers/")
    if index < 0:
        return []
    tail = path[index + len("/providers/"):]
    segments = [s for s in tail.split("/") if s]
    # First segment is the provider namespace itself
    return segments[1:]


def get_resource_chain(path: str) -> List[str]:
    """Resource type segments following the last provider.

    Segments alternate ``type/{name}``; only the literal type segments are
    returned, e.g. ``["virtualMachines", "extensions"]``.
    """
    chain = []
    for index, segment in enumerate(_segments_after_provider(path)):
        if index % 2 == 0 and not segment.startswith("{"):
            chain.append(segment)
    return chain


def get_resource_type(path: str) -> str:
    """Full resource type such as ``Microsoft.Compute/virtualMachines``."""
    provider = get_provider(path)
    if provider is None:
        return ""
    return "/".join([provider] + get_resource_chain(path))
