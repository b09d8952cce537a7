# src/api_scenario_test/catalog/models.py
"""Data models for API specification documents and their operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .catalog import OperationCatalog


@dataclass
class ApiSpecDocument:
    """One loaded API specification (swagger) document."""
    path: str
    content: Dict[str, Any]


@dataclass
class OperationDescriptor:
    """A single API operation taken from a specification document."""
    operation_id: str
    method: str
    path_template: str
    parameters: List[Dict[str, Any]] = field(default_factory=list)
    resolved_parameters: List[Dict[str, Any]] = field(default_factory=list, repr=False)
    responses: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    long_running: bool = False
    final_state_via: Optional[str] = None
    spec_path: Optional[str] = None

    def __post_init__(self):
        self.method = self.method.upper()

    def iter_parameters(self) -> List[Dict[str, Any]]:
        """Parameters with ``$ref`` resolved when the catalog could resolve them."""
        return self.resolved_parameters or self.parameters

    def body_param_name(self, catalog: Optional["OperationCatalog"] = None) -> Optional[str]:
        """Name of the ``in: body`` parameter, following ``$ref`` through the catalog."""
        for param in self.parameters:
            resolved = catalog.resolve_param_ref(param, self.spec_path) if catalog and "$ref" in param else param
            if resolved.get("in") == "body":
                return resolved.get("name")
        return None

    def response_schema(self, status_code: Any) -> Optional[Dict[str, Any]]:
        response = self.responses.get(str(status_code))
        if response is None:
            return None
        return response.get("schema")

    def __repr__(self) -> str:
        return f"OperationDescriptor({self.method} {self.path_template} [{self.operation_id}])"


@dataclass
class CoverageResult:
    """Operation coverage of a test definition against a catalog."""
    total: int
    covered: int
    covered_operations: List[str] = field(default_factory=list)
    uncovered_operations: List[str] = field(default_factory=list)

    @property
    def coverage(self) -> float:
        if self.total == 0:
            return 0.0
        return self.covered / self.total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "covered": self.covered,
            "coverage": round(self.coverage, 4),
            "uncovered_operations": list(self.uncovered_operations),
        }
