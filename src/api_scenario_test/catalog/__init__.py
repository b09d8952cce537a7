"""API specification catalog components."""

from .catalog import OperationCatalog, load_catalog, discover_spec_files
from .models import ApiSpecDocument, OperationDescriptor, CoverageResult
from .resource import get_provider, get_resource_chain, get_resource_type

__all__ = [
    "OperationCatalog",
    "load_catalog",
    "discover_spec_files",
    "ApiSpecDocument",
    "OperationDescriptor",
    "CoverageResult",
    "get_provider",
    "get_resource_chain",
    "get_resource_type",
]
