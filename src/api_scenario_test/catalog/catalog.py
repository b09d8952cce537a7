# src/api_scenario_test/catalog/catalog.py
"""Operation catalog built from API specification documents."""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, TYPE_CHECKING
import logging

import jsonpointer
import yaml

from ..core.errors import DefinitionError, OperationNotFoundError, ResolutionError
from ..core.files import FileLoader, PathLike, normalize_path
from .models import ApiSpecDocument, CoverageResult, OperationDescriptor

if TYPE_CHECKING:
    from ..scenarios.models import TestDefinitionFile

logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "patch", "delete", "head", "options")

ExampleBinding = Tuple[OperationDescriptor, str]


class OperationCatalog:
    """Maps operationIds and example files to operation descriptors.

    The catalog is built once per load from the specification documents
    passed in; nothing is looked up globally. ``references`` are extra
    documents (e.g. shared ``common-types``) that are only used to
    resolve ``$ref`` pointers.
    """

    def __init__(self,
                 specs: Iterable[ApiSpecDocument],
                 references: Iterable[ApiSpecDocument] = ()):
        self.specs: List[ApiSpecDocument] = list(specs)
        self._operations: Dict[str, OperationDescriptor] = {}
        self._examples: Dict[str, Dict[str, ExampleBinding]] = {}
        self._documents: Dict[str, Dict[str, Any]] = {}

        for doc in references:
            self._documents[normalize_path(doc.path)] = doc.content
        for spec in self.specs:
            self._documents[normalize_path(spec.path)] = spec.content

        for spec in self.specs:
            self._traverse(spec)
        for operation in self._operations.values():
            operation.resolved_parameters = self._resolve_parameters(operation)

        logger.info(f"Operation catalog built: {len(self._operations)} operations, "
                    f"{len(self._examples)} example files from {len(self.specs)} spec(s)")

    @property
    def operations(self) -> Dict[str, OperationDescriptor]:
        return dict(self._operations)

    def _traverse(self, spec: ApiSpecDocument) -> None:
        spec_path = normalize_path(spec.path)
        spec_dir = os.path.dirname(spec_path)
        content = spec.content or {}

        for section in ("paths", "x-ms-paths"):
            for path_template, path_item in (content.get(section) or {}).items():
                path_params = path_item.get("parameters", [])
                for method in HTTP_METHODS:
                    raw_op = path_item.get(method)
                    if raw_op is None:
                        continue
                    operation = self._create_operation(raw_op, method, path_template,
                                                       path_params, spec_path)
                    self._register_examples(raw_op, operation, spec_dir)

    def _create_operation(self, raw_op: Dict[str, Any], method: str, path_template: str,
                          path_params: List[Dict[str, Any]], spec_path: str) -> OperationDescriptor:
        operation_id = raw_op.get("operationId")
        if operation_id is None:
            raise DefinitionError(
                f"OperationId is undefined for operation {method.upper()} {path_template}",
                file_path=spec_path)

        existing = self._operations.get(operation_id)
        if existing is not None:
            raise DefinitionError(
                f"Duplicated operationId {operation_id}: {path_template}\n"
                f"Conflict with path: {existing.path_template}",
                file_path=spec_path)

        parameters = list(raw_op.get("parameters", []))
        declared = {self._param_key(p, spec_path) for p in parameters}
        for param in path_params:
            if self._param_key(param, spec_path) not in declared:
                parameters.append(param)

        options = raw_op.get("x-ms-long-running-operation-options") or {}
        operation = OperationDescriptor(
            operation_id=operation_id,
            method=method,
            path_template=path_template,
            parameters=parameters,
            responses={str(code): response for code, response in (raw_op.get("responses") or {}).items()},
            long_running=bool(raw_op.get("x-ms-long-running-operation", False)),
            final_state_via=options.get("final-state-via"),
            spec_path=spec_path,
        )
        self._operations[operation_id] = operation
        return operation

    def _param_key(self, param: Dict[str, Any], spec_path: str) -> Tuple[Any, Any]:
        try:
            resolved = self.resolve_param_ref(param, spec_path)
        except ResolutionError:
            return ("$ref", param.get("$ref"))
        return (resolved.get("name"), resolved.get("in"))

    def _resolve_parameters(self, operation: OperationDescriptor) -> List[Dict[str, Any]]:
        resolved = []
        for param in operation.parameters:
            try:
                resolved.append(self.resolve_param_ref(param, operation.spec_path))
            except ResolutionError as e:
                logger.warning(f"{operation.operation_id}: keeping unresolved parameter: {e}")
                resolved.append(param)
        return resolved

    def _register_examples(self, raw_op: Dict[str, Any], operation: OperationDescriptor,
                           spec_dir: str) -> None:
        for example_name, example in (raw_op.get("x-ms-examples") or {}).items():
            ref = example.get("$ref") if isinstance(example, dict) else None
            if not isinstance(ref, str):
                raise DefinitionError(f"Example doesn't use $ref: {example_name}",
                                      file_path=operation.spec_path)
            example_path = normalize_path(os.path.join(spec_dir, ref.split("#", 1)[0]))
            self._examples.setdefault(example_path, {})[operation.operation_id] = (operation, example_name)

    def resolve_operation(self, operation_id: str) -> OperationDescriptor:
        operation = self._operations.get(operation_id)
        if operation is None:
            raise OperationNotFoundError(f"Operation not found for {operation_id}")
        return operation

    def resolve_example(self, example_path: PathLike) -> Dict[str, ExampleBinding]:
        """All operations declaring ``example_path``, keyed by operationId."""
        return dict(self._examples.get(normalize_path(example_path), {}))

    def resolve_ref(self, ref: str, base_path: Optional[str] = None) -> Any:
        """Resolve a ``$ref`` string such as ``./other.json#/definitions/Foo``.

        Local refs (``#/...``) resolve against ``base_path``, which defaults
        to the first specification document.
        """
        base_path = base_path or (normalize_path(self.specs[0].path) if self.specs else None)
        file_part, _, pointer = ref.partition("#")
        if file_part:
            if base_path is None:
                raise ResolutionError(f"Cannot resolve relative $ref without a base document: {ref}")
            doc_path = normalize_path(os.path.join(os.path.dirname(base_path), file_part))
        else:
            doc_path = normalize_path(base_path) if base_path else None

        document = self._documents.get(doc_path) if doc_path else None
        if document is None:
            raise ResolutionError(f"Referenced document is not loaded: {ref}")

        try:
            value = jsonpointer.resolve_pointer(document, pointer) if pointer else document
        except jsonpointer.JsonPointerException as e:
            raise ResolutionError(f"Cannot resolve $ref {ref}: {e}") from e

        if base_path is None or doc_path != normalize_path(base_path):
            value = self._absolutize_refs(copy.deepcopy(value), doc_path)
        return value

    def _absolutize_refs(self, obj: Any, doc_path: str) -> Any:
        # Rewrites nested refs so they stay valid once lifted out of their document
        if isinstance(obj, dict):
            for key, value in obj.items():
                if key == "$ref" and isinstance(value, str):
                    file_part, _, pointer = value.partition("#")
                    target = os.path.join(os.path.dirname(doc_path), file_part) if file_part else doc_path
                    obj[key] = f"{normalize_path(target)}#{pointer}"
                else:
                    self._absolutize_refs(value, doc_path)
        elif isinstance(obj, list):
            for item in obj:
                self._absolutize_refs(item, doc_path)
        return obj

    def resolve_param_ref(self, param: Dict[str, Any], base_path: Optional[str] = None) -> Dict[str, Any]:
        if "$ref" in param:
            return self.resolve_ref(param["$ref"], base_path)
        return param

    def resolve_schema(self, schema: Dict[str, Any], base_path: Optional[str] = None) -> Dict[str, Any]:
        """Follow top-level ``$ref`` chains of a schema object."""
        seen = set()
        while isinstance(schema, dict) and "$ref" in schema:
            ref = schema["$ref"]
            if ref in seen:
                raise ResolutionError(f"Circular $ref: {ref}")
            seen.add(ref)
            schema = self.resolve_ref(ref, base_path)
        return schema

    def calculate_operation_coverage(self, test_def: "TestDefinitionFile") -> CoverageResult:
        """Share of catalog operations exercised by the RestCall steps of ``test_def``."""
        used = set()
        for step in test_def.all_steps():
            operation_id = getattr(step, "operation_id", None)
            if operation_id:
                used.add(operation_id)

        all_ids = sorted(self._operations)
        covered = [op_id for op_id in all_ids if op_id in used]
        uncovered = [op_id for op_id in all_ids if op_id not in used]
        return CoverageResult(
            total=len(all_ids),
            covered=len(covered),
            covered_operations=covered,
            uncovered_operations=uncovered,
        )


async def load_catalog(spec_paths: Iterable[PathLike],
                       file_loader: FileLoader,
                       reference_paths: Iterable[PathLike] = ()) -> OperationCatalog:
    """Load specification documents from disk and build a catalog."""

    async def _load(path: PathLike) -> ApiSpecDocument:
        resolved = normalize_path(file_loader.resolve_path(path))
        logger.debug(f"Loading API spec: {resolved}")
        try:
            content = await file_loader.load_json(resolved)
        except (ValueError, FileNotFoundError) as e:
            raise DefinitionError(f"Failed to load API spec: {e}", file_path=resolved) from e
        return ApiSpecDocument(path=resolved, content=content)

    specs = [await _load(p) for p in spec_paths]
    references = [await _load(p) for p in reference_paths]
    return OperationCatalog(specs, references)


def _example_refs(obj: Any) -> List[str]:
    refs: List[str] = []
    if isinstance(obj, dict):
        for key, value in obj.items():
            if key == "x-ms-examples" and isinstance(value, dict):
                refs.extend(v["$ref"] for v in value.values()
                            if isinstance(v, dict) and isinstance(v.get("$ref"), str))
            else:
                refs.extend(_example_refs(value))
    elif isinstance(obj, list):
        for item in obj:
            refs.extend(_example_refs(item))
    return refs


def discover_spec_files(definition_path: PathLike) -> List[str]:
    """Find the spec documents declaring the example files a definition uses.

    Scans ``*.json`` in the parent of the definition's directory, the
    conventional ``<api-version>/scenarios/<file>.yaml`` layout.
    """
    definition_path = Path(definition_path)
    try:
        with open(definition_path, "r") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise DefinitionError(f"Invalid YAML: {e}", file_path=str(definition_path)) from e
    if not isinstance(raw, dict):
        raise DefinitionError("Test definition must be a mapping", file_path=str(definition_path))

    example_names = []
    steps = list(raw.get("prepareSteps") or [])
    for scenario in raw.get("testScenarios") or []:
        steps.extend(scenario.get("steps") or [])
    for step in steps:
        if isinstance(step, dict) and isinstance(step.get("exampleFile"), str):
            example_names.append(os.path.basename(step["exampleFile"].replace("\\", "/")))

    candidates = []
    for spec_file in sorted(definition_path.resolve().parent.parent.glob("*.json")):
        try:
            with open(spec_file, "r") as f:
                candidates.append((str(spec_file), _example_refs(json.load(f))))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Skipping unreadable spec candidate {spec_file}: {e}")

    found: List[str] = []
    for name in example_names:
        for spec_file, refs in candidates:
            if any(name in ref for ref in refs):
                if spec_file not in found:
                    found.append(spec_file)
                break
    return found
