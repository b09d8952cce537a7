"""CLI utility functions."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import yaml
import logging

from ..catalog import OperationCatalog, discover_spec_files, load_catalog
from ..core.config import Config
from ..core.files import FileLoader
from ..scenarios import ScenarioLoader, TestDefinitionFile

logger = logging.getLogger(__name__)


def load_yaml_file(file_path: Path) -> Dict[str, Any]:
    """Load and parse a YAML mapping file."""
    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    with open(file_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"{file_path} must contain a mapping, got {type(data).__name__}")
    return data


def apply_config_logging(config: Config) -> None:
    """Lower the package log threshold to the configured level.

    Only ever makes logging more verbose, and is skipped under --quiet.
    """
    if logging.getLogger().getEffectiveLevel() >= logging.ERROR:
        return
    level = logging.DEBUG if config.run.verbose else logging.getLevelName(config.output.log_level)
    package_logger = logging.getLogger("api_scenario_test")
    if level < package_logger.getEffectiveLevel():
        package_logger.setLevel(level)


def format_duration(seconds: float) -> str:
    """Format duration as human-readable string."""
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{int(minutes)}m {secs:.0f}s"
    hours, minutes = divmod(minutes, 60)
    return f"{int(hours)}h {int(minutes)}m"


async def load_definition(definition_file: Path,
                          spec_files: Optional[List[Path]] = None,
                          reference_files: Optional[List[Path]] = None
                          ) -> Tuple[OperationCatalog, TestDefinitionFile]:
    """Build the catalog and load a definition against it.

    Without explicit spec files the specs are discovered next to the definition.
    """
    if spec_files:
        spec_paths = [str(p) for p in spec_files]
    else:
        spec_paths = discover_spec_files(definition_file)
        logger.info(f"Discovered {len(spec_paths)} spec file(s) for {definition_file}")

    file_loader = FileLoader()
    catalog = await load_catalog(spec_paths, file_loader, [str(p) for p in reference_files or []])
    loader = ScenarioLoader(catalog, file_loader)
    test_def = await loader.load(definition_file)
    return catalog, test_def
