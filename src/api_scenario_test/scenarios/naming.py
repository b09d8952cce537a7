"""Default names for run ids, resource groups and output files."""

from __future__ import annotations

import random
import re
import string
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_run_id(now: Optional[datetime] = None) -> str:
    """Run id in the form ``yyyyMMddHHmm-xxxxx``."""
    now = now or datetime.now()
    suffix = "".join(random.choice(_ID_ALPHABET) for _ in range(5))
    return f"{now.strftime('%Y%m%d%H%M')}-{suffix}"


def default_resource_group_name(run_id: str) -> str:
    return f"apiTest-{run_id}"


def file_name_from_path(path: Union[str, Path]) -> str:
    """Definition file name without directories or the ``.yaml`` extension."""
    name = re.sub(r"^.*[\\/]", "", str(path))
    return name.replace(".yaml", "")


def results_file_name(scenario_name: str) -> str:
    safe = re.sub(r"[\s+.]", "_", scenario_name)
    return f"{safe}_results.yaml"
