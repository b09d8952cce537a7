# src/api_scenario_test/core/files.py
"""Async file access used by the loaders."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Optional, Union
import logging

import aiofiles

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def normalize_path(path: PathLike) -> str:
    """Absolute, normalized string form used as a lookup key."""
    return os.path.normpath(os.path.abspath(str(path)))


class FileLoader:
    """Reads and writes files relative to an optional root directory."""

    def __init__(self, root: Optional[PathLike] = None, encoding: str = "utf-8"):
        self.root = Path(root) if root else None
        self.encoding = encoding

    def resolve_path(self, path: PathLike) -> Path:
        path = Path(path)
        if self.root and not path.is_absolute():
            path = self.root / path
        return path

    def relative_path(self, path: PathLike) -> str:
        """Path relative to the root, or unchanged when there is no root."""
        resolved = self.resolve_path(path)
        if self.root:
            try:
                return str(resolved.relative_to(self.root))
            except ValueError:
                return str(resolved)
        return str(path)

    async def read_file(self, path: PathLike) -> bytes:
        resolved = self.resolve_path(path)
        if not resolved.exists():
            raise FileNotFoundError(f"File not found: {resolved}")
        async with aiofiles.open(resolved, "rb") as f:
            return await f.read()

    async def load(self, path: PathLike) -> str:
        """Read a text file."""
        content = await self.read_file(path)
        return content.decode(self.encoding)

    async def load_json(self, path: PathLike) -> Any:
        content = await self.load(path)
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {path}: {e}") from e

    async def write_file(self, path: PathLike, content: Union[str, bytes]) -> None:
        resolved = self.resolve_path(path)
        resolved.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            content = content.encode(self.encoding)
        async with aiofiles.open(resolved, "wb") as f:
            await f.write(content)
        logger.debug(f"Wrote {len(content)} bytes to {resolved}")
