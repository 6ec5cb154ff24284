"""Extension description sources.

The dashboard shows a human-readable label next to each extension. Labels
come from a descriptor source consulted once at startup.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

from pydantic import TypeAdapter, ValidationError

from sipstatus.exceptions import DescriptionSourceError
from sipstatus.models.endpoint import is_numeric_extension

_logger = logging.getLogger(__name__)

_DESCRIPTIONS_ADAPTER: TypeAdapter[dict[str, str]] = TypeAdapter(dict[str, str])


class DescriptionSource(Protocol):
    async def get_descriptions(self) -> dict[str, str]: ...


def _numeric_only(descriptions: Mapping[str, str]) -> dict[str, str]:
    return {ext: desc for ext, desc in descriptions.items() if is_numeric_extension(ext)}


class StaticDescriptionSource:
    """In-memory descriptions; an empty mapping is a valid source."""

    def __init__(self, descriptions: Mapping[str, str] | None = None) -> None:
        self._descriptions = dict(descriptions or {})

    async def get_descriptions(self) -> dict[str, str]:
        return _numeric_only(self._descriptions)


class JsonFileDescriptionSource:
    """Descriptions from a JSON object file: ``{"1001": "Reception", ...}``."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def _load(self) -> dict[str, str]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise DescriptionSourceError(f"Cannot read {self._path}: {exc}") from exc
        try:
            parsed = _DESCRIPTIONS_ADAPTER.validate_json(text)
        except ValidationError as exc:
            raise DescriptionSourceError(f"Invalid descriptions file {self._path}: {exc}") from exc
        descriptions = _numeric_only(parsed)
        skipped = len(parsed) - len(descriptions)
        if skipped:
            _logger.debug("Skipped %d non-numeric ids in %s", skipped, self._path)
        return descriptions

    async def get_descriptions(self) -> dict[str, str]:
        return await asyncio.to_thread(self._load)


def description_source_from_path(path: Path | None) -> DescriptionSource:
    if path is None:
        return StaticDescriptionSource()
    return JsonFileDescriptionSource(path)
