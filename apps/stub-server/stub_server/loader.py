"""Stub definition parsing and file/directory loading."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from .errors import ConfigurationError
from .models import StubDefinition

LOGGER = structlog.get_logger("stub_server")

JSON_SUFFIXES = {".json"}
YAML_SUFFIXES = {".yaml", ".yml"}
STUB_SUFFIXES = JSON_SUFFIXES | YAML_SUFFIXES


def _decode_json(text: str, source: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Stub source {source} is not valid JSON: {exc}") from exc


def _build(payload: Any, source: str) -> StubDefinition:
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Stub source {source} must contain an object, got {type(payload).__name__}")
    try:
        return StubDefinition.model_validate(payload)
    except (ValidationError, ConfigurationError) as exc:
        raise ConfigurationError(f"Stub source {source} is invalid: {exc}") from exc


def stubs_from_document(document: Any, source: str = "<document>") -> list[StubDefinition]:
    """Build stubs from a decoded document holding one stub or a list of stubs."""

    if isinstance(document, list):
        return [_build(item, f"{source}[{index}]") for index, item in enumerate(document)]
    return [_build(document, source)]


def parse_stub(text: str) -> StubDefinition:
    """Parse a single JSON stub object."""

    return _build(_decode_json(text, "<string>"), "<string>")


def parse_stubs(text: str) -> list[StubDefinition]:
    """Parse a JSON array of stubs."""

    document = _decode_json(text, "<string>")
    if not isinstance(document, list):
        raise ConfigurationError("Expected a JSON array of stubs")
    return stubs_from_document(document, "<string>")


def parse_stub_document(text: str) -> list[StubDefinition]:
    """Parse JSON text holding either one stub object or an array of them."""

    return stubs_from_document(_decode_json(text, "<string>"), "<string>")


def load_stubs_from_file(path: Path) -> list[StubDefinition]:
    """Load stubs from a ``.json``, ``.yaml`` or ``.yml`` file."""

    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read stub file {path}: {exc}") from exc

    if path.suffix.lower() in YAML_SUFFIXES:
        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Stub file {path} is not valid YAML: {exc}") from exc
    else:
        document = _decode_json(text, str(path))
    return stubs_from_document(document, str(path))


def directory_sort_key(path: Path, root: Path) -> str:
    """``auth/login.json`` under ``root`` sorts as ``auth_login.json``."""

    return "_".join(path.relative_to(root).parts)


def load_stubs_from_directory(directory: Path) -> list[StubDefinition]:
    """Load every stub file below ``directory``, recursively, in a stable order."""

    root = Path(directory)
    if not root.is_dir():
        raise ConfigurationError(f"Stub directory {root} does not exist or is not a directory")

    files = [
        candidate
        for candidate in root.rglob("*")
        if candidate.is_file() and candidate.suffix.lower() in STUB_SUFFIXES
    ]
    files.sort(key=lambda candidate: directory_sort_key(candidate, root))

    stubs: list[StubDefinition] = []
    for stub_file in files:
        stubs.extend(load_stubs_from_file(stub_file))
    LOGGER.info("stubs_loaded", directory=str(root), files=len(files), stubs=len(stubs))
    return stubs
