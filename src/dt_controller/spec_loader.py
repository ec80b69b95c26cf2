"""Desired-configuration loading with validation.

SECURITY: File reads enforce a size limit. Input validation is performed at
the boundary so the reconciler only ever sees validated specs.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import MAX_SPEC_FILE_SIZE_BYTES
from .models import DigitalTwinsSpec

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when spec loading or validation fails."""

    pass


def parse_spec(data: Any, source: str = "<input>") -> DigitalTwinsSpec:
    """Validate raw spec data.

    Accepts either the spec mapping itself or an envelope of the form
    ``{"apiVersion": ..., "kind": ..., "spec": {...}}``.
    """
    if not isinstance(data, dict):
        raise SpecLoadError(f"Spec must be a mapping: {source}")

    if "spec" in data and isinstance(data["spec"], dict):
        data = data["spec"]

    try:
        return DigitalTwinsSpec.model_validate(data)
    except ValidationError as e:
        raise SpecLoadError(f"Invalid Digital Twins spec in {source}:\n{e}") from e


def load_spec(path: Path) -> DigitalTwinsSpec:
    """Load and validate a Digital Twins spec from a YAML file.

    Raises:
        SpecLoadError: If the file is missing, too large, not YAML, or invalid.
    """
    if not path.is_file():
        raise SpecLoadError(f"Spec file not found: {path}")

    size = path.stat().st_size
    if size > MAX_SPEC_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Spec file exceeds maximum size of {MAX_SPEC_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {path}: {e}") from e

    spec = parse_spec(data, source=str(path))
    logger.debug(
        "Loaded spec",
        extra={"path": str(path), "instance_name": spec.name},
    )
    return spec
