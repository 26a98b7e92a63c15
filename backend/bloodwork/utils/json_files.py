"""Shared JSON file helpers for the file-backed stores.

Reads degrade gracefully: a missing or unparsable file yields the caller's
default. Writes go to a temporary file in the target directory and are
moved into place with ``os.replace`` so readers never see a partial file.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def read_json(path: Path, default: Any) -> Any:
    """Load a JSON document, returning ``default`` if missing or corrupt."""
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return default
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable JSON file %s: %s", path, exc)
        return default


def read_model(path: Path, model: type[ModelT]) -> ModelT | None:
    """Load and validate a JSON document as ``model``; None if missing or invalid."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        logger.warning("Cannot read %s: %s", path, exc)
        return None

    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        logger.warning("Ignoring invalid %s in %s: %s", model.__name__, path, exc)
        return None


def write_text_atomic(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` atomically, creating parent dirs."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_json(path: Path, data: Any) -> None:
    """Serialize ``data`` (plain JSON types) and write it atomically."""
    write_text_atomic(path, json.dumps(data, ensure_ascii=False, indent=2))


def write_model(path: Path, model: BaseModel) -> None:
    """Serialize a pydantic model and write it atomically."""
    write_text_atomic(path, model.model_dump_json(indent=2))


def file_mtime_ns(path: Path) -> int | None:
    """Modification time in nanoseconds, or None if the file does not exist."""
    try:
        return path.stat().st_mtime_ns
    except FileNotFoundError:
        return None
