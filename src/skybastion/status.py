import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

from .logger import logger


class StatusWriter(Protocol):
    def patch_status(self, name: str, patch: dict[str, Any]) -> None:
        """Merges ``patch`` into the persisted status of ``name``."""
        ...


def merge_patch(target: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """
    JSON merge patch (RFC 7386): nested dicts merge, None deletes a key,
    anything else replaces. Keys absent from the patch are kept.
    """
    merged = dict(target)
    for key, value in patch.items():
        if value is None:
            merged.pop(key, None)
        elif isinstance(value, dict):
            existing = merged.get(key)
            if not isinstance(existing, dict):
                existing = {}
            merged[key] = merge_patch(existing, value)
        else:
            merged[key] = value
    return merged


class JsonStatusStore:
    """
    Bastion statuses kept in a single JSON document, keyed by bastion name.

    Other writers may own other fields of a status; every patch re-reads the
    file and merges, so their fields survive.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open("r") as f:
            data: dict[str, Any] = json.load(f)
        return data

    def get_status(self, name: str) -> dict[str, Any]:
        status: dict[str, Any] = self._load().get(name, {})
        return status

    def patch_status(self, name: str, patch: dict[str, Any]) -> None:
        data = self._load()
        data[name] = merge_patch(data.get(name, {}), patch)
        self.path.parent.mkdir(parents=True, exist_ok=True)

        # Readers only ever see the old or the new document
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}."
        )
        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            tmp.replace(self.path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
        logger.debug(f"Patched status of {name} in {self.path}")
