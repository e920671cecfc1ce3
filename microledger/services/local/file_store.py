"""
JSON File Local Store

One file per key inside a data directory. Writes go to a temporary
file in the same directory and are moved into place with
``os.replace`` so a crash mid-write leaves the previous value intact.

TRADEOFFS:
- Every write replaces the whole value (no diffs). The ledger writes
  full collection snapshots anyway.
- Keys are restricted to a safe character set so they map to file
  names one to one.
"""

import os
import re
import tempfile
from pathlib import Path
from typing import Optional, Union

from microledger.services.local.interface import LocalStoreError, LocalStoreInterface


_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")
_SUFFIX = ".json"


class JsonFileLocalStore(LocalStoreInterface):
    """File-backed local store that survives process restarts."""

    def __init__(self, data_dir: Union[str, Path]):
        self._dir = Path(data_dir)
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LocalStoreError(f"Cannot create data directory {self._dir}: {e}")

    @property
    def data_dir(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise LocalStoreError(f"Invalid key: {key!r}")
        return self._dir / f"{key}{_SUFFIX}"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError:
            # Undecodable bytes are corruption; the caller sees a bad JSON value
            return path.read_bytes().decode("utf-8", errors="replace")
        except OSError as e:
            raise LocalStoreError(f"Failed to read {key}: {e}")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self._dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise LocalStoreError(f"Failed to write {key}: {e}")

    def remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise LocalStoreError(f"Failed to remove {key}: {e}")

    def keys(self) -> list[str]:
        return sorted(
            p.name[: -len(_SUFFIX)]
            for p in self._dir.glob(f"*{_SUFFIX}")
            if not p.name.startswith(".")
        )
