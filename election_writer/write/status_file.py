"""
The status file on disk.

Operators and the node supervisor read it while the writer runs, so the
document is swapped in with ``os.replace`` and ``status.json`` is never
absent or half written. With ``keep_backups`` the document it replaced is
kept as ``status.json.bak1`` (older ones shift to ``.bak2`` and up) after
the new one is in place.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union


def _sync_directory(directory: Path) -> None:
    if not hasattr(os, "O_DIRECTORY"):
        return
    fd = os.open(str(directory), os.O_DIRECTORY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def replace_file(path: Path, data: bytes) -> None:
    """Write ``data`` next to ``path`` and rename it over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "wb", dir=str(path.parent), prefix=path.name + ".", suffix=".tmp", delete=False
    ) as tmp:
        try:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
        except OSError:
            tmp.close()
            os.unlink(tmp.name)
            raise
    try:
        os.replace(tmp.name, str(path))
    except OSError:
        os.unlink(tmp.name)
        raise
    _sync_directory(path.parent)


class StatusFile:
    def __init__(self, path: Union[str, Path], keep_backups: int = 0) -> None:
        self.path = Path(path)
        self.keep_backups = int(keep_backups)

    def backup_path(self, n: int) -> Path:
        return self.path.with_name(f"{self.path.name}.bak{n}")

    def write(self, doc: Dict[str, Any]) -> int:
        """Replace the document; returns the number of bytes written."""
        data = json.dumps(doc, indent=2, default=str).encode("utf-8")
        previous = self._previous()
        replace_file(self.path, data)
        if previous is not None:
            self._keep(previous)
        return len(data)

    def _previous(self) -> Optional[bytes]:
        if self.keep_backups <= 0 or not self.path.exists():
            return None
        return self.path.read_bytes()

    def _keep(self, previous: bytes) -> None:
        for n in range(self.keep_backups, 1, -1):
            older = self.backup_path(n - 1)
            if older.exists():
                os.replace(str(older), str(self.backup_path(n)))
        replace_file(self.backup_path(1), previous)
