"""Atomic read-modify-write access to the pipeline's YAML config file.

INVARIANT: a failed write never leaves the file worse than before.
The original is copied to a backup before any mutation, new content is
written to a temp file in the same directory and moved into place with
``os.replace``, and any failure after the backup restores the original.

Not safe under concurrent writers; callers must serialize invocations.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from collections.abc import Mapping, Sequence
from io import StringIO
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap
from ruamel.yaml.error import YAMLError

logger = logging.getLogger(__name__)


class ConfigWriteError(Exception):
    """The config file could not be read, parsed, backed up, or written."""


def _new_yaml() -> YAML:
    """Create a fresh round-trip YAML parser.

    ruamel.yaml's YAML object is stateful; one instance per operation keeps
    a failed dump from poisoning later ones.
    """
    y = YAML()
    y.preserve_quotes = True
    y.default_flow_style = False
    return y


def split_table_path(table_path: str) -> tuple[str, ...]:
    """``"auth.api_key.keys"`` -> ``("auth", "api_key", "keys")``."""
    parts = tuple(p for p in table_path.split(".") if p)
    if not parts:
        msg = f"Empty table path: {table_path!r}"
        raise ValueError(msg)
    return parts


def atomic_write_text(path: Path, content: str) -> None:
    """Write *content* to *path* via temp file + fsync + rename."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
        if path.exists():
            shutil.copymode(path, tmp)
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


class ConfigResource:
    """A YAML document containing a nested credential table.

    Args:
        path: The config file.
        backup_suffix: Appended to the file name for the backup copy.
    """

    def __init__(self, path: Path, *, backup_suffix: str = ".backup") -> None:
        self.path = path
        self.backup_path = path.with_name(path.name + backup_suffix)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def load(self) -> Any:
        """Read and parse the document (empty file -> empty mapping)."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            msg = f"Config file not found: {self.path}"
            raise ConfigWriteError(msg) from exc
        except (OSError, UnicodeError) as exc:
            msg = f"Cannot read config file {self.path}: {exc}"
            raise ConfigWriteError(msg) from exc
        try:
            doc = _new_yaml().load(raw)
        except YAMLError as exc:
            msg = f"Config file {self.path} is not valid YAML: {exc}"
            raise ConfigWriteError(msg) from exc
        if doc is None:
            return CommentedMap()
        if not isinstance(doc, Mapping):
            msg = f"Config file {self.path} must contain a mapping at the top level"
            raise ConfigWriteError(msg)
        return doc

    def find_table(self, doc: Any, table_path: Sequence[str]) -> Mapping[str, Any] | None:
        """Return the table at *table_path*, or None if any level is absent.

        Raises:
            ConfigWriteError: If a level exists but is not a mapping.
        """
        node: Any = doc
        walked: list[str] = []
        for part in table_path:
            walked.append(part)
            node = node.get(part)
            if node is None:
                return None
            if not isinstance(node, Mapping):
                msg = f"{'.'.join(walked)} is not a mapping in {self.path}"
                raise ConfigWriteError(msg)
        return node

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def backup(self) -> Path:
        """Copy the original file to :attr:`backup_path`."""
        try:
            shutil.copy2(self.path, self.backup_path)
        except OSError as exc:
            msg = f"Cannot back up {self.path} to {self.backup_path}: {exc}"
            raise ConfigWriteError(msg) from exc
        return self.backup_path

    def restore_backup(self) -> None:
        """Restore the original content from :attr:`backup_path`."""
        if not self.backup_path.is_file():
            msg = f"No backup found at {self.backup_path}"
            raise ConfigWriteError(msg)
        try:
            atomic_write_text(self.path, self.backup_path.read_text(encoding="utf-8"))
        except OSError as exc:
            msg = f"Cannot restore {self.path} from {self.backup_path}: {exc}"
            raise ConfigWriteError(msg) from exc

    def ensure_entry(self, table_path: Sequence[str], key: str, value: Mapping[str, Any]) -> bool:
        """Insert ``key: value`` into the table unless *key* is already present.

        Returns True if the file was changed, False if it was left untouched.
        """
        doc = self.load()
        table = self.find_table(doc, table_path)
        if table is not None and key in table:
            return False

        self.backup()
        try:
            node = doc
            for part in table_path:
                if node.get(part) is None:
                    node[part] = CommentedMap()
                node = node[part]
            node[key] = dict(value)

            buf = StringIO()
            _new_yaml().dump(doc, buf)
            atomic_write_text(self.path, buf.getvalue())
        except BaseException as exc:
            logger.warning("Config write failed, restoring %s from backup", self.path)
            self.restore_backup()
            if isinstance(exc, Exception):
                msg = f"Cannot write {self.path}: {exc}"
                raise ConfigWriteError(msg) from exc
            raise
        return True
