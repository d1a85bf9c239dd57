# ============================================================
# pgsheet - PostgreSQL Spreadsheet Client
# core/storage.py — Saved Connections, SQL Scripts & Autosave
# ============================================================
#
# Layout under the config directory:
#   connections.json   saved connection profiles
#   scripts/*.sql      named editor scripts
#   autosave.sql       editor text at last quit
# Every file is written with mode 0600.
# ============================================================

import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from config import app_config
from core.errors import StorageError

CONNECTIONS_FILE = "connections.json"
SCRIPTS_DIR = "scripts"
AUTOSAVE_FILE = "autosave.sql"
SCRIPT_SUFFIX = ".sql"


class SavedConnection(BaseModel):
    """One named connection profile. Either `uri` or host/port/user/database."""
    name: str
    host: str = ""
    port: str = ""
    user: str = ""
    password: str = ""
    database: str = ""
    uri: str = ""
    last_used: Optional[datetime] = None

    def display(self) -> str:
        if self.uri:
            return self.uri.split("@")[-1]
        target = f"{self.user}@{self.host or 'localhost'}"
        if self.port:
            target += f":{self.port}"
        return f"{target}/{self.database}" if self.database else target


class ConnectionBook(BaseModel):
    connections: List[SavedConnection] = Field(default_factory=list)

    def add(self, connection: SavedConnection) -> None:
        """Append, or replace the profile with the same name in place."""
        for i, existing in enumerate(self.connections):
            if existing.name == connection.name:
                self.connections[i] = connection
                return
        self.connections.append(connection)

    def get(self, name: str) -> Optional[SavedConnection]:
        for connection in self.connections:
            if connection.name == name:
                return connection
        return None

    def delete(self, name: str) -> bool:
        before = len(self.connections)
        self.connections = [c for c in self.connections if c.name != name]
        return len(self.connections) != before

    def touch(self, name: str, when: Optional[datetime] = None) -> None:
        connection = self.get(name)
        if connection is not None:
            connection.last_used = when or datetime.now()

    def sort_by_last_used(self) -> None:
        """Most recently used first; never-used profiles keep their order at the end."""
        self.connections.sort(
            key=lambda c: c.last_used.timestamp() if c.last_used else float("-inf"),
            reverse=True,
        )


class LocalStore:
    """File-backed storage rooted at the configured directory."""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root or app_config.config_dir).expanduser()

    @property
    def scripts_dir(self) -> Path:
        return self.root / SCRIPTS_DIR

    def _write(self, path: Path, content: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.chmod(path, 0o600)
        except OSError as e:
            logger.error(f"Failed to write {path}: {e}")
            raise StorageError(f"could not write {path.name}: {e.strerror or e}") from e

    def _read(self, path: Path) -> Optional[str]:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error(f"Failed to read {path}: {e}")
            raise StorageError(f"could not read {path.name}: {e.strerror or e}") from e

    # ── Connections ───────────────────────────────────────────

    def load_connections(self) -> ConnectionBook:
        raw = self._read(self.root / CONNECTIONS_FILE)
        if raw is None:
            return ConnectionBook()
        try:
            return ConnectionBook.model_validate_json(raw)
        except ValidationError as e:
            raise StorageError(f"failed to parse {CONNECTIONS_FILE}: {e.error_count()} error(s)") from e

    def save_connections(self, book: ConnectionBook) -> None:
        self._write(
            self.root / CONNECTIONS_FILE,
            book.model_dump_json(indent=2, exclude_defaults=True),
        )
        logger.info(f"Saved {len(book.connections)} connection profile(s)")

    # ── Scripts ───────────────────────────────────────────────

    @staticmethod
    def _script_name(name: str) -> str:
        name = Path(name).name
        if not name:
            raise StorageError("script name must not be empty")
        return name if name.endswith(SCRIPT_SUFFIX) else name + SCRIPT_SUFFIX

    def list_scripts(self) -> List[str]:
        if not self.scripts_dir.is_dir():
            return []
        return sorted(
            entry.name for entry in self.scripts_dir.iterdir()
            if entry.is_file() and entry.suffix == SCRIPT_SUFFIX
        )

    def load_script(self, name: str) -> str:
        name = self._script_name(name)
        content = self._read(self.scripts_dir / name)
        if content is None:
            raise StorageError(f"script not found: {name}")
        return content

    def save_script(self, name: str, content: str) -> str:
        """Write a script; a missing .sql suffix is added. Returns the file name."""
        name = self._script_name(name)
        self._write(self.scripts_dir / name, content)
        logger.info(f"Saved script {name}")
        return name

    def delete_script(self, name: str) -> None:
        name = self._script_name(name)
        try:
            (self.scripts_dir / name).unlink()
        except FileNotFoundError as e:
            raise StorageError(f"script not found: {name}") from e
        except OSError as e:
            raise StorageError(f"could not delete {name}: {e.strerror or e}") from e

    # ── Autosave ──────────────────────────────────────────────

    def save_autosave(self, content: str) -> None:
        self._write(self.root / AUTOSAVE_FILE, content)

    def load_autosave(self) -> str:
        return self._read(self.root / AUTOSAVE_FILE) or ""
