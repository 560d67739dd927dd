"""
Resume store for runs parked at the human gate.

Maps run id -> ResumeSnapshot. The only supported access pattern for a
successful resume is take(), an atomic get-and-delete: of two concurrent
resumes on the same run id exactly one receives the snapshot.

Backends:
- InMemoryResumeStore: process-local dict. Paused runs are lost on restart
  and are not shared between processes.
- FileResumeStore: one JSON file per run id, for the CLI and single-host
  deployments that must survive a restart.
"""

import re
import threading
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from config import Config, get_config
from logger import get_logger
from models import ResumeSnapshot

logger = get_logger(__name__)

_RUN_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


class ResumeTokenError(ValueError):
    """Resume token is blank, malformed, or names an unknown gate."""


class ResumeStateNotFound(LookupError):
    """No snapshot for the run: expired, already consumed, or never created."""

    def __init__(self, run_id: str):
        super().__init__("Resume state expired or not found. Please restart review.")
        self.run_id = run_id


def validate_run_id(run_id: str) -> str:
    if not isinstance(run_id, str) or not _RUN_ID_PATTERN.match(run_id) or run_id.startswith("."):
        raise ResumeTokenError(f"Invalid run id: {run_id!r}")
    return run_id


class ResumeStore(ABC):
    """Key-value store of paused runs."""

    @abstractmethod
    def save(self, run_id: str, snapshot: ResumeSnapshot):
        pass

    @abstractmethod
    def get(self, run_id: str) -> Optional[ResumeSnapshot]:
        pass

    @abstractmethod
    def delete(self, run_id: str):
        pass

    @abstractmethod
    def take(self, run_id: str) -> Optional[ResumeSnapshot]:
        """Atomically fetch and remove a snapshot. None when absent."""
        pass


class InMemoryResumeStore(ResumeStore):
    """Dict-backed store guarded by a lock."""

    def __init__(self):
        self._entries: dict[str, ResumeSnapshot] = {}
        self._lock = threading.Lock()

    def save(self, run_id: str, snapshot: ResumeSnapshot):
        with self._lock:
            self._entries[run_id] = snapshot
        logger.debug(f"Saved resume snapshot for {run_id}")

    def get(self, run_id: str) -> Optional[ResumeSnapshot]:
        with self._lock:
            return self._entries.get(run_id)

    def delete(self, run_id: str):
        with self._lock:
            self._entries.pop(run_id, None)

    def take(self, run_id: str) -> Optional[ResumeSnapshot]:
        with self._lock:
            return self._entries.pop(run_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class FileResumeStore(ResumeStore):
    """One JSON file per run id. Writes go through a temp file and rename."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def _path(self, run_id: str) -> Path:
        return self.directory / f"{validate_run_id(run_id)}.json"

    def save(self, run_id: str, snapshot: ResumeSnapshot):
        path = self._path(run_id)
        with self._lock:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".json.tmp")
            tmp_path.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
            tmp_path.replace(path)
        logger.debug(f"Saved resume snapshot to {path}")

    def _read(self, path: Path) -> Optional[ResumeSnapshot]:
        if not path.exists():
            return None
        return self._load(path)

    def _load(self, path: Path) -> ResumeSnapshot:
        return ResumeSnapshot.model_validate_json(path.read_text(encoding="utf-8"))

    def get(self, run_id: str) -> Optional[ResumeSnapshot]:
        path = self._path(run_id)
        with self._lock:
            return self._read(path)

    def delete(self, run_id: str):
        path = self._path(run_id)
        with self._lock:
            path.unlink(missing_ok=True)

    def take(self, run_id: str) -> Optional[ResumeSnapshot]:
        """
        Claim the snapshot by renaming it to a name unique to this call.

        The rename is atomic on one filesystem, so of several stores (or
        processes) sharing the directory only one claim succeeds.
        """
        path = self._path(run_id)
        claimed = path.with_name(f"{path.name}.{uuid.uuid4().hex}.taken")
        with self._lock:
            try:
                path.replace(claimed)
            except FileNotFoundError:
                return None
            snapshot = self._load(claimed)
            claimed.unlink()
            return snapshot


def create_resume_store(config: Config | None = None) -> ResumeStore:
    """Build the store selected by RESUME_STORE."""
    config = config or get_config()
    if config.resume_store == "file":
        logger.info(f"Resume store: file ({config.resume_store_dir})")
        return FileResumeStore(config.resume_store_dir)
    logger.info("Resume store: in-memory (paused runs do not survive a restart)")
    return InMemoryResumeStore()
