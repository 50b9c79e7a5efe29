"""
A JSON document on disk treated as a small database.

Every read-modify-write cycle runs under one lock per store, and writes land
in a temporary file that is renamed over the target, so concurrent requests
inside the process cannot clobber each other and a crash never leaves half
a document behind.
"""
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Callable, Optional

from logger import practice_logger


class JsonFileStore:

    def __init__(
        self,
        path: str,
        factory: Callable[[], dict],
        migrate: Optional[Callable[[dict], bool]] = None,
    ):
        self.path = Path(path)
        self.factory = factory
        self.migrate = migrate
        self._lock = threading.RLock()

    def _ensure_file(self) -> None:
        if not self.path.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._write_unlocked(self.factory())
            practice_logger.info(f"Created new data file at {self.path}")

    def _write_unlocked(self, data: dict) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def _load_unlocked(self) -> dict:
        self._ensure_file()
        with open(self.path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        if self.migrate and self.migrate(data):
            practice_logger.info(f"Migrated data file {self.path}")
            self._write_unlocked(data)
        return data

    def read(self) -> dict:
        with self._lock:
            return self._load_unlocked()

    def write(self, data: dict) -> None:
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._write_unlocked(data)

    def update(self, mutator: Callable[[dict], Any]) -> Any:
        """
        Load, mutate in place, write back; all under the store lock.
        Returns whatever the mutator returns. If the mutator raises, nothing is written.
        """
        with self._lock:
            data = self._load_unlocked()
            result = mutator(data)
            self._write_unlocked(data)
            return result
