"""
Attempt history persistence for the MCQ Quiz Bot.
Keeps the most recent completed attempts, newest first, and writes the whole
list back to storage after every change.
"""
import dataclasses
import json
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .exceptions import PersistenceUnavailableError
from .models import AttemptRecord
from .scoring import percentage

DEFAULT_HISTORY_LIMIT = 10


class JsonHistoryStorage:
    """Stores the serialised attempt list in a single JSON file."""

    def __init__(self, path: Union[str, Path]):
        """
        Initialize storage.

        Args:
            path: Location of the history JSON file
        """
        self.path = Path(path)
        self.logger = logging.getLogger(__name__)

    def read(self) -> List[Dict[str, Any]]:
        """
        Read the stored attempt list.

        Returns:
            List of serialised attempts, empty if the file does not exist yet

        Raises:
            PersistenceUnavailableError: If the file cannot be read or parsed
        """
        if not self.path.exists():
            return []

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise PersistenceUnavailableError(f"Invalid JSON in history file {self.path}: {e}") from e
        except OSError as e:
            raise PersistenceUnavailableError(f"Failed to read history file {self.path}: {e}") from e

        if not isinstance(data, list):
            raise PersistenceUnavailableError(f"History file {self.path} must contain a JSON array")
        return data

    def write(self, records: List[Dict[str, Any]]) -> None:
        """
        Replace the stored attempt list.

        Raises:
            PersistenceUnavailableError: If the file cannot be written
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix='.history-', suffix='.tmp')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    json.dump(records, f, indent=2, ensure_ascii=False)
                os.replace(tmp_path, self.path)
            except BaseException:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
                raise
        except OSError as e:
            raise PersistenceUnavailableError(f"Failed to write history file {self.path}: {e}") from e


class MemoryHistoryStorage:
    """Keeps the serialised attempt list in process memory."""

    def __init__(self, records: Optional[List[Dict[str, Any]]] = None):
        self.records: List[Dict[str, Any]] = list(records or [])
        self.write_count = 0

    def read(self) -> List[Dict[str, Any]]:
        return list(self.records)

    def write(self, records: List[Dict[str, Any]]) -> None:
        self.records = list(records)
        self.write_count += 1


class AttemptStore:
    """
    Bounded history of completed quiz attempts.

    The in-memory list is authoritative for the running process. Storage
    failures are logged and leave the store in memory-only mode until the
    next successful write.
    """

    def __init__(self, storage=None, max_records: int = DEFAULT_HISTORY_LIMIT, autoload: bool = True):
        """
        Initialize the store.

        Args:
            storage: Object with read() and write(records), in-memory if None
            max_records: Number of attempts retained
            autoload: Load existing history from storage immediately
        """
        if max_records < 1:
            raise ValueError(f"max_records must be at least 1, got {max_records}")

        self.logger = logging.getLogger(__name__)
        self.storage = storage if storage is not None else MemoryHistoryStorage()
        self.max_records = max_records
        self._attempts: List[AttemptRecord] = []
        self._is_durable = True

        if autoload:
            self.load()

    def load(self) -> int:
        """
        Replace the in-memory history with the stored one.

        Returns:
            Number of attempts loaded
        """
        try:
            raw_records = self.storage.read()
        except PersistenceUnavailableError as e:
            self._is_durable = False
            self.logger.warning(
                f"Attempt history unavailable, continuing in memory: {e}",
                extra={
                    'event_type': 'history_load_failed',
                    'timestamp': time.time()
                }
            )
            self._attempts = []
            return 0

        attempts = []
        for position, raw in enumerate(raw_records):
            try:
                attempts.append(AttemptRecord.from_dict(raw))
            except ValueError as e:
                self.logger.warning(f"Skipping malformed attempt at position {position}: {e}")

        self._attempts = attempts[:self.max_records]
        self._is_durable = True
        self.logger.info(f"Loaded {len(self._attempts)} attempts from history")
        return len(self._attempts)

    def record(self, attempt: AttemptRecord) -> AttemptRecord:
        """
        Add a completed attempt as the newest entry and evict beyond the cap.

        Args:
            attempt: Attempt to store

        Returns:
            The stored attempt; its id is bumped if it collides with an existing one
        """
        if any(existing.id == attempt.id for existing in self._attempts):
            newest_id = max(existing.id for existing in self._attempts)
            attempt = dataclasses.replace(attempt, id=newest_id + 1)

        self._attempts = [attempt] + self._attempts
        evicted = len(self._attempts) - self.max_records
        if evicted > 0:
            self._attempts = self._attempts[:self.max_records]

        self.logger.info(
            f"Recorded attempt {attempt.id} for '{attempt.user_name}': "
            f"{attempt.score}/{attempt.total_questions}",
            extra={
                'event_type': 'attempt_recorded',
                'attempt_id': attempt.id,
                'history_size': len(self._attempts),
                'evicted': max(evicted, 0),
                'timestamp': time.time()
            }
        )
        self._flush()
        return attempt

    def clear(self) -> None:
        """Remove every attempt and persist the empty history."""
        self._attempts = []
        self.logger.info("Attempt history cleared")
        self._flush()

    def aggregate(self) -> Dict[str, int]:
        """
        Summary statistics across retained attempts.

        Returns:
            Dictionary with count, best_score and average_percentage (zeros when empty)
        """
        if not self._attempts:
            return {'count': 0, 'best_score': 0, 'average_percentage': 0}

        count = len(self._attempts)
        return {
            'count': count,
            'best_score': max(attempt.score for attempt in self._attempts),
            'average_percentage': percentage(
                sum(attempt.percentage for attempt in self._attempts),
                100 * count
            )
        }

    def latest(self) -> Optional[AttemptRecord]:
        """Most recent attempt, or None when the history is empty."""
        return self._attempts[0] if self._attempts else None

    @property
    def attempts(self) -> List[AttemptRecord]:
        """Retained attempts, newest first."""
        return list(self._attempts)

    @property
    def is_durable(self) -> bool:
        """False while the last storage operation failed."""
        return self._is_durable

    def __len__(self) -> int:
        return len(self._attempts)

    def close(self) -> None:
        """Flush the history one last time."""
        self._flush()

    def _flush(self) -> bool:
        try:
            self.storage.write([attempt.to_dict() for attempt in self._attempts])
        except PersistenceUnavailableError as e:
            self._is_durable = False
            self.logger.warning(
                f"Failed to persist attempt history, keeping it in memory: {e}",
                extra={
                    'event_type': 'history_flush_failed',
                    'history_size': len(self._attempts),
                    'timestamp': time.time()
                }
            )
            return False

        self._is_durable = True
        return True
