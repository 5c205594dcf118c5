"""
Data manager for score persistence: JSON score store, local best-score
cache, and the fire-and-forget reporting boundary used by the game.
"""
import asyncio
import json
import os
import logging
import threading
import time
from datetime import datetime
from typing import Dict, List, Optional
from pathlib import Path

from .models import GameOverResult, Mode, ScoreEntry


class PersistenceError(Exception):
    """Raised when a score store cannot read or write its backing storage."""
    pass


class ScoreStore:
    """
    Interface of the score persistence collaborator.

    Implementations raise PersistenceError on transport or storage failure.
    """

    def submit_score(self, player_id: str, display_name: str, score: int, mode: Mode) -> None:
        raise NotImplementedError

    def query_best_score(self, player_id: str, mode: Mode) -> int:
        raise NotImplementedError

    def query_history(self, player_id: str, mode: Mode) -> List[ScoreEntry]:
        raise NotImplementedError


class JsonScoreStore(ScoreStore):
    """Score store backed by a single JSON file."""

    ANONYMOUS_NAME = "Anonymous"

    def __init__(self, scores_file: str = "./data/scores.json"):
        """
        Initialize the store.

        Args:
            scores_file: Path of the JSON file holding every submitted score
        """
        self.scores_file = Path(scores_file)
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()

    def submit_score(self, player_id: str, display_name: str, score: int, mode: Mode) -> None:
        """
        Append a score entry.

        Raises:
            PersistenceError: If the file cannot be read or written
        """
        mode = Mode(mode)
        with self._lock:
            records = self._read_records()
            records.append({
                'player_id': player_id,
                'display_name': display_name,
                'score': score,
                'mode': mode.value,
                'created_at': datetime.now().isoformat()
            })
            self._write_records(records)

        self.logger.info(
            f"Recorded score {score} for player {player_id} in {mode.value}",
            extra={
                'event_type': 'score_submitted',
                'player_id': player_id,
                'mode': mode.value,
                'score': score,
                'timestamp': time.time()
            }
        )

    def query_best_score(self, player_id: str, mode: Mode) -> int:
        """
        Get a player's highest score for a mode.

        Returns:
            Highest score, or 0 if the player has none
        """
        entries = self._entries(player_id=player_id, mode=Mode(mode))
        return max((entry.score for entry in entries), default=0)

    def query_history(self, player_id: str, mode: Mode) -> List[ScoreEntry]:
        """
        Get a player's scores for a mode, oldest first.
        """
        entries = self._entries(player_id=player_id, mode=Mode(mode))
        return sorted(entries, key=lambda entry: entry.created_at)

    def get_leaderboard(self, mode: Optional[Mode] = None, limit: int = 20) -> List[ScoreEntry]:
        """
        Get the top players, counting each player's best entry once.

        Args:
            mode: Restrict to one mode, or None for all modes
            limit: Maximum number of entries to return

        Returns:
            Entries sorted by score, highest first
        """
        entries = self._entries(mode=Mode(mode) if mode is not None else None)

        best_by_player: Dict[str, ScoreEntry] = {}
        for entry in entries:
            existing = best_by_player.get(entry.player_id)
            if existing is None or entry.score > existing.score:
                best_by_player[entry.player_id] = entry

        ranked = sorted(best_by_player.values(), key=lambda entry: entry.score, reverse=True)
        return ranked[:max(limit, 0)]

    def _entries(self, player_id: Optional[str] = None, mode: Optional[Mode] = None) -> List[ScoreEntry]:
        with self._lock:
            records = self._read_records()

        entries = []
        for record in records:
            entry = self._parse_entry(record)
            if entry is None:
                continue
            if player_id is not None and entry.player_id != player_id:
                continue
            if mode is not None and entry.mode != mode:
                continue
            entries.append(entry)
        return entries

    def _parse_entry(self, record: dict) -> Optional[ScoreEntry]:
        """
        Convert one stored record into a ScoreEntry.

        Returns:
            ScoreEntry, or None if the record is malformed
        """
        if not isinstance(record, dict):
            self.logger.warning(f"Skipping malformed score record in {self.scores_file}: {record!r}")
            return None
        try:
            created_at = record.get('created_at')
            return ScoreEntry(
                player_id=str(record['player_id']),
                display_name=record.get('display_name') or self.ANONYMOUS_NAME,
                score=int(record['score']),
                mode=Mode(record['mode']),
                created_at=datetime.fromisoformat(created_at) if created_at else datetime.now()
            )
        except (KeyError, TypeError, ValueError) as e:
            self.logger.warning(f"Skipping malformed score record in {self.scores_file}: {e}")
            return None

    def _read_records(self) -> List[dict]:
        if not self.scores_file.exists():
            return []
        try:
            with open(self.scores_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Invalid JSON in {self.scores_file}: {e}") from e
        except OSError as e:
            raise PersistenceError(f"Failed to read {self.scores_file}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get('scores'), list):
            raise PersistenceError(f"Score file {self.scores_file} must contain a 'scores' array")
        return data['scores']

    def _write_records(self, records: List[dict]) -> None:
        temp_file = self.scores_file.with_suffix(self.scores_file.suffix + ".tmp")
        try:
            self.scores_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, 'w', encoding='utf-8') as f:
                json.dump({'scores': records}, f, indent=2, ensure_ascii=False)
            os.replace(temp_file, self.scores_file)
        except OSError as e:
            raise PersistenceError(f"Failed to write {self.scores_file}: {e}") from e


class BestScoreCache:
    """Local best score per mode, optionally mirrored to a JSON file."""

    def __init__(self, cache_file: Optional[str] = None):
        """
        Initialize the cache.

        Args:
            cache_file: JSON file to persist the cache in; memory only if None
        """
        self.cache_file = Path(cache_file) if cache_file else None
        self.logger = logging.getLogger(__name__)
        self._best: Dict[Mode, int] = {}
        self._load()

    def get(self, mode: Mode) -> int:
        """Get the cached best for a mode, 0 if none."""
        return self._best.get(Mode(mode), 0)

    def update(self, mode: Mode, score: int) -> bool:
        """
        Store score if it beats the cached best.

        Returns:
            True if the cache was written, False otherwise
        """
        mode = Mode(mode)
        if score <= self._best.get(mode, 0):
            return False
        self._best[mode] = score
        self._save()
        return True

    def _load(self) -> None:
        if self.cache_file is None or not self.cache_file.exists():
            return
        try:
            with open(self.cache_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            for mode_name, score in data.items():
                self._best[Mode(mode_name)] = int(score)
        except (OSError, ValueError, AttributeError, TypeError) as e:
            # JSONDecodeError is a ValueError
            self.logger.warning(f"Ignoring unreadable best-score cache {self.cache_file}: {e}")
            self._best.clear()

    def _save(self) -> None:
        if self.cache_file is None:
            return
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.cache_file, 'w', encoding='utf-8') as f:
                json.dump({mode.value: score for mode, score in self._best.items()}, f, indent=2)
        except OSError as e:
            self.logger.error(f"Failed to write best-score cache {self.cache_file}: {e}")


class ScoreReporter:
    """
    Forwards finished-game results to a score store without blocking play.

    Inside a running event loop the submission runs in a worker thread;
    otherwise it runs inline. Failures are logged and dropped.
    """

    def __init__(self, score_store: Optional[ScoreStore]):
        self.score_store = score_store
        self.logger = logging.getLogger(__name__)
        self._pending: List[asyncio.Task] = []

    def report(self, result: GameOverResult) -> bool:
        """
        Submit a result in the background.

        Returns:
            True if a submission was issued or scheduled, False if there is no store
        """
        if self.score_store is None:
            return False

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            self._submit(result)
            return True

        task = loop.create_task(asyncio.to_thread(self._submit, result))
        self._pending.append(task)
        task.add_done_callback(self._pending.remove)
        return True

    async def wait_pending(self) -> None:
        """Wait for scheduled submissions to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _submit(self, result: GameOverResult) -> None:
        try:
            self.score_store.submit_score(
                result.player_id,
                result.display_name,
                result.score,
                result.mode
            )
        except PersistenceError as e:
            self.logger.error(
                f"Score submission failed for player {result.player_id}: {e}",
                extra={
                    'event_type': 'score_submit_failed',
                    'player_id': result.player_id,
                    'mode': result.mode.value,
                    'score': result.score,
                    'timestamp': time.time()
                }
            )
        except Exception as e:
            self.logger.error(f"Unexpected error submitting score for player {result.player_id}: {e}")
