import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

from distress_radar.core.types import AlertSelection, CooldownRecord, SkippedCandidate

logger = logging.getLogger(__name__)


class CooldownRepository(Protocol):
    """Key -> ISO date string store. The ledger only ever reads then writes."""

    def get(self, key: str) -> Optional[str]: ...

    def put(self, key: str, value: str) -> None: ...


class InMemoryCooldownRepository:

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.records: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.records.get(key)

    def put(self, key: str, value: str) -> None:
        self.records[key] = value


class JsonFileCooldownRepository:
    """On-disk format: {"tickers": {KEY: "YYYY-MM-DD"}, "updatedAt": iso}."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._data: Optional[Dict[str, Any]] = None

    @staticmethod
    def _empty() -> Dict[str, Any]:
        return {"tickers": {}, "updatedAt": None}

    @property
    def data(self) -> Dict[str, Any]:
        """Lazy-load the cooldown file."""
        if self._data is None:
            if self.path.exists():
                try:
                    with open(self.path, "r") as f:
                        loaded = json.load(f)
                    self._data = loaded if isinstance(loaded, dict) else self._empty()
                    self._data.setdefault("tickers", {})
                except (OSError, ValueError) as e:
                    logger.warning("Could not read cooldown file %s: %s", self.path, e)
                    self._data = self._empty()
            else:
                self._data = self._empty()
        return self._data

    def get(self, key: str) -> Optional[str]:
        return self.data["tickers"].get(key)

    def put(self, key: str, value: str) -> None:
        self.data["tickers"][key] = value
        self._save()

    def _save(self) -> None:
        self.data["updatedAt"] = datetime.now().isoformat()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w") as f:
                json.dump(self.data, f, indent=2)
        except OSError as e:
            logger.error("Failed to save cooldown file %s: %s", self.path, e)


class CooldownLedger:
    """Whole-day cooldown tracking on top of a CooldownRepository."""

    def __init__(self, repository: CooldownRepository, cooldown_days: int = 30,
                 clock: Optional[Callable[[], date]] = None):
        if cooldown_days < 0:
            raise ValueError('cooldown_days must be >= 0')
        self.repository = repository
        self.cooldown_days = cooldown_days
        self._clock = clock or date.today

    def today(self) -> date:
        now = self._clock()
        return now.date() if isinstance(now, datetime) else now

    def record(self, key: str) -> Optional[CooldownRecord]:
        raw = self.repository.get(key.upper())
        if not raw:
            return None
        try:
            last = date.fromisoformat(str(raw)[:10])
        except ValueError:
            logger.warning("Ignoring unreadable cooldown date", extra={'key': key, 'value': raw})
            return None
        return CooldownRecord(key=key.upper(), last_alerted_at=last)

    def last_alerted_at(self, key: str) -> Optional[date]:
        rec = self.record(key)
        return rec.last_alerted_at if rec else None

    def days_since(self, key: str) -> Optional[int]:
        last = self.last_alerted_at(key)
        return (self.today() - last).days if last else None

    def is_on_cooldown(self, key: str) -> bool:
        elapsed = self.days_since(key)
        return elapsed is not None and elapsed < self.cooldown_days

    def skipped(self, key: str) -> Optional[SkippedCandidate]:
        """SkippedCandidate for a key on cooldown, else None."""
        if not self.is_on_cooldown(key):
            return None
        elapsed = self.days_since(key)
        return SkippedCandidate(
            key=key.upper(),
            last_alerted_at=self.last_alerted_at(key),
            days_since=elapsed,
            days_remaining=self.cooldown_days - elapsed,
        )

    def mark_alerted(self, key: str) -> None:
        today = self.today()
        self.repository.put(key.upper(), today.isoformat())
        logger.info("Marked alerted", extra={'key': key.upper(), 'date': today.isoformat()})

    def select_next(self, ranked: Sequence[Any], force: bool = False,
                    key_fn: Callable[[Any], str] = lambda item: item.symbol) -> AlertSelection:
        """First ranked item not on cooldown; force takes the top item regardless."""
        if force:
            return AlertSelection(selected=ranked[0] if ranked else None, forced=True)

        selection = AlertSelection()
        for item in ranked:
            skip = self.skipped(key_fn(item))
            if skip is None:
                selection.selected = item
                break
            logger.debug("Skipping candidate on cooldown", extra={
                'key': skip.key, 'days_since': skip.days_since, 'days_remaining': skip.days_remaining})
            selection.skipped.append(skip)
        return selection
