import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from distress_radar.core.types import ScanReport

logger = logging.getLogger(__name__)


class LeaderboardStore:
    """Writes the leaderboard JSON wholesale on every run."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def save(self, report: ScanReport) -> Path:
        payload = report.to_dict()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(payload, f, indent=2, default=str)
        logger.info("Saved leaderboard", extra={'path': str(self.path), 'entries': len(payload['leaderboard'])})
        return self.path

    def load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Could not read leaderboard file %s: %s", self.path, e)
            return None
