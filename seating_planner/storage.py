from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import ArrangementData, SeatingError


logger = logging.getLogger(__name__)

DEFAULT_CACHE_FILE = "seating_arrangement.json"


class CacheError(SeatingError):
    pass


class LocalCache:
    """
    Local fallback copy of the arrangement: one JSON blob at a fixed path.

    Written on every save attempt whatever the remote outcome; read only when
    the remote store has nothing to offer.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[ArrangementData]:
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise CacheError(f"failed to read cached arrangement: {e}") from e
        try:
            return ArrangementData.model_validate(raw)
        except ValidationError as e:
            raise CacheError(f"invalid cached arrangement: {e.error_count()} error(s)") from e

    def save(self, data: ArrangementData) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data.to_json_dict(), indent=2, sort_keys=True) + "\n", encoding="utf-8")
        except OSError as e:
            logger.error("Error writing local cache %s: %s", self.path, e)
            return False
        return True

    def drop(self) -> None:
        self.path.unlink(missing_ok=True)
