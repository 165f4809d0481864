"""
Static origin code reference data.

Maps origin codes ("33", "B1", "G4") to distillery names using a JSON file
grouped by category::

    {"<category>": {"distilleries": [
        {"smwsId": "33", "distilleryName": "Ardbeg", "region": "Islay"}, ...]}}
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_LOOKUP_PATH = Path(__file__).resolve().parent.parent / "data" / "origin_codes.json"


def normalize_origin_code(code: Union[str, int]) -> str:
    code = str(code).strip().upper()
    return str(int(code)) if code.isdigit() else code


@dataclass(frozen=True)
class OriginInfo:
    """One origin code entry."""

    code: str
    name: str
    region: Optional[str] = None
    category: Optional[str] = None


class OriginLookup:
    """Read-only origin code to display name lookup."""

    def __init__(self, entries: Dict[str, OriginInfo]):
        self.entries = entries

    @classmethod
    def from_dict(cls, data: Dict[str, dict]) -> "OriginLookup":
        entries: Dict[str, OriginInfo] = {}
        for category, group in data.items():
            for item in (group or {}).get("distilleries", []):
                code = item.get("smwsId")
                name = item.get("distilleryName")
                if code is None or not name:
                    logger.warning(f"Skipping incomplete origin entry in {category}: {item}")
                    continue
                info = OriginInfo(
                    code=normalize_origin_code(code),
                    name=name,
                    region=item.get("region"),
                    category=category,
                )
                entries[info.code] = info
        return cls(entries)

    @classmethod
    def from_file(cls, path: Optional[Union[str, Path]] = None) -> "OriginLookup":
        """
        Load the lookup from a JSON file (the bundled one by default).

        Raises:
            ValueError: If the file cannot be read or parsed
        """
        path = Path(path) if path else DEFAULT_LOOKUP_PATH
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ValueError(f"Error loading origin lookup from {path}: {e}")

        lookup = cls.from_dict(data)
        logger.info(f"Loaded {len(lookup)} origin codes from {path}")
        return lookup

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, origin_group_id: Union[str, int]) -> Optional[OriginInfo]:
        return self.entries.get(normalize_origin_code(origin_group_id))

    def resolve(self, origin_group_id: Union[str, int]) -> Optional[str]:
        """Return the origin display name for a code, or None if unknown."""
        info = self.get(origin_group_id)
        return info.name if info else None
