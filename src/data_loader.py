"""
Loader for the regional search groups used by the state news digest.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

REGIONAL_GROUPS_FILE = "regional_groups.json"


@dataclass(frozen=True)
class SearchGroup:
    query: str
    states: tuple[str, ...]

    @property
    def primary_state(self) -> str:
        return self.states[0]


@dataclass
class RegionalConfig:
    country: str = "in"
    groups: List[SearchGroup] = field(default_factory=list)
    keywords: Dict[str, List[str]] = field(default_factory=dict)

    def match_state(self, text: str) -> str | None:
        """First state whose keyword appears in ``text`` (case-insensitive)."""
        lowered = text.lower()
        for state, words in self.keywords.items():
            if any(word in lowered for word in words):
                return state
        return None


def load_json(path: Path) -> Any:
    """Load a JSON file with UTF-8 encoding."""
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _parse_groups(raw: Any) -> List[SearchGroup]:
    groups: List[SearchGroup] = []
    if not isinstance(raw, list):
        return groups
    for item in raw:
        if not isinstance(item, dict):
            continue
        query = (item.get("query") or "").strip()
        states = tuple(s for s in item.get("states") or [] if isinstance(s, str) and s)
        if not query or not states:
            logger.warning("Skip invalid search group %s", item)
            continue
        groups.append(SearchGroup(query=query, states=states))
    return groups


def _parse_keywords(raw: Any) -> Dict[str, List[str]]:
    if not isinstance(raw, dict):
        return {}
    return {
        state: [w.lower() for w in words if isinstance(w, str) and w]
        for state, words in raw.items()
        if isinstance(words, list)
    }


def load_regional_config(data_dir: str | os.PathLike[str]) -> RegionalConfig:
    """
    Load regional search groups and state keywords from data_dir.
    A missing or unreadable file yields an empty config (the digest is then empty).
    """
    path = Path(data_dir) / REGIONAL_GROUPS_FILE
    if not path.exists():
        logger.warning("Regional groups file %s does not exist; state digest disabled", path)
        return RegionalConfig()
    try:
        data = load_json(path)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Failed to load regional groups %s: %s", path, exc)
        return RegionalConfig()

    config = RegionalConfig(
        country=(data.get("country") or "in").lower(),
        groups=_parse_groups(data.get("groups")),
        keywords=_parse_keywords(data.get("keywords")),
    )
    logger.info(
        "Loaded %d regional search groups (%d states with keywords) from %s",
        len(config.groups),
        len(config.keywords),
        path,
    )
    return config
