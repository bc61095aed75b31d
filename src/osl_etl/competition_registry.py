"""osl_etl.competition_registry

Externally-loaded registry of LiftControl competitions.

A competition on LiftControl is split into several sessions, each with its
own sub-slug; the registry groups them under one base slug and carries the
metadata LiftControl does not publish (federation, venue, dates, ...).

YAML shape (config/liftcontrol_competitions.yml):

  competitions:
    - id: annecy-4-lift-2025
      aliases: [annecy, annecy4lift2025]
      base_slug: annecy-4-lift-2025
      sub_slugs:
        - annecy-4-lift-2025-dimanche-matin-39
      metadata:
        name: Annecy 4 Lift 2025
        federation: {name: ..., abbreviation: ..., country: ...}
        start_date: 2025-06-01        # optional
        end_date: 2025-06-01          # optional
        venue: ...                    # optional
        city: ...                     # optional
        country: France
        number_of_judges: 3           # optional, 1 or 3
        default_athlete_country: France
        default_athlete_nationality: French   # optional

Adding a competition is a config change, not a code change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from osl_etl.normalize import parse_date
from osl_etl.shared import UnknownCompetition

DEFAULT_REGISTRY_PATH = Path("config/liftcontrol_competitions.yml")


class RegistryValidationError(ValueError):
    """Raised when a registry YAML file fails schema validation."""


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FederationInfo:
    name: str
    abbreviation: str | None = None
    country: str | None = None


@dataclass(frozen=True)
class CompetitionMetadata:
    name: str
    federation: FederationInfo
    country: str
    default_athlete_country: str
    start_date: date | None = None
    end_date: date | None = None
    venue: str | None = None
    city: str | None = None
    number_of_judges: int | None = None
    default_athlete_nationality: str | None = None


@dataclass(frozen=True)
class CompetitionEntry:
    id: str
    base_slug: str
    sub_slugs: tuple[str, ...]
    metadata: CompetitionMetadata
    aliases: tuple[str, ...] = field(default_factory=tuple)


def _key(value: str) -> str:
    return value.strip().lower().replace("_", "-")


class CompetitionRegistry:
    def __init__(self, entries: list[CompetitionEntry]) -> None:
        self._entries: dict[str, CompetitionEntry] = {}
        self._lookup: dict[str, str] = {}
        for entry in entries:
            if entry.id in self._entries:
                raise RegistryValidationError(f"duplicate competition id {entry.id!r}")
            self._entries[entry.id] = entry
            for name in (entry.id, entry.base_slug, *entry.aliases):
                k = _key(name)
                owner = self._lookup.get(k)
                if owner is not None and owner != entry.id:
                    raise RegistryValidationError(
                        f"name {name!r} used by both {owner!r} and {entry.id!r}"
                    )
                self._lookup[k] = entry.id

    def __len__(self) -> int:
        return len(self._entries)

    def ids(self) -> list[str]:
        return sorted(self._entries)

    def entries(self) -> list[CompetitionEntry]:
        return [self._entries[i] for i in self.ids()]

    def get(self, name: str) -> CompetitionEntry:
        """Resolve an id, base slug or alias (case-insensitive)."""
        entry_id = self._lookup.get(_key(name))
        if entry_id is None:
            raise UnknownCompetition(
                f"Unknown competition: {name!r}. Available: {', '.join(self.ids()) or '<none>'}"
            )
        return self._entries[entry_id]


# ---------------------------------------------------------------------------
# Loading / validation
# ---------------------------------------------------------------------------

def _req_str(data: dict, key: str, where: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise RegistryValidationError(f"{where}: '{key}' must be a non-empty string")
    return value.strip()


def _opt_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    return str(value).strip() or None


def _opt_date(data: dict, key: str, where: str) -> date | None:
    if data.get(key) is None:
        return None
    d = parse_date(data.get(key))
    if d is None:
        raise RegistryValidationError(f"{where}: '{key}' must be a YYYY-MM-DD date")
    return d


def _parse_metadata(data: Any, where: str) -> CompetitionMetadata:
    if not isinstance(data, dict):
        raise RegistryValidationError(f"{where}: 'metadata' must be a mapping")
    fed = data.get("federation")
    if not isinstance(fed, dict):
        raise RegistryValidationError(f"{where}: 'federation' must be a mapping")
    judges = data.get("number_of_judges")
    if judges is not None and judges not in (1, 3):
        raise RegistryValidationError(f"{where}: 'number_of_judges' must be 1 or 3")
    start = _opt_date(data, "start_date", where)
    end = _opt_date(data, "end_date", where) or start
    if start and end and end < start:
        raise RegistryValidationError(f"{where}: end_date must be >= start_date")
    country = _req_str(data, "country", where)
    return CompetitionMetadata(
        name=_req_str(data, "name", where),
        federation=FederationInfo(
            name=_req_str(fed, "name", f"{where}.federation"),
            abbreviation=_opt_str(fed, "abbreviation"),
            country=_opt_str(fed, "country"),
        ),
        country=country,
        default_athlete_country=_opt_str(data, "default_athlete_country") or country,
        start_date=start,
        end_date=end,
        venue=_opt_str(data, "venue"),
        city=_opt_str(data, "city"),
        number_of_judges=judges,
        default_athlete_nationality=_opt_str(data, "default_athlete_nationality"),
    )


def parse_registry(data: Any) -> CompetitionRegistry:
    if not isinstance(data, dict) or not isinstance(data.get("competitions"), list):
        raise RegistryValidationError("top-level 'competitions' list is required")
    entries = []
    for i, item in enumerate(data["competitions"]):
        where = f"competitions[{i}]"
        if not isinstance(item, dict):
            raise RegistryValidationError(f"{where}: must be a mapping")
        entry_id = _req_str(item, "id", where)
        sub_slugs = item.get("sub_slugs")
        if (
            not isinstance(sub_slugs, list)
            or not sub_slugs
            or not all(isinstance(s, str) and s.strip() for s in sub_slugs)
        ):
            raise RegistryValidationError(f"{where}: 'sub_slugs' must be a non-empty list of strings")
        aliases = item.get("aliases") or []
        if not isinstance(aliases, list):
            raise RegistryValidationError(f"{where}: 'aliases' must be a list")
        entries.append(CompetitionEntry(
            id=entry_id,
            base_slug=_opt_str(item, "base_slug") or entry_id,
            sub_slugs=tuple(s.strip() for s in sub_slugs),
            metadata=_parse_metadata(item.get("metadata"), f"{where}.metadata"),
            aliases=tuple(str(a) for a in aliases),
        ))
    return CompetitionRegistry(entries)


def load_registry(path: Path = DEFAULT_REGISTRY_PATH) -> CompetitionRegistry:
    """Load and validate the registry YAML file."""
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    return parse_registry(data)
