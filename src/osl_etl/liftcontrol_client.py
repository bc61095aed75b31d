"""osl_etl.liftcontrol_client

HTTP client and typed payload for LiftControl's live "tableau général"
endpoint.

One GET per session sub-slug:
  {base_url}/evenements-liftcontrol/get-live-data/tableau-general/{sub_slug}

Response shape (keys as sent by LiftControl):
  contest:  {id, name, slug, status}
  results:
    categories: {categoryId: {id, name, genre}}
    results:    {categoryId: {athleteId: {
                    athleteInfo: {id, firstName, lastName, pesee, isOut,
                                  reasonOut, reglageDips, reglageSquat},
                    results: {movementId: {results: {"1".."3": Attempt|null}, max}},
                    total, RIS, rank}}}
    movements:  {movementId: {id, name, order}}
  runningAttemptId

Attempt: {id, noEssai, charge, decisionRep, justificationNoRep}.
decisionRep arrives either as an int (111) or a string ("111", "validé").

The client does not retry; failures raise SourceUnavailable or
MalformedResponse and the caller decides what to do.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import requests

from osl_etl.shared import MalformedResponse, SourceUnavailable

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://liftcontrol.fr"
LIVE_TABLE_PATH = "/evenements-liftcontrol/get-live-data/tableau-general/"
DEFAULT_TIMEOUT = 30
DEFAULT_USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)"


# ---------------------------------------------------------------------------
# Payload helpers
# ---------------------------------------------------------------------------

def _require(data: Any, key: str, where: str) -> Any:
    if not isinstance(data, dict):
        raise MalformedResponse(f"{where}: expected an object, got {type(data).__name__}")
    if key not in data:
        raise MalformedResponse(f"{where}: missing key {key!r}")
    return data[key]


def _require_dict(data: Any, key: str, where: str) -> dict:
    value = _require(data, key, where)
    # PHP backends serialize empty maps as []
    if value == []:
        return {}
    if not isinstance(value, dict):
        raise MalformedResponse(f"{where}.{key}: expected an object")
    return value


def _int(value: Any, where: str) -> int:
    if isinstance(value, bool):
        raise MalformedResponse(f"{where}: expected an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise MalformedResponse(f"{where}: expected an integer, got {value!r}") from exc


# ---------------------------------------------------------------------------
# Typed payload
# ---------------------------------------------------------------------------

@dataclass
class LcAttempt:
    id: int
    no_essai: int
    charge: Any
    decision_rep: int | str | None
    justification_no_rep: str | None = None

    @classmethod
    def from_dict(cls, data: Any, where: str) -> LcAttempt:
        decision = data.get("decisionRep") if isinstance(data, dict) else None
        return cls(
            id=_int(_require(data, "id", where), f"{where}.id"),
            no_essai=_int(_require(data, "noEssai", where), f"{where}.noEssai"),
            charge=_require(data, "charge", where),
            decision_rep=decision if isinstance(decision, (int, str)) else None,
            justification_no_rep=data.get("justificationNoRep"),
        )


@dataclass
class LcMovementResults:
    attempts: dict[str, LcAttempt | None]
    max: Any = None

    @classmethod
    def from_dict(cls, data: Any, where: str) -> LcMovementResults:
        raw = _require_dict(data, "results", where)
        attempts: dict[str, LcAttempt | None] = {}
        for num, attempt in raw.items():
            attempts[str(num)] = (
                None if attempt is None
                else LcAttempt.from_dict(attempt, f"{where}.results[{num}]")
            )
        return cls(attempts=attempts, max=data.get("max"))


@dataclass
class LcAthleteInfo:
    id: int
    first_name: str
    last_name: str
    pesee: Any = None
    is_out: bool = False
    reason_out: str | None = None
    reglage_dips: str | None = None
    reglage_squat: str | None = None

    @classmethod
    def from_dict(cls, data: Any, where: str) -> LcAthleteInfo:
        return cls(
            id=_int(_require(data, "id", where), f"{where}.id"),
            first_name=str(_require(data, "firstName", where) or ""),
            last_name=str(_require(data, "lastName", where) or ""),
            pesee=data.get("pesee"),
            is_out=bool(data.get("isOut", False)),
            reason_out=data.get("reasonOut"),
            reglage_dips=data.get("reglageDips"),
            reglage_squat=data.get("reglageSquat"),
        )


@dataclass
class LcAthleteResult:
    info: LcAthleteInfo
    movements: dict[str, LcMovementResults]
    total: Any = None
    ris: Any = None
    rank: int | str | None = None

    @classmethod
    def from_dict(cls, data: Any, where: str) -> LcAthleteResult:
        info = LcAthleteInfo.from_dict(
            _require(data, "athleteInfo", where), f"{where}.athleteInfo"
        )
        movements = {
            str(mid): LcMovementResults.from_dict(mres, f"{where}.results[{mid}]")
            for mid, mres in _require_dict(data, "results", where).items()
        }
        rank = data.get("rank")
        return cls(
            info=info,
            movements=movements,
            total=data.get("total"),
            ris=data.get("RIS"),
            rank=rank if isinstance(rank, (int, str)) and not isinstance(rank, bool) else None,
        )


@dataclass
class LcCategory:
    id: int
    name: str
    genre: str


@dataclass
class LcMovement:
    id: int
    name: str
    order: int


@dataclass
class LcContest:
    id: int
    name: str
    slug: str
    status: str | None = None


@dataclass
class LiveTable:
    contest: LcContest
    categories: dict[str, LcCategory]
    movements: dict[str, LcMovement]
    results: dict[str, dict[str, LcAthleteResult]] = field(default_factory=dict)
    running_attempt_id: int | None = None

    @classmethod
    def from_dict(cls, data: Any) -> LiveTable:
        contest_raw = _require(data, "contest", "response")
        contest = LcContest(
            id=_int(_require(contest_raw, "id", "contest"), "contest.id"),
            name=str(_require(contest_raw, "name", "contest")),
            slug=str(_require(contest_raw, "slug", "contest")),
            status=contest_raw.get("status"),
        )
        results_raw = _require(data, "results", "response")

        categories = {}
        for cid, cat in _require_dict(results_raw, "categories", "results").items():
            where = f"results.categories[{cid}]"
            categories[str(cid)] = LcCategory(
                id=_int(_require(cat, "id", where), f"{where}.id"),
                name=str(_require(cat, "name", where)),
                genre=str(_require(cat, "genre", where)),
            )

        movements = {}
        for mid, mov in _require_dict(results_raw, "movements", "results").items():
            where = f"results.movements[{mid}]"
            movements[str(mid)] = LcMovement(
                id=_int(_require(mov, "id", where), f"{where}.id"),
                name=str(_require(mov, "name", where)),
                order=_int(_require(mov, "order", where), f"{where}.order"),
            )

        results: dict[str, dict[str, LcAthleteResult]] = {}
        for cid, athletes in _require_dict(results_raw, "results", "results").items():
            if athletes == []:
                athletes = {}
            if not isinstance(athletes, dict):
                raise MalformedResponse(f"results.results[{cid}]: expected an object")
            results[str(cid)] = {
                str(aid): LcAthleteResult.from_dict(a, f"results.results[{cid}][{aid}]")
                for aid, a in athletes.items()
            }

        running = data.get("runningAttemptId")
        return cls(
            contest=contest,
            categories=categories,
            movements=movements,
            results=results,
            running_attempt_id=running if isinstance(running, int) else None,
        )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class LiftControlClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", user_agent)

    def live_table_url(self, sub_slug: str) -> str:
        return f"{self.base_url}{LIVE_TABLE_PATH}{sub_slug}"

    def fetch_raw(self, sub_slug: str) -> dict:
        url = self.live_table_url(sub_slug)
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            log.error("GET %s failed: %s", url, exc)
            raise SourceUnavailable(f"GET {url} failed: {exc}") from exc
        if not 200 <= resp.status_code < 300:
            log.error("GET %s returned status %s", url, resp.status_code)
            raise SourceUnavailable(f"GET {url} returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise MalformedResponse(f"{sub_slug}: response body is not JSON") from exc
        if not isinstance(data, dict):
            raise MalformedResponse(f"{sub_slug}: expected a JSON object at top level")
        return data

    def fetch_session(self, sub_slug: str) -> LiveTable:
        """Fetch and decode one session's live table."""
        return LiveTable.from_dict(self.fetch_raw(sub_slug))
