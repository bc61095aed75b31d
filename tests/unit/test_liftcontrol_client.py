"""Unit tests for the LiftControl HTTP client and payload decoding.

No network access required: the requests session is a MagicMock.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from osl_etl.liftcontrol_client import LiftControlClient, LiveTable
from osl_etl.shared import MalformedResponse, SourceUnavailable

FIXTURE = Path(__file__).parent.parent / "fixtures" / "liftcontrol_session.json"


def _payload() -> dict:
    return json.loads(FIXTURE.read_text(encoding="utf-8"))


def _make_response(status_code: int = 200, body=None, json_error: bool = False) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    if json_error:
        resp.json.side_effect = ValueError("Expecting value")
    else:
        resp.json.return_value = body
    return resp


def _make_client(response=None, exc: Exception | None = None) -> tuple[LiftControlClient, MagicMock]:
    session = MagicMock()
    session.headers = {}
    if exc is not None:
        session.get.side_effect = exc
    else:
        session.get.return_value = response
    return LiftControlClient(base_url="https://lc.test/", session=session, timeout=5), session


# ---------------------------------------------------------------------------
# LiftControlClient
# ---------------------------------------------------------------------------

class TestLiftControlClient:
    def test_live_table_url(self):
        client, _ = _make_client(_make_response(body={}))
        assert client.live_table_url("annecy-39") == (
            "https://lc.test/evenements-liftcontrol/get-live-data/tableau-general/annecy-39"
        )

    def test_sets_user_agent(self):
        _, session = _make_client(_make_response(body={}))
        assert "User-Agent" in session.headers

    def test_fetch_session_parses_payload(self):
        client, session = _make_client(_make_response(body=_payload()))
        table = client.fetch_session("annecy-39")
        session.get.assert_called_once_with(
            "https://lc.test/evenements-liftcontrol/get-live-data/tableau-general/annecy-39",
            timeout=5,
        )
        assert table.contest.id == 39
        assert set(table.categories) == {"12", "13", "14"}

    def test_network_error_is_source_unavailable(self):
        client, _ = _make_client(exc=requests.ConnectionError("refused"))
        with pytest.raises(SourceUnavailable):
            client.fetch_session("x")

    def test_timeout_is_source_unavailable(self):
        client, _ = _make_client(exc=requests.Timeout("slow"))
        with pytest.raises(SourceUnavailable):
            client.fetch_session("x")

    @pytest.mark.parametrize("status", [404, 500, 503])
    def test_non_2xx_is_source_unavailable(self, status):
        client, _ = _make_client(_make_response(status_code=status))
        with pytest.raises(SourceUnavailable, match=str(status)):
            client.fetch_session("x")

    def test_non_json_body_is_malformed(self):
        client, _ = _make_client(_make_response(json_error=True))
        with pytest.raises(MalformedResponse):
            client.fetch_session("x")

    def test_top_level_list_is_malformed(self):
        client, _ = _make_client(_make_response(body=[1, 2]))
        with pytest.raises(MalformedResponse):
            client.fetch_session("x")


# ---------------------------------------------------------------------------
# LiveTable.from_dict
# ---------------------------------------------------------------------------

class TestLiveTable:
    def test_contest(self):
        table = LiveTable.from_dict(_payload())
        assert table.contest.name == "Annecy 4 Lift 2025 - Dimanche matin"
        assert table.contest.slug == "annecy-4-lift-2025-dimanche-matin-39"
        assert table.running_attempt_id is None

    def test_movements(self):
        table = LiveTable.from_dict(_payload())
        assert table.movements["1"].name == "Traction"
        assert table.movements["4"].order == 4

    def test_athlete_results(self):
        table = LiveTable.from_dict(_payload())
        jean = table.results["12"]["101"]
        assert jean.info.first_name == "jean"
        assert jean.info.reglage_squat == "12"
        assert jean.rank == 1
        pull = jean.movements["1"]
        assert pull.attempts["1"].decision_rep == "110"
        assert pull.attempts["2"].decision_rep == 0
        assert pull.attempts["3"] is None

    def test_string_rank_kept(self):
        table = LiveTable.from_dict(_payload())
        assert table.results["14"]["201"].rank == "DSQ"
        assert table.results["14"]["201"].info.is_out is True

    def test_empty_list_maps_treated_as_empty(self):
        data = _payload()
        data["results"]["results"] = []
        data["results"]["categories"] = []
        table = LiveTable.from_dict(data)
        assert table.results == {}
        assert table.categories == {}

    def test_category_without_athletes(self):
        data = _payload()
        data["results"]["results"]["14"] = []
        assert LiveTable.from_dict(data).results["14"] == {}

    def test_missing_contest(self):
        data = _payload()
        del data["contest"]
        with pytest.raises(MalformedResponse, match="contest"):
            LiveTable.from_dict(data)

    def test_missing_athlete_info(self):
        data = _payload()
        del data["results"]["results"]["12"]["101"]["athleteInfo"]
        with pytest.raises(MalformedResponse, match="athleteInfo"):
            LiveTable.from_dict(data)

    def test_non_integer_attempt_number(self):
        data = _payload()
        data["results"]["results"]["12"]["101"]["results"]["1"]["results"]["1"]["noEssai"] = "first"
        with pytest.raises(MalformedResponse, match="noEssai"):
            LiveTable.from_dict(data)

    def test_unexpected_decision_type_becomes_none(self):
        data = _payload()
        data["results"]["results"]["12"]["101"]["results"]["1"]["results"]["1"]["decisionRep"] = [1, 1, 0]
        table = LiveTable.from_dict(data)
        assert table.results["12"]["101"].movements["1"].attempts["1"].decision_rep is None
