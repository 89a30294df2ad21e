"""
Tests for subject_core.api: the paginated client, backoff and the scrape step.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
import requests

from subject_core.api import SubjectsClient, backoff_delay, scrape
from subject_core.config import ApiConfig
from subject_core.exceptions import ApiError, ConversionError, TooManyRetriesError
from subject_core.rate_limit import RateLimiter
from subject_core.secrets import SecretStr
from subject_core.store import DirectoryStore

TOKEN = "0123abcd-0000-1111-2222-333344445555"
BASE_URL = "https://api.example.com/v2"


def _response(status_code: int = 200, body: Any = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body if body is not None else {}
    return response


class FakeSession:
    """Stands in for requests.Session, replaying canned responses."""

    def __init__(self, responses: list[Any]) -> None:
        self.headers: dict[str, str] = {}
        self.responses = list(responses)
        self.calls: list[tuple[str, Any]] = []
        self.closed = False

    def get(self, url: str, params: Any = None, timeout: float | None = None) -> Any:
        self.calls.append((url, params))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self) -> None:
        self.closed = True


def _page(data: list[dict[str, Any]], next_url: str | None = None) -> MagicMock:
    return _response(200, {"object": "collection", "pages": {"next_url": next_url}, "data": data})


def _radical(subject_id: int) -> dict[str, Any]:
    return {
        "id": subject_id,
        "object": "radical",
        "data": {"level": 1, "slug": f"r{subject_id}", "characters": "一", "meanings": []},
    }


@pytest.fixture
def api_config() -> ApiConfig:
    return ApiConfig(token=SecretStr(TOKEN), base_url=BASE_URL, max_tries=3)


def _client(api_config: ApiConfig, session: FakeSession, clock) -> SubjectsClient:
    return SubjectsClient(
        api_config,
        session=session,  # type: ignore[arg-type]
        limiter=RateLimiter.for_interval(1.0, clock=clock, sleep=clock.sleep),
        sleep=clock.sleep,
        uniform=lambda low, high: high,
    )


class TestBackoff:
    def test_grows_exponentially_up_to_maximum(self) -> None:
        def delays(attempts: int) -> list[float]:
            return [
                backoff_delay(a, minimum=1.0, maximum=10.0, factor=2.0, uniform=lambda lo, hi: hi)
                for a in range(attempts)
            ]

        assert delays(6) == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]

    def test_jitter_stays_within_bounds(self) -> None:
        seen = []

        def uniform(low: float, high: float) -> float:
            seen.append((low, high))
            return low

        assert backoff_delay(3, minimum=1.0, maximum=10.0, factor=2.0, uniform=uniform) == 1.0
        assert seen == [(1.0, 8.0)]


class TestSubjectsClient:
    def test_sets_auth_header(self, api_config: ApiConfig, deterministic_clock) -> None:
        session = FakeSession([])
        _client(api_config, session, deterministic_clock)
        assert session.headers["Authorization"] == f"Bearer {TOKEN}"

    def test_requires_token(self, deterministic_clock) -> None:
        with pytest.raises(ApiError):
            SubjectsClient(ApiConfig(token=SecretStr(None)), session=FakeSession([]))  # type: ignore[arg-type]

    def test_follows_pagination(self, api_config: ApiConfig, deterministic_clock) -> None:
        session = FakeSession(
            [
                _page([_radical(1), _radical(2)], next_url=f"{BASE_URL}/subjects?page_after_id=2"),
                _page([_radical(3)]),
            ]
        )
        client = _client(api_config, session, deterministic_clock)
        ids = [obj["id"] for obj in client.iter_subjects("radical")]
        assert ids == [1, 2, 3]
        assert session.calls == [
            (f"{BASE_URL}/subjects", {"types": "radical"}),
            (f"{BASE_URL}/subjects?page_after_id=2", None),
        ]

    def test_requests_are_spaced(self, api_config: ApiConfig, deterministic_clock) -> None:
        session = FakeSession([_page([]), _page([])])
        client = _client(api_config, session, deterministic_clock)
        client.get(f"{BASE_URL}/a")
        client.get(f"{BASE_URL}/b")
        assert deterministic_clock.sleep_calls == [pytest.approx(1.0)]

    def test_retries_rate_limited_requests(self, api_config: ApiConfig, deterministic_clock) -> None:
        session = FakeSession([_response(429), _response(429), _response(200, {"ok": True})])
        client = _client(api_config, session, deterministic_clock)
        assert client.get(f"{BASE_URL}/x") == {"ok": True}
        assert deterministic_clock.sleep_calls == [1.0, 2.0]

    def test_too_many_retries(self, api_config: ApiConfig, deterministic_clock) -> None:
        session = FakeSession([_response(429)] * 3)
        client = _client(api_config, session, deterministic_clock)
        with pytest.raises(TooManyRetriesError) as excinfo:
            client.get(f"{BASE_URL}/x")
        assert excinfo.value.code == "too_many_retries"
        assert excinfo.value.context["tries"] == 3
        assert len(session.calls) == 3

    def test_other_status_fails_immediately(self, api_config: ApiConfig, deterministic_clock) -> None:
        session = FakeSession([_response(500)])
        client = _client(api_config, session, deterministic_clock)
        with pytest.raises(ApiError) as excinfo:
            client.get(f"{BASE_URL}/x")
        assert not isinstance(excinfo.value, TooManyRetriesError)
        assert excinfo.value.context["status"] == 500

    def test_connection_error(self, api_config: ApiConfig, deterministic_clock) -> None:
        session = FakeSession([requests.ConnectionError("refused")])
        client = _client(api_config, session, deterministic_clock)
        with pytest.raises(ApiError):
            client.get(f"{BASE_URL}/x")

    def test_close_closes_session(self, api_config: ApiConfig, deterministic_clock) -> None:
        session = FakeSession([])
        with _client(api_config, session, deterministic_clock):
            pass
        assert session.closed


class TestScrape:
    def test_writes_new_subjects_and_skips_existing(
        self, tmp_path: Path, api_config: ApiConfig, deterministic_clock, radical_factory
    ) -> None:
        store = DirectoryStore(tmp_path)
        store.write(2, radical_factory(slug="already-here"))
        session = FakeSession([_page([_radical(1), _radical(2), _radical(3)])])
        client = _client(api_config, session, deterministic_clock)

        summary = scrape(client, store)

        assert (summary.fetched, summary.written, summary.skipped) == (3, 2, 1)
        assert store.ids() == [1, 2, 3]
        assert store.read(2).slug == "already-here"
        assert store.read(3).slug == "r3"

    def test_refetch_overwrites(self, tmp_path: Path, api_config: ApiConfig, deterministic_clock, radical_factory) -> None:
        store = DirectoryStore(tmp_path)
        store.write(2, radical_factory(slug="stale"))
        session = FakeSession([_page([_radical(2)])])
        scrape(_client(api_config, session, deterministic_clock), store, skip_existing=False)
        assert store.read(2).slug == "r2"

    def test_conversion_error_propagates(self, tmp_path: Path, api_config: ApiConfig, deterministic_clock) -> None:
        bad = {"id": 5, "object": "kanji", "data": {"level": 1, "auxiliary_meanings": [{"meaning": "x", "type": "odd"}]}}
        session = FakeSession([_page([bad])])
        with pytest.raises(ConversionError):
            scrape(_client(api_config, session, deterministic_clock), DirectoryStore(tmp_path))
