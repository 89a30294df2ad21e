"""Client for the paginated subjects API, and the scrape step that fills a directory store."""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

import requests

from subject_core.config import ApiConfig
from subject_core.converter import subject_from_api
from subject_core.exceptions import ApiError, TooManyRetriesError
from subject_core.rate_limit import RateLimiter
from subject_core.secrets import redact_string
from subject_core.store.directory import DirectoryStore

logger = logging.getLogger(__name__)

USER_AGENT = "subject-pipeline/0.1"
TOO_MANY_REQUESTS = 429


def backoff_delay(
    attempt: int,
    *,
    minimum: float,
    maximum: float,
    factor: float,
    uniform: Callable[[float, float], float] = random.uniform,
) -> float:
    """Jittered exponential backoff for the given zero-based attempt."""
    delay = min(maximum, minimum * factor**attempt)
    if delay <= minimum:
        return delay
    return uniform(minimum, delay)


class SubjectsClient:
    def __init__(
        self,
        config: ApiConfig,
        *,
        session: requests.Session | None = None,
        limiter: RateLimiter | None = None,
        sleep: Callable[[float], None] = time.sleep,
        uniform: Callable[[float, float], float] = random.uniform,
    ) -> None:
        if not config.token:
            raise ApiError("An API token is required", context={"base_url": config.base_url})
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {config.token.reveal()}",
                "User-Agent": USER_AGENT,
            }
        )
        self.limiter = limiter or RateLimiter.for_interval(config.request_interval)
        self._sleep = sleep
        self._uniform = uniform

    def __enter__(self) -> SubjectsClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def get(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        self.limiter.acquire()
        logger.info("Fetching %s", url)
        config = self.config
        for attempt in range(config.max_tries):
            try:
                resp = self.session.get(url, params=params, timeout=config.timeout)
            except requests.RequestException as exc:
                raise ApiError(
                    f"Request for {url} failed: {redact_string(str(exc))}", context={"url": url}
                ) from exc

            if resp.status_code == TOO_MANY_REQUESTS:
                delay = backoff_delay(
                    attempt,
                    minimum=config.backoff_min,
                    maximum=config.backoff_max,
                    factor=config.backoff_factor,
                    uniform=self._uniform,
                )
                logger.warning("Request for %s rate limited (HTTP 429), retrying after %.1fs", url, delay)
                self._sleep(delay)
                continue
            if resp.status_code != 200:
                raise ApiError(
                    f"Request for {url} failed: HTTP {resp.status_code}",
                    context={"url": url, "status": resp.status_code},
                )
            try:
                return resp.json()
            except ValueError as exc:
                raise ApiError(f"Response from {url} is not JSON", context={"url": url}) from exc

        raise TooManyRetriesError(
            f"Request for {url} failed too many times",
            context={"url": url, "tries": config.max_tries},
        )

    def iter_subjects(self, subject_type: str | None = None) -> Iterator[dict[str, Any]]:
        """Yield raw subject objects, following ``pages.next_url`` until it runs out."""
        url: str | None = f"{self.config.base_url}/subjects"
        params = {"types": subject_type} if subject_type else None
        while url:
            page = self.get(url, params=params)
            yield from page.get("data") or []
            url = (page.get("pages") or {}).get("next_url")
            # next_url already carries the query string.
            params = None


@dataclass
class ScrapeSummary:
    fetched: int = 0
    written: int = 0
    skipped: int = 0


def scrape(client: SubjectsClient, store: DirectoryStore, *, skip_existing: bool = True) -> ScrapeSummary:
    """Convert every API subject and write it to ``store`` under its ID."""
    summary = ScrapeSummary()
    for obj in client.iter_subjects():
        summary.fetched += 1
        subject_id = obj.get("id")
        if skip_existing and isinstance(subject_id, int) and store.has(subject_id):
            summary.skipped += 1
            continue
        subject = subject_from_api(obj)
        if (obj.get("data") or {}).get("hidden_at"):
            logger.debug("Subject %d is hidden; writing it anyway", subject.id)
        store.write(subject.id, subject)
        summary.written += 1
    logger.info(
        "Scrape finished: %d fetched, %d written, %d already present",
        summary.fetched,
        summary.written,
        summary.skipped,
    )
    return summary
