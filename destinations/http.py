"""HTTP client for the PostgREST store with retry/backoff and request budgeting."""
from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


class BudgetExceededError(RuntimeError):
    pass


@dataclass
class RequestMetrics:
    network_reads: int = 0
    network_writes: int = 0
    retries: int = 0
    failures: int = 0

    @property
    def reads_count(self) -> int:
        return self.network_reads

    @property
    def writes_count(self) -> int:
        return self.network_writes

    def inc_network(self, kind: str) -> None:
        if kind == "read":
            self.network_reads += 1
        elif kind == "write":
            self.network_writes += 1
        else:
            raise ValueError(f"Unknown request kind: {kind}")


class RequestBudget:
    def __init__(
        self,
        max_reads: int,
        max_writes: int,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.max_reads = max_reads
        self.max_writes = max_writes
        self.metrics = metrics
        self._reads_count = 0
        self._writes_count = 0

    @property
    def reads_count(self) -> int:
        if self.metrics is not None:
            return int(self.metrics.network_reads)
        return self._reads_count

    @property
    def writes_count(self) -> int:
        if self.metrics is not None:
            return int(self.metrics.network_writes)
        return self._writes_count

    def consume(self, kind: str) -> None:
        if kind == "read":
            if self.reads_count >= self.max_reads:
                raise BudgetExceededError(
                    f"Read request budget exceeded: {self.reads_count} >= {self.max_reads}"
                )
            if self.metrics is not None:
                self.metrics.inc_network("read")
            else:
                self._reads_count += 1
        elif kind == "write":
            if self.writes_count >= self.max_writes:
                raise BudgetExceededError(
                    f"Write request budget exceeded: {self.writes_count} >= {self.max_writes}"
                )
            if self.metrics is not None:
                self.metrics.inc_network("write")
            else:
                self._writes_count += 1
        else:
            raise ValueError(f"Unknown budget kind: {kind}")


class HttpClient:
    def __init__(
        self,
        api_key: str,
        timeout: int = 20,
        retry_max: int = 4,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        metrics: Optional[RequestMetrics] = None,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self.retry_max = retry_max
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.metrics = metrics
        self.session = requests.Session()

    def _headers(self, extra_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if extra_headers:
            headers.update(extra_headers)
        return headers

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, str]] = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return self._request("GET", url, params=params, extra_headers=extra_headers)

    def post_json(
        self,
        url: str,
        body: Any,
        params: Optional[Dict[str, str]] = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return self._request("POST", url, params=params, body=body, extra_headers=extra_headers)

    def patch_json(
        self,
        url: str,
        body: Any,
        params: Optional[Dict[str, str]] = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        return self._request("PATCH", url, params=params, body=body, extra_headers=extra_headers)

    def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, str]] = None,
        body: Any = None,
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        headers = self._headers(extra_headers)
        payload = json.dumps(body) if body is not None else None
        for attempt in range(1, self.retry_max + 1):
            try:
                resp = self.session.request(
                    method, url, params=params, data=payload, headers=headers, timeout=self.timeout
                )
            except requests.RequestException as exc:
                logger.warning("%s %s failed: %s (attempt %s)", method, url, exc, attempt)
                if attempt >= self.retry_max:
                    self._count_failure()
                    raise
                self._count_retry()
                self._sleep_backoff(attempt)
                continue

            status = resp.status_code
            if 200 <= status < 300:
                if status == 204 or not resp.content:
                    return None
                try:
                    return resp.json()
                except ValueError:
                    logger.error("Non-JSON response from %s", url)
                    self._count_failure()
                    raise

            if status in RETRYABLE_STATUSES:
                logger.warning("HTTP %s from %s (attempt %s)", status, url, attempt)
                if attempt >= self.retry_max:
                    self._count_failure()
                    resp.raise_for_status()
                self._count_retry()
                if not self._sleep_retry_after(resp):
                    self._sleep_backoff(attempt)
                continue

            # Non-retryable
            logger.error("HTTP %s from %s", status, url)
            self._count_failure()
            resp.raise_for_status()
            raise requests.HTTPError(f"Unexpected HTTP {status} from {url}", response=resp)

        raise RuntimeError("Unexpected HTTP retry loop exit")

    def _count_retry(self) -> None:
        if self.metrics is not None:
            self.metrics.retries += 1

    def _count_failure(self) -> None:
        if self.metrics is not None:
            self.metrics.failures += 1

    def _sleep_backoff(self, attempt: int) -> None:
        base = min(self.backoff_base * (2 ** (attempt - 1)), self.backoff_max)
        jitter = random.uniform(0, self.backoff_base)
        time.sleep(base + jitter)

    def _sleep_retry_after(self, resp: requests.Response) -> bool:
        retry_after = resp.headers.get("Retry-After")
        if not retry_after:
            return False
        try:
            delay = float(retry_after)
        except ValueError:
            return False
        delay = max(0.0, min(delay, self.backoff_max))
        time.sleep(delay)
        return True
