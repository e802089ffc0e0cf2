from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import requests

from ..config import REQUEST, RETRY
from ..utils.utilities import RateLimiter, with_retries


@dataclass
class HTTPJSONClient:
    """
    Small helper to standardize request + retry + rate limiting + stats counting.

    Provider clients pass in their own `requests.Session`, `stats` dict, and the desired
    rate limiter + counter key per endpoint. Exhausted retries raise UpstreamUnavailableError.
    """

    session: requests.Session
    stats: dict[str, Any] | None = None

    def _bump(self, key: str, amount: int = 1) -> None:
        if self.stats is None:
            return
        self.stats[key] = int(self.stats.get(key, 0) or 0) + amount

    @staticmethod
    def format_timing(stats: dict[str, Any] | None, *, key: str) -> str:
        """
        Format request counter and cumulative time for a key tracked via `_bump()`.
        """
        if not stats:
            return f"{key}=0"
        return f"{key}={int(stats.get(key, 0) or 0)} ({int(stats.get(f'{key}_ms', 0) or 0)}ms)"

    def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        status_handlers: dict[int, Any] | None = None,
        ratelimiter: RateLimiter | None = None,
        timeout_s: float = REQUEST.timeout_s,
        retries: int = RETRY.retries,
        base_sleep_s: float = RETRY.base_sleep_s,
        counter_key: str = "http_get",
        context: str,
    ) -> Any:
        def _request() -> Any:
            if ratelimiter is not None:
                ratelimiter.wait()
            self._bump(counter_key)
            kwargs: dict[str, Any] = {"timeout": timeout_s}
            if params is not None:
                kwargs["params"] = params
            if headers is not None:
                kwargs["headers"] = headers
            t0 = time.perf_counter()
            r = self.session.get(url, **kwargs)
            t1 = time.perf_counter()
            self._bump(f"{counter_key}_ms", int(round((t1 - t0) * 1000.0)))
            if status_handlers is not None and r.status_code in status_handlers:
                return status_handlers[r.status_code]
            r.raise_for_status()
            return r.json()

        return with_retries(
            _request,
            retries=retries,
            base_sleep_s=base_sleep_s,
            context=context,
            retry_stats=self.stats,
        )


@dataclass
class HTTPRequestDefaults:
    ratelimiter: RateLimiter | None = None
    timeout_s: float = REQUEST.timeout_s
    retries: int = RETRY.retries
    base_sleep_s: float = RETRY.base_sleep_s
    headers: dict[str, str] | None = None
    status_handlers: dict[int, Any] | None = None
    counter_key: str = "http_get"
    context_prefix: str | None = None


@dataclass
class ConfiguredHTTPJSONClient:
    """
    Convenience wrapper over HTTPJSONClient that carries default parameters.

    This keeps provider code concise by instantiating a per-endpoint client configured with
    its rate limiter, counter key, retry policy, etc.
    """

    http: HTTPJSONClient
    defaults: HTTPRequestDefaults

    def _ctx(self, context: str) -> str:
        prefix = self.defaults.context_prefix
        if prefix:
            return f"{prefix}{': ' if context else ''}{context}"
        return context

    def get_json(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        status_handlers: dict[int, Any] | None = None,
        counter_key: str | None = None,
        context: str = "",
    ) -> Any:
        merged_headers = self.defaults.headers if headers is None else headers
        merged_status = self.defaults.status_handlers if status_handlers is None else status_handlers
        return self.http.get_json(
            url,
            params=params,
            headers=merged_headers,
            status_handlers=merged_status,
            ratelimiter=self.defaults.ratelimiter,
            timeout_s=self.defaults.timeout_s,
            retries=self.defaults.retries,
            base_sleep_s=self.defaults.base_sleep_s,
            counter_key=counter_key or self.defaults.counter_key,
            context=self._ctx(context),
        )
