from __future__ import annotations

import logging
import os
import random
import re
import threading
import time
from pathlib import Path
from typing import Any, Callable

import requests
import yaml
from rapidfuzz import fuzz

from ..config import RAWG_API_KEY_ENV, RETRY
from ..errors import UpstreamUnavailableError

# ----------------------------
# Name normalization
# ----------------------------

_ROMAN_MAP = {
    " i ": " 1 ",
    " ii ": " 2 ",
    " iii ": " 3 ",
    " iv ": " 4 ",
    " v ": " 5 ",
    " vi ": " 6 ",
    " vii ": " 7 ",
    " viii ": " 8 ",
    " ix ": " 9 ",
    " x ": " 10 ",
}

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def normalize_game_name(name: str) -> str:
    """
    Normalize names to improve matching between catalogs.
    - lowercase
    - remove punctuation
    - collapse spaces
    - convert '®™' etc
    - roman numerals to arabic for typical cases (I, II, III...)
    """
    s = (name or "").strip().lower()
    s = s.replace("™", "").replace("®", "").replace("©", "")
    s = re.sub(r"[\(\)\[\]\{\}]", " ", s)
    s = re.sub(r"[’'`]", "", s)  # apostrophes
    s = re.sub(r"[:\-–—_/\\|]", " ", s)
    s = re.sub(r"[.,!?+*&%$#@~]", " ", s)

    s = f" {s} "
    for k, v in _ROMAN_MAP.items():
        s = s.replace(k, v)

    s = re.sub(r"\s+", " ", s).strip()
    return s


def compact_title(title: str) -> str:
    """
    Identity key used to decide whether a remote title already exists locally.

    Lowercase with every non-alphanumeric character removed, so "ELDEN RING™" and
    "Elden-Ring" collapse to the same key.
    """
    return _NON_ALNUM_RE.sub("", str(title or "").lower())


# ----------------------------
# Fuzzy matching
# ----------------------------


_EDITION_TOKENS = {
    "remake",
    "hd",
    "classic",
    "definitive",
    "remastered",
    "ultimate",
    "goty",
    "anniversary",
    "complete",
    "collection",
    "edition",
    "enhanced",
    "redux",
    "directors",
    "director",
    "cut",
    "game",
    "of",
    "the",
    "year",
}

_DLC_LIKE_TOKENS = {
    "soundtrack",
    "demo",
    "beta",
    "dlc",
    "expansion",
    "pack",
    "season",
    "pass",
}


def _is_year_token(t: str) -> bool:
    return t.isdigit() and len(t) == 4 and 1900 <= int(t) <= 2100


def _token_set(s: str) -> set[str]:
    return set(normalize_game_name(s).split())


def _series_numbers_tokens(tokens: set[str]) -> set[int]:
    out: set[int] = set()
    for t in tokens:
        if not t.isdigit():
            continue
        # Avoid leading-zero “brand” tokens like 007.
        if len(t) > 1 and t.startswith("0"):
            continue
        n = int(t)
        if n == 0 or 1900 <= n <= 2100:
            continue
        if n <= 50:
            out.add(n)
    return out


def looks_dlc_like(name: str) -> bool:
    tokens = _token_set(name)
    return any(t in tokens for t in _DLC_LIKE_TOKENS)


def fuzzy_score(a: str, b: str) -> int:
    """
    Calculate fuzzy matching score between two strings.

    Uses token_sort_ratio to avoid false 100% substring matches, while still allowing
    year/edition expansions (e.g. "Doom" vs "Doom 2016") via partial_ratio.
    """
    na = normalize_game_name(a)
    nb = normalize_game_name(b)
    score_sort = float(fuzz.token_sort_ratio(na, nb))
    score_partial = float(fuzz.partial_ratio(na, nb))

    tokens_a = set(na.split())
    tokens_b = set(nb.split())

    # Partial matches only count when one side is a strict superset of the other and the
    # difference is a year token or edition tokens.
    extra_a = tokens_a - tokens_b
    extra_b = tokens_b - tokens_a
    year_only_a = bool(extra_a) and all(_is_year_token(t) for t in extra_a)
    year_only_b = bool(extra_b) and all(_is_year_token(t) for t in extra_b)
    edition_only_a = bool(extra_a) and all(t in _EDITION_TOKENS for t in extra_a)
    edition_only_b = bool(extra_b) and all(t in _EDITION_TOKENS for t in extra_b)

    allow_partial = (
        (year_only_a and not extra_b)
        or (year_only_b and not extra_a)
        or (edition_only_a and not extra_b)
        or (edition_only_b and not extra_a)
    )

    if not allow_partial:
        return int(score_sort)
    return int(max(score_sort, score_partial))


def pick_best_match(
    query: str,
    candidates: list[dict[str, Any]],
    name_key: str = "name",
) -> tuple[dict[str, Any] | None, int, list[tuple[str, int]]]:
    """
    Given a query and a list of dicts (candidates), choose the candidate with the best fuzzy score.

    Returns (best_candidate, best_score, top_matches). top_matches holds (name, score) for up to
    five runners-up. Equal scores keep the upstream order.
    """
    scored = []
    q_series = _series_numbers_tokens(_token_set(query))
    for position, c in enumerate(candidates):
        cname = str(c.get(name_key, "") or "")
        score = fuzzy_score(query, cname)
        c_series = _series_numbers_tokens(_token_set(cname))

        # Penalize likely sequel matches when the query has no sequel number, and different
        # sequel numbers when both sides have one ("Postal 4" vs "Postal 2").
        penalty = 15 if (not q_series and c_series) else 0
        penalty += 20 if (q_series and c_series and q_series.isdisjoint(c_series)) else 0
        penalty += 20 if looks_dlc_like(cname) else 0
        adjusted = max(0, min(100, score - penalty))
        scored.append((c, cname, score, adjusted, position))

    if not scored:
        return None, -1, []

    scored.sort(key=lambda x: (-x[3], -x[2], x[4]))
    best, _best_name, _best_score, best_adjusted, _ = scored[0]
    top_matches = [(name, score) for _, name, score, *_ in scored[1:6] if score > 0]
    return best, int(best_adjusted), top_matches


# ----------------------------
# Rate limiting + retries
# ----------------------------


class RateLimiter:
    """
    Simple rate limiter: enforces minimum interval between requests.

    Shared by the worker threads of a discovery request, so the bookkeeping is locked.
    """

    def __init__(self, min_interval_s: float = 1.0):
        self.min_interval_s = float(min_interval_s)
        self._last = 0.0
        self._lock = threading.Lock()

    def wait(self) -> None:
        if self.min_interval_s <= 0:
            return
        with self._lock:
            # Use monotonic time to avoid issues if the system clock changes.
            now = time.monotonic()
            delta = now - self._last
            if delta < self.min_interval_s:
                time.sleep(self.min_interval_s - delta)
            self._last = time.monotonic()


_NETWORK_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.SSLError,
)


def _retry_after_s(exc: BaseException) -> float | None:
    if not isinstance(exc, requests.exceptions.HTTPError):
        return None
    resp = getattr(exc, "response", None)
    if getattr(resp, "status_code", None) != 429:
        return None
    headers = getattr(resp, "headers", {}) or {}
    raw = str(headers.get("Retry-After", "") or "").strip()
    try:
        return float(raw) if raw else RETRY.http_429_default_retry_after_s
    except ValueError:
        return RETRY.http_429_default_retry_after_s


def with_retries(
    fn: Callable[[], Any],
    *,
    retries: int = RETRY.retries,
    base_sleep_s: float = RETRY.base_sleep_s,
    jitter_s: float = RETRY.jitter_s,
    retry_on: tuple[type[BaseException], ...] = (requests.exceptions.RequestException, ValueError),
    context: str,
    retry_stats: dict[str, Any] | None = None,
) -> Any:
    """
    Execute fn with retries and exponential backoff.

    When every attempt fails the last error is logged and re-raised as
    UpstreamUnavailableError so callers decide whether to degrade.
    """
    attempts = max(1, int(retries))
    for attempt in range(attempts):
        try:
            return fn()
        except retry_on as e:
            retry_after = _retry_after_s(e)
            is_network = isinstance(e, _NETWORK_ERRORS)
            is_http = isinstance(e, requests.exceptions.HTTPError)
            if retry_stats is not None:
                if retry_after is not None:
                    retry_stats["http_429"] = int(retry_stats.get("http_429", 0)) + 1
                if is_network:
                    retry_stats["network_errors"] = int(retry_stats.get("network_errors", 0)) + 1
                if is_http:
                    retry_stats["http_errors"] = int(retry_stats.get("http_errors", 0)) + 1

            if attempt == attempts - 1:
                # Keep network-offline situations distinct from provider "not found" cases.
                if is_network:
                    logging.error(f"[NETWORK] {context}: {type(e).__name__}: {e}")
                elif is_http:
                    logging.error(f"[HTTP] {context}: {type(e).__name__}: {e}")
                else:
                    logging.error(f"[REQUEST] {context}: {type(e).__name__}: {e}")
                raise UpstreamUnavailableError(f"{context} failed: {e}") from e

            sleep = base_sleep_s * (2**attempt) + random.uniform(0, jitter_s)
            if retry_after is not None and retry_after > 0:
                sleep = max(sleep, retry_after)
            if retry_stats is not None:
                retry_stats["retry_attempts"] = int(retry_stats.get("retry_attempts", 0)) + 1
            time.sleep(sleep)
    raise UpstreamUnavailableError(f"{context} failed")


# ----------------------------
# Credentials loading
# ----------------------------


def load_credentials(credentials_path: str | Path | None = None) -> dict[str, Any]:
    """
    Load credentials from a YAML file.

    Args:
        credentials_path: Path to credentials.yaml file. If None, looks for
                         data/credentials.yaml in the project root.

    Returns:
        Dictionary with credentials (e.g., {'rawg': {'api_key': ...}}). A missing default
        file yields {} so environment variables can supply the keys instead.
    """
    if credentials_path is None:
        root = Path(__file__).resolve().parent.parent.parent
        path = root / "data" / "credentials.yaml"
        if not path.exists():
            return {}
    else:
        path = Path(credentials_path)
        if not path.exists():
            raise FileNotFoundError(
                f"Credentials file not found: {path}\n"
                "Please create data/credentials.yaml with your API keys."
            )

    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def resolve_rawg_api_key(credentials: dict[str, Any] | None = None) -> str:
    key = os.getenv(RAWG_API_KEY_ENV, "").strip()
    if key:
        return key
    rawg = (credentials or {}).get("rawg") or {}
    key = str(rawg.get("api_key", "") or "").strip() if isinstance(rawg, dict) else ""
    if not key:
        raise ValueError(
            f"RAWG API key is not configured: set {RAWG_API_KEY_ENV} or rawg.api_key in "
            "data/credentials.yaml."
        )
    return key
