from __future__ import annotations

import pytest


def _resp(payload, status_code: int = 200):
    import requests

    class Resp:
        headers: dict[str, str] = {}

        def __init__(self):
            self.status_code = status_code

        def raise_for_status(self):
            if self.status_code >= 400:
                raise requests.exceptions.HTTPError(f"{self.status_code}", response=self)

        def json(self):
            return payload

    return Resp()


ELDEN_RING_DETAILS = {
    "id": 326243,
    "name": "Elden Ring",
    "description_raw": "Rise, Tarnished.",
    "background_image": "https://media.rawg.io/elden.jpg",
    "rating": 4.4,
    "metacritic": 94,
    "released": "2022-02-25",
    "website": "https://en.bandainamcoent.eu/elden-ring",
    "platforms": [{"platform": {"name": "PC"}}, {"platform": {"name": "PlayStation 5"}}],
    "genres": [{"name": "Action"}, {"name": "RPG"}],
    "developers": [{"name": "FromSoftware"}],
    "publishers": [{"name": "Bandai Namco Entertainment"}],
    "stores": [
        {"url": "https://store.steampowered.com/app/1245620/ELDEN_RING/", "store": {"name": "Steam"}},
    ],
}


def test_rawg_search_is_cached_per_query_and_limit(monkeypatch):
    from game_catalog_sync.clients.rawg_client import RAWGClient

    calls: list[dict] = []

    def fake_get(_self, url, params=None, timeout=None):
        assert url.endswith("/games")
        calls.append(dict(params or {}))
        return _resp({"results": [{"id": 1, "name": "Elden Ring", "genres": [{"name": "RPG"}]}]})

    monkeypatch.setattr("requests.sessions.Session.get", fake_get)

    client = RAWGClient("k", min_interval_s=0.0, retries=1)
    first = client.search("elden", limit=5)
    second = client.search("elden", limit=5)

    assert first == second
    assert first[0].rawg_id == 1 and first[0].genres == ["RPG"]
    assert len(calls) == 1
    assert calls[0] == {"search": "elden", "page_size": 5, "key": "k"}

    client.search("elden", limit=10)
    assert len(calls) == 2


def test_rawg_search_failure_raises_upstream_unavailable(monkeypatch):
    import requests

    from game_catalog_sync.clients.rawg_client import RAWGClient
    from game_catalog_sync.errors import UpstreamUnavailableError

    def fake_get(_self, url, params=None, timeout=None):
        raise requests.exceptions.ConnectionError("offline")

    monkeypatch.setattr("requests.sessions.Session.get", fake_get)

    client = RAWGClient("k", min_interval_s=0.0, retries=1)
    with pytest.raises(UpstreamUnavailableError):
        client.search("elden")


def test_rawg_get_details_maps_payload(monkeypatch):
    from game_catalog_sync.clients.rawg_client import RAWGClient

    def fake_get(_self, url, params=None, timeout=None):
        assert url.endswith("/games/326243")
        return _resp(ELDEN_RING_DETAILS)

    monkeypatch.setattr("requests.sessions.Session.get", fake_get)

    record = RAWGClient("k", min_interval_s=0.0, retries=1).get_details(326243)
    assert record.name == "Elden Ring"
    assert record.platforms == ["PC", "PlayStation 5"]
    assert record.developers == ["FromSoftware"]
    assert record.stores[0].name == "Steam"
    assert record.stores[0].url.endswith("/app/1245620/ELDEN_RING/")


def test_rawg_get_details_404_is_not_found_without_retries(monkeypatch):
    from game_catalog_sync.clients.rawg_client import RAWGClient
    from game_catalog_sync.errors import NotFoundError

    calls = {"n": 0}

    def fake_get(_self, url, params=None, timeout=None):
        calls["n"] += 1
        return _resp({"detail": "Not found."}, status_code=404)

    monkeypatch.setattr("requests.sessions.Session.get", fake_get)

    client = RAWGClient("k", min_interval_s=0.0, retries=3)
    with pytest.raises(NotFoundError) as exc:
        client.get_details(999999)
    assert exc.value.status_code == 404
    assert calls["n"] == 1


def test_rawg_fetch_popular_sends_horror_as_tag(monkeypatch):
    from game_catalog_sync.clients.rawg_client import RAWGClient

    seen: list[dict] = []

    def fake_get(_self, url, params=None, timeout=None):
        seen.append(dict(params or {}))
        return _resp({"results": []})

    monkeypatch.setattr("requests.sessions.Session.get", fake_get)

    client = RAWGClient("k", min_interval_s=0.0, retries=1)
    client.fetch_popular(page=2, page_size=20, genre="horror")
    client.fetch_popular(page=1, page_size=20, genre="action")

    assert seen[0]["tags"] == "horror" and "genres" not in seen[0]
    assert seen[0]["platforms"] == 4 and seen[0]["ordering"] == "-added" and seen[0]["page"] == 2
    assert seen[1]["genres"] == "action"


def test_rawg_screenshots_failure_yields_empty_list(monkeypatch):
    import requests

    from game_catalog_sync.clients.rawg_client import RAWGClient

    def fake_get(_self, url, params=None, timeout=None):
        raise requests.exceptions.Timeout("slow")

    monkeypatch.setattr("requests.sessions.Session.get", fake_get)

    assert RAWGClient("k", min_interval_s=0.0, retries=1).get_screenshots(1) == []


def test_rawg_fetch_by_date_range_orders_by_metacritic(monkeypatch):
    from game_catalog_sync.clients.rawg_client import RAWGClient

    seen: list[dict] = []

    def fake_get(_self, url, params=None, timeout=None):
        seen.append(dict(params or {}))
        return _resp({"results": [{"id": 3, "name": "Baldur's Gate 3", "metacritic": 96}]})

    monkeypatch.setattr("requests.sessions.Session.get", fake_get)

    client = RAWGClient("k", min_interval_s=0.0, retries=1)
    games = client.fetch_by_date_range("2023-01-01", "2023-12-31")
    client.fetch_by_date_range("2023-01-01", "2023-12-31")

    assert [g.metacritic for g in games] == [96]
    assert len(seen) == 1
    assert seen[0]["dates"] == "2023-01-01,2023-12-31"
    assert seen[0]["ordering"] == "-metacritic"
