from __future__ import annotations

import threading

import requests

from fakes import FakeRAWG, FakeSteam, metadata, priced, steam_store, summary


def _service(store, rawg, steam=None, **kwargs):
    from game_catalog_sync.services import DiscoveryService, GameAggregator

    return DiscoveryService(store, rawg, GameAggregator(rawg, steam or FakeSteam()), **kwargs)


def test_short_query_returns_empty_local_without_remote_calls(store):
    rawg = FakeRAWG(search_error=AssertionError("remote search must not run"))

    for query in ("", " ", "a", "  b  "):
        response = _service(store, rawg).search_and_sync(query)
        assert response.results == []
        assert response.source == "local"


def test_elden_ring_is_imported_once_with_steam_price(store):
    rawg = FakeRAWG(
        {99999: metadata(99999, "Elden Ring", stores=[steam_store(1245620)])},
        search_results=[summary(99999, "Elden Ring")],
    )
    steam = FakeSteam({1245620: priced(5999)})

    response = _service(store, rawg, steam).search_and_sync("Elden Ring")

    assert response.source == "mixed"
    assert len(response.results) == 1
    result = response.results[0]
    assert result.title == "Elden Ring"
    assert result.price == 59.99
    assert store.count() == 1
    assert store.find_by_title("Elden Ring").steam_app_id == 1245620

    # A second search finds the local row and imports nothing.
    again = _service(store, rawg, steam).search_and_sync("elden ring")
    assert [r.id for r in again.results] == [result.id]
    assert rawg.details_calls == [99999]


def test_local_title_match_ignores_case_and_punctuation(store):
    store.create_game({"title": "ELDEN RING", "genres": ["RPG"], "platforms": ["PC"]})
    rawg = FakeRAWG(
        {99999: metadata(99999, "Elden-Ring")},
        search_results=[summary(99999, "Elden-Ring")],
    )

    response = _service(store, rawg).search_and_sync("elden")

    assert [r.title for r in response.results] == ["ELDEN RING"]
    assert rawg.details_calls == []
    assert store.count() == 1


def test_remote_search_failure_degrades_to_local(store):
    store.create_game({"title": "Hades", "genres": ["Roguelike"], "platforms": ["PC"]})
    rawg = FakeRAWG(search_error=requests.exceptions.ConnectionError("offline"))

    response = _service(store, rawg).search_and_sync("hades")

    assert response.source == "local"
    assert [r.title for r in response.results] == ["Hades"]


def test_failed_candidate_is_skipped_and_others_import(store):
    from game_catalog_sync.errors import UpstreamUnavailableError

    rawg = FakeRAWG(
        {
            1: UpstreamUnavailableError("RAWG details timed out"),
            2: metadata(2, "Portal 2"),
        },
        search_results=[summary(1, "Portal"), summary(2, "Portal 2")],
    )

    response = _service(store, rawg).search_and_sync("portal")

    assert response.source == "mixed"
    assert [r.title for r in response.results] == ["Portal 2"]


def test_filters_apply_to_imported_games(store):
    from game_catalog_sync.catalog import SearchFilters

    rawg = FakeRAWG(
        {
            1: metadata(1, "Dead Space", genres=["Action", "Horror"]),
            2: metadata(2, "Dead Cells", genres=["Action", "Roguelike"]),
        },
        search_results=[summary(1, "Dead Space"), summary(2, "Dead Cells")],
    )

    response = _service(store, rawg).search_and_sync("dead", SearchFilters(genre="horror"))

    assert [r.title for r in response.results] == ["Dead Space"]
    # Both games are persisted; the filter only narrows the response.
    assert store.count() == 2


def test_results_keep_remote_order_and_local_first(store):
    store.create_game({"title": "Zelda Local", "genres": ["Adventure"], "platforms": ["Switch"]})
    rawg = FakeRAWG(
        {i: metadata(i, f"Zelda {i}") for i in (1, 2, 3)},
        search_results=[summary(3, "Zelda 3"), summary(1, "Zelda 1"), summary(2, "Zelda 2")],
    )

    response = _service(store, rawg, max_workers=3).search_and_sync("zelda")

    assert [r.title for r in response.results] == ["Zelda Local", "Zelda 3", "Zelda 1", "Zelda 2"]


def test_duplicate_remote_titles_import_once(store):
    rawg = FakeRAWG(
        {1: metadata(1, "Tetris"), 2: metadata(2, "TETRIS")},
        search_results=[summary(1, "Tetris"), summary(2, "TETRIS")],
    )

    response = _service(store, rawg).search_and_sync("tetris")

    assert [r.title for r in response.results] == ["Tetris"]
    assert store.count() == 1


def test_concurrent_import_race_keeps_single_row(store):
    """A row inserted by a concurrent request between the check and the insert is not duplicated,
    even when its title differs in case."""
    rawg = FakeRAWG(
        {5: metadata(5, "Celeste")},
        search_results=[summary(5, "Celeste")],
    )

    class RacingRAWG(FakeRAWG):
        def get_details(self, rawg_id):
            record = super().get_details(rawg_id)
            store.create_game({"title": "CELESTE", "genres": [], "platforms": []})
            return record

    racing = RacingRAWG(rawg.records, rawg.search_results)
    response = _service(store, racing).search_and_sync("celeste")

    assert response.results == []
    assert store.count() == 1


def test_response_serializes_camel_case():
    from game_catalog_sync.services import DiscoveryResponse, UnifiedSearchResult

    result = UnifiedSearchResult(
        id=1,
        title="Hades",
        price=24.5,
        currency="USD",
        genres=["Roguelike"],
        developer="Supergiant Games",
        publisher="Supergiant Games",
        score=9,
        metacritic=93,
        rawg_id=274755,
    )
    payload = DiscoveryResponse([result], "mixed").to_dict()

    assert payload["source"] == "mixed"
    row = payload["results"][0]
    assert set(row) == {
        "id",
        "title",
        "image",
        "price",
        "currency",
        "genres",
        "platforms",
        "developer",
        "publisher",
        "stats",
        "rawgId",
        "isExternal",
        "inLibrary",
    }
    assert row["publisher"] == "Supergiant Games"
    assert row["stats"] == {"score": 9, "rating": 93}
    assert row["rawgId"] == 274755
    assert row["isExternal"] is False
    assert row["inLibrary"] is False


def test_result_from_catalog_row_hides_internal_fields(store):
    from game_catalog_sync.services import UnifiedSearchResult

    game = store.create_game(
        {
            "title": "Hades",
            "publisher": "Supergiant Games",
            "score": 9,
            "metacritic": 93,
            "is_owned": True,
            "steam_app_id": 1145360,
        }
    )

    row = UnifiedSearchResult.from_game(game).to_dict()

    assert row["stats"] == {"score": 9, "rating": 93}
    assert row["publisher"] == "Supergiant Games"
    assert row["inLibrary"] is False
    assert "steamAppId" not in row
    assert "isOwned" not in row


def test_filtered_out_local_title_is_not_imported_again(store):
    from game_catalog_sync.catalog import SearchFilters

    store.create_game({"title": "ELDEN RING", "genres": ["RPG"], "platforms": ["PC"]})
    rawg = FakeRAWG(
        {99999: metadata(99999, "Elden Ring", genres=["RPG"])},
        search_results=[summary(99999, "Elden Ring")],
    )

    response = _service(store, rawg).search_and_sync("elden ring", SearchFilters(genre="horror"))

    assert response.results == []
    assert rawg.details_calls == []
    assert store.count() == 1


def test_title_beyond_local_page_is_not_imported_again(store):
    for i in range(3):
        store.create_game({"title": f"Doom {i}", "genres": ["Shooter"], "platforms": ["PC"]})
    store.create_game({"title": "DOOM", "genres": ["Shooter"], "platforms": ["PC"]})
    rawg = FakeRAWG(
        {1: metadata(1, "Doom")},
        search_results=[summary(1, "Doom")],
    )

    response = _service(store, rawg, local_limit=2).search_and_sync("doom")

    assert len(response.results) == 2
    assert rawg.details_calls == []
    assert store.count() == 4


def test_imports_run_in_parallel(store):
    barrier = threading.Barrier(2, timeout=5)

    class BlockingRAWG(FakeRAWG):
        def get_details(self, rawg_id):
            barrier.wait()
            return super().get_details(rawg_id)

    rawg = BlockingRAWG(
        {1: metadata(1, "Ori 1"), 2: metadata(2, "Ori 2")},
        search_results=[summary(1, "Ori 1"), summary(2, "Ori 2")],
    )

    response = _service(store, rawg, max_workers=2).search_and_sync("ori")
    assert len(response.results) == 2
