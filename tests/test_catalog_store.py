from __future__ import annotations

from datetime import date

import pytest


def _game(title: str, **kwargs):
    data = {
        "title": title,
        "genres": ["Action"],
        "platforms": ["PC"],
        "developer": "Studio",
        "publisher": "Publisher",
        "price": 10.0,
        "currency": "USD",
    }
    data.update(kwargs)
    return data


def test_create_game_returns_existing_title(store):
    first = store.create_game(_game("Hades"))
    second = store.create_game(_game("Hades", price=99.0))

    assert first.id == second.id
    assert second.price == 10.0
    assert store.count() == 1


def test_insert_if_absent_reports_duplicate_title(store):
    game, created = store.insert_if_absent(_game("Hades", rawg_id=1))
    assert created and game.id is not None

    again, created_again = store.insert_if_absent(_game("Hades", rawg_id=2))
    assert again is None and created_again is False
    assert store.count() == 1


def test_insert_requires_title(store):
    with pytest.raises(ValueError):
        store.insert_if_absent({"title": "  "})


def test_search_text_matches_title_genre_developer_platform(store):
    store.create_game(_game("Elden Ring", genres=["RPG"], developer="FromSoftware"))
    store.create_game(_game("Dead Space", genres=["Horror", "Shooter"], platforms=["PlayStation 5"]))
    store.create_game(_game("Stardew Valley", genres=["Simulation"], developer="ConcernedApe"))

    assert [g.title for g in store.search_text("elden")] == ["Elden Ring"]
    assert [g.title for g in store.search_text("HORROR")] == ["Dead Space"]
    assert [g.title for g in store.search_text("concerned")] == ["Stardew Valley"]
    assert [g.title for g in store.search_text("playstation")] == ["Dead Space"]


def test_search_text_treats_wildcards_literally(store):
    store.create_game(_game("100% Orange Juice"))
    store.create_game(_game("Portal"))

    assert [g.title for g in store.search_text("100%")] == ["100% Orange Juice"]
    assert store.search_text("_") == []


def test_search_text_filters_and_owned_first(store):
    store.create_game(_game("Doom Eternal", genres=["Shooter"]))
    store.create_game(_game("Doom 3", genres=["Shooter", "Horror"], is_owned=True))
    store.create_game(_game("Doom (1993)", genres=["Shooter"], developer="id Software"))

    from game_catalog_sync.catalog import SearchFilters

    results = store.search_text("doom")
    assert results[0].title == "Doom 3"

    assert [g.title for g in store.search_text("doom", SearchFilters(genre="horror"))] == ["Doom 3"]
    assert [g.title for g in store.search_text("doom", SearchFilters(developer="ID SOFT"))] == [
        "Doom (1993)"
    ]


def test_search_text_respects_limit(store):
    for i in range(5):
        store.create_game(_game(f"Puzzle {i}"))
    assert len(store.search_text("puzzle", limit=3)) == 3


def test_catalog_search_relevance_prefers_title_matches(store):
    store.create_game(_game("Shadow Tactics", genres=["Strategy"]))
    store.create_game(_game("Hollow Knight", genres=["Metroidvania"], developer="Team Cherry"))
    store.create_game(_game("Strategy Quest", genres=["Strategy"]))

    page = store.search("strategy", sort_by="relevance")
    assert [g.title for g in page.games] == ["Strategy Quest", "Shadow Tactics"]
    assert page.total == 2


def test_catalog_search_filters_sort_and_paginate(store):
    store.create_game(_game("A", released=date(2020, 1, 1), price=5.0, on_sale=True))
    store.create_game(_game("B", released=date(2022, 1, 1), price=30.0, genres=["RPG"]))
    store.create_game(_game("C", released=date(2021, 1, 1), price=15.0, platforms=["PC", "Xbox"]))

    page = store.search(limit=2, page=1)
    assert [g.title for g in page.games] == ["B", "C"]
    assert page.total == 3 and page.pages == 2

    assert [g.title for g in store.search(page=2, limit=2).games] == ["A"]
    assert [g.title for g in store.search(genre="RPG").games] == ["B"]
    assert [g.title for g in store.search(platform="Xbox").games] == ["C"]
    assert [g.title for g in store.search(on_sale=True).games] == ["A"]
    assert [g.title for g in store.search(max_price=15.0, sort_by="price", order="asc").games] == [
        "A",
        "C",
    ]


def test_catalog_search_rejects_unknown_sort(store):
    with pytest.raises(ValueError):
        store.search(sort_by="drop table")


def test_get_filters_lists_distinct_genres_and_platforms(store):
    store.create_game(_game("A", genres=["RPG", "Action"], platforms=["PC"]))
    store.create_game(_game("B", genres=["Action"], platforms=["Xbox", "PC"]))

    assert store.get_filters() == {"genres": ["Action", "RPG"], "platforms": ["PC", "Xbox"]}


def test_upsert_by_rawg_id_updates_existing_row(store):
    store.upsert_by_rawg_id(_game("Hades", rawg_id=7, price=24.99))
    updated = store.upsert_by_rawg_id(_game("Hades", rawg_id=7, price=12.49, on_sale=True))

    assert store.count() == 1
    assert updated.price == 12.49
    assert store.exists_by_rawg_id(7)
    assert not store.exists_by_rawg_id(8)


def test_upsert_title_conflict_raises_duplicate(store):
    from game_catalog_sync.errors import DuplicateGameError

    store.upsert_by_rawg_id(_game("Hades", rawg_id=7))
    with pytest.raises(DuplicateGameError) as exc:
        store.upsert_by_rawg_id(_game("Hades", rawg_id=8))
    assert exc.value.status_code == 409


def test_get_update_delete_unknown_id_raise_not_found(store):
    from game_catalog_sync.errors import NotFoundError

    with pytest.raises(NotFoundError):
        store.get_game(123)
    with pytest.raises(NotFoundError):
        store.update_game(123, {"price": 1.0})
    with pytest.raises(NotFoundError):
        store.delete_game(123)


def test_update_and_delete_game(store):
    game = store.create_game(_game("Hades"))
    store.update_game(game.id, {"price": 5.0, "id": 999})
    assert store.get_game(game.id).price == 5.0

    store.delete_game(game.id)
    assert store.count() == 0


def test_known_keys_uses_compact_title_keys(store):
    store.create_game(_game("Elden Ring", rawg_id=326243))
    store.create_game(_game("Local: Only!"))

    rawg_ids, titles = store.known_keys()
    assert rawg_ids == {326243}
    assert titles == {"eldenring", "localonly"}


def test_titles_differing_in_case_or_punctuation_are_one_game(store):
    from game_catalog_sync.errors import DuplicateGameError

    original = store.create_game(_game("ELDEN RING"))

    assert store.create_game(_game("Elden Ring")).id == original.id
    assert store.insert_if_absent(_game("Elden-Ring", rawg_id=1)) == (None, False)
    with pytest.raises(DuplicateGameError):
        store.upsert_by_rawg_id(_game("elden ring", rawg_id=2))
    assert store.count() == 1
    assert store.exists_by_title("elden  ring!")
    assert not store.exists_by_title("Elden Ring Nightreign")
    assert store.find_by_title("Elden Ring").id == original.id


def test_rename_keeps_title_key_in_sync(store):
    from game_catalog_sync.errors import DuplicateGameError

    hades = store.create_game(_game("Hades"))
    store.create_game(_game("Celeste"))

    store.update_game(hades.id, {"title": "Hades II"})
    assert store.exists_by_title("hades ii")
    assert not store.exists_by_title("Hades")
    with pytest.raises(DuplicateGameError):
        store.update_game(hades.id, {"title": "CELESTE"})
