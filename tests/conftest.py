from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture
def store(tmp_path: Path):
    from game_catalog_sync.catalog import CatalogStore

    return CatalogStore.from_url(f"sqlite:///{(tmp_path / 'catalog.db').as_posix()}")
