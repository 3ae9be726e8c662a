from collections.abc import Iterator
from pathlib import Path

import pytest

from orderdata.config import get_settings
from orderdata.storage import LocalObjectStore


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    root = tmp_path / "object_store"
    (root / "source-bucket").mkdir(parents=True)
    (root / "dest-bucket").mkdir(parents=True)
    return root


@pytest.fixture
def source_store(store_root: Path) -> LocalObjectStore:
    return LocalObjectStore(root=store_root, bucket="source-bucket")


@pytest.fixture
def dest_store(store_root: Path) -> LocalObjectStore:
    return LocalObjectStore(root=store_root, bucket="dest-bucket")
