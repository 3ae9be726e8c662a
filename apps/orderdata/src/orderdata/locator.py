from __future__ import annotations

from collections.abc import Iterator
from datetime import date
from fnmatch import fnmatchcase

from orderdata.storage import ObjectStore, ObjectStoreError
from orderdata.types import FileRef


class DiscoveryError(RuntimeError):
    pass


def daily_pattern(today: date) -> str:
    return f"{today:%Y%m%d}*.csv"


class FileListing:
    """Source files dropped for one day, listed lazily.

    Every iteration issues a fresh listing against the store, so the same
    instance can be walked more than once.
    """

    def __init__(self, store: ObjectStore, *, root_prefix: str, today: date) -> None:
        self._store = store
        self._prefix = f"{root_prefix.strip('/')}/" if root_prefix.strip("/") else ""
        self._pattern = daily_pattern(today)

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def pattern(self) -> str:
        return self._pattern

    def __iter__(self) -> Iterator[FileRef]:
        try:
            for name in self._store.iter_names(self._prefix):
                basename = name.rsplit("/", 1)[-1]
                if fnmatchcase(basename, self._pattern):
                    yield FileRef(bucket=self._store.bucket, name=name)
        except ObjectStoreError as exc:
            raise DiscoveryError(
                f"could not list {self._store.bucket}/{self._prefix}{self._pattern}: {exc}"
            ) from exc


def find_files(store: ObjectStore, root_prefix: str, today: date) -> FileListing:
    return FileListing(store, root_prefix=root_prefix, today=today)
