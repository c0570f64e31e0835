from __future__ import annotations

import csv
import logging
import os
import tempfile
from pathlib import Path
from threading import Lock
from typing import Iterable, Mapping, Sequence

from .errors import StoreNotFound

logger = logging.getLogger(__name__)


def normalize_column(name: str) -> str:
    """Case and whitespace insensitive form of a column title."""
    return "_".join(str(name).strip().lower().split())


def _lookup(record: Mapping[str, str], column: str) -> str | None:
    if column in record:
        return record[column]
    wanted = normalize_column(column)
    for key, value in record.items():
        if key is not None and normalize_column(key) == wanted:
            return value
    return None


class CsvTableStore:
    """Keyed tables persisted as fully quoted CSV files.

    Appends never rewrite existing rows. Appends to the same table from
    several threads are serialized by a per-table lock.
    """

    def __init__(self, root: Path | None = None, *, delimiter: str = ",") -> None:
        self._root = Path(root) if root is not None else None
        self._delimiter = delimiter
        self._locks: dict[Path, Lock] = {}
        self._locks_guard = Lock()

    def path_for(self, table: Path | str) -> Path:
        path = Path(table)
        if self._root is not None and not path.is_absolute():
            path = self._root / path
        return path

    def _lock_for(self, path: Path) -> Lock:
        key = path.resolve()
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = Lock()
                self._locks[key] = lock
            return lock

    def exists(self, table: Path | str) -> bool:
        return self.path_for(table).is_file()

    def read_all(self, table: Path | str) -> list[dict[str, str]]:
        path = self.path_for(table)
        if not path.is_file():
            raise StoreNotFound(path)
        with path.open("r", newline="", encoding="utf-8-sig") as handle:
            reader = csv.DictReader(handle, delimiter=self._delimiter)
            return [
                {key: (value if value is not None else "") for key, value in row.items() if key is not None}
                for row in reader
            ]

    def first_by_key(self, table: Path | str, key_column: str) -> dict[str, dict[str, str]]:
        """Index rows by key; the earliest row for a key wins."""
        indexed: dict[str, dict[str, str]] = {}
        for row in self.read_all(table):
            key = (_lookup(row, key_column) or "").strip()
            if not key or key in indexed:
                continue
            indexed[key] = row
        return indexed

    def keys_present(self, table: Path | str, key_column: str) -> set[str]:
        return set(self.first_by_key(table, key_column))

    def headers(self, table: Path | str) -> list[str]:
        path = self.path_for(table)
        if not path.is_file():
            raise StoreNotFound(path)
        with path.open("r", newline="", encoding="utf-8-sig") as handle:
            reader = csv.reader(handle, delimiter=self._delimiter)
            return next(reader, [])

    def append(
        self,
        table: Path | str,
        records: Iterable[Mapping[str, str]],
        *,
        headers: Sequence[str],
    ) -> int:
        rows = list(records)
        if not rows:
            return 0
        path = self.path_for(table)
        with self._lock_for(path):
            path.parent.mkdir(parents=True, exist_ok=True)
            fieldnames = list(headers)
            write_header = not path.is_file() or path.stat().st_size == 0
            if not write_header:
                fieldnames = self.headers(path) or fieldnames
            with path.open("a", newline="", encoding="utf-8") as handle:
                writer = csv.DictWriter(
                    handle,
                    fieldnames=fieldnames,
                    delimiter=self._delimiter,
                    quoting=csv.QUOTE_ALL,
                    extrasaction="ignore",
                    restval="",
                )
                if write_header:
                    writer.writeheader()
                for row in rows:
                    unknown = [key for key in row if key not in fieldnames]
                    if unknown:
                        logger.warning("Dropping columns %s not present in %s", unknown, path.name)
                    writer.writerow({key: "" if value is None else str(value) for key, value in row.items()})
                handle.flush()
                os.fsync(handle.fileno())
        return len(rows)

    def replace(
        self,
        table: Path | str,
        records: Iterable[Mapping[str, str]],
        *,
        headers: Sequence[str],
    ) -> int:
        """Atomically rewrite a whole table. Used only for derived outputs."""
        path = self.path_for(table)
        rows = list(records)
        with self._lock_for(path):
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
            try:
                with os.fdopen(fd, "w", newline="", encoding="utf-8") as handle:
                    writer = csv.DictWriter(
                        handle,
                        fieldnames=list(headers),
                        delimiter=self._delimiter,
                        quoting=csv.QUOTE_ALL,
                        extrasaction="ignore",
                        restval="",
                    )
                    writer.writeheader()
                    writer.writerows(rows)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        return len(rows)
