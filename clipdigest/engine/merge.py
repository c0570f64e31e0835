from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from ..errors import StoreNotFound
from ..store import CsvTableStore, normalize_column

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergeResult:
    output: Path | None
    rows: int
    headers: list[str] = field(default_factory=list)
    tables_read: list[Path] = field(default_factory=list)


def combine_tables(store: CsvTableStore, tables: Sequence[Path], output: Path) -> MergeResult:
    """Outer-join stage tables on their first column into one wide table.

    Column names are matched case and whitespace insensitively. When several
    tables carry the same column for a key, the table processed last wins.
    The output is rebuilt from scratch on every call.
    """
    titles: dict[str, str] = {}
    combined: dict[str, dict[str, str]] = {}
    tables_read: list[Path] = []
    output_path = store.path_for(output)

    for table in tables:
        if store.path_for(table) == output_path:
            continue
        try:
            table_headers = store.headers(table)
            rows = store.read_all(table)
        except StoreNotFound:
            logger.warning("File not found: %s", table)
            continue
        tables_read.append(Path(table))
        logger.info("Read %d records from %s", len(rows), Path(table).name)
        if not table_headers:
            continue
        for title in table_headers:
            titles.setdefault(normalize_column(title), title)
        key_column = table_headers[0]
        for row in rows:
            key = (row.get(key_column) or "").strip()
            if not key:
                logger.warning("No filename found in record from %s", Path(table).name)
                continue
            merged = combined.setdefault(key, {})
            merged.update({normalize_column(column): value for column, value in row.items()})

    headers = list(titles.values())
    if not combined:
        logger.warning("No data to write to combined table")
        return MergeResult(output=None, rows=0, headers=headers, tables_read=tables_read)

    out_rows = [{title: data.get(norm, "") for norm, title in titles.items()} for data in combined.values()]
    store.replace(output, out_rows, headers=headers)
    logger.info("Combined analysis created with %d rows", len(out_rows))
    return MergeResult(output=store.path_for(output), rows=len(out_rows), headers=headers, tables_read=tables_read)
