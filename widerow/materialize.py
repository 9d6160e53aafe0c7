"""
Row materialization: raw storage rows -> typed entity instances.

A deleted row can still come back carrying its key column. When the caller
asked for every column (`*`) or for several columns and the row holds exactly
one column, the key column, the row is treated as absent. A live row that
really stores nothing but its key is indistinguishable from that tombstone and
is reported as absent too.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from widerow.domain.models import Row


def is_absent(
    row: Row,
    columns: Optional[Sequence[str]],
    primary: Optional[str],
    key_alias: Optional[str] = None,
) -> bool:
    if row.col_count == 0:
        return True
    if not columns:
        return False
    wants_many = len(columns) > 1 or columns[0] == "*"
    key_columns = {name for name in (primary, key_alias) if name}
    return wants_many and row.col_count == 1 and row.cols[0].name in key_columns


def row_props(row: Row, primary: Optional[str]) -> Dict[str, Any]:
    """
    Attribute map for a loaded row: columns, key, write timestamps, loaded flag.
    """
    props: Dict[str, Any] = row.col_hash
    props["key"] = row.key
    # a range query may not return the key column itself
    if primary:
        props[primary] = row.key
    props["_cftimestamp"] = {col.name: col.timestamp for col in row.cols}
    props["_loaded"] = True
    return props


def materialize(
    cls: type,
    row: Row,
    columns: Optional[Sequence[str]],
    as_: Optional[type] = None,
) -> Optional[Any]:
    """
    Build one instance of `cls` (or of the projection type `as_`) from `row`.

    Returns None for absent rows. Projections are constructed directly from the
    attribute map; entity instances get their dirty-tracking baseline.
    """
    primary = cls.primary()
    if is_absent(row, columns, primary, cls._options.key_alias):
        return None
    props = row_props(row, primary)
    if as_ is not None:
        return as_(props)
    model = cls(props)
    model.shadow()
    return model


def materialize_all(
    cls: type,
    rows: Sequence[Row],
    columns: Optional[Sequence[str]],
    as_: Optional[type] = None,
) -> List[Any]:
    """Materialize every present row, dropping absent ones."""
    models = []
    for row in rows:
        model = materialize(cls, row, columns, as_)
        if model is not None:
            models.append(model)
    return models


__all__ = ["is_absent", "row_props", "materialize", "materialize_all"]
