"""
Wire records and query specifications for widerow.

`Row` and `Column` are what the driver hands back for one storage row;
`QuerySpec` is the validated form of the mapping callers pass to `find`/`get`;
`TypeOptions` and `ArrayOptions` hold per-type declaration options.
"""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, field_validator


class Column(BaseModel):
    """
    One named cell of a wide row.
    """

    name: str = Field(..., description="Column name; rows are ordered by it.")
    value: Any = Field(None, description="Decoded column value.")
    timestamp: Optional[int] = Field(None, description="Write timestamp (microseconds or ms).")

    model_config = {
        "frozen": True,
    }


class Row(BaseModel):
    """
    Representation of a single storage row as returned by the driver.
    """

    key: Any = Field(..., description="Row key.")
    cols: List[Column] = Field(default_factory=list, description="Columns in storage order.")

    @property
    def col_hash(self) -> Dict[str, Any]:
        """Mapping view of the columns, name -> value."""
        return {col.name: col.value for col in self.cols}

    @property
    def col_count(self) -> int:
        return len(self.cols)


class QueryMetadata(BaseModel):
    """
    Optional per-call metadata a driver may report alongside rows.
    """

    host: Optional[str] = None
    query_latency: Optional[float] = None
    pool_latency: Optional[float] = None


def eager_graph(value: Any) -> Optional[Dict[str, Any]]:
    """
    Normalise an eager-load request into a nested mapping at every depth.

    ["pets", "person"] is shorthand for {"pets": {}, "person": {}}, and the
    same shorthand is accepted for any nested level.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return {value: {}}
    if isinstance(value, Mapping):
        return {name: eager_graph(nested) or {} for name, nested in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return {name: {} for name in value}
    return {}


class QuerySpec(BaseModel):
    """
    Caller-facing query arguments for `Model.find` and `Model.get`.
    """

    columns: Optional[List[str]] = None
    where: Any = None
    first: Optional[int] = None
    limit: Optional[int] = None
    start: Optional[str] = None
    end: Optional[str] = None
    eager: Optional[Dict[str, Any]] = None
    as_: Optional[Any] = Field(None, alias="as")

    model_config = {
        "populate_by_name": True,
        "arbitrary_types_allowed": True,
    }

    @field_validator("columns", mode="before")
    @classmethod
    def _columns_as_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("eager", mode="before")
    @classmethod
    def _eager_as_graph(cls, value: Any) -> Any:
        return eager_graph(value)


class TypeOptions(BaseModel):
    """
    Declaration options of an entity type.
    """

    cfname: str
    key_alias: str = "KEY"
    consistency: Dict[str, str] = Field(default_factory=dict)
    get_columns: Optional[List[str]] = Field(default_factory=lambda: ["*"])
    get_range: Optional[tuple] = None
    delete_columns: List[str] = Field(default_factory=lambda: ["*"])


class ArrayOptions(BaseModel):
    """
    Declaration options of a model array (wide-row) type.
    """

    cfname: str
    key_alias: str = "KEY"
    primary: str = "key"
    consistency: Dict[str, str] = Field(default_factory=dict)
    # Column families can be declared with a reversed comparator; queries are
    # normalised so callers always see ascending column names.
    reversed: bool = False
    shards: Optional[List[str]] = None


__all__ = [
    "Column",
    "Row",
    "QueryMetadata",
    "QuerySpec",
    "eager_graph",
    "TypeOptions",
    "ArrayOptions",
]
