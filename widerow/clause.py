"""
Clause resolution: turn caller `where` specs into predicates on the storage key.

Callers may name the richer primary attribute (`userId`) in predicates while
the column family stores the key under an alias (`KEY`). Three input shapes
are accepted:

    ["u1"] / [["u1", "u2"]]          equality / membership on the key alias
    ["u1", {}]                       bare identifier, bound under the key alias
    ["userId IN (:ids)", {"ids": ..}]  full predicate, primary rewritten to alias
"""

from __future__ import annotations

import re
from typing import Any, Dict, Mapping, Optional

from widerow.errors import PreconditionError
from widerow.statement import Statement

# A clause is "fully formed" when it already carries a comparison or membership.
_OPERATOR = re.compile(r"<|>|=|in ?\(", re.IGNORECASE)


def has_operator(clause: str) -> bool:
    return bool(_OPERATOR.search(clause))


def rewrite_primary(clause: str, primary: str, key_alias: str) -> str:
    """
    Replace whole-word occurrences of `primary` with `key_alias`.

    Tokens that only share a prefix survive: with primary `someId`,
    `someId IN (:someIds)` becomes `KEY IN (:someIds)`.
    """
    if not primary or primary == key_alias:
        return clause
    pattern = re.compile(r"(?<!\w)" + re.escape(primary) + r"(?!\w)")
    return pattern.sub(key_alias, clause)


def apply_where(
    statement: Statement, key_alias: str, primary: Optional[str], where: Any
) -> Optional[Statement]:
    """
    Add the predicate described by `where` to `statement`.

    Raises
    ------
    PreconditionError
        When `where` is given but is not a non-empty list or tuple.
    """
    if not where:
        return None
    if not isinstance(where, (list, tuple)) or len(where) < 1:
        raise PreconditionError("Invalid where")

    clause = where[0]
    args = where[1] if len(where) > 1 else None

    # No bound arguments: a key, or a list of keys.
    if not isinstance(args, Mapping):
        return statement.where({key_alias: clause})

    # Arguments but no operator: the clause is itself the key.
    if isinstance(clause, str) and not has_operator(clause):
        return statement.where({key_alias: clause})

    bound: Dict[str, Any] = dict(args)
    if isinstance(clause, str) and primary and key_alias != primary:
        clause = rewrite_primary(clause, primary, key_alias)
        if primary in bound:
            bound[key_alias] = bound[primary]
    return statement.where(clause, bound)


def prepare_args(spec: Any, key_alias: str, primary: Optional[str]) -> Dict[str, Any]:
    """
    Normalise a `get`/`delete` spec into a mapping with a `where` entry.

    A scalar is a key; a mapping without `where` is keyed by its primary value.
    """
    if not isinstance(spec, Mapping):
        args: Dict[str, Any] = {"where": [f"{key_alias}=:key", {"key": spec}]}
    else:
        args = dict(spec)
        if args.get("where") is None:
            args["where"] = [f"{key_alias}=:key", {"key": args.get(primary) if primary else None}]

    where = args["where"]
    if isinstance(where, (list, tuple)) and where and isinstance(where[0], str) and primary:
        rest = list(where[1:])
        if rest and isinstance(rest[0], Mapping) and primary in rest[0] and key_alias != primary:
            rest[0] = {**rest[0], key_alias: rest[0][primary]}
        args["where"] = [rewrite_primary(where[0], primary, key_alias), *rest]

    if isinstance(args.get("columns"), str):
        args["columns"] = [args["columns"]]
    return args


__all__ = ["apply_where", "prepare_args", "rewrite_primary", "has_operator"]
