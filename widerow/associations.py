"""
Eager loading of declared associations.

A fetch plan holds one task per requested association per entity. All tasks
run concurrently; results are attached in plan order only once every task has
settled, so a caller never sees a partially resolved entity and no fetch is
left running behind a failure. The first failure fails the whole plan.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence

from widerow.domain.models import eager_graph
from widerow.errors import AssociationError
from widerow.schema import Association
from widerow.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class FetchTask:
    descriptor: Association
    model: Any
    name: str
    request: Mapping[str, Any]


def _lookup_spec(on: str, value: Any, graph: Any) -> Dict[str, Any]:
    spec: Dict[str, Any] = {"where": [f"{on}=:assoc_value", {"assoc_value": value}]}
    nested = eager_graph(graph)
    if nested:
        spec["eager"] = nested
    return spec


async def _fetch(task: FetchTask, many: bool) -> Any:
    descriptor = task.descriptor
    cls = type(task.model)
    value = getattr(task.model, descriptor.fk_for(cls), None)
    if value is None:
        return descriptor.initial()
    graph = (task.request.get("eager") or {}).get(task.name)
    spec = _lookup_spec(descriptor.on_for(cls), value, graph)
    target = descriptor.target_for(cls)
    if many:
        return await target.find(spec)
    return await target.get(spec)


async def belongs_to(task: FetchTask) -> Any:
    """Fetch the single entity referenced by this entity's foreign key."""
    return await _fetch(task, many=False)


async def has_one(task: FetchTask) -> Any:
    """Fetch the single target entity whose `on` column matches this entity."""
    return await _fetch(task, many=False)


async def has_many(task: FetchTask) -> List[Any]:
    """Fetch every target entity whose `on` column matches this entity."""
    return await _fetch(task, many=True)


_RESOLVERS = {
    "belongs_to": belongs_to,
    "has_one": has_one,
    "has_many": has_many,
}


def plan(models: Sequence[Any], request: Mapping[str, Any]) -> List[FetchTask]:
    """
    Build the ordered task list for `request["eager"]`.

    Names that are not declared associations are ignored.
    """
    graph = request.get("eager") or {}
    tasks: List[FetchTask] = []
    for model in models:
        associations = type(model).associations()
        for name in graph:
            descriptor = associations.get(name)
            if descriptor is None:
                continue
            tasks.append(FetchTask(descriptor=descriptor, model=model, name=name, request=request))
    return tasks


async def _run(task: FetchTask) -> Any:
    resolver = _RESOLVERS[task.descriptor.kind]
    try:
        return await resolver(task)
    except Exception as exc:
        cfname = type(task.model)._options.cfname
        log.error(
            "Association load failed",
            extra={"cfname": cfname, "association": task.name},
        )
        raise AssociationError(task.name, cfname) from exc


async def resolve(models: Sequence[Any], request: Mapping[str, Any]) -> None:
    """
    Run the fetch plan for `models` and attach every result.

    Raises
    ------
    AssociationError
        When any task fails, after every sibling task has settled. The first
        failure in plan order is raised and nothing from this plan is attached.
    """
    tasks = plan(models, request)
    if not tasks:
        return
    results = await asyncio.gather(*(_run(task) for task in tasks), return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    for task, result in zip(tasks, results):
        setattr(task.model, task.name, result)


async def resolve_one(model: Any, request: Mapping[str, Any]) -> Any:
    await resolve([model], request)
    return model


__all__ = ["FetchTask", "plan", "resolve", "resolve_one", "belongs_to", "has_one", "has_many"]
