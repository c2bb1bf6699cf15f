"""
Builder protocol and the capability mixins shared by unrelated resource kinds.

A builder never holds state of its own. Every operation takes a config value
and returns a new one, so a chain of operations is just function composition:

    state = storage_account.initial()
    state = storage_account.name(state, "mydata")
    state = add_tags(storage_account, state, {"env": "prod"})
    config = storage_account.finalize(state)
    definitions = storage_account.build(config, Locations.WEST_EUROPE)
"""
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import (
    Any,
    Callable,
    Generic,
    Iterable,
    List,
    Mapping,
    Protocol,
    TypeVar,
    Union,
    runtime_checkable,
)

from armkit.models.identity import ResourceId
from armkit.models.resource import Location, ResourceDefinition

C = TypeVar("C")


def merge_tags(existing: Mapping[str, str], new: Mapping[str, str]) -> dict:
    """Left-biased union: on a key collision the existing value is kept."""
    merged = dict(new)
    merged.update(existing)
    return merged


def merge_dependencies(existing: Iterable[ResourceId], new: Iterable[ResourceId]) -> frozenset:
    return frozenset(existing) | frozenset(new)


# ------------------------------------------------------------------ capabilities

@runtime_checkable
class Taggable(Protocol[C]):
    def add_tags(self, state: C, tags: Mapping[str, str]) -> C: ...


@runtime_checkable
class Dependable(Protocol[C]):
    def add_dependencies(self, state: C, dependencies: Iterable[ResourceId]) -> C: ...


class TaggableMixin:
    """add_tags for builders whose config carries a ``tags`` field."""

    def add_tags(self, state, tags: Mapping[str, str]):
        return replace(state, tags=merge_tags(state.tags, tags))


class DependableMixin:
    """add_dependencies for builders whose config carries a ``dependencies`` field."""

    def add_dependencies(self, state, dependencies: Iterable[ResourceId]):
        return replace(state, dependencies=merge_dependencies(state.dependencies, dependencies))


# ------------------------------------------------------------------ builder protocol

class Builder(ABC, Generic[C]):
    """Contract every resource-kind builder satisfies."""

    kind: str = ""

    @abstractmethod
    def initial(self) -> C:
        raise NotImplementedError

    @abstractmethod
    def finalize(self, state: C) -> C:
        """Validate the accumulated config; raise ValidationError listing every problem."""
        raise NotImplementedError

    def resource_id(self, state: C) -> ResourceId:
        return state.resource_id

    @abstractmethod
    def build(self, state: C, location: Location) -> List[ResourceDefinition]:
        raise NotImplementedError


Reference = Union[ResourceId, Any]


def reference_id(value: Reference) -> ResourceId:
    """Accept a ResourceId or anything exposing one (a config or a definition)."""
    if isinstance(value, ResourceId):
        return value
    rid = getattr(value, "resource_id", None)
    if isinstance(rid, ResourceId):
        return rid
    raise TypeError(f"Cannot derive a ResourceId from {type(value).__name__}")


def add_tags(builder: Any, state: C, tags: Mapping[str, str]) -> C:
    """Apply tags to any taggable builder's config."""
    if not isinstance(builder, Taggable):
        raise TypeError(f"{type(builder).__name__} does not support tags")
    return builder.add_tags(state, tags)


def depends_on(builder: Any, state: C, *references: Reference) -> C:
    """Declare explicit dependencies on any dependable builder's config."""
    if not isinstance(builder, Dependable):
        raise TypeError(f"{type(builder).__name__} does not support dependencies")
    return builder.add_dependencies(state, {reference_id(r) for r in references})


Step = Union[Callable[[Any], Any], tuple]


def apply(builder: Builder[C], *steps: Step, state: C = None) -> C:
    """
    Run a sequence of steps against ``builder.initial()`` (or ``state``) and
    finalize the result. A step is either a callable ``state -> state`` or a
    tuple ``("operation", arg, ...)`` naming a builder method.
    """
    current = builder.initial() if state is None else state
    for step in steps:
        if callable(step):
            current = step(current)
        else:
            op, *args = step
            current = getattr(builder, op)(current, *args)
    return builder.finalize(current)


def build_all(pairs: Iterable[tuple], location: Location) -> List[ResourceDefinition]:
    """Build every ``(builder, config)`` pair for one location."""
    definitions: List[ResourceDefinition] = []
    for builder, config in pairs:
        definitions.extend(builder.build(config, location))
    return definitions
