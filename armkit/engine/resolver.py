"""
Dependency resolution: merge explicit dependencies with the ones implied by
references embedded in each resource's properties, then check the graph.
"""
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set

from rich.console import Console

from armkit.errors import CyclicDependencyError, DuplicateResourceError
from armkit.models.identity import LinkedResource, ResourceId
from armkit.models.resource import ResourceDefinition

console = Console(stderr=True)


@dataclass(frozen=True)
class Resolution:
    order: List[ResourceDefinition]                         # dependencies before dependents
    dependencies: Dict[ResourceId, FrozenSet[ResourceId]]

    def dependencies_of(self, resource_id: ResourceId) -> FrozenSet[ResourceId]:
        return self.dependencies[resource_id]


def find_references(val: Any) -> List[ResourceId]:
    """Recursively scan a property tree for ids of other resources."""
    if isinstance(val, ResourceId):
        return [val]
    if isinstance(val, LinkedResource):
        # Unmanaged links point at resources that already exist.
        return [val.resource_id] if val.managed else []
    refs: List[ResourceId] = []
    if isinstance(val, Mapping):
        for v in val.values():
            refs.extend(find_references(v))
    elif isinstance(val, (list, tuple, set, frozenset)):
        for item in val:
            refs.extend(find_references(item))
    return refs


def index_definitions(definitions: Iterable[ResourceDefinition]) -> Dict[ResourceId, ResourceDefinition]:
    index: Dict[ResourceId, ResourceDefinition] = {}
    for d in definitions:
        if d.resource_id in index:
            raise DuplicateResourceError(d.resource_id)
        index[d.resource_id] = d
    return index


def _anchor(resource_id: ResourceId, index: Mapping[ResourceId, Any]) -> Optional[ResourceId]:
    """
    The resource in this deployment that ``resource_id`` lives in: itself, or
    the closest parent when it names an inline part of another resource
    (a subnet of a virtual network, a frontend port of a gateway).
    """
    current: Optional[ResourceId] = resource_id
    while current is not None:
        if current in index:
            return current
        current = current.parent
    return None


def _dependencies(definition: ResourceDefinition, index: Mapping[ResourceId, ResourceDefinition]) -> FrozenSet[ResourceId]:
    own = definition.resource_id
    deps: Set[ResourceId] = set()

    for dep in definition.dependencies:
        if dep == own:
            raise CyclicDependencyError([own, own])
        target = _anchor(dep, index)
        if target is None:
            console.print(
                f"[yellow]Warning:[/yellow] '{own.qualified_name}' depends on "
                f"'{dep.qualified_name}' which is not part of this deployment."
            )
            deps.add(dep)
        elif target != own:
            deps.add(target)

    implicit = find_references(definition.properties)
    if own.parent is not None:
        implicit.append(own.parent)
    for ref in implicit:
        target = _anchor(ref, index)
        # References outside the deployment are existing resources: no edge.
        if target is not None and target != own:
            deps.add(target)

    return frozenset(deps)


def _order(index: Mapping[ResourceId, ResourceDefinition],
           dependencies: Mapping[ResourceId, FrozenSet[ResourceId]]) -> List[ResourceDefinition]:
    """Depth-first post-order; raises with the full path on the first cycle found."""
    done: Set[ResourceId] = set()
    path: List[ResourceId] = []
    on_path: Set[ResourceId] = set()
    ordered: List[ResourceDefinition] = []

    def visit(rid: ResourceId) -> None:
        if rid in done:
            return
        if rid in on_path:
            raise CyclicDependencyError(path[path.index(rid):] + [rid])
        path.append(rid)
        on_path.add(rid)
        # Sorted so the reported cycle and the output order are deterministic.
        for dep in sorted(dependencies[rid], key=lambda r: r.eval()):
            if dep in index:
                visit(dep)
        path.pop()
        on_path.discard(rid)
        done.add(rid)
        ordered.append(index[rid])

    for rid in index:
        visit(rid)
    return ordered


def resolve(definitions: Iterable[ResourceDefinition]) -> Resolution:
    """
    Compute the final dependency set of every definition.

    Raises DuplicateResourceError when two definitions share an id and
    CyclicDependencyError when the dependency graph is not acyclic.
    """
    index = index_definitions(definitions)
    dependencies = {rid: _dependencies(d, index) for rid, d in index.items()}
    return Resolution(order=_order(index, dependencies), dependencies=dependencies)
