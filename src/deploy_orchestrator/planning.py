"""Dependency planning for deployment units."""

import heapq
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .exceptions import CyclicDependency, PlanningError, UnresolvedDependency
from .types import DeploymentUnit


def _units_by_tag(units: Sequence[DeploymentUnit]) -> Dict[str, List[int]]:
    by_tag: Dict[str, List[int]] = {}
    for index, unit in enumerate(units):
        for tag in unit.tags:
            by_tag.setdefault(tag, []).append(index)
    return by_tag


def _dependency_indices(
    units: Sequence[DeploymentUnit], by_tag: Dict[str, List[int]], network: Optional[str]
) -> List[Set[int]]:
    """Resolve each unit's depends_on tags (and address references) to unit indices."""
    by_name = {unit.name: index for index, unit in enumerate(units)}
    dependencies: List[Set[int]] = []

    for unit in units:
        deps: Set[int] = set()
        for tag in sorted(unit.depends_on):
            if tag not in by_tag:
                raise UnresolvedDependency(
                    f"Dependency tag '{tag}' matches no deployment unit",
                    network=network,
                    unit=unit.name,
                )
            deps.update(by_tag[tag])

        # A constructor arg referencing another unit's address is an implicit dependency
        for referenced in unit.referenced_units():
            if referenced not in by_name:
                raise UnresolvedDependency(
                    f"Constructor argument references unknown unit '{referenced}'",
                    network=network,
                    unit=unit.name,
                )
            deps.add(by_name[referenced])

        dependencies.append(deps)

    return dependencies


def plan_deployment(
    units: Sequence[DeploymentUnit],
    tags: Optional[Iterable[str]] = None,
    network: Optional[str] = None,
) -> List[DeploymentUnit]:
    """
    Order deployment units so every unit follows its dependencies.

    Ties are broken by declaration order, so independent units run in the
    order they were declared.

    Args:
        units: Declared units
        tags: If given, only units carrying one of these tags are selected,
              together with everything they transitively depend on
        network: Network name for error context

    Returns:
        Units in execution order

    Raises:
        UnresolvedDependency: If a depends_on tag or address reference matches no unit
        CyclicDependency: If no valid order exists
        PlanningError: If a requested tag matches no unit
    """
    by_tag = _units_by_tag(units)
    dependencies = _dependency_indices(units, by_tag, network)

    # Select units for the requested tags plus their transitive dependencies
    if tags:
        requested = set(tags)
        unknown = sorted(t for t in requested if t not in by_tag)
        if unknown:
            raise PlanningError(
                f"Requested tag(s) {', '.join(unknown)} match no deployment unit",
                network=network,
            )
        selected: Set[int] = set()
        stack = [i for t in requested for i in by_tag[t]]
        while stack:
            index = stack.pop()
            if index in selected:
                continue
            selected.add(index)
            stack.extend(dependencies[index])
    else:
        selected = set(range(len(units)))

    # Kahn's algorithm with declaration order as priority
    remaining = {i: set(dependencies[i]) for i in selected}
    dependents: Dict[int, Set[int]] = {i: set() for i in selected}
    for index, deps in remaining.items():
        for dep in deps:
            dependents[dep].add(index)

    ready = [i for i, deps in remaining.items() if not deps]
    heapq.heapify(ready)
    order: List[DeploymentUnit] = []

    while ready:
        index = heapq.heappop(ready)
        order.append(units[index])
        for dependent in dependents[index]:
            remaining[dependent].discard(index)
            if not remaining[dependent]:
                heapq.heappush(ready, dependent)

    if len(order) != len(selected):
        stuck = sorted(units[i].name for i, deps in remaining.items() if deps)
        raise CyclicDependency(
            f"Dependency cycle between units: {', '.join(stuck)}",
            network=network,
        )

    return order
