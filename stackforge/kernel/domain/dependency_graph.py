"""Dependency ordering of units.

The graph is always restricted to a chosen subset of units: dependencies
pointing outside the subset are soft and ignored, so selecting a single
component never drags unrelated units into a run.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from enum import Enum, auto

from stackforge.kernel.exceptions import CycleDetectedError


class Color(Enum):
    """Colors for DFS cycle detection."""

    WHITE = auto()  # Unvisited
    GRAY = auto()  # On the current DFS path (visiting)
    BLACK = auto()  # Emitted (visited)


class DependencyGraph:
    """Dependency map restricted to a subset of unit ids.

    Examples
    --------
    >>> graph = DependencyGraph({"b": ["a"], "c": ["a"], "d": ["b", "c"]}, ["a", "b", "c", "d"])
    >>> graph.resolve_order(["a", "b", "c", "d"])
    ['a', 'b', 'c', 'd']
    """

    __slots__ = ("_dependencies", "_subset")

    def __init__(
        self, dependency_map: Mapping[str, Iterable[str]], unit_ids: Iterable[str]
    ) -> None:
        self._subset: dict[str, None] = dict.fromkeys(unit_ids)
        # Drop edges leaving the subset up front; keep declared order for determinism
        self._dependencies: dict[str, list[str]] = {
            unit_id: [
                dep
                for dep in dict.fromkeys(dependency_map.get(unit_id, ()))
                if dep in self._subset
            ]
            for unit_id in self._subset
        }

    @property
    def unit_ids(self) -> list[str]:
        return list(self._subset)

    def dependencies_of(self, unit_id: str) -> list[str]:
        """Return the in-subset dependencies of ``unit_id``."""
        return list(self._dependencies.get(unit_id, ()))

    def resolve_order(self, preference_order: Sequence[str] | None = None) -> list[str]:
        """Return the units ordered so dependencies precede dependents.

        Parameters
        ----------
        preference_order : Sequence[str] | None
            Order in which roots are visited. Units of the subset missing
            from it are visited afterwards in subset order; ids outside the
            subset are ignored.

        Raises
        ------
        CycleDetectedError
            If the subset contains a cycle. No partial order is returned.
        """
        roots = [u for u in dict.fromkeys(preference_order or ()) if u in self._subset]
        roots.extend(u for u in self._subset if u not in roots)

        colors = dict.fromkeys(self._subset, Color.WHITE)
        order: list[str] = []

        for root in roots:
            if colors[root] is not Color.WHITE:
                continue

            # Explicit stack of (unit, next dependency index) keeps deep chains off the C stack
            stack: list[tuple[str, int]] = [(root, 0)]
            path: list[str] = [root]
            colors[root] = Color.GRAY

            while stack:
                unit_id, index = stack[-1]
                deps = self._dependencies[unit_id]

                if index < len(deps):
                    stack[-1] = (unit_id, index + 1)
                    dep = deps[index]
                    if colors[dep] is Color.GRAY:
                        cycle = path[path.index(dep) :] + [dep]
                        raise CycleDetectedError(dep, cycle)
                    if colors[dep] is Color.WHITE:
                        colors[dep] = Color.GRAY
                        stack.append((dep, 0))
                        path.append(dep)
                    continue

                stack.pop()
                path.pop()
                colors[unit_id] = Color.BLACK
                order.append(unit_id)

        return order


def resolve_order(
    unit_ids: Iterable[str],
    dependency_map: Mapping[str, Iterable[str]],
    preference_order: Sequence[str] | None = None,
) -> list[str]:
    """Topologically sort ``unit_ids`` using ``dependency_map``.

    Dependencies outside ``unit_ids`` are ignored.

    Examples
    --------
    >>> resolve_order({"api", "db"}, {"api": ["db", "cache"]}, ["db", "api"])
    ['db', 'api']
    """
    ids = list(unit_ids)
    if not isinstance(unit_ids, (list, tuple)):
        # Sets have no stable iteration order across processes
        ids.sort()
    return DependencyGraph(dependency_map, ids).resolve_order(preference_order)
