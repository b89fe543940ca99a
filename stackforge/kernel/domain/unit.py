"""Units, components and the static stack definition they come from."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from stackforge.kernel.exceptions import ConfigurationError, ResourceNotFoundError, ValidationError


@dataclass(frozen=True, slots=True)
class Unit:
    """One schedulable item of a pipeline (a repository, an image, a service).

    Attributes
    ----------
    id : str
        Unique identifier within the stack
    optional : bool
        Failures of this unit are tolerated by every phase
    depends_on : frozenset[str]
        Ids of units that must be processed first
    timeout : float | None
        Per-unit timeout in seconds handed to executors
    continue_on_error : frozenset[str]
        Phase names in which a failure of this unit is tolerated
    """

    id: str
    optional: bool = False
    depends_on: frozenset[str] = frozenset()
    timeout: float | None = None
    continue_on_error: frozenset[str] = frozenset()

    def __post_init__(self) -> None:
        if not self.id:
            raise ValidationError("unit.id", "cannot be empty")
        if self.id in self.depends_on:
            raise ValidationError("depends_on", f"unit '{self.id}' cannot depend on itself")
        if self.timeout is not None and self.timeout <= 0:
            raise ValidationError("timeout", "must be positive", self.timeout)


@dataclass(frozen=True, slots=True)
class Component:
    """A user-facing feature that groups the units it needs."""

    id: str
    unit_ids: tuple[str, ...] = ()
    enabled: bool = True


@dataclass(frozen=True, slots=True)
class StackDefinition:
    """Static, already-validated description of a deployable stack.

    Attributes
    ----------
    units : tuple[Unit, ...]
        All units in the stack
    order : tuple[str, ...]
        Preferred root visit order for dependency resolution
    components : tuple[Component, ...]
        Optional grouping used to select a subset of units
    """

    units: tuple[Unit, ...] = ()
    order: tuple[str, ...] = ()
    components: tuple[Component, ...] = field(default=())

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for unit in self.units:
            if unit.id in seen:
                raise ConfigurationError("stack", f"unit '{unit.id}' is declared twice")
            seen.add(unit.id)

    @property
    def unit_map(self) -> dict[str, Unit]:
        return {unit.id: unit for unit in self.units}

    def dependency_map(self) -> dict[str, list[str]]:
        """Return ``unit id -> dependency ids`` with dependencies sorted."""
        return {unit.id: sorted(unit.depends_on) for unit in self.units}

    def preference_order(self) -> list[str]:
        """Declared order first, then any undeclared unit in definition order."""
        ordered = [unit_id for unit_id in self.order if unit_id in self.unit_map]
        ordered.extend(unit.id for unit in self.units if unit.id not in ordered)
        return ordered

    def select_units(self, component_ids: Iterable[str] | None = None) -> list[Unit]:
        """Return the units needed by the given components.

        With no selection every unit of every enabled component is returned;
        a stack without components returns all units.

        Raises
        ------
        ResourceNotFoundError
            If a selected component does not exist
        """
        units = self.unit_map
        if not self.components:
            return list(self.units)

        components = {component.id: component for component in self.components}
        if component_ids is None:
            chosen = [c for c in self.components if c.enabled]
        else:
            chosen = []
            for component_id in component_ids:
                if component_id not in components:
                    raise ResourceNotFoundError("component", component_id, sorted(components))
                chosen.append(components[component_id])

        wanted: set[str] = set()
        for component in chosen:
            wanted.update(component.unit_ids)
        return [unit for unit_id, unit in units.items() if unit_id in wanted]
