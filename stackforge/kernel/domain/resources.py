"""Local resource requirements and conflicts (TCP ports)."""

from __future__ import annotations

from dataclasses import dataclass, field

from stackforge.kernel.exceptions import ValidationError

UNRESOLVED_MESSAGE = "could not be automatically freed"


@dataclass(frozen=True, slots=True)
class ResourceRequirement:
    """A port the stack needs.

    ``fixed`` ports are dictated by the design of a service and cannot be
    worked around by picking another value; the others are configurable.
    """

    port: int
    label: str | None = None
    fixed: bool = False

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValidationError("port", "must be between 1 and 65535", self.port)

    @classmethod
    def coerce(cls, value: ResourceRequirement | int) -> ResourceRequirement:
        if isinstance(value, ResourceRequirement):
            return value
        return cls(port=value)


@dataclass(frozen=True, slots=True)
class ResourceConflict:
    """A required port found in use."""

    resource_id: int
    owner_description: str | None = None
    label: str | None = None
    fixed_by_design: bool = False

    def describe(self) -> str:
        name = f"Port {self.resource_id}" + (f" ({self.label})" if self.label else "")
        held = f", held by {self.owner_description}" if self.owner_description else ""
        hint = (
            "this port is fixed by design"
            if self.fixed_by_design
            else "choose a different port in the configuration"
        )
        return f"{name} {UNRESOLVED_MESSAGE}{held}; {hint}"


@dataclass(frozen=True, slots=True)
class ConflictReport:
    """Result of ``ConflictResolver.ensure_resources_free``."""

    success: bool
    conflicts: tuple[ResourceConflict, ...] = ()
    attempts: int = 0
    strategies_run: tuple[str, ...] = field(default=())

    @property
    def message(self) -> str:
        if self.success:
            return "All required ports are free"
        return "; ".join(conflict.describe() for conflict in self.conflicts)

    @property
    def conflicted_ports(self) -> list[int]:
        return [conflict.resource_id for conflict in self.conflicts]
