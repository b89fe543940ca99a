"""Tests for stackforge.kernel.domain.unit module."""

import pytest

from stackforge.kernel.domain.unit import Component, StackDefinition, Unit
from stackforge.kernel.exceptions import ConfigurationError, ResourceNotFoundError, ValidationError


@pytest.fixture
def stack() -> StackDefinition:
    return StackDefinition(
        units=(
            Unit("db"),
            Unit("api", depends_on=frozenset({"db"})),
            Unit("docs", optional=True),
            Unit("gateway", depends_on=frozenset({"api"})),
        ),
        order=("gateway", "db"),
        components=(
            Component("core", ("db", "api")),
            Component("edge", ("gateway",)),
            Component("extras", ("docs",), enabled=False),
        ),
    )


class TestUnit:
    """Tests for Unit validation."""

    def test_defaults(self) -> None:
        unit = Unit("api")
        assert unit.optional is False
        assert unit.depends_on == frozenset()
        assert unit.timeout is None

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Unit("")

    def test_self_dependency_rejected(self) -> None:
        with pytest.raises(ValidationError, match="itself"):
            Unit("api", depends_on=frozenset({"api"}))

    def test_non_positive_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Unit("api", timeout=0)

    def test_frozen(self) -> None:
        unit = Unit("api")
        with pytest.raises(AttributeError):
            unit.optional = True  # type: ignore[misc]


class TestStackDefinition:
    """Tests for StackDefinition."""

    def test_duplicate_unit_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="declared twice"):
            StackDefinition(units=(Unit("a"), Unit("a")))

    def test_dependency_map_is_sorted(self) -> None:
        stack = StackDefinition(units=(Unit("x", depends_on=frozenset({"c", "a", "b"})),))
        assert stack.dependency_map() == {"x": ["a", "b", "c"]}

    def test_preference_order_appends_undeclared(self, stack: StackDefinition) -> None:
        assert stack.preference_order() == ["gateway", "db", "api", "docs"]

    def test_preference_order_drops_unknown(self) -> None:
        stack = StackDefinition(units=(Unit("a"),), order=("ghost", "a"))
        assert stack.preference_order() == ["a"]

    def test_select_enabled_components_by_default(self, stack: StackDefinition) -> None:
        ids = [unit.id for unit in stack.select_units()]
        assert ids == ["db", "api", "gateway"]

    def test_select_explicit_component(self, stack: StackDefinition) -> None:
        ids = [unit.id for unit in stack.select_units(["extras"])]
        assert ids == ["docs"]

    def test_select_unknown_component(self, stack: StackDefinition) -> None:
        with pytest.raises(ResourceNotFoundError) as exc_info:
            stack.select_units(["nope"])
        assert exc_info.value.available == ["core", "edge", "extras"]

    def test_without_components_all_units_selected(self) -> None:
        stack = StackDefinition(units=(Unit("a"), Unit("b")))
        assert [unit.id for unit in stack.select_units(["anything"])] == ["a", "b"]
