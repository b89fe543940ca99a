"""Tests for stackforge.kernel.domain.resources module."""

import pytest

from stackforge.kernel.domain.resources import (
    UNRESOLVED_MESSAGE,
    ConflictReport,
    ResourceConflict,
    ResourceRequirement,
)
from stackforge.kernel.exceptions import ValidationError


class TestResourceRequirement:
    """Tests for ResourceRequirement."""

    def test_coerce_int(self) -> None:
        assert ResourceRequirement.coerce(5432) == ResourceRequirement(port=5432)

    def test_coerce_passthrough(self) -> None:
        requirement = ResourceRequirement(8080, label="api", fixed=True)
        assert ResourceRequirement.coerce(requirement) is requirement

    @pytest.mark.parametrize("port", [0, -1, 65536])
    def test_invalid_port(self, port: int) -> None:
        with pytest.raises(ValidationError):
            ResourceRequirement(port)


class TestConflictReport:
    """Tests for conflict descriptions."""

    def test_describe_configurable_port(self) -> None:
        conflict = ResourceConflict(8080, owner_description="nginx (pid 7)", label="gateway")
        text = conflict.describe()
        assert text.startswith("Port 8080 (gateway)")
        assert UNRESOLVED_MESSAGE in text
        assert "nginx (pid 7)" in text
        assert "different port" in text

    def test_describe_fixed_port(self) -> None:
        assert "fixed by design" in ResourceConflict(5432, fixed_by_design=True).describe()

    def test_message_and_ports(self) -> None:
        report = ConflictReport(success=False, conflicts=(ResourceConflict(8080),))
        assert report.conflicted_ports == [8080]
        assert UNRESOLVED_MESSAGE in report.message

    def test_success_message(self) -> None:
        assert ConflictReport(success=True).message == "All required ports are free"
