"""Port interface for driving external processes.

Version control, build tools and the container runtime are all invoked
through this port. Parsing of tool-specific output stays inside adapters:
the orchestration core only ever sees normalized ``ProgressFragment``
values.
"""

from abc import abstractmethod
from collections.abc import Callable, Mapping
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field


class CommandDescriptor(BaseModel):
    """An external command, as an argv list plus a display label.

    Attributes
    ----------
    argv : list[str]
        Program followed by its arguments; never passed through a shell
    label : str | None
        Short human readable name used in logs and errors
    """

    model_config = ConfigDict(frozen=True)

    argv: list[str] = Field(min_length=1)
    label: str | None = None

    @property
    def display(self) -> str:
        return self.label or " ".join(self.argv)


class ProcessResult(BaseModel):
    """Captured outcome of a finished process."""

    model_config = ConfigDict(frozen=True)

    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None
    timed_out: bool = False
    terminated: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and not self.terminated


class ProgressFragment(BaseModel):
    """Normalized progress emitted while a long operation runs.

    ``percent`` is None for free-text fragments that carry no estimate.
    """

    model_config = ConfigDict(frozen=True)

    message: str
    percent: float | None = Field(default=None, ge=0, le=100)


ProgressCallback = Callable[[ProgressFragment], None]


@runtime_checkable
class ProcessDriver(Protocol):
    """Port interface for running external commands.

    Adapters must support cooperative termination: ``aterminate`` asks the
    in-flight process to stop and returns; the pending ``arun`` then
    completes with ``terminated=True``.
    """

    @abstractmethod
    async def arun(
        self,
        command: CommandDescriptor,
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> ProcessResult:
        """Run ``command`` to completion and capture its output.

        Parameters
        ----------
        command : CommandDescriptor
            Command to execute
        cwd : str | None
            Working directory
        env : Mapping[str, str] | None
            Extra environment variables merged over the current environment
        timeout : float | None
            Seconds after which the process is terminated
        on_progress : ProgressCallback | None
            Receives normalized progress fragments while the process runs

        Returns
        -------
        ProcessResult
            Captured stdout, stderr and exit code
        """
        ...

    @abstractmethod
    async def aterminate(self) -> None:
        """Ask every in-flight process to terminate."""
        ...
