"""Process driver adapters."""

from stackforge.stdlib.adapters.process.subprocess_driver import (
    SubprocessDriver,
    parse_progress_line,
)

__all__ = ["SubprocessDriver", "parse_progress_line"]
