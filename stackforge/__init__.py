"""stackforge: dependency-ordered build pipelines and safe updates for local service stacks.

Resolves unit dependencies, runs phased pipelines with a per-unit failure
policy, frees conflicting ports, gates readiness on service health, and
applies updates with backup and automatic rollback.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("stackforge")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # Source checkout without installed metadata
