"""taskmem: project-scoped memory and task tools for AI assistants."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("taskmem-mcp")
except PackageNotFoundError:
    # Running from a source checkout that was never installed
    __version__ = "0.0.0+local"
