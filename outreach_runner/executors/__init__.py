"""Action executors for the outreach runner."""

from outreach_runner.executors.base import ActionExecutor, ProfileActionExecutor
from outreach_runner.executors.router import ExecutorRegistry, build_default_registry

__all__ = [
    "ActionExecutor",
    "ExecutorRegistry",
    "ProfileActionExecutor",
    "build_default_registry",
]
