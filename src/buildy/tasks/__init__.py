"""Task handlers and the registry-driven runner.

Usage::

    from buildy.tasks import RegistryRunner, default_registry

    runner = RegistryRunner(default_registry())
"""

from buildy.tasks.builtin import default_registry, register_builtins
from buildy.tasks.registry import TaskHandler, TaskRegistry
from buildy.tasks.runner import RegistryRunner

__all__ = [
    "RegistryRunner",
    "TaskHandler",
    "TaskRegistry",
    "default_registry",
    "register_builtins",
]
