"""
Task Registry for Workflow Actions

Central registry mapping a task type name (as written in a workflow
definition) to the task class implementing it. Built-in tasks are registered
on first access to avoid circular imports.
"""

import logging
from typing import Dict, List, Optional, Type

from bridge.workflow.tasks import FlowableTask, RunnableTask, Task

logger = logging.getLogger(__name__)


class TaskRegistry:
    """Registry of the task classes a workflow definition may reference."""

    def __init__(self):
        self._tasks: Dict[str, Type[Task]] = {}
        self._core_tasks_registered = False

    def _ensure_core_tasks_registered(self) -> None:
        """Ensure built-in tasks are registered (deferred to avoid circular imports)."""
        if self._core_tasks_registered:
            return
        self._core_tasks_registered = True

        from bridge.workflow.builtin_tasks import BUILTIN_TASKS
        from bridge.core.chat_service import ChatCompletion
        from bridge.core.ingestion_service import IngestDocument

        for task_class in [*BUILTIN_TASKS, IngestDocument, ChatCompletion]:
            if task_class.type_name() not in self._tasks:
                self.register_task(task_class)
        logger.info(f"Core tasks registered: {sorted(self._tasks)}")

    def register_task(self, task_class: Type[Task], name: Optional[str] = None) -> Type[Task]:
        """
        Register a task class under its type name.

        Args:
            task_class: Task class to register
            name: Type name, defaults to the class ``type_name()``

        Raises:
            ValueError: If the type name is already registered
        """
        type_name = name or task_class.type_name()
        if type_name in self._tasks:
            raise ValueError(f"Task type '{type_name}' is already registered")
        self._tasks[type_name] = task_class
        logger.debug(f"Registered task type: {type_name}")
        return task_class

    def get_task(self, type_name: str) -> Optional[Type[Task]]:
        self._ensure_core_tasks_registered()
        return self._tasks.get(type_name)

    def list_tasks(self) -> List[str]:
        self._ensure_core_tasks_registered()
        return list(self._tasks.keys())

    def list_runnable_tasks(self) -> List[str]:
        self._ensure_core_tasks_registered()
        return [name for name, cls in self._tasks.items() if issubclass(cls, RunnableTask)]

    def is_flowable(self, type_name: str) -> bool:
        task_class = self.get_task(type_name)
        return task_class is not None and issubclass(task_class, FlowableTask)


# Global task registry instance
task_registry = TaskRegistry()


def register_task(task_class: Type[Task]) -> Type[Task]:
    """Class decorator registering a task class in the global registry."""
    return task_registry.register_task(task_class)
