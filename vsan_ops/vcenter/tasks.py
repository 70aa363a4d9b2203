"""Wrapping of vSphere tasks for the task monitor"""

from typing import Optional, Tuple

from vsan_ops.errors import describe_vcenter_error
from vsan_ops.models import TrackedTask


class TaskPlatform:
    """Turns vim.Task handles into TrackedTask objects."""

    @staticmethod
    def _reader(vim_task):
        def read() -> Tuple[str, Optional[str]]:
            info = vim_task.info
            error = describe_vcenter_error(info.error) if info.error else None
            return str(info.state), error
        return read

    def track(self, vim_task, description: str, entity_name: Optional[str] = None) -> TrackedTask:
        """Start tracking a submitted task; reads its first state immediately."""
        if entity_name is None:
            entity_name = vim_task.info.entityName or "unknown"
        return TrackedTask(entity_name, description, self._reader(vim_task))
