"""Polling monitor for outstanding vSphere tasks"""

import time
from collections import OrderedDict
from typing import Callable, Dict, List, Optional

from vsan_ops.models import TaskState, TrackedTask
from vsan_ops.polling import CancellationToken, PollPolicy, wait_until
from vsan_ops.utils import console_log


class TaskMonitor:
    """
    Waits for a set of tasks to leave the running state.

    The state read at submission counts as the first sample. After that every
    task is refreshed once per interval and its state is logged. Without a
    deadline this can wait forever, e.g. for a task stuck in vCenter.
    """

    def __init__(
        self,
        interval: float = 15,
        deadline: Optional[float] = None,
        logger: Optional[Callable] = None,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.interval = interval
        self.deadline = deadline
        self.log = logger or console_log
        self.sleep = sleep
        self.clock = clock
        self.last_poll_count = 0

    @staticmethod
    def _key(index: int, task: TrackedTask) -> str:
        return f"{task.entity_name}#{index}"

    def _report(self, tasks: List[TrackedTask]):
        for task in tasks:
            line = f"    {task.entity_name}: {task.description} - {task.state_text}"
            if task.error:
                line += f" ({task.error})"
            self.log(line)

    def await_all(self, tasks: List[TrackedTask],
                  cancel: Optional[CancellationToken] = None) -> Dict[str, TaskState]:
        """
        Block until no task is running.

        Returns:
            Final state per task keyed by "<entity>#<submission index>", in
            submission order

        Raises:
            PollTimeoutError: deadline configured and reached
            PollCancelled: cancel token set
        """
        if not tasks:
            self.last_poll_count = 0
            return OrderedDict()

        sampled = [False]

        def all_finished() -> bool:
            if sampled[0]:
                for task in tasks:
                    task.refresh()
                self._report(tasks)
            sampled[0] = True
            return not any(task.is_running for task in tasks)

        self.log(f"Waiting for {len(tasks)} task(s) to complete...")
        self.last_poll_count = wait_until(
            all_finished,
            f"{len(tasks)} task(s)",
            PollPolicy(interval=self.interval, deadline=self.deadline),
            logger=self.log,
            cancel=cancel,
            sleep=self.sleep,
            clock=self.clock,
        )

        succeeded = sum(1 for task in tasks if task.state == TaskState.SUCCEEDED)
        failed = [task for task in tasks if task.state == TaskState.FAILED]
        self.log(f"{succeeded}/{len(tasks)} task(s) succeeded")
        for task in failed:
            self.log(f"  ✗ {task.entity_name}: {task.description} failed: {task.error or 'unknown error'}", "ERROR")

        return OrderedDict((self._key(i, task), task.state) for i, task in enumerate(tasks))
