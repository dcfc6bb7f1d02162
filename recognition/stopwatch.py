"""Phase timer for diagnostics; never influences results."""

import logging
import time

logger = logging.getLogger(__name__)


class StopWatch:
    """Times consecutive named tasks: ``start`` closes the running task."""

    def __init__(self, name):
        self.name = name
        self.tasks = []
        self._task = None
        self._started = None

    def start(self, task):
        self.stop()
        self._task = task
        self._started = time.perf_counter()

    def stop(self):
        if self._task is not None:
            self.tasks.append((self._task, time.perf_counter() - self._started))
            self._task = None

    @property
    def total(self):
        return sum(elapsed for _, elapsed in self.tasks)

    def print(self):
        self.stop()
        total = self.total
        logger.info("%s: %.1f ms", self.name, total * 1000)
        for task, elapsed in self.tasks:
            share = elapsed / total if total else 0.0
            logger.info("  %7.1f ms %4.0f%%  %s", elapsed * 1000, share * 100, task)
