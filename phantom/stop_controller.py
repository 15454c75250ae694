# phantom/stop_controller.py
# PhantomKeystroke Global Stop Controller
# Central point for operator interrupts: cancels the in-flight command task

from __future__ import annotations

import asyncio
import logging
import threading

logger = logging.getLogger(__name__)


class StopController:
    """Global stop controller for PhantomKeystroke.

    The intake loop registers the task processing the current command;
    stop() cancels it so keystroke replay and any in-flight send abort
    before anything is recorded.

    Usage:
        from phantom.stop_controller import stop_controller

        stop_controller.track(task)
        ...
        stop_controller.stop()  # usually from a signal handler
    """

    _instance = None
    _lock = threading.Lock()
    _initialized: bool = False

    def __new__(cls):
        """Singleton pattern."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._stop_event = threading.Event()
        self._active_task: asyncio.Task | None = None
        self._task_lock = threading.Lock()
        self._initialized = True

        logger.debug("StopController initialized")

    def stop(self, cancel: bool = True) -> None:
        """Trigger global stop.

        This will:
        1. Set the stop flag
        2. Cancel the tracked task (unless cancel=False)
        """
        if self._stop_event.is_set():
            return
        logger.info("Operator interrupt: stopping")
        self._stop_event.set()
        if cancel:
            self._cancel_active_task()

    def reset(self) -> None:
        """Reset the stop state for a new session."""
        self._stop_event.clear()
        with self._task_lock:
            self._active_task = None
        logger.debug("StopController reset")

    def is_stopped(self) -> bool:
        """Check if stop was triggered."""
        return self._stop_event.is_set()

    def track(self, task: asyncio.Task | None) -> None:
        """Register the task processing the current command (None clears it)."""
        with self._task_lock:
            self._active_task = task

    def _cancel_active_task(self) -> None:
        with self._task_lock:
            task = self._active_task

        if task is None or task.done():
            return

        loop = task.get_loop()
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            task.cancel()
        else:
            # Signal handlers may run outside the loop's thread
            loop.call_soon_threadsafe(task.cancel)
        logger.debug("Cancelled in-flight command task")


# Global singleton instance
stop_controller = StopController()
