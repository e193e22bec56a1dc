from typing import Callable
import time
from pkpublish.utils.logger import logger
from pkpublish.processing.coordinator import Coordinator
from pkpublish.utils.exceptions import ProcessingError


class Worker:
    """
    Drives the coordinator until it is stopped or a transaction fails.

    A failed transaction ends the run with ProcessingError, so the host can
    restart the process instead of dropping messages the rules selected.
    """

    def __init__(
        self,
        coordinator: Coordinator,
        idle_threshold: int = 10,
        idle_sleep: float = 0.1,
        max_idle_sleep: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize the worker with a coordinator.

        Args:
            coordinator: Runs one transaction at a time
            idle_threshold: Empty polls before the worker starts sleeping
            idle_sleep: First back-off sleep, in seconds
            max_idle_sleep: Upper bound on the back-off sleep, in seconds
            sleep: Sleep function used for back-off
        """
        self.coordinator = coordinator
        self.idle_threshold = idle_threshold
        self.idle_sleep = idle_sleep
        self.max_idle_sleep = max_idle_sleep
        self._sleep = sleep
        self.running = True
        self._stopping = False

    def idle_delay(self, idle_count: int) -> float:
        """Back-off sleep after idle_count consecutive empty polls."""
        if idle_count < self.idle_threshold:
            return 0.0
        exponent = min(idle_count - self.idle_threshold, 10)
        return min(self.idle_sleep * (1.5**exponent), self.max_idle_sleep)

    def run(self) -> None:
        """
        Start the coordinator and process transactions until stopped.

        Raises:
            ProcessingError: If starting or processing fails.
        """
        if not self.coordinator:
            raise ProcessingError("No coordinator provided")

        try:
            logger.info("Worker started")
            self.coordinator.start()

            idle_count = 0
            while self.running:
                if self.coordinator.process_next():
                    idle_count = 0
                    continue

                idle_count += 1
                delay = self.idle_delay(idle_count)
                if delay:
                    self._sleep(delay)

        except Exception as e:
            logger.error(f"Worker error: {e}")
            raise ProcessingError(f"Processing failed: {str(e)}")
        finally:
            self._stopping = True
            self._stop_coordinator()
            logger.info("Worker stopped")

    def _stop_coordinator(self) -> None:
        try:
            self.coordinator.stop()
        except Exception as e:
            logger.error(f"Error stopping coordinator: {e}")

    def stop(self) -> None:
        """Ask the run loop to finish after the current transaction."""
        if self._stopping:
            logger.debug("Stop already in progress, ignoring duplicate call")
            return

        logger.info("Stop signal received")
        self._stopping = True
        self.running = False
