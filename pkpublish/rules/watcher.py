from typing import Callable, Optional
import os
from pkpublish.metrics.recorder import (
    MetricsRecorder,
    RULE_FILE_RELOAD,
    RULE_FILE_RELOAD_ERROR,
)
from pkpublish.rules.loader import RuleDocument, load_rules_from_file
from pkpublish.utils.exceptions import RuleLoadError
from pkpublish.utils.logger import logger


class RuleFileWatcher:
    """
    Holds the active rule document and reloads it when its file changes.

    Checks are paced by transaction timestamps rather than the wall clock, so
    a replaying stream checks as often as the original traffic would have.
    The active document is replaced by a single assignment and never mutated.
    """

    def __init__(
        self,
        path: str,
        metrics: MetricsRecorder,
        check_interval: float = 30.0,
        loader: Callable[[str], RuleDocument] = load_rules_from_file,
        mtime: Callable[[str], float] = os.path.getmtime,
    ):
        """
        Initialize the watcher.

        Args:
            path: Rule file location.
            metrics: Receives reload and reload-error counts.
            check_interval: Event-time seconds between modification checks.
            loader: Reads and parses the rule file.
            mtime: Returns the rule file's modification time.
        """
        self.path = path
        self.metrics = metrics
        self.check_interval_ms = int(check_interval * 1000)
        self._loader = loader
        self._mtime = mtime

        self.rules = RuleDocument()
        self._last_modified: Optional[float] = None
        self._next_check = 0

    def load_initial(self) -> RuleDocument:
        """
        Load the rule file at startup.

        Returns:
            RuleDocument: The loaded rules.

        Raises:
            RuleLoadError: If the file is missing or invalid.
        """
        try:
            modified = self._mtime(self.path)
        except OSError as e:
            raise RuleLoadError(f"Unable to stat rule file {self.path}: {e}")

        self.rules = self._loader(self.path)
        self._last_modified = modified
        logger.info(
            f"Loaded {len(self.rules)} transaction filters from {self.path}"
        )
        return self.rules

    def maybe_reload(self, event_timestamp: int) -> bool:
        """
        Reload the rule file if it changed and a check is due.

        A failed reload is counted and logged, and the previous rules stay
        active. The modification time is not recorded in that case, so the
        next check tries again.

        Args:
            event_timestamp: Extraction timestamp (ms) of the current transaction.

        Returns:
            bool: True if a new document was activated.
        """
        if event_timestamp < self._next_check:
            return False
        self._next_check = event_timestamp + self.check_interval_ms

        try:
            modified = self._mtime(self.path)
        except OSError as e:
            self.metrics.increment(RULE_FILE_RELOAD_ERROR)
            logger.warning(f"Unable to stat rule file {self.path}: {e}")
            return False

        if modified == self._last_modified:
            return False

        self.metrics.increment(RULE_FILE_RELOAD)
        try:
            rules = self._loader(self.path)
        except RuleLoadError as e:
            self.metrics.increment(RULE_FILE_RELOAD_ERROR)
            logger.warning(f"Rule reload failed, keeping previous rules: {e}")
            return False

        self.rules = rules
        self._last_modified = modified
        logger.info(f"Reloaded {len(rules)} transaction filters from {self.path}")
        return True
