import logging
from typing import Any, Callable, List, Tuple

logger = logging.getLogger(__name__)


class Compensation:
    """Undo steps for side effects that live outside the database transaction.

    Each forward step pushes its undo once it has succeeded. ``rollback`` runs
    the steps newest-first; a failing step is logged and the rest still run.
    """

    def __init__(self):
        self._steps: List[Tuple[str, Callable[..., Any], tuple]] = []

    def __len__(self):
        return len(self._steps)

    def push(self, description: str, action: Callable[..., Any], *args):
        self._steps.append((description, action, args))

    def clear(self):
        self._steps.clear()

    def rollback(self) -> bool:
        """Return True when every step reported success."""
        clean = True
        while self._steps:
            description, action, args = self._steps.pop()
            logger.info("Compensating: %s", description)
            try:
                outcome = action(*args)
            except Exception:
                logger.exception("Compensation step failed: %s. Manual cleanup may be required.", description)
                clean = False
                continue
            if outcome is False:
                logger.warning("Compensation step reported failure: %s. Manual cleanup may be required.", description)
                clean = False
        return clean
