from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple


logger = logging.getLogger(__name__)


@dataclass
class CompensationResult:
    description: str
    succeeded: bool
    error: Optional[str] = None


class Saga:
    """Ordered list of undo steps for writes that cannot share a transaction.

    Each completed write registers the step that reverses it. When a later write
    fails, ``compensate`` runs the registered steps newest first and reports how
    each one went; a failing step does not stop the others.
    """

    def __init__(self, name: str):
        self.name = name
        self._steps: List[Tuple[str, Callable[[], None]]] = []
        self.results: List[CompensationResult] = []

    def add_compensation(self, description: str, action: Callable[[], None]) -> None:
        self._steps.append((description, action))

    @property
    def pending(self) -> int:
        return len(self._steps)

    def compensate(self) -> List[CompensationResult]:
        results: List[CompensationResult] = []
        while self._steps:
            description, action = self._steps.pop()
            try:
                action()
            except Exception as exc:  # noqa: BLE001
                logger.exception("Compensation '%s' failed in %s", description, self.name)
                results.append(CompensationResult(description=description, succeeded=False, error=str(exc)))
            else:
                logger.info("Compensation '%s' completed in %s", description, self.name)
                results.append(CompensationResult(description=description, succeeded=True))
        self.results.extend(results)
        return results

    def failures(self) -> List[CompensationResult]:
        return [result for result in self.results if not result.succeeded]
