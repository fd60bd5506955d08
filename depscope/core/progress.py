import logging
from typing import Callable, List

PARSING_MANIFESTS = "PARSING_MANIFESTS"
PARSING_DEPENDENCIES = "PARSING_DEPENDENCIES"
FETCHING_TRANSITIVE_DEPENDENCIES = "FETCHING_TRANSITIVE_DEPENDENCIES"
FETCHING_VULNERABILTIES_ID = "FETCHING_VULNERABILTIES_ID"
FETCHING_VULNERABILTIES_DETAILS = "FETCHING_VULNERABILTIES_DETAILS"
FINALISING_RESULTS = "FINALISING_RESULTS"

PROGRESS_STEPS = [
    PARSING_MANIFESTS,
    PARSING_DEPENDENCIES,
    FETCHING_TRANSITIVE_DEPENDENCIES,
    FETCHING_VULNERABILTIES_ID,
    FETCHING_VULNERABILTIES_DETAILS,
    FINALISING_RESULTS,
]

ProgressCallback = Callable[[str, float], None]


class ProgressReporter:
    """Fans progress updates out to registered callbacks. Best effort only."""

    def __init__(self) -> None:
        self._callbacks: List[ProgressCallback] = []

    def add_callback(self, callback: ProgressCallback) -> None:
        self._callbacks.append(callback)

    def remove_callback(self, callback: ProgressCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def clear_callbacks(self) -> None:
        self._callbacks.clear()

    def update(self, step: str, progress: float) -> None:
        for callback in list(self._callbacks):
            try:
                callback(step, progress)
            except Exception as e:
                logging.error(f"Error in progress callback: {e}")

    def sink(self, step: str) -> Callable[[float], None]:
        """Adapts a batch-wave percentage sink onto a named step."""
        return lambda percent: self.update(step, percent)
