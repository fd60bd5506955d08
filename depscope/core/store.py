import copy
import logging
import threading
from typing import Dict, Iterable, List

from depscope.core.model import Dependency, DependencyGroups

FILE_PARSING = "File Parsing"
TRANSITIVE_FETCH = "Transitive Dependencies Fetch"
VULNERABILITY_SCANNING = "Vulnerability Scanning"
VULNERABILITY_DETAILS = "Vulnerability Details Fetch"


class AnalysisStore:
    """
    State of a single analysis run.

    Holds the canonical dependency per `name@version@ecosystem`, the files that
    declared it and the per-step error ledger. Create one per run.
    """

    def __init__(self) -> None:
        self.dependencies: Dict[str, Dependency] = {}
        self.file_mapping: Dict[str, List[str]] = {}
        self._errors: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def reset(self) -> None:
        self.dependencies.clear()
        self.file_mapping.clear()
        with self._lock:
            self._errors.clear()

    # --- deduplication ---

    def add_dependency(self, dep: Dependency, file_path: str) -> Dependency:
        """Registers `dep` for `file_path`. The first instance seen for a key wins."""
        key = dep.key
        canonical = self.dependencies.setdefault(key, dep)

        files = self.file_mapping.setdefault(key, [])
        if file_path not in files:
            files.append(file_path)

        return canonical

    def canonical_dependencies(self) -> List[Dependency]:
        return list(self.dependencies.values())

    def map_dependencies_to_files(self, canonical: Iterable[Dependency]) -> DependencyGroups:
        """Projects enriched canonical dependencies back onto every declaring file."""
        groups: DependencyGroups = {}
        for dep in canonical:
            for path in self.file_mapping.get(dep.key, []):
                groups.setdefault(path, []).append(copy.deepcopy(dep))
        return groups

    # --- error ledger ---

    def record_error(self, step: str, message: str) -> None:
        logging.warning(f"[{step}] {message}")
        with self._lock:
            self._errors.setdefault(step, []).append(message)

    @property
    def has_errors(self) -> bool:
        with self._lock:
            return any(self._errors.values())

    def errors(self) -> Dict[str, List[str]]:
        with self._lock:
            return {step: list(messages) for step, messages in self._errors.items()}

    def error_summary(self) -> List[str]:
        summary = []
        for step, messages in self.errors().items():
            if not messages:
                continue
            if len(messages) == 1:
                summary.append(messages[0])
            else:
                summary.append(f"{step}: {len(messages)} issues encountered ({messages[0]})")
        return summary
