import logging
from abc import ABC, abstractmethod
from typing import List, Tuple

from depscope.core.model import Dependency, Ecosystem, ManifestFile
from depscope.core.registry import RegistryClient
from depscope.core.store import FILE_PARSING, AnalysisStore
from depscope.core.version import normalize_version


class ManifestError(Exception):
    """A single manifest file could not be parsed."""


def section(data: dict, key: str, filename: str) -> dict:
    """Returns the mapping under `key`, or {} when absent. Any other shape is a ManifestError."""
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ManifestError(f"\"{key}\" in {filename} must be a mapping, got {type(value).__name__}")
    return value


class PackageManager(ABC):
    """Base class inherited by all language managers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Friendly ecosystem name (e.g., PyPI, NPM)."""
        pass

    @property
    @abstractmethod
    def ecosystem(self) -> Ecosystem:
        pass

    @property
    @abstractmethod
    def family(self) -> str:
        """Key under which this manager's manifests are grouped."""
        pass

    @property
    @abstractmethod
    def manifest_files(self) -> List[str]:
        """List of exact filenames this manager understands."""
        pass

    def detect(self, files: List[str]) -> bool:
        """
        Returns True if this manager supports one of the given file names.
        Default implementation checks for exact match in manifest_files.
        """
        for manifest in self.manifest_files:
            if manifest in files:
                return True
        return False

    @abstractmethod
    async def parse_file(self, manifest: ManifestFile, registry: RegistryClient) -> List[Tuple[str, str]]:
        """Returns the raw (name, version) pairs declared in one manifest."""
        pass

    async def parse(self, files: List[ManifestFile], store: AnalysisStore, registry: RegistryClient) -> int:
        """
        Parses every file into the store. A broken file is recorded and skipped.
        Returns the number of declarations read.
        """
        count = 0
        for manifest in files:
            logging.debug(f"Parsing {manifest.path} ({self.name})...")
            try:
                pairs = await self.parse_file(manifest, registry)
            except Exception as e:
                store.record_error(FILE_PARSING, f"Failed to parse {manifest.path}: {e}")
                continue

            for name, version in pairs:
                dep = Dependency(
                    name=name,
                    version=normalize_version(version),
                    ecosystem=self.ecosystem,
                    vulnerabilities=[],
                )
                store.add_dependency(dep, manifest.path)
                count += 1

        logging.debug(f"{self.name}: {count} dependencies declared in {len(files)} files")
        return count
