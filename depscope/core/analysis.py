import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional

import httpx

from depscope.core.config import Settings
from depscope.core.graph import filter_main_dependencies, filter_vulnerable_transitives
from depscope.core.model import AnalysisResult, ManifestFile
from depscope.core.progress import (
    FETCHING_TRANSITIVE_DEPENDENCIES,
    FETCHING_VULNERABILTIES_DETAILS,
    FETCHING_VULNERABILTIES_ID,
    FINALISING_RESULTS,
    PARSING_DEPENDENCIES,
    PARSING_MANIFESTS,
    ProgressReporter,
)
from depscope.core.registry import RegistryClient
from depscope.core.scanner import scan_vulnerabilities
from depscope.core.store import (
    FILE_PARSING,
    TRANSITIVE_FETCH,
    VULNERABILITY_SCANNING,
    AnalysisStore,
)
from depscope.core.transitive import resolve_transitive_dependencies
from depscope.managers import collect_manifests, manager_for_family, manager_for_filename

NO_DEPENDENCIES = "No dependencies found in the repository"
UNSUPPORTED_FILE = "Unsupported file type"

ManifestContents = Dict[str, List[ManifestFile]]


class DependencyAnalyzer:
    """
    Runs the full pipeline: parse manifests, resolve transitive graphs, enrich with
    OSV vulnerabilities and keep only the part of the graph that carries risk.

    Every phase after parsing is best effort: failures are recorded and the result
    carries whatever data was gathered, with a summary in `error`.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
        progress: Optional[ProgressReporter] = None,
    ) -> None:
        self.settings = settings or Settings()
        self.progress = progress or ProgressReporter()
        self._client = client

    async def analyse_directory(self, path: str = ".") -> AnalysisResult:
        self.progress.update(PARSING_MANIFESTS, 0)
        try:
            manifests = await asyncio.to_thread(collect_manifests, path)
        except OSError as e:
            logging.error(f"Error collecting manifest files: {e}")
            return AnalysisResult(dependencies={}, error=[f"Failed to read manifest files: {e}"])

        self.progress.update(PARSING_MANIFESTS, 100)
        return await self.analyse_dependencies(manifests)

    async def analyse_file(self, filename: str, content: str) -> AnalysisResult:
        manager = manager_for_filename(filename)
        if not manager:
            return AnalysisResult(dependencies={}, error=[UNSUPPORTED_FILE])

        manifests = {manager.family: [ManifestFile(os.path.basename(filename), content)]}
        return await self.analyse_dependencies(manifests)

    async def analyse_dependencies(self, manifests: ManifestContents) -> AnalysisResult:
        try:
            async with self._session() as client:
                return await self._run(client, manifests)
        except Exception as e:
            logging.exception("Fatal error during dependency analysis:")
            return AnalysisResult(dependencies={}, error=[f"Dependency analysis failed: {e}"])

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return

        async with self.settings.build_client() as client:
            yield client

    async def _run(self, client: httpx.AsyncClient, manifests: ManifestContents) -> AnalysisResult:
        store = AnalysisStore()
        registry = RegistryClient(client, self.settings)

        self.progress.update(PARSING_DEPENDENCIES, 0)
        await self._parse_manifests(manifests, store, registry)
        canonical = store.canonical_dependencies()
        self.progress.update(PARSING_DEPENDENCIES, 100)

        if not canonical:
            return AnalysisResult(dependencies={}, error=store.error_summary() + [NO_DEPENDENCIES])

        files = {path for paths in store.file_mapping.values() for path in paths}
        logging.info(f"{len(canonical)} unique dependencies across {len(files)} files")

        try:
            await resolve_transitive_dependencies(
                client,
                canonical,
                store,
                self.settings,
                self.progress.sink(FETCHING_TRANSITIVE_DEPENDENCIES),
            )
        except Exception as e:
            logging.exception("Transitive resolution failed:")
            store.record_error(TRANSITIVE_FETCH, f"Falling back to main dependencies only: {e}")

        enriched = True
        try:
            await scan_vulnerabilities(
                client,
                canonical,
                store,
                self.settings,
                self.progress.sink(FETCHING_VULNERABILTIES_ID),
                self.progress.sink(FETCHING_VULNERABILTIES_DETAILS),
            )
        except Exception as e:
            logging.exception("Vulnerability enrichment failed:")
            store.record_error(VULNERABILITY_SCANNING, f"Returning dependencies without vulnerability data: {e}")
            enriched = False

        self.progress.update(FINALISING_RESULTS, 0)
        groups = store.map_dependencies_to_files(canonical)
        if enriched:
            groups = filter_main_dependencies(filter_vulnerable_transitives(groups))
        self.progress.update(FINALISING_RESULTS, 100)

        return AnalysisResult(dependencies=groups, error=store.error_summary() or None)

    async def _parse_manifests(self, manifests: ManifestContents, store: AnalysisStore, registry: RegistryClient) -> None:
        async def parse_family(family: str, files: List[ManifestFile]) -> None:
            manager = manager_for_family(family)
            if not manager:
                store.record_error(FILE_PARSING, f"Unsupported manifest group: {family}")
                return
            try:
                await manager.parse(files, store, registry)
            except Exception as e:
                logging.exception(f"Error parsing {manager.name} manifests:")
                store.record_error(FILE_PARSING, f"Failed to parse {manager.name} manifests: {e}")

        # families run concurrently; store mutations never span an await
        await asyncio.gather(*(parse_family(family, files) for family, files in manifests.items()))
