import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from depscope.core.batching import ProgressSink, partition, process_batches
from depscope.core.config import Settings
from depscope.core.model import Dependency, Edge, Outcome, TransitiveDependency, map_ecosystem
from depscope.core.retry import with_retry
from depscope.core.store import TRANSITIVE_FETCH, AnalysisStore
from depscope.core.version import UNKNOWN


def dependencies_url(settings: Settings, dep: Dependency) -> str:
    return (
        f"{settings.deps_dev_url}/{dep.ecosystem.deps_dev_system}"
        f"/packages/{quote(dep.name, safe='')}"
        f"/versions/{quote(dep.version, safe='')}:dependencies"
    )


def to_transitive_graph(payload: Dict[str, Any]) -> TransitiveDependency:
    """Maps a deps.dev dependency graph onto our index-addressed graph."""
    nodes = []
    for node in payload.get("nodes") or []:
        version_key = node.get("versionKey") or {}
        nodes.append(Dependency(
            name=version_key.get("name", ""),
            version=version_key.get("version", UNKNOWN),
            ecosystem=map_ecosystem(version_key.get("system")),
            vulnerabilities=[],
            dependency_type=node.get("relation"),
        ))

    edges = [
        Edge(
            source=edge.get("fromNode", 0),
            target=edge.get("toNode", 0),
            requirement=edge.get("requirement", ""),
        )
        for edge in payload.get("edges") or []
    ]
    return TransitiveDependency(nodes=nodes, edges=edges)


async def fetch_transitive_graph(
    client: httpx.AsyncClient, settings: Settings, dep: Dependency
) -> TransitiveDependency:
    url = dependencies_url(settings, dep)

    async def fetch():
        response = await client.get(url)
        response.raise_for_status()
        return response.json()

    budget = settings.transitive_retry
    payload = await with_retry(fetch, budget.max_retries, budget.base_delay)
    return to_transitive_graph(payload or {})


async def resolve_transitive_dependencies(
    client: httpx.AsyncClient,
    dependencies: List[Dependency],
    store: AnalysisStore,
    settings: Settings,
    on_progress: Optional[ProgressSink] = None,
) -> List[Dependency]:
    """
    Attaches the deps.dev dependency graph to every dependency with a known version.
    Dependencies whose graph cannot be fetched are left untouched and reported.
    """
    resolvable = [d for d in dependencies if d.version != UNKNOWN]
    logging.info(f"Resolving transitive dependencies for {len(resolvable)} of {len(dependencies)} packages...")

    async def process(dep: Dependency) -> Outcome:
        try:
            return Outcome(item=dep, value=await fetch_transitive_graph(client, settings, dep))
        except Exception as e:
            return Outcome(item=dep, error=e)

    outcomes = await process_batches(
        resolvable,
        settings.transitive_batch_size,
        settings.transitive_concurrency,
        process,
        on_progress,
    )

    succeeded, failed = partition(outcomes)
    for outcome in succeeded:
        outcome.item.transitive_dependencies = outcome.value
    for outcome in failed:
        dep = outcome.item
        store.record_error(
            TRANSITIVE_FETCH,
            f"Failed to fetch transitive dependencies for {dep.name}@{dep.version} ({dep.ecosystem.value}): {outcome.error}",
        )

    logging.debug(f"Transitive graphs resolved: {len(succeeded)} ok, {len(failed)} failed")
    return dependencies
