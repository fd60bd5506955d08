import logging
from typing import Any, Dict, List, Optional

import httpx

from depscope.core.batching import ProgressSink, chunk, partition, process_batches
from depscope.core.config import Settings
from depscope.core.model import Dependency, Ecosystem, Outcome, Vulnerability
from depscope.core.retry import with_retry
from depscope.core.severity import compute_severity
from depscope.core.store import VULNERABILITY_DETAILS, VULNERABILITY_SCANNING, AnalysisStore
from depscope.core.version import UNKNOWN


class VulnerabilityScanError(Exception):
    """Raised when no vulnerability batch could be queried at all."""


def flatten_dependencies(dependencies: List[Dependency]) -> List[Dependency]:
    """Main dependencies first, then every transitive node, in order."""
    transitive = []
    for dep in dependencies:
        if dep.transitive_dependencies:
            transitive.extend(dep.transitive_dependencies.nodes)
    return list(dependencies) + transitive


def build_query(dep: Dependency) -> Dict[str, Any]:
    return {
        "package": {"name": dep.name, "ecosystem": dep.ecosystem.value},
        "version": dep.version,
    }


async def _post_batch(client: httpx.AsyncClient, settings: Settings, queries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    async def post():
        response = await client.post(settings.osv_batch_url, json={"queries": queries})
        response.raise_for_status()
        return response.json()

    budget = settings.query_retry
    data = await with_retry(post, budget.max_retries, budget.base_delay)
    results = (data or {}).get("results", [])
    if len(results) != len(queries):
        raise ValueError(f"OSV returned {len(results)} results for {len(queries)} queries")
    return results


async def query_vulnerability_ids(
    client: httpx.AsyncClient, settings: Settings, deps: List[Dependency]
) -> Dict[str, List[str]]:
    """
    Runs one OSV batch query for `deps` and follows `next_page_token` until every
    query is exhausted. Returns vulnerability IDs per dependency key.
    """
    found: Dict[str, List[str]] = {dep.key: [] for dep in deps}
    pending = [(dep.key, build_query(dep)) for dep in deps]

    rounds = 0
    while pending:
        rounds += 1
        results = await _post_batch(client, settings, [query for _, query in pending])

        next_pending = []
        for (key, query), result in zip(pending, results):
            for vuln in result.get("vulns") or []:
                vuln_id = vuln.get("id")
                if vuln_id and vuln_id not in found[key]:
                    found[key].append(vuln_id)

            token = result.get("next_page_token")
            if token:
                next_pending.append((key, {**query, "page_token": token}))

        pending = next_pending

    if rounds > 1:
        logging.debug(f"OSV batch needed {rounds} paginated rounds")
    return found


def build_vulnerability(data: Dict[str, Any], vuln_id: str) -> Vulnerability:
    affected = data.get("affected") or []

    fix_available = ""
    ranges = (affected[0].get("ranges") or []) if affected else []
    if ranges:
        for event in ranges[0].get("events") or []:
            if event.get("fixed"):
                fix_available = event["fixed"]
                break

    return Vulnerability(
        id=data.get("id") or vuln_id,
        summary=data.get("summary"),
        details=data.get("details"),
        severity_score=compute_severity(data.get("severity")),
        references=data.get("references") or [],
        affected=affected,
        fix_available=fix_available,
        aliases=data.get("aliases") or [],
    )


async def _hydrate_vulnerability(client: httpx.AsyncClient, settings: Settings, vuln_id: str) -> Vulnerability:
    async def fetch():
        response = await client.get(f"{settings.osv_vuln_url}{vuln_id}")
        response.raise_for_status()
        return response.json()

    budget = settings.details_retry
    data = await with_retry(fetch, budget.max_retries, budget.base_delay)
    return build_vulnerability(data or {}, vuln_id)


def _queryable(dep: Dependency) -> bool:
    return dep.ecosystem != Ecosystem.UNKNOWN and dep.version != UNKNOWN and bool(dep.name)


async def scan_vulnerabilities(
    client: httpx.AsyncClient,
    dependencies: List[Dependency],
    store: AnalysisStore,
    settings: Settings,
    on_id_progress: Optional[ProgressSink] = None,
    on_detail_progress: Optional[ProgressSink] = None,
) -> List[Dependency]:
    """
    Enriches main and transitive dependencies with OSV vulnerabilities, in place.

    IDs are discovered with batch queries first; full records are then fetched once
    per unique ID and shared by every dependency that references it.
    """
    instances: Dict[str, List[Dependency]] = {}
    for dep in flatten_dependencies(dependencies):
        dep.vulnerabilities = []
        instances.setdefault(dep.key, []).append(dep)

    unique = [group[0] for group in instances.values() if _queryable(group[0])]
    logging.info(f"Scanning {len(unique)} unique packages for vulnerabilities...")
    if not unique:
        return dependencies

    async def process_ids(batch: List[Dependency]) -> Outcome:
        try:
            return Outcome(item=batch, value=await query_vulnerability_ids(client, settings, batch))
        except Exception as e:
            return Outcome(item=batch, error=e)

    outcomes = await process_batches(
        chunk(unique, settings.vuln_batch_size), 1, settings.vuln_concurrency, process_ids, on_id_progress
    )
    succeeded, failed = partition(outcomes)

    for outcome in failed:
        names = ", ".join(dep.name for dep in outcome.item[:3])
        store.record_error(
            VULNERABILITY_SCANNING,
            f"Failed to query vulnerabilities for {len(outcome.item)} packages ({names}...): {outcome.error}",
        )
    if not succeeded:
        raise VulnerabilityScanError("Failed to fetch vulnerabilities from osv.dev")

    vuln_ids: List[str] = []
    seen = set()
    for outcome in succeeded:
        for key, ids in outcome.value.items():
            for dep in instances[key]:
                dep.vulnerabilities = [Vulnerability(id=vuln_id) for vuln_id in ids]
            for vuln_id in ids:
                if vuln_id not in seen:
                    seen.add(vuln_id)
                    vuln_ids.append(vuln_id)

    logging.info(f"Fetching details for {len(vuln_ids)} unique vulnerabilities...")

    async def process_details(vuln_id: str) -> Outcome:
        try:
            return Outcome(item=vuln_id, value=await _hydrate_vulnerability(client, settings, vuln_id))
        except Exception as e:
            return Outcome(item=vuln_id, error=e)

    outcomes = await process_batches(
        vuln_ids, settings.details_batch_size, settings.details_concurrency, process_details, on_detail_progress
    )
    succeeded, failed = partition(outcomes)

    for outcome in failed:
        store.record_error(VULNERABILITY_DETAILS, f"Failed to fetch details for {outcome.item}: {outcome.error}")

    details = {outcome.item: outcome.value for outcome in succeeded}
    enrich_dependencies(flatten_dependencies(dependencies), details)
    return dependencies


def enrich_dependencies(dependencies: List[Dependency], details: Dict[str, Vulnerability]) -> None:
    """Replaces ID-only placeholders with their full records."""
    for dep in dependencies:
        dep.vulnerabilities = [details.get(v.id, v) for v in dep.vulnerabilities]
