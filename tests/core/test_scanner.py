import json
import unittest

import httpx

from depscope.core.config import Settings
from depscope.core.graph import filter_main_dependencies, filter_vulnerable_transitives
from depscope.core.model import Dependency, Ecosystem, Edge, TransitiveDependency
from depscope.core.scanner import VulnerabilityScanError, build_vulnerability, scan_vulnerabilities
from depscope.core.store import AnalysisStore

VULN_IDS = {"express": ["OSV-EXP-001"], "qs": ["OSV-QS-002"]}

VULN_DETAILS = {
    "OSV-EXP-001": {
        "id": "OSV-EXP-001",
        "summary": "Main vuln",
        "severity": [{"type": "cvss_v3", "score": "AV:N/AC:L/PR:N/UI:N/S:U/C:H/I:H/A:H"}],
    },
    "OSV-QS-002": {
        "id": "OSV-QS-002",
        "summary": "Transitive vuln",
        "severity": [{"type": "cvss_v3", "score": "AV:N/AC:L/PR:N/UI:N/S:U/C:L/I:L/A:L"}],
    },
}


def express_fixture():
    return Dependency(
        "express", "4.18.2", Ecosystem.NPM,
        transitive_dependencies=TransitiveDependency(
            nodes=[
                Dependency("qs", "6.10.3", Ecosystem.NPM),
                Dependency("debug", "2.6.9", Ecosystem.NPM),
            ],
            edges=[Edge(0, 1, "^2.6.9")],
        ),
    )


class OSVStub:
    """Minimal OSV API: batch queries answered from VULN_IDS, details from VULN_DETAILS."""

    def __init__(self, batch_status=200, missing_details=(), details=None):
        self.details = details or VULN_DETAILS
        self.batches = []
        self.detail_requests = []
        self.batch_status = batch_status
        self.missing_details = set(missing_details)

    def __call__(self, request):
        if request.method == "POST":
            queries = json.loads(request.content)["queries"]
            self.batches.append(queries)
            if self.batch_status != 200:
                return httpx.Response(self.batch_status)
            results = []
            for query in queries:
                ids = VULN_IDS.get(query["package"]["name"], [])
                results.append({"vulns": [{"id": i} for i in ids]} if ids else {})
            return httpx.Response(200, json={"results": results})

        vuln_id = request.url.path.rsplit("/", 1)[-1]
        self.detail_requests.append(vuln_id)
        if vuln_id in self.missing_details or vuln_id not in self.details:
            return httpx.Response(404)
        return httpx.Response(200, json=self.details[vuln_id])


class TestScanVulnerabilities(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        self.settings = Settings(query_max_retries=1, details_max_retries=1)
        self.store = AnalysisStore()

    async def scan(self, stub, dependencies):
        async with httpx.AsyncClient(transport=httpx.MockTransport(stub)) as client:
            return await scan_vulnerabilities(client, dependencies, self.store, self.settings)

    async def test_main_and_transitive_dependencies_are_enriched(self):
        express = express_fixture()

        await self.scan(OSVStub(), [express])

        self.assertEqual(len(express.vulnerabilities), 1)
        main_vuln = express.vulnerabilities[0]
        self.assertEqual(main_vuln.id, "OSV-EXP-001")
        self.assertEqual(main_vuln.summary, "Main vuln")
        self.assertEqual(main_vuln.severity_score.cvss_v3, "9.8")
        self.assertEqual(main_vuln.severity_score.cvss_v4, "unknown")
        self.assertEqual(main_vuln.fix_available, "")

        qs, debug = express.transitive_dependencies.nodes
        self.assertEqual(qs.vulnerabilities[0].summary, "Transitive vuln")
        self.assertEqual(qs.vulnerabilities[0].severity_score.cvss_v3, "7.3")
        self.assertEqual(debug.vulnerabilities, [])
        self.assertFalse(self.store.has_errors)

    async def test_filtering_after_enrichment_drops_debug(self):
        express = express_fixture()
        await self.scan(OSVStub(), [express])

        groups = filter_main_dependencies(filter_vulnerable_transitives({"package.json": [express]}))

        graph = groups["package.json"][0].transitive_dependencies
        self.assertEqual([n.name for n in graph.nodes], ["qs"])
        self.assertEqual(graph.edges, [])

    async def test_shared_dependencies_are_queried_once(self):
        stub = OSVStub()
        first = express_fixture()
        second = Dependency(
            "body-parser", "1.20.1", Ecosystem.NPM,
            transitive_dependencies=TransitiveDependency(nodes=[Dependency("qs", "6.10.3", Ecosystem.NPM)]),
        )

        await self.scan(stub, [first, second])

        queried = [q["package"]["name"] for batch in stub.batches for q in batch]
        self.assertEqual(sorted(queried), ["body-parser", "debug", "express", "qs"])
        self.assertEqual(sorted(stub.detail_requests), ["OSV-EXP-001", "OSV-QS-002"])
        self.assertEqual(second.transitive_dependencies.nodes[0].vulnerabilities[0].summary, "Transitive vuln")

    async def test_pagination_follows_next_page_token(self):
        posts = []

        def handler(request):
            if request.method == "POST":
                query = json.loads(request.content)["queries"][0]
                posts.append(query)
                if "page_token" not in query:
                    return httpx.Response(200, json={"results": [{"vulns": [{"id": "A"}], "next_page_token": "tok-1"}]})
                if query["page_token"] == "tok-1":
                    return httpx.Response(200, json={"results": [{"vulns": [{"id": "B"}], "next_page_token": "tok-2"}]})
                return httpx.Response(200, json={"results": [{"vulns": [{"id": "C"}]}]})
            vuln_id = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={"id": vuln_id, "summary": f"vuln {vuln_id}"})

        dep = Dependency("lodash", "4.17.20", Ecosystem.NPM)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await scan_vulnerabilities(client, [dep], self.store, self.settings)

        self.assertEqual(len(posts), 3)
        self.assertEqual([p.get("page_token") for p in posts], [None, "tok-1", "tok-2"])
        self.assertEqual(posts[1]["package"], {"name": "lodash", "ecosystem": "npm"})
        self.assertEqual([v.id for v in dep.vulnerabilities], ["A", "B", "C"])
        self.assertTrue(all(v.summary for v in dep.vulnerabilities))

    async def test_batches_respect_the_batch_size(self):
        stub = OSVStub()
        self.settings.vuln_batch_size = 2
        deps = [Dependency(f"pkg-{i}", "1.0.0", Ecosystem.PYPI) for i in range(5)]

        await self.scan(stub, deps)

        self.assertEqual(sorted(len(b) for b in stub.batches), [1, 2, 2])
        self.assertIn({"package": {"name": "pkg-0", "ecosystem": "PyPI"}, "version": "1.0.0"}, [q for b in stub.batches for q in b])

    async def test_failed_detail_fetch_keeps_placeholder(self):
        express = express_fixture()

        await self.scan(OSVStub(missing_details=["OSV-QS-002"]), [express])

        qs = express.transitive_dependencies.nodes[0]
        self.assertEqual(qs.vulnerabilities[0].id, "OSV-QS-002")
        self.assertIsNone(qs.vulnerabilities[0].summary)
        self.assertIn("OSV-QS-002", self.store.errors()["Vulnerability Details Fetch"][0])

    async def test_malformed_detail_does_not_discard_other_details(self):
        express = express_fixture()
        details = dict(VULN_DETAILS)
        details["OSV-QS-002"] = {"id": "OSV-QS-002", "severity": ["CVSS:3.1/AV:N"], "affected": "all"}

        await self.scan(OSVStub(details=details), [express])

        self.assertEqual(express.vulnerabilities[0].summary, "Main vuln")
        qs = express.transitive_dependencies.nodes[0]
        self.assertEqual(qs.vulnerabilities[0].id, "OSV-QS-002")
        self.assertIsNone(qs.vulnerabilities[0].summary)
        self.assertIn("OSV-QS-002", self.store.errors()["Vulnerability Details Fetch"][0])

    async def test_total_outage_raises(self):
        stub = OSVStub(batch_status=503)

        with self.assertRaises(VulnerabilityScanError):
            await self.scan(stub, [express_fixture()])

        self.assertEqual(len(self.store.errors()["Vulnerability Scanning"]), 1)

    async def test_unknown_versions_are_not_queried(self):
        stub = OSVStub()
        dep = Dependency("express", "unknown", Ecosystem.NPM)

        await self.scan(stub, [dep])

        self.assertEqual(stub.batches, [])
        self.assertEqual(dep.vulnerabilities, [])


class TestBuildVulnerability(unittest.TestCase):

    def test_fix_comes_from_first_fixed_event(self):
        data = {
            "id": "GHSA-xxxx",
            "aliases": ["CVE-2022-24999"],
            "references": [{"type": "ADVISORY", "url": "https://example.test"}],
            "affected": [
                {"ranges": [{"type": "SEMVER", "events": [{"introduced": "0"}, {"fixed": "6.10.3"}, {"fixed": "6.11.0"}]}]},
                {"ranges": [{"type": "SEMVER", "events": [{"introduced": "0"}, {"fixed": "9.9.9"}]}]},
            ],
        }

        vuln = build_vulnerability(data, "GHSA-xxxx")

        self.assertEqual(vuln.fix_available, "6.10.3")
        self.assertEqual(vuln.aliases, ["CVE-2022-24999"])
        self.assertEqual(len(vuln.references), 1)
        self.assertEqual(len(vuln.affected), 2)
        self.assertEqual(vuln.severity_score.cvss_v3, "unknown")
