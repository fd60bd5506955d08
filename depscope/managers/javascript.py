import asyncio
import json
import logging
from typing import List, Tuple

from depscope.core.model import Ecosystem, ManifestFile
from depscope.core.registry import RegistryClient
from depscope.managers.base import ManifestError, PackageManager, section

# Specifiers that only make sense against the live registry
LATEST_MARKERS = ("", "*", "latest")


class NodeManager(PackageManager):
    @property
    def name(self) -> str:
        return "NPM"

    @property
    def ecosystem(self) -> Ecosystem:
        return Ecosystem.NPM

    @property
    def family(self) -> str:
        return "npm"

    @property
    def manifest_files(self) -> list[str]:
        return ["package.json"]

    async def parse_file(self, manifest: ManifestFile, registry: RegistryClient) -> List[Tuple[str, str]]:
        try:
            data = json.loads(manifest.content)
        except json.JSONDecodeError as e:
            raise ManifestError(f"Error reading package.json: {e}")

        if not isinstance(data, dict):
            raise ManifestError("package.json is not a JSON object")

        declared = {}
        declared.update(section(data, "dependencies", "package.json"))
        declared.update(section(data, "devDependencies", "package.json"))

        names = list(declared)
        versions = [spec.strip() if isinstance(spec, str) else "" for spec in declared.values()]

        # registry lookups for one file run together
        pending = [i for i, version in enumerate(versions) if version in LATEST_MARKERS]
        if pending:
            latest = await asyncio.gather(*(registry.latest_npm_version(names[i]) for i in pending))
            for i, version in zip(pending, latest):
                logging.debug(f"Resolved {names[i]}@{versions[i] or '<empty>'} to {version}")
                versions[i] = version

        return list(zip(names, versions))
