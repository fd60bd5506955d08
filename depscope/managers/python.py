import asyncio
import logging
import re
from typing import List, Tuple

from depscope.core.model import Ecosystem, ManifestFile
from depscope.core.registry import RegistryClient
from depscope.core.version import UNKNOWN
from depscope.managers.base import PackageManager

# Matches: package==1.0, package[extra]>=1.0, package
re_req = re.compile(r'^([a-zA-Z0-9][a-zA-Z0-9\-_.]*)(\[[^\]]*\])?\s*(([<>=!~]+)\s*([^;,\s]+))?')

# Matches: package @ https://..., package[extra] @ file:///...
re_direct = re.compile(r'^([a-zA-Z0-9][a-zA-Z0-9\-_.]*)(\[[^\]]*\])?\s*@\s*\S+')


class PythonManager(PackageManager):
    @property
    def name(self) -> str:
        return "PyPI (Pip)"

    @property
    def ecosystem(self) -> Ecosystem:
        return Ecosystem.PYPI

    @property
    def family(self) -> str:
        return "PyPI"

    @property
    def manifest_files(self) -> list[str]:
        return ["requirements.txt"]

    def detect(self, files: list[str]) -> bool:
        if super().detect(files):
            return True

        for f in files:
            if "requirements" in f and f.endswith(".txt"):
                return True

        return False

    async def parse_file(self, manifest: ManifestFile, registry: RegistryClient) -> List[Tuple[str, str]]:
        names = []
        versions = []

        for line in manifest.content.splitlines():
            line = line.split(" #", 1)[0].strip()
            if not line or line.startswith(("#", "-")):
                continue

            if "://" in line:
                # direct references carry no registry version; bare VCS/URL lines carry no name
                direct = re_direct.match(line)
                if direct:
                    names.append(direct.group(1))
                    versions.append(UNKNOWN)
                else:
                    logging.debug(f"Skipping URL requirement in {manifest.path}: {line}")
                continue

            match = re_req.match(line)
            if not match:
                logging.debug(f"Skipping unrecognised requirement in {manifest.path}: {line}")
                continue

            names.append(match.group(1))
            versions.append(match.group(5) or "")

        pending = [i for i, version in enumerate(versions) if not version]
        if pending:
            latest = await asyncio.gather(*(registry.latest_pypi_version(names[i]) for i in pending))
            for i, version in zip(pending, latest):
                logging.debug(f"Resolved unpinned {names[i]} to {version}")
                versions[i] = version

        return list(zip(names, versions))
