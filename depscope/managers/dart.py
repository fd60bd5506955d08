from typing import Any, List, Tuple

import yaml

from depscope.core.model import Ecosystem, ManifestFile
from depscope.core.registry import RegistryClient
from depscope.core.version import UNKNOWN
from depscope.managers.base import ManifestError, PackageManager, section


def _declared_version(spec: Any) -> str:
    # "^1.2.0", {version: "^1.2.0", hosted: ...}, {sdk: flutter}, {path: ../x}, null
    if isinstance(spec, str):
        return spec
    if isinstance(spec, (int, float)):
        return str(spec)
    if isinstance(spec, dict) and isinstance(spec.get("version"), str):
        return spec["version"]
    return UNKNOWN


class PubManager(PackageManager):
    @property
    def name(self) -> str:
        return "Pub"

    @property
    def ecosystem(self) -> Ecosystem:
        return Ecosystem.PUB

    @property
    def family(self) -> str:
        return "Pub"

    @property
    def manifest_files(self) -> list[str]:
        return ["pubspec.yaml"]

    async def parse_file(self, manifest: ManifestFile, registry: RegistryClient) -> List[Tuple[str, str]]:
        try:
            data = yaml.safe_load(manifest.content) or {}
        except yaml.YAMLError as e:
            raise ManifestError(f"Error reading pubspec.yaml: {e}")

        if not isinstance(data, dict):
            raise ManifestError("pubspec.yaml is not a mapping")

        pairs = []
        for key in ("dependencies", "dev_dependencies"):
            for name, spec in section(data, key, "pubspec.yaml").items():
                pairs.append((str(name), _declared_version(spec)))

        return pairs
