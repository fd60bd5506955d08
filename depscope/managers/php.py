import json
from typing import List, Tuple

from depscope.core.model import Ecosystem, ManifestFile
from depscope.core.registry import RegistryClient
from depscope.managers.base import ManifestError, PackageManager, section

# Platform requirements are not packages
PLATFORM_PREFIXES = ("ext-", "lib-", "composer-")


def is_platform_requirement(name: str) -> bool:
    return name in ("php", "php-64bit", "hhvm", "composer") or name.startswith(PLATFORM_PREFIXES)


class ComposerManager(PackageManager):
    @property
    def name(self) -> str:
        return "Composer"

    @property
    def ecosystem(self) -> Ecosystem:
        return Ecosystem.COMPOSER

    @property
    def family(self) -> str:
        return "php"

    @property
    def manifest_files(self) -> list[str]:
        return ["composer.json"]

    async def parse_file(self, manifest: ManifestFile, registry: RegistryClient) -> List[Tuple[str, str]]:
        try:
            data = json.loads(manifest.content)
        except json.JSONDecodeError as e:
            raise ManifestError(f"Error reading composer.json: {e}")

        if not isinstance(data, dict):
            raise ManifestError("composer.json is not a JSON object")

        pairs = []
        for key in ("require", "require-dev"):
            for name, constraint in section(data, key, "composer.json").items():
                if is_platform_requirement(name.lower()):
                    continue
                pairs.append((name, constraint if isinstance(constraint, str) else ""))

        return pairs
