import re
from typing import List, Tuple

from depscope.core.model import Ecosystem, ManifestFile
from depscope.core.registry import RegistryClient
from depscope.core.version import UNKNOWN
from depscope.managers.base import PackageManager

# Matches: gem "name", "version"  or  gem 'name', '~> 1.0.0'
re_gem = re.compile(r'''^gem\s+['"]([^'"]+)['"](\s*,\s*['"]([^'"]+)['"])?''')


class RubyManager(PackageManager):
    @property
    def name(self) -> str:
        return "RubyGems"

    @property
    def ecosystem(self) -> Ecosystem:
        return Ecosystem.RUBYGEMS

    @property
    def family(self) -> str:
        return "RubyGems"

    @property
    def manifest_files(self) -> list[str]:
        return ["Gemfile"]

    async def parse_file(self, manifest: ManifestFile, registry: RegistryClient) -> List[Tuple[str, str]]:
        pairs = []

        for line in manifest.content.splitlines():
            line = line.strip()
            if not line.startswith("gem "):
                continue

            match = re_gem.match(line)
            if match:
                name = match.group(1)
                version = match.group(3) or UNKNOWN
                pairs.append((name, version))

        return pairs
