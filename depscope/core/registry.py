import logging
from urllib.parse import quote

import httpx

from depscope.core.config import Settings
from depscope.core.retry import with_retry
from depscope.core.version import UNKNOWN


class RegistryClient:
    """Looks up the newest published version of a package on npm or PyPI."""

    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    async def latest_npm_version(self, name: str) -> str:
        # scoped packages keep their "@scope/" prefix, the slash is encoded
        url = f"{self.settings.npm_registry_url}{quote(name, safe='@')}"
        data = await self._get_json(url, name)
        return (data.get("dist-tags") or {}).get("latest") or UNKNOWN

    async def latest_pypi_version(self, name: str) -> str:
        url = f"{self.settings.pypi_url}{quote(name)}/json"
        data = await self._get_json(url, name)
        return (data.get("info") or {}).get("version") or UNKNOWN

    async def _get_json(self, url: str, name: str) -> dict:
        async def fetch():
            response = await self.client.get(url)
            response.raise_for_status()
            return response.json()

        budget = self.settings.registry_retry
        try:
            return await with_retry(fetch, budget.max_retries, budget.base_delay)
        except (httpx.HTTPError, ValueError) as e:
            logging.warning(f"Failed to fetch latest version for {name}: {e}")
            return {}
