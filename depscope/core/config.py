from dataclasses import dataclass

import httpx
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

OSV_BATCH_URL = "https://api.osv.dev/v1/querybatch"
OSV_VULN_URL = "https://api.osv.dev/v1/vulns/"
DEPS_DEV_URL = "https://api.deps.dev/v3/systems"
NPM_REGISTRY_URL = "https://registry.npmjs.org/"
PYPI_URL = "https://pypi.org/pypi/"


@dataclass
class RetryBudget:
    max_retries: int
    base_delay: float


class Settings(BaseSettings):
    """
    Runtime knobs of an analysis run.

    Every field can be overridden with a DEPSCOPE_ environment variable.
    Example: DEPSCOPE_VULN_CONCURRENCY=10
    """

    model_config = SettingsConfigDict(
        env_prefix="DEPSCOPE_",
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
    )

    # Service endpoints
    osv_batch_url: str = OSV_BATCH_URL
    osv_vuln_url: str = OSV_VULN_URL
    deps_dev_url: str = DEPS_DEV_URL
    npm_registry_url: str = NPM_REGISTRY_URL
    pypi_url: str = PYPI_URL

    # Batch size / concurrent batches per phase
    transitive_batch_size: int = Field(default=15, ge=1)
    transitive_concurrency: int = Field(default=6, ge=1)
    vuln_batch_size: int = Field(default=50, ge=1)
    vuln_concurrency: int = Field(default=50, ge=1)
    details_batch_size: int = Field(default=50, ge=1)
    details_concurrency: int = Field(default=10, ge=1)

    # Attempts and first backoff delay (seconds) per call site
    query_max_retries: int = Field(default=5, ge=1)
    query_base_delay: float = Field(default=1.0, ge=0)
    transitive_max_retries: int = Field(default=4, ge=1)
    transitive_base_delay: float = Field(default=0.8, ge=0)
    details_max_retries: int = Field(default=4, ge=1)
    details_base_delay: float = Field(default=0.8, ge=0)
    registry_max_retries: int = Field(default=2, ge=1)
    registry_base_delay: float = Field(default=0.5, ge=0)

    timeout: float = Field(default=45.0, gt=0, description="HTTP timeout in seconds")
    max_connections: int = Field(default=100, ge=1)
    max_keepalive_connections: int = Field(default=20, ge=1)

    @property
    def query_retry(self) -> RetryBudget:
        return RetryBudget(self.query_max_retries, self.query_base_delay)

    @property
    def transitive_retry(self) -> RetryBudget:
        return RetryBudget(self.transitive_max_retries, self.transitive_base_delay)

    @property
    def details_retry(self) -> RetryBudget:
        return RetryBudget(self.details_max_retries, self.details_base_delay)

    @property
    def registry_retry(self) -> RetryBudget:
        return RetryBudget(self.registry_max_retries, self.registry_base_delay)

    @classmethod
    def from_env(cls) -> "Settings":
        """Loads the settings from the environment. Invalid values raise pydantic's ValidationError (a ValueError)."""
        return cls()

    def build_client(self) -> httpx.AsyncClient:
        limits = httpx.Limits(
            max_keepalive_connections=self.max_keepalive_connections,
            max_connections=self.max_connections,
        )
        return httpx.AsyncClient(timeout=self.timeout, limits=limits, follow_redirects=True)
