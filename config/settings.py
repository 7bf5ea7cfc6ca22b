"""Portal and pool configuration.

The portal is configured with two documents: a portal-wide configuration
(website, statistics refresh, redis, admin center) and a map of pool
configurations keyed by coin name. Both can be supplied as JSON in the
``PORTAL_CONFIG`` and ``POOLS`` environment variables, or as files on disk.
"""
import json
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TEMPLATES_DIR = str(Path(__file__).resolve().parent.parent / "website" / "templates")

# template file name -> page id; the frame page wraps every other page
DEFAULT_PAGES = {
    "index.html": "index",
    "home.html": "",
    "workers.html": "workers",
    "miner_stats.html": "miner-statistics",
    "user_shares.html": "user_shares",
}


class StatsConfig(BaseModel):
    """Statistics refresh settings."""
    model_config = ConfigDict(populate_by_name=True)

    update_interval: int = Field(default=60, gt=0, alias="updateInterval")
    fetch_timeout: float = Field(default=10.0, gt=0, alias="fetchTimeout")
    source_url: str = Field(default="http://127.0.0.1:8080", alias="sourceUrl")


class AdminCenterConfig(BaseModel):
    enabled: bool = False
    password: Optional[str] = None


class WebsiteConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    host: str = "0.0.0.0"
    port: int = 80
    stats: StatsConfig = Field(default_factory=StatsConfig)
    admin_center: AdminCenterConfig = Field(default_factory=AdminCenterConfig, alias="adminCenter")
    templates_dir: str = Field(default=DEFAULT_TEMPLATES_DIR, alias="templatesDir")
    pages: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_PAGES))
    frame_page: str = Field(default="index", alias="framePage")
    donate_protocol: str = Field(default="litecoin", alias="donateProtocol")

    @model_validator(mode="after")
    def check_frame_page(self) -> "WebsiteConfig":
        if self.frame_page not in self.pages.values():
            raise ValueError(f"frame page {self.frame_page!r} is not in the page table")
        if len(set(self.pages.values())) != len(self.pages):
            raise ValueError("page ids must be unique across the page table")
        return self

    def page_ids(self):
        """Every configured page id except the frame."""
        return [page_id for page_id in self.pages.values() if page_id != self.frame_page]

    def template_path(self, file_name: str) -> Path:
        """Location of a template file; the frame lives at the top level."""
        base = Path(self.templates_dir)
        if self.pages.get(file_name) == self.frame_page:
            return base / file_name
        return base / "pages" / file_name


class RedisConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None

    @property
    def url(self) -> str:
        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


class PortalConfig(BaseModel):
    """Portal-wide configuration."""
    model_config = ConfigDict(populate_by_name=True)

    website: WebsiteConfig = Field(default_factory=WebsiteConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    rpc_timeout: float = Field(default=10.0, gt=0, alias="rpcTimeout")
    resolver_concurrency: int = Field(default=4, ge=1, alias="resolverConcurrency")

    def template_context(self) -> Dict[str, Any]:
        """Configuration as exposed to templates; secrets are left out."""
        data = self.model_dump(by_alias=True)
        data["website"]["adminCenter"].pop("password", None)
        data["redis"].pop("password", None)
        return data


class DaemonConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int
    user: str = ""
    password: str = ""

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/"


class PaymentProcessingConfig(BaseModel):
    enabled: bool = True
    daemon: DaemonConfig


class PoolConfig(BaseModel):
    """Configuration of one pool; unknown keys are kept for the templates."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    enabled: bool = True
    address: str
    payment_processing: PaymentProcessingConfig = Field(alias="paymentProcessing")

    def template_context(self) -> Dict[str, Any]:
        data = self.model_dump(by_alias=True)
        data["paymentProcessing"]["daemon"].pop("password", None)
        return data


class PortalSettings(BaseSettings):
    """Where to load configuration from, read from the environment."""
    model_config = SettingsConfigDict(extra="ignore")

    portal_config: Optional[Dict[str, Any]] = Field(default=None, description="Portal configuration as JSON")
    pools: Optional[Dict[str, Dict[str, Any]]] = Field(default=None, description="Pool configurations as JSON")
    portal_config_file: Optional[str] = Field(default=None, description="Path to a portal config JSON file")
    pool_configs_dir: Optional[str] = Field(default=None, description="Directory of pool config JSON files")


def _load_pool_dir(directory: str) -> Dict[str, Dict[str, Any]]:
    pools = {}
    for path in sorted(Path(directory).glob("*.json")):
        with open(path) as f:
            data = json.load(f)
        pools[data.pop("name", path.stem)] = data
    return pools


def load_settings(settings: Optional[PortalSettings] = None) -> Tuple[PortalConfig, Dict[str, PoolConfig]]:
    """Load the portal configuration and the enabled pool configurations."""
    settings = settings or PortalSettings()

    if settings.portal_config is not None:
        portal_data = settings.portal_config
    elif settings.portal_config_file:
        with open(settings.portal_config_file) as f:
            portal_data = json.load(f)
    else:
        portal_data = {}

    if settings.pools is not None:
        pool_data = settings.pools
    elif settings.pool_configs_dir:
        pool_data = _load_pool_dir(settings.pool_configs_dir)
    else:
        pool_data = {}

    portal_config = PortalConfig.model_validate(portal_data)
    pool_configs = {}
    for name, data in pool_data.items():
        pool = PoolConfig.model_validate(data)
        if pool.enabled:
            pool_configs[name] = pool
    return portal_config, pool_configs
