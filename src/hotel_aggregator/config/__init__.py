"""Runtime configuration."""

from .run_config import RunConfig
from .settings import ProviderEndpoint, Settings

__all__ = ["ProviderEndpoint", "RunConfig", "Settings"]
