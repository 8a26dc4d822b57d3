"""
Configuration for the Lifecycle Workflow Engine.

Settings are plain Pydantic models loaded from a YAML file, with a few
environment variable overrides for deployment paths.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field

from .models import IntegrationKind

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "lifecycle_engine.yaml"


class ProviderSettings(BaseModel):
    """Connection settings for one integration provider."""
    endpoint: Optional[str] = Field(None, description="HTTP endpoint; mock provider used when unset")
    api_key: Optional[str] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    fail_times: int = Field(0, ge=0, description="Mock only: number of initial calls that fail")
    fail_always: bool = Field(False, description="Mock only: every call fails")


class IntegrationSettings(BaseModel):
    """Retry and transport settings for external integrations."""
    max_attempts: int = Field(3, ge=1)
    timeout_seconds: float = Field(30.0, gt=0)
    backoff_base_seconds: float = Field(2.0, ge=1.0)
    backoff_max_seconds: float = Field(3600.0, gt=0)
    claim_timeout_seconds: float = Field(
        300.0, gt=0, description="In-flight attempts with no recorded outcome after this long are sent again"
    )
    mock_mode: bool = Field(True, description="Use simulated providers instead of real endpoints")
    providers: Dict[IntegrationKind, ProviderSettings] = Field(default_factory=dict)

    def provider(self, kind: IntegrationKind) -> ProviderSettings:
        return self.providers.get(kind) or ProviderSettings()


class EngineSettings(BaseModel):
    """Top-level engine configuration."""
    storage_path: Optional[str] = Field(None, description="JSON state file; in-memory when unset")
    audit_dir: Optional[str] = Field(None, description="Audit log directory; in-memory when unset")
    template_dirs: List[str] = Field(default_factory=list, description="Extra YAML template directories")
    load_default_templates: bool = True
    lock_timeout_seconds: float = Field(10.0, gt=0)
    conflict_retries: int = Field(3, ge=0)
    auto_dispatch: bool = Field(True, description="Call providers as soon as an integration step starts")
    integrations: IntegrationSettings = Field(default_factory=IntegrationSettings)


def load_settings(path: Optional[Union[str, Path]] = None) -> EngineSettings:
    """
    Load engine settings from YAML.

    Args:
        path: Optional path to the config file. Falls back to the
            LIFECYCLE_ENGINE_CONFIG env variable or 'lifecycle_engine.yaml'
            in the current directory.

    Returns:
        EngineSettings, defaults when no file exists
    """
    config_path = Path(path or os.getenv("LIFECYCLE_ENGINE_CONFIG", DEFAULT_CONFIG_FILE))

    data: Dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.info(f"Loaded engine settings from {config_path}")
    elif path:
        raise FileNotFoundError(f"Config file not found: {config_path}")

    settings = EngineSettings(**data)

    env_storage = os.getenv("LIFECYCLE_ENGINE_STORAGE_PATH")
    if env_storage:
        settings.storage_path = env_storage
    env_audit = os.getenv("LIFECYCLE_ENGINE_AUDIT_DIR")
    if env_audit:
        settings.audit_dir = env_audit

    return settings
