# src/cadeploy/config/loader.py
from __future__ import annotations
import json, os, pathlib
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from cadeploy.core.errors import ConfigError

APPSETTINGS = pathlib.Path("config/appsettings.json")

# env var -> (section, key)
_ENV_MAP = {
    "CADEPLOY_PREFIX": ("deploy", "prefix"),
    "CADEPLOY_TEMPLATES": ("deploy", "templates_folder"),
    "CADEPLOY_EXCLUSION_PREFIX": ("deploy", "exclusion_group_prefix"),
    "CADEPLOY_AADP2_GROUP": ("deploy", "aadp2_group"),
    "CADEPLOY_SYNC_GROUP": ("deploy", "sync_accounts_group"),
    "CADEPLOY_EMERGENCY_GROUP": ("deploy", "emergency_access_group"),
    "CADEPLOY_PACING": ("deploy", "pacing_seconds"),
    "CADEPLOY_TENANT_ID": ("auth", "tenant_id"),
    "CADEPLOY_CLIENT_ID": ("auth", "client_id"),
    "CADEPLOY_CLIENT_SECRET": ("auth", "client_secret"),
}


def load_appsettings(path: Optional[pathlib.Path] = None) -> dict:
    p = pathlib.Path(path) if path else APPSETTINGS
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8").strip()
    if not text:
        return {}
    try:
        return json.loads(text)
    except json.JSONDecodeError as ex:
        raise ConfigError(f"{p} is not valid JSON: {ex}") from ex


def get_http_config(settings: Optional[dict] = None) -> dict:
    cfg = (settings if settings is not None else load_appsettings()).get("http", {})
    return {
        "timeout_seconds": float(cfg.get("timeout_seconds", 30)),
        "max_retries": int(cfg.get("max_retries", 4)),
    }


@dataclass
class AuthConfig:
    tenant_id: str
    client_id: str
    client_secret: Optional[str] = None

    @property
    def mode(self) -> str:
        return "app-only" if self.client_secret else "device-code"


@dataclass
class DeployConfig:
    prefix: str
    templates_folder: pathlib.Path
    auth: AuthConfig
    exclusion_group_prefix: str = ""
    aadp2_group: str = ""
    sync_accounts_group: str = ""
    emergency_access_group: str = ""
    pacing_seconds: float = 5.0
    start_sequence: int = 1
    http: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        p = self.prefix
        self.exclusion_group_prefix = self.exclusion_group_prefix or f"{p}_Exclusion_"
        self.aadp2_group = self.aadp2_group or f"{p}_AADP2"
        self.sync_accounts_group = (
            self.sync_accounts_group or f"{p}_Exclusion_SynchronizationServiceAccounts"
        )
        self.emergency_access_group = (
            self.emergency_access_group or f"{p}_Exclusion_EmergencyAccessAccounts"
        )
        if not self.http:
            self.http = get_http_config({})

    def exclusion_group_name(self, prefix_and_number: str) -> str:
        return f"{self.exclusion_group_prefix}{prefix_and_number}"


def _layer(settings: dict, env: Dict[str, str], overrides: Dict[str, Any]) -> dict:
    merged = {
        "deploy": dict(settings.get("deploy") or {}),
        "auth": dict(settings.get("auth") or {}),
    }
    for var, (section, key) in _ENV_MAP.items():
        val = (env.get(var) or "").strip()
        if val:
            merged[section][key] = val
    for key, val in (overrides or {}).items():
        if val is None or val == "":
            continue
        section = "auth" if key in ("tenant_id", "client_id", "client_secret") else "deploy"
        merged[section][key] = val
    return merged


def _required(section: dict, key: str, hint: str) -> str:
    val = str(section.get(key) or "").strip()
    if not val:
        raise ConfigError(f"missing required setting '{key}' ({hint})")
    return val


def load_config(
    overrides: Optional[Dict[str, Any]] = None,
    *,
    settings_path: Optional[pathlib.Path] = None,
    env: Optional[Dict[str, str]] = None,
    require_auth: bool = True,
) -> DeployConfig:
    """
    Layering: config/appsettings.json < CADEPLOY_* env vars < CLI overrides.
    """
    settings = load_appsettings(settings_path)
    merged = _layer(settings, dict(os.environ) if env is None else env, overrides or {})
    dep, auth = merged["deploy"], merged["auth"]

    prefix = _required(dep, "prefix", "--prefix or CADEPLOY_PREFIX")
    folder = pathlib.Path(_required(dep, "templates_folder", "--templates or CADEPLOY_TEMPLATES"))
    if not folder.is_dir():
        raise ConfigError(f"templates folder not found: {folder}")

    if require_auth:
        tenant_id = _required(auth, "tenant_id", "--tenant-id or CADEPLOY_TENANT_ID")
        client_id = _required(auth, "client_id", "--client-id or CADEPLOY_CLIENT_ID")
    else:
        tenant_id = str(auth.get("tenant_id") or "")
        client_id = str(auth.get("client_id") or "")

    try:
        pacing = float(dep.get("pacing_seconds", 5))
        start = int(dep.get("start_sequence", 1))
    except (TypeError, ValueError) as ex:
        raise ConfigError(f"invalid numeric setting: {ex}") from ex
    if start < 1:
        raise ConfigError("start_sequence must be >= 1")

    return DeployConfig(
        prefix=prefix,
        templates_folder=folder,
        auth=AuthConfig(
            tenant_id=tenant_id,
            client_id=client_id,
            client_secret=(str(auth.get("client_secret") or "").strip() or None),
        ),
        exclusion_group_prefix=str(dep.get("exclusion_group_prefix") or ""),
        aadp2_group=str(dep.get("aadp2_group") or ""),
        sync_accounts_group=str(dep.get("sync_accounts_group") or ""),
        emergency_access_group=str(dep.get("emergency_access_group") or ""),
        pacing_seconds=pacing,
        start_sequence=start,
        http=get_http_config(settings),
    )
