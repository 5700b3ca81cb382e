# src/cadeploy/core/cache.py
from __future__ import annotations
import json, os, sys, pathlib, tempfile

APP_NAME = "cadeploy"

def _base_dir() -> pathlib.Path:
    if sys.platform.startswith("win"):
        root = os.environ.get("APPDATA") or os.path.expanduser("~\\AppData\\Roaming")
        return pathlib.Path(root) / APP_NAME
    elif sys.platform == "darwin":
        return pathlib.Path.home() / "Library" / "Application Support" / APP_NAME
    else:
        return pathlib.Path.home() / ".local" / "share" / APP_NAME

def runs_dir(tenant_id: str) -> pathlib.Path:
    p = _base_dir() / "runs" / (tenant_id or "unknown-tenant")
    p.mkdir(parents=True, exist_ok=True); return p

def write_json_atomic(path: pathlib.Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix="._", suffix=".json")
    os.close(fd)
    pathlib.Path(tmp).write_text(json.dumps(data, indent=2), encoding="utf-8")
    os.replace(tmp, path)
