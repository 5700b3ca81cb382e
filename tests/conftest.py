import itertools
import pathlib
import re

import pytest

from cadeploy.app import event_bus
from cadeploy.config.loader import AuthConfig, DeployConfig
from cadeploy.core.ca_service import POLICIES_PATH
from cadeploy.core.group_service import GROUPS_PATH


class FakeGraph:
    """In-memory stand-in for GraphClient: groups, CA policies and a call log."""

    def __init__(self, groups=None, policies=None):
        self.groups = [dict(g) for g in (groups or [])]
        self.policies = [dict(p) for p in (policies or [])]
        self.calls = []
        self._failures = []
        self._ids = itertools.count(1)

    # ---------- failure injection ----------
    def fail(self, method, path_contains, error, when=None):
        """Raise error for matching calls. when(json_or_params) narrows it down."""
        self._failures.append((method, path_contains, error, when))

    def _maybe_fail(self, method, path, data):
        for m, frag, err, when in self._failures:
            if m == method and frag in path and (when is None or when(data)):
                raise err

    # ---------- GraphClient surface ----------
    def get_paged_values(self, path, *, params=None, page_limit=None):
        self.calls.append(("GET", path, dict(params or {})))
        self._maybe_fail("GET", path, params)
        flt = (params or {}).get("$filter", "")
        if path == GROUPS_PATH:
            name = re.match(r"^displayName eq '(.*)'$", flt).group(1).replace("''", "'")
            return [dict(g) for g in self.groups if g["displayName"].lower() == name.lower()]
        if path == POLICIES_PATH:
            suffix = re.match(r"^endswith\(displayName, '(.*)'\)$", flt).group(1).replace("''", "'")
            return [dict(p) for p in self.policies if p["displayName"].lower().endswith(suffix.lower())]
        raise AssertionError(f"unexpected GET {path}")

    def post_json(self, path, *, json=None):
        self.calls.append(("POST", path, json))
        self._maybe_fail("POST", path, json)
        if path == GROUPS_PATH:
            item = dict(json, id=f"grp-{next(self._ids)}")
            self.groups.append(item)
            return item
        if path == POLICIES_PATH:
            item = dict(json, id=f"pol-{next(self._ids)}")
            self.policies.append(item)
            return item
        raise AssertionError(f"unexpected POST {path}")

    def patch_json(self, path, *, json=None):
        self.calls.append(("PATCH", path, json))
        self._maybe_fail("PATCH", path, json)
        pid = path.rsplit("/", 1)[-1]
        for p in self.policies:
            if p["id"] == pid:
                p.update(json)
                return {}
        raise AssertionError(f"PATCH for unknown policy {pid}")

    # ---------- helpers for assertions ----------
    def writes(self, method=None, path=None):
        return [
            c for c in self.calls
            if c[0] in ("POST", "PATCH")
            and (method is None or c[0] == method)
            and (path is None or c[1].startswith(path))
        ]

    def group_id(self, name):
        return next(g["id"] for g in self.groups if g["displayName"] == name)


@pytest.fixture
def fake_graph():
    return FakeGraph()


@pytest.fixture
def deploy_config(tmp_path):
    folder = tmp_path / "templates"
    folder.mkdir()
    return DeployConfig(
        prefix="CA",
        templates_folder=folder,
        auth=AuthConfig(tenant_id="tenant", client_id="client"),
        pacing_seconds=0,
    )


@pytest.fixture(autouse=True)
def clean_event_bus():
    event_bus.clear()
    yield
    event_bus.clear()


@pytest.fixture
def write_template():
    import json

    def _write(folder: pathlib.Path, name: str, doc) -> pathlib.Path:
        p = folder / name
        p.write_text(doc if isinstance(doc, str) else json.dumps(doc), encoding="utf-8")
        return p

    return _write
