# src/cadeploy/features/conditional_access/templates.py
from __future__ import annotations
import json, pathlib
from typing import Any, List, Union

from cadeploy.core.errors import ConfigError, MalformedTemplateError
from cadeploy.core.models import PolicyTemplate
from cadeploy.features.conditional_access.placeholders import Placeholder, match_name

LoadedTemplate = Union[PolicyTemplate, MalformedTemplateError]


def _check_shape(source: str, doc: Any) -> None:
    if not isinstance(doc, dict):
        raise MalformedTemplateError(source, "top-level JSON value must be an object")
    if not isinstance(doc.get("displayName"), str) or not doc["displayName"].strip():
        raise MalformedTemplateError(source, "missing string 'displayName'")
    if not match_name(doc["displayName"].replace(Placeholder.PREFIX.token, "")):
        raise MalformedTemplateError(source, "'displayName' has no policy name after the first '-'")
    conditions = doc.get("conditions")
    if conditions is None:
        return
    if not isinstance(conditions, dict):
        raise MalformedTemplateError(source, "'conditions' must be an object")
    users = conditions.get("users")
    if users is None:
        return
    if not isinstance(users, dict):
        raise MalformedTemplateError(source, "'conditions.users' must be an object")
    for key in ("includeGroups", "excludeGroups"):
        if key in users and users[key] is not None and not isinstance(users[key], list):
            raise MalformedTemplateError(source, f"'conditions.users.{key}' must be a list")


def load_template(path: pathlib.Path) -> PolicyTemplate:
    source = path.name
    try:
        doc = json.loads(path.read_text(encoding="utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as ex:
        raise MalformedTemplateError(source, f"invalid JSON: {ex}") from ex
    _check_shape(source, doc)
    return PolicyTemplate(source=source, document=doc)


def list_template_files(folder: pathlib.Path) -> List[pathlib.Path]:
    folder = pathlib.Path(folder)
    if not folder.is_dir():
        raise ConfigError(f"templates folder not found: {folder}")
    # filesystem order differs per platform; the sequence numbers depend on it
    return sorted((p for p in folder.glob("*.json") if p.is_file()), key=lambda p: p.name)


def load_templates(folder: pathlib.Path) -> List[LoadedTemplate]:
    """
    Parse every *.json in folder, sorted by file name. A bad file becomes a
    MalformedTemplateError entry in place so the run can report and skip it.
    """
    out: List[LoadedTemplate] = []
    for path in list_template_files(folder):
        try:
            out.append(load_template(path))
        except MalformedTemplateError as ex:
            print(f"[templates] skipping {ex}")
            out.append(ex)
    return out
