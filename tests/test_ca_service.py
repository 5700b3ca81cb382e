"""Tests for policy lookup and the create/update decision."""

import pytest

from cadeploy.core.ca_service import POLICIES_PATH, find_by_display_name, sync_policy
from cadeploy.core.errors import AmbiguousMatchError, RemoteWriteError
from cadeploy.core.models import RemotePolicy
from cadeploy.http.errors import BadRequestError, UnauthorizedError
from tests.conftest import FakeGraph

PAYLOAD = {"displayName": "CA01 - Block Legacy Auth", "state": "enabled"}


# --- lookup ---


def test_no_match_returns_none(fake_graph):
    assert find_by_display_name(fake_graph, "Block Legacy Auth") is None


def test_single_match_returns_remote_policy():
    graph = FakeGraph(policies=[{"id": "p-7", "displayName": "CA07 - Block Legacy Auth"}])
    assert find_by_display_name(graph, "Block Legacy Auth") == RemotePolicy("p-7", "CA07 - Block Legacy Auth")


def test_lookup_uses_endswith_filter(fake_graph):
    find_by_display_name(fake_graph, "Don't Allow")
    (get,) = fake_graph.calls
    assert get[1] == POLICIES_PATH
    assert get[2]["$filter"] == "endswith(displayName, 'Don''t Allow')"


def test_ambiguous_match_raises():
    graph = FakeGraph(policies=[
        {"id": "p-1", "displayName": "CA01 - Block Legacy Auth"},
        {"id": "p-2", "displayName": "OLD - Block Legacy Auth"},
    ])
    with pytest.raises(AmbiguousMatchError) as info:
        find_by_display_name(graph, "Block Legacy Auth")
    assert [c["id"] for c in info.value.candidates] == ["p-1", "p-2"]
    assert "2 policies match" in str(info.value)


def test_server_side_case_insensitive_hit_is_rechecked():
    graph = FakeGraph(policies=[
        {"id": "p-1", "displayName": "CA01 - Block Legacy Auth"},
        {"id": "p-2", "displayName": "CA09 - block legacy auth"},
    ])
    assert find_by_display_name(graph, "Block Legacy Auth").id == "p-1"


def test_case_only_rename_still_matches():
    graph = FakeGraph(policies=[{"id": "p-1", "displayName": "CA01 - Block legacy auth"}])
    assert find_by_display_name(graph, "Block Legacy Auth").id == "p-1"


def test_blank_match_name_is_refused():
    graph = FakeGraph(policies=[{"id": "p-1", "displayName": "Require compliant device"}])
    with pytest.raises(ValueError):
        find_by_display_name(graph, "  ")
    assert graph.calls == []


# --- sync decision ---


def test_no_match_creates(fake_graph):
    out = sync_policy(fake_graph, PAYLOAD, None, template="01.json")
    (write,) = fake_graph.writes()
    assert write == ("POST", POLICIES_PATH, PAYLOAD)
    assert out.action == "create"
    assert out.policy_id == fake_graph.policies[0]["id"]


def test_one_match_updates():
    graph = FakeGraph(policies=[{"id": "p-7", "displayName": "CA07 - Block Legacy Auth"}])
    out = sync_policy(graph, PAYLOAD, RemotePolicy("p-7", "CA07 - Block Legacy Auth"))
    (write,) = graph.writes()
    assert write == ("PATCH", f"{POLICIES_PATH}/p-7", PAYLOAD)
    assert out.action == "update" and out.policy_id == "p-7"
    assert graph.writes("POST") == []


def test_dry_run_writes_nothing(fake_graph):
    out = sync_policy(fake_graph, PAYLOAD, RemotePolicy("p-7", "x"), dry_run=True)
    assert out.action == "update" and out.dry_run
    assert fake_graph.writes() == []


def test_rejected_write_is_not_success(fake_graph):
    fake_graph.fail("POST", POLICIES_PATH, BadRequestError(400, POLICIES_PATH, "Bad Request", '{"error":"invalid"}'))
    with pytest.raises(RemoteWriteError) as info:
        sync_policy(fake_graph, PAYLOAD, None, template="01.json")
    err = info.value
    assert (err.template, err.action, err.status) == ("01.json", "create", 400)
    assert "invalid" in err.body


def test_unauthorized_write_propagates(fake_graph):
    fake_graph.fail("POST", POLICIES_PATH, UnauthorizedError(401, POLICIES_PATH))
    with pytest.raises(UnauthorizedError):
        sync_policy(fake_graph, PAYLOAD, None)
