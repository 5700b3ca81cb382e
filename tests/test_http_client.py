"""Tests for retry, backoff and error mapping in the HTTP layer."""

import pytest
import requests

from cadeploy.http.client import HttpClient
from cadeploy.http.errors import (
    BadRequestError, ConflictError, NetworkError, NotFoundError, ServerError, ThrottleError,
)
from cadeploy.http.throttle import Pacer, compute_sleep_seconds


class FakeResponse:
    def __init__(self, status_code, text="{}", headers=None):
        self.status_code = status_code
        self.text = text
        self.headers = headers or {}


def _client(responses, sleeps, max_retries=4):
    client = HttpClient(base_url="https://graph.example", max_retries=max_retries, sleep=sleeps.append)
    seen = []

    def fake_request(**kwargs):
        seen.append(kwargs)
        nxt = responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt

    client._session.request = fake_request
    return client, seen


def test_success_returns_json():
    client, seen = _client([FakeResponse(200, '{"id": "x"}')], [])
    assert client.get_json("/v1.0/groups") == {"id": "x"}
    assert seen[0]["url"] == "https://graph.example/v1.0/groups"
    assert seen[0]["timeout"] == 30.0


def test_empty_body_is_empty_dict():
    client, _ = _client([FakeResponse(204, "")], [])
    assert client.patch_json("/v1.0/x", json={"a": 1}) == {}


def test_429_honours_retry_after():
    sleeps = []
    client, seen = _client([FakeResponse(429, headers={"Retry-After": "3"}), FakeResponse(200)], sleeps)
    client.get_json("/v1.0/x")
    assert sleeps == [3]
    assert len(seen) == 2


def test_5xx_retries_then_raises():
    sleeps = []
    client, seen = _client([FakeResponse(503) for _ in range(3)], sleeps, max_retries=2)
    with pytest.raises(ServerError) as info:
        client.get_json("/v1.0/x")
    assert info.value.status == 503
    assert len(seen) == 3
    assert len(sleeps) == 2


def test_exhausted_throttle_maps_to_throttle_error():
    client, _ = _client([FakeResponse(429, "slow down")], [], max_retries=0)
    with pytest.raises(ThrottleError) as info:
        client.get_json("/v1.0/x")
    assert info.value.body_snippet == "slow down"


@pytest.mark.parametrize("status, exc", [
    (400, BadRequestError),
    (404, NotFoundError),
    (409, ConflictError),
])
def test_client_errors_are_not_retried(status, exc):
    sleeps = []
    client, seen = _client([FakeResponse(status, '{"error": {"code": "x"}}')], sleeps)
    with pytest.raises(exc):
        client.post_json("/v1.0/x", json={})
    assert len(seen) == 1
    assert sleeps == []


def test_network_errors_retry_then_raise():
    boom = requests.exceptions.ConnectionError("reset")
    client, seen = _client([boom, boom], [], max_retries=1)
    with pytest.raises(NetworkError):
        client.get_json("/v1.0/x")
    assert len(seen) == 2


def test_post_is_not_resent_after_read_timeout():
    client, seen = _client([requests.exceptions.ReadTimeout("slow"), FakeResponse(201, '{"id": "p"}')], [])
    with pytest.raises(NetworkError):
        client.post_json("/v1.0/groups", json={"displayName": "g"})
    assert [c["method"] for c in seen] == ["POST"]


def test_post_is_not_resent_after_5xx():
    client, seen = _client([FakeResponse(502), FakeResponse(201)], [])
    with pytest.raises(ServerError):
        client.post_json("/v1.0/groups", json={})
    assert len(seen) == 1


def test_post_retries_when_request_never_left():
    refused = requests.exceptions.ConnectionError("refused")
    client, seen = _client([refused, FakeResponse(429), FakeResponse(201, '{"id": "p"}')], [])
    assert client.post_json("/v1.0/groups", json={}) == {"id": "p"}
    assert len(seen) == 3


def test_patch_still_retries_5xx():
    client, seen = _client([FakeResponse(503), FakeResponse(204, "")], [])
    assert client.patch_json("/v1.0/x", json={}) == {}
    assert len(seen) == 2


def test_backoff_bounds():
    assert compute_sleep_seconds(0, "7") == 7
    for attempt, (lo, hi) in [(0, (0.6, 1.4)), (2, (2.4, 5.6)), (6, (4.8, 11.2))]:
        s = compute_sleep_seconds(attempt, None)
        assert lo <= s <= hi


def test_pacer_sleeps_fixed_interval():
    slept = []
    pacer = Pacer(2.5, sleep=slept.append)
    pacer.wait()
    pacer.wait()
    assert slept == [2.5, 2.5]
    assert pacer.waits == 2
