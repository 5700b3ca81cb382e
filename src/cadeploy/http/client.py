from __future__ import annotations
import json as _json
from typing import Any, Callable, Dict, Optional
import requests

from cadeploy.http.errors import (
    HttpError, BadRequestError, UnauthorizedError, ForbiddenError, NotFoundError,
    ConflictError, ThrottleError, ServerError, NetworkError
)
from cadeploy.http.throttle import (
    POST_RETRY_STATUSES, RETRY_STATUSES, compute_sleep_seconds, sleep_backoff
)


class HttpClient:
    def __init__(
        self,
        base_url: str = "",
        timeout: float = 30.0,
        max_retries: int = 4,
        logger=None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self._session = requests.Session()
        self._log = logger  # optional, expects .debug()
        self._sleep = sleep or sleep_backoff

    def _full_url(self, url: str) -> str:
        if url.startswith("http://") or url.startswith("https://"):
            return url
        if self.base_url:
            return f"{self.base_url}/{url.lstrip('/')}"
        return url

    def _log_debug(self, msg: str) -> None:
        if self._log:
            self._log.debug(msg)

    def request(
        self,
        method: str,
        url: str,
        *,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None
    ) -> requests.Response:
        full = self._full_url(url)
        method = method.upper()
        attempt = 0
        # a POST may only be replayed when the server provably never took it
        is_post = method == "POST"
        retry_statuses = POST_RETRY_STATUSES if is_post else RETRY_STATUSES

        while True:
            try:
                self._log_debug(f"HTTP {method} {full}")
                resp = self._session.request(
                    method=method,
                    url=full,
                    headers=headers or {},
                    params=params,
                    json=json,
                    timeout=self.timeout,
                )
            except requests.exceptions.RequestException as ex:
                unsent = isinstance(ex, requests.exceptions.ConnectionError)
                if attempt >= self.max_retries or (is_post and not unsent):
                    raise NetworkError(-1, full, str(ex)) from ex
                self._sleep(compute_sleep_seconds(attempt, None))
                attempt += 1
                continue

            if resp.status_code < 400:
                self._log_debug(f"HTTP {resp.status_code} {full}")
                return resp

            # Retryable?
            if resp.status_code in retry_statuses and attempt < self.max_retries:
                self._log_debug(f"HTTP {resp.status_code} {full} (retry {attempt})")
                self._sleep(compute_sleep_seconds(attempt, resp.headers.get("Retry-After")))
                attempt += 1
                continue

            # Map to typed errors
            body_snip = _safe_snip(resp)
            if resp.status_code == 400:
                raise BadRequestError(400, full, "Bad Request", body_snip)
            if resp.status_code == 401:
                raise UnauthorizedError(401, full, "Unauthorized", body_snip)
            if resp.status_code == 403:
                raise ForbiddenError(403, full, "Forbidden", body_snip)
            if resp.status_code == 404:
                raise NotFoundError(404, full, "Not Found", body_snip)
            if resp.status_code == 409:
                raise ConflictError(409, full, "Conflict", body_snip)
            if resp.status_code == 429:
                raise ThrottleError(429, full, "Too Many Requests", body_snip)
            if 500 <= resp.status_code <= 599:
                raise ServerError(resp.status_code, full, "Server error", body_snip)
            raise HttpError(resp.status_code, full, "HTTP error", body_snip)

    # ---------- Convenience helpers ----------
    def get_json(self, url: str, **kwargs) -> dict:
        r = self.request("GET", url, **kwargs)
        return _json.loads(r.text or "{}")

    def post_json(self, url: str, *, headers=None, json=None) -> dict:
        r = self.request("POST", url, headers=headers, json=json)
        return _json.loads(r.text or "{}")

    def patch_json(self, url: str, *, headers=None, json=None) -> dict:
        # Graph answers PATCH with 204 No Content
        r = self.request("PATCH", url, headers=headers, json=json)
        return _json.loads(r.text or "{}")


def _safe_snip(resp: requests.Response, max_len: int = 400) -> str:
    txt = resp.text or ""
    return txt[:max_len]
