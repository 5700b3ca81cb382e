# src/cadeploy/core/graph_client.py
from __future__ import annotations
from typing import Any, Callable, Dict, Iterable, Optional
from cadeploy.http.client import HttpClient
from cadeploy.http.errors import UnauthorizedError
from cadeploy.config.loader import get_http_config

GRAPH_BASE = "https://graph.microsoft.com"

class GraphClient:
    """
    Tiny Graph wrapper. Token is provided lazily via token_provider().
    If the provider exposes invalidate(), a 401 triggers one refresh and replay.
    """
    def __init__(
        self,
        token_provider: Callable[[], str],
        timeout: float | None = None,
        max_retries: int | None = None,
        logger=None,
        http_config: Optional[Dict[str, Any]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        http_cfg = http_config if http_config is not None else get_http_config()
        to = float(timeout if timeout is not None else http_cfg.get("timeout_seconds", 30))
        mr = int(max_retries if max_retries is not None else http_cfg.get("max_retries", 4))

        self._token_provider = token_provider
        self._http = HttpClient(base_url=GRAPH_BASE, timeout=to, max_retries=mr, logger=logger, sleep=sleep)

    def _auth_headers(self, extra: Dict[str, str] | None = None) -> Dict[str, str]:
        h = {"Authorization": f"Bearer {self._token_provider()}"}
        if extra:
            h.update(extra)
        return h

    def _with_refresh(self, call: Callable[[Dict[str, str]], Any]) -> Any:
        try:
            return call(self._auth_headers())
        except UnauthorizedError:
            invalidate = getattr(self._token_provider, "invalidate", None)
            if invalidate is None:
                raise
            print("[graph_client] 401 from Graph, refreshing token")
            invalidate()
            return call(self._auth_headers())

    def get_json(self, path_or_url: str, *, params: Dict[str, Any] | None = None) -> dict:
        return self._with_refresh(lambda h: self._http.get_json(path_or_url, headers=h, params=params))

    def get_paged_values(
        self,
        path_or_url: str,
        *,
        params: Dict[str, Any] | None = None,
        page_limit: int | None = None
    ) -> Iterable[dict]:
        url: Optional[str] = path_or_url
        pages = 0
        while url:
            page = self.get_json(url, params=params)
            for item in page.get("value", []):
                yield item
            pages += 1
            if page_limit and pages >= page_limit:
                break
            url = page.get("@odata.nextLink")
            params = None

    def post_json(self, path_or_url: str, *, json: Any = None) -> dict:
        return self._with_refresh(lambda h: self._http.post_json(path_or_url, headers=h, json=json))

    def patch_json(self, path_or_url: str, *, json: Any = None) -> dict:
        return self._with_refresh(lambda h: self._http.patch_json(path_or_url, headers=h, json=json))
