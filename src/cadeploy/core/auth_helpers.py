from __future__ import annotations
from typing import Callable, List, Optional
import msal
import requests

from cadeploy.core.auth import (
    AuthError, InvalidTenantId, InvalidClientId, InvalidClientSecret,
    NetworkError, ConsentRequired, DeviceFlowError, TokenExpired
)

GRAPH = "https://graph.microsoft.com"
APP_SCOPES = ["https://graph.microsoft.com/.default"]
DELEGATED_SCOPES = [
    "https://graph.microsoft.com/Policy.Read.All",
    "https://graph.microsoft.com/Policy.ReadWrite.ConditionalAccess",
    "https://graph.microsoft.com/Group.ReadWrite.All",
    "https://graph.microsoft.com/Application.Read.All",
]

def build_authority(tenant_id: str) -> str:
    return f"https://login.microsoftonline.com/{tenant_id}"

def _map_msal_error(desc: str) -> AuthError:
    d = desc or ""
    if "AADSTS7000215" in d:  # invalid client secret
        return InvalidClientSecret("Invalid client secret.")
    if "AADSTS700016" in d:  # invalid client id
        return InvalidClientId("Invalid client ID or app not found.")
    if "invalid_tenant" in d or "AADSTS90002" in d:
        return InvalidTenantId("Invalid tenant ID or tenant not found.")
    if "AADSTS65001" in d or "consent_required" in d:
        return ConsentRequired("Admin consent required.")
    if "AADSTS70016" in d or "AADSTS70019" in d or "authorization_pending" in d:
        return DeviceFlowError("Device code expired before sign-in completed.")
    return AuthError(d)


class TokenProvider:
    """
    Callable handed to GraphClient. Returns a bearer token, reusing the
    MSAL cache and refreshing silently after invalidate().
    """
    def __init__(self, acquire: Callable[[bool], dict]):
        self._acquire = acquire
        self._token: Optional[str] = None
        self._force_refresh = False

    def __call__(self) -> str:
        if self._token and not self._force_refresh:
            return self._token
        res = self._acquire(self._force_refresh)
        self._force_refresh = False
        if "access_token" not in res:
            raise _map_msal_error(res.get("error_description") or res.get("error") or "Unknown error")
        self._token = res["access_token"]
        return self._token

    def invalidate(self) -> None:
        self._token = None
        self._force_refresh = True


def build_app_only_provider(client_id: str, client_secret: str, authority: str) -> TokenProvider:
    try:
        app = msal.ConfidentialClientApplication(
            client_id=client_id,
            client_credential=client_secret,
            authority=authority,
        )
    except requests.exceptions.RequestException as ex:
        raise NetworkError(str(ex)) from ex
    except ValueError as ex:
        # msal raises ValueError for an unknown authority/tenant
        raise InvalidTenantId(str(ex)) from ex

    def acquire(force_refresh: bool) -> dict:
        # client credentials tokens are cached by msal; a forced refresh skips that cache
        try:
            if force_refresh:
                app.remove_tokens_for_client()
            return app.acquire_token_for_client(scopes=APP_SCOPES)
        except requests.exceptions.RequestException as ex:
            raise NetworkError(str(ex)) from ex

    return TokenProvider(acquire)


def build_device_code_provider(
    client_id: str,
    authority: str,
    scopes: Optional[List[str]] = None,
    prompt: Callable[[str], None] = print,
) -> TokenProvider:
    scopes = list(scopes or DELEGATED_SCOPES)
    try:
        app = msal.PublicClientApplication(client_id, authority=authority)
    except requests.exceptions.RequestException as ex:
        raise NetworkError(str(ex)) from ex
    except ValueError as ex:
        raise InvalidTenantId(str(ex)) from ex

    def acquire(force_refresh: bool) -> dict:
        try:
            accounts = app.get_accounts()
            if accounts:
                res = app.acquire_token_silent(scopes, account=accounts[0], force_refresh=force_refresh)
                if res and "access_token" in res:
                    return res
                if force_refresh:
                    raise TokenExpired("Silent token refresh failed.")

            flow = app.initiate_device_flow(scopes=scopes)
            if "user_code" not in flow:
                raise DeviceFlowError(flow.get("error_description") or "Could not start device code flow.")
            prompt(f"[AUTH] {flow['message']}")
            return app.acquire_token_by_device_flow(flow)
        except requests.exceptions.RequestException as ex:
            raise NetworkError(str(ex)) from ex

    return TokenProvider(acquire)
