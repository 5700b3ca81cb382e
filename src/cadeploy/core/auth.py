from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cadeploy.config.loader import AuthConfig
    from cadeploy.core.auth_helpers import TokenProvider

class AuthError(Exception):
    code = "auth_error"; hint = "Unknown error."
    def __init__(self, message: str = "", *, hint: str | None = None):
        super().__init__(message or self.__class__.__name__)
        if hint: self.hint = hint

class InvalidTenantId(AuthError):
    code = "invalid_tenant_id"; hint = "Tenant ID invalid or unreachable."
class InvalidClientId(AuthError):
    code = "invalid_client_id"; hint = "Client ID invalid."
class InvalidClientSecret(AuthError):
    code = "invalid_client_secret"; hint = "Client Secret rejected."
class NetworkError(AuthError):
    code = "network_error"; hint = "Network or timeout issue."
class ConsentRequired(AuthError):
    code = "consent_required"; hint = "Admin consent required for Graph permissions."
class DeviceFlowError(AuthError):
    code = "device_flow_failed"; hint = "Device code sign-in did not complete. Run again and finish the browser prompt."
class TokenExpired(AuthError):
    code = "token_expired"; hint = "Session expired and could not be refreshed silently. Sign in again."

@dataclass
class TenantSession:
    tenant_id: str
    mode: str
    token_provider: "TokenProvider"

def connect(auth: "AuthConfig") -> TenantSession:
    tenant_id = (auth.tenant_id or "").strip()
    client_id = (auth.client_id or "").strip()

    if not tenant_id: raise InvalidTenantId("Tenant ID required.")
    if not client_id: raise InvalidClientId("Client ID required.")

    # helpers do the heavy lifting
    from cadeploy.core.auth_helpers import (
        build_authority, build_app_only_provider, build_device_code_provider
    )

    authority = build_authority(tenant_id)
    print(f"[AUTH] Tenant={tenant_id}, Client={client_id[:6]}..., mode={auth.mode}")
    if auth.client_secret:
        provider = build_app_only_provider(client_id, auth.client_secret, authority)
    else:
        provider = build_device_code_provider(client_id, authority)

    # acquire up front so bad credentials fail before any template work
    provider()
    return TenantSession(tenant_id=tenant_id, mode=auth.mode, token_provider=provider)
