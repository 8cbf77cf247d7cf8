from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Dict

from ..normalize.flatten import format_scalar
from ..util.errors import AuthResolutionError


@dataclass(frozen=True)
class TenantIdentity:
    """Identifiers carried in an Emma access token."""

    project_id: str
    company_id: str
    project_name: str = ""

    @property
    def label(self) -> str:
        return self.project_name or f"{self.company_id}/{self.project_id}"


def decode_token_claims(token: str) -> Dict[str, Any]:
    """
    Decode the payload segment of a JWT without verifying its signature.
    The token comes straight from the issuing endpoint over TLS; only the
    claims are needed here.
    """
    parts = (token or "").split(".")
    if len(parts) != 3:
        raise AuthResolutionError("invalid token: expected three dot-separated segments")
    payload = parts[1]
    payload += "=" * (-len(payload) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise AuthResolutionError(f"invalid token: {e}") from e
    if not isinstance(claims, dict):
        raise AuthResolutionError("invalid token: claims must be a JSON object")
    return claims


def _numeric_claim(claims: Dict[str, Any], name: str) -> str:
    value = claims.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise AuthResolutionError(f"invalid token: {name} not found in token")
    return format_scalar(value)


def extract_tenant_identity(token: str, project_name: str = "") -> TenantIdentity:
    """
    Pull projectId/companyId out of an access token issued to an external
    application. Tokens of interactive users are rejected.
    """
    claims = decode_token_claims(token)
    external = claims.get("isExternalApplication")
    if not isinstance(external, bool):
        raise AuthResolutionError("invalid token: isExternalApplication not found in token")
    if not external:
        raise AuthResolutionError("invalid token: not correct client credentials")
    return TenantIdentity(
        project_id=_numeric_claim(claims, "projectId"),
        company_id=_numeric_claim(claims, "companyId"),
        project_name=project_name,
    )
