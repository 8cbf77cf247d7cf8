from __future__ import annotations

from typing import Any, Dict, List, Optional

import requests

from ..auth.credentials import Credential
from ..logging import get_logger
from ..util.errors import ApiClientError, AuthResolutionError

LOG = get_logger(__name__)

DEFAULT_API_BASE_URL = "https://api.emma.ms/external"
DEFAULT_TIMEOUT_SECONDS = 30.0
USER_AGENT = "emma-inv"

_BODY_PREVIEW_CHARS = 500


def _body_preview(resp: requests.Response) -> str:
    text = resp.text or ""
    if len(text) > _BODY_PREVIEW_CHARS:
        return text[:_BODY_PREVIEW_CHARS] + "..."
    return text


class EmmaClient:
    """
    Minimal Emma public API client: token issuance and VM listing.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE_URL,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> EmmaClient:
        return self

    def __exit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        self.close()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, context: str, **kwargs: Any) -> requests.Response:
        try:
            return self._session.request(method, self._url(path), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise ApiClientError(f"{context}: {e}") from e

    @staticmethod
    def _json(resp: requests.Response, context: str) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise ApiClientError(f"{context}: response is not JSON") from e

    def issue_token(self, credential: Credential) -> str:
        context = f"error fetching token for project {credential.project_name}"
        resp = self._request(
            "POST",
            "/v1/issue-token",
            context,
            json={"clientId": credential.client_id, "clientSecret": credential.client_secret},
        )
        if resp.status_code in (400, 401, 403):
            raise AuthResolutionError(f"unauthorized: {context}: {_body_preview(resp)}")
        if resp.status_code != 200:
            raise ApiClientError(f"{context}: HTTP {resp.status_code}: {_body_preview(resp)}")
        data = self._json(resp, context)
        token = data.get("accessToken") if isinstance(data, dict) else None
        if not isinstance(token, str) or not token:
            raise AuthResolutionError(f"unauthorized: {context}: accessToken missing from response")
        return token

    def list_vms(self, token: str) -> List[Dict[str, Any]]:
        context = "error fetching vms"
        resp = self._request(
            "GET",
            "/v1/vms",
            context,
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
        )
        if resp.status_code != 200:
            raise ApiClientError(f"{context}: HTTP {resp.status_code}: {_body_preview(resp)}")
        data = self._json(resp, context)
        if not isinstance(data, list):
            raise ApiClientError(f"{context}: expected a JSON array of VMs")
        vms: List[Dict[str, Any]] = []
        for item in data:
            if not isinstance(item, dict):
                raise ApiClientError(f"{context}: expected VM objects, got {type(item).__name__}")
            vms.append(item)
        LOG.debug("Fetched VMs", extra={"count": len(vms)})
        return vms
