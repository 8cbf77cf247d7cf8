from __future__ import annotations

import base64
import json
from typing import Any, Dict, List, Optional

import pytest
import requests

from emma_inventory.auth.credentials import Credential
from emma_inventory.emma.client import EmmaClient
from emma_inventory.emma.source import fetch_tenant_batch
from emma_inventory.util.errors import ApiClientError, AuthResolutionError

CRED = Credential(project_name="alpha", client_id="id-a", client_secret="s-a")


def make_token(claims: Dict[str, Any]) -> str:
    payload = base64.urlsafe_b64encode(json.dumps(claims).encode("utf-8")).decode("ascii").rstrip("=")
    return f"header.{payload}.signature"


class FakeResponse:
    def __init__(self, status_code: int, payload: Any = None, text: Optional[str] = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else ("" if payload is None else str(payload))

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, responses: Dict[str, Any]) -> None:
        self.responses = responses
        self.headers: Dict[str, str] = {}
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> Any:
        self.calls.append({"method": method, "url": url, **kwargs})
        resp = self.responses[f"{method} {url}"]
        if isinstance(resp, Exception):
            raise resp
        return resp

    def close(self) -> None:
        self.closed = True


BASE = "https://api.example.test/external"


def _client(responses: Dict[str, Any]) -> EmmaClient:
    return EmmaClient(BASE + "/", timeout=5, session=FakeSession(responses))  # type: ignore[arg-type]


def test_issue_token_posts_credentials() -> None:
    client = _client({f"POST {BASE}/v1/issue-token": FakeResponse(200, {"accessToken": "tok"})})

    assert client.issue_token(CRED) == "tok"

    call = client._session.calls[0]  # type: ignore[attr-defined]
    assert call["json"] == {"clientId": "id-a", "clientSecret": "s-a"}
    assert call["timeout"] == 5


def test_issue_token_unauthorized() -> None:
    client = _client({f"POST {BASE}/v1/issue-token": FakeResponse(401, text="bad credentials")})
    with pytest.raises(AuthResolutionError, match="bad credentials"):
        client.issue_token(CRED)


def test_issue_token_server_error() -> None:
    client = _client({f"POST {BASE}/v1/issue-token": FakeResponse(502, text="gateway")})
    with pytest.raises(ApiClientError, match="HTTP 502"):
        client.issue_token(CRED)


def test_transport_errors_are_wrapped() -> None:
    client = _client({f"POST {BASE}/v1/issue-token": requests.ConnectionError("refused")})
    with pytest.raises(ApiClientError, match="refused"):
        client.issue_token(CRED)


def test_list_vms_sends_bearer_token() -> None:
    vms = [{"id": 1, "name": "web"}]
    client = _client({f"GET {BASE}/v1/vms": FakeResponse(200, vms)})

    assert client.list_vms("tok") == vms

    call = client._session.calls[0]  # type: ignore[attr-defined]
    assert call["headers"]["Authorization"] == "Bearer tok"


@pytest.mark.parametrize(
    "response",
    [FakeResponse(500, text="oops"), FakeResponse(200, {"not": "a list"}), FakeResponse(200, [1, 2]), FakeResponse(200)],
)
def test_list_vms_rejects_bad_responses(response) -> None:
    client = _client({f"GET {BASE}/v1/vms": response})
    with pytest.raises(ApiClientError):
        client.list_vms("tok")


def test_fetch_tenant_batch_combines_token_and_vms() -> None:
    token = make_token({"isExternalApplication": True, "projectId": 10, "companyId": 1})
    client = _client(
        {
            f"POST {BASE}/v1/issue-token": FakeResponse(200, {"accessToken": token}),
            f"GET {BASE}/v1/vms": FakeResponse(200, [{"id": 1}]),
        }
    )

    batch = fetch_tenant_batch(client, CRED)

    assert batch.tenant.project_id == "10"
    assert batch.tenant.company_id == "1"
    assert batch.tenant.project_name == "alpha"
    assert batch.records == [{"id": 1}]


def test_client_context_manager_closes_session() -> None:
    session = FakeSession({})
    with EmmaClient(BASE, session=session):  # type: ignore[arg-type]
        pass
    assert session.closed is True
