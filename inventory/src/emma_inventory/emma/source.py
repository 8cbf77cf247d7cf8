from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from ..auth.credentials import Credential
from ..auth.token import TenantIdentity, extract_tenant_identity
from .client import EmmaClient


@dataclass(frozen=True)
class TenantBatch:
    """All VM records fetched for one tenant."""

    tenant: TenantIdentity
    records: List[Dict[str, Any]] = field(default_factory=list)


TenantFetcher = Callable[[Credential], TenantBatch]


def fetch_tenant_batch(client: EmmaClient, credential: Credential) -> TenantBatch:
    token = client.issue_token(credential)
    identity = extract_tenant_identity(token, project_name=credential.project_name)
    return TenantBatch(tenant=identity, records=client.list_vms(token))


def make_fetcher(client: EmmaClient) -> TenantFetcher:
    def _fetch(credential: Credential) -> TenantBatch:
        return fetch_tenant_batch(client, credential)

    return _fetch
