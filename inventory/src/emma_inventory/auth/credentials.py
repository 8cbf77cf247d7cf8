from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from ..logging import get_logger

LOG = get_logger(__name__)

CREDENTIAL_FIELDS = ("projectName", "clientId", "clientSecret")


@dataclass(frozen=True)
class Credential:
    """
    Client credentials of one Emma project (tenant).
    The secret is kept out of repr so credentials can be logged safely.
    """

    project_name: str
    client_id: str
    client_secret: str = field(repr=False)

    def to_dict(self) -> Dict[str, str]:
        return {
            "projectName": self.project_name,
            "clientId": self.client_id,
            "clientSecret": self.client_secret,
        }


def parse_credentials_env(raw: Optional[str]) -> List[Credential]:
    """
    Parse `project:clientId:secret` entries separated by commas.
    The secret is everything after the second ':'. Malformed entries are skipped.
    """
    creds: List[Credential] = []
    if not raw:
        return creds
    for position, entry in enumerate(raw.split(",")):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(":", 2)
        if len(parts) != 3 or not all(p.strip() for p in parts):
            LOG.warning("Ignoring malformed credential entry", extra={"position": position})
            continue
        creds.append(Credential(project_name=parts[0].strip(), client_id=parts[1].strip(), client_secret=parts[2]))
    return creds


def _credential_from_mapping(item: Mapping[str, Any], position: int) -> Credential:
    values: Dict[str, str] = {}
    for key in CREDENTIAL_FIELDS:
        v = item.get(key)
        if not isinstance(v, str) or not v.strip():
            raise ValueError(f"Credential #{position} field '{key}' is required and must be a non-empty string")
        values[key] = v.strip()
    return Credential(
        project_name=values["projectName"],
        client_id=values["clientId"],
        client_secret=values["clientSecret"],
    )


def parse_credentials(value: Union[str, Sequence[Any], None]) -> List[Credential]:
    """
    Accept either the env-var string form or a list of mappings / strings
    (as found in a YAML config file).
    """
    if value is None:
        return []
    if isinstance(value, str):
        return parse_credentials_env(value)
    if not isinstance(value, (list, tuple)):
        raise ValueError("Config field 'credentials' must be a list or a comma-separated string")
    creds: List[Credential] = []
    for position, item in enumerate(value):
        if isinstance(item, Credential):
            creds.append(item)
        elif isinstance(item, Mapping):
            creds.append(_credential_from_mapping(item, position))
        elif isinstance(item, str):
            creds.extend(parse_credentials_env(item))
        else:
            raise ValueError(f"Credential #{position} must be a mapping or 'project:clientId:secret' string")
    return creds
