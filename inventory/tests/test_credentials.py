from __future__ import annotations

import pytest

from emma_inventory.auth.credentials import Credential, parse_credentials, parse_credentials_env


def test_parse_credentials_env_splits_entries() -> None:
    creds = parse_credentials_env("alpha:id-a:secret-a, beta:id-b:sec:ret")
    assert creds == [
        Credential(project_name="alpha", client_id="id-a", client_secret="secret-a"),
        Credential(project_name="beta", client_id="id-b", client_secret="sec:ret"),
    ]


def test_parse_credentials_env_skips_malformed_entries() -> None:
    creds = parse_credentials_env("broken,alpha:id:secret,::,")
    assert [c.project_name for c in creds] == ["alpha"]


def test_parse_credentials_env_empty() -> None:
    assert parse_credentials_env(None) == []
    assert parse_credentials_env("") == []


def test_credential_repr_hides_secret() -> None:
    cred = Credential(project_name="alpha", client_id="id", client_secret="hunter2")
    assert "hunter2" not in repr(cred)


def test_parse_credentials_from_config_list() -> None:
    creds = parse_credentials(
        [
            {"projectName": "alpha", "clientId": "id-a", "clientSecret": "s-a"},
            "beta:id-b:s-b",
        ]
    )
    assert [c.project_name for c in creds] == ["alpha", "beta"]


def test_parse_credentials_rejects_incomplete_mapping() -> None:
    with pytest.raises(ValueError):
        parse_credentials([{"projectName": "alpha", "clientId": "id-a"}])


def test_parse_credentials_rejects_other_types() -> None:
    with pytest.raises(ValueError):
        parse_credentials({"projectName": "alpha"})
