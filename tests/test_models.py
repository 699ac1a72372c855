"""Tests for data models."""

import dataclasses

import pytest

from maintask_finder.models import ConnectionCredentials, EntityKind, EntityRef, TaskRecord


def test_credentials_defaults() -> None:
    """Test credential defaults."""
    creds = ConnectionCredentials()
    assert creds.use_tunnel is False
    assert creds.tunnel_port == 22
    assert creds.db_port == 5432
    assert creds.db_password == ""


def test_credentials_are_immutable() -> None:
    """Test that credentials cannot be changed after construction."""
    creds = ConnectionCredentials(db_host="db")
    with pytest.raises(dataclasses.FrozenInstanceError):
        creds.db_host = "other"  # type: ignore[misc]


def test_credentials_repr_hides_passwords() -> None:
    """Test that passwords are not shown in repr."""
    creds = ConnectionCredentials(tunnel_password="ssh-secret", db_password="db-secret")
    assert "ssh-secret" not in repr(creds)
    assert "db-secret" not in repr(creds)


def test_credentials_dict_round_trip() -> None:
    """Test serialization to and from a dict."""
    creds = ConnectionCredentials(use_tunnel=True, tunnel_host="h", db_name="rx", db_password="p")
    assert ConnectionCredentials.from_dict(creds.to_dict()) == creds


def test_credentials_from_dict_rejects_unknown_fields() -> None:
    """Test that foreign payloads are rejected."""
    with pytest.raises(ValueError, match="Unknown credential fields"):
        ConnectionCredentials.from_dict({"db_host": "h", "DbHost": "h"})


def test_credentials_from_dict_rejects_bad_types() -> None:
    """Test that wrongly typed fields are rejected."""
    with pytest.raises(ValueError):
        ConnectionCredentials.from_dict({"db_port": "5432"})
    with pytest.raises(ValueError):
        ConnectionCredentials.from_dict({"use_tunnel": "yes"})


def test_task_is_root() -> None:
    """Test self-rooted detection."""
    assert TaskRecord(id=5, root_task_id=5).is_root
    assert not TaskRecord(id=5, root_task_id=0).is_root
    assert not TaskRecord(id=5, root_task_id=4, parent_task_id=4).is_root


def test_entity_ref_str() -> None:
    """Test the display form of a position."""
    assert str(EntityRef(EntityKind.TASK, 42)) == "task ID=42"
