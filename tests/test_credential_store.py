import json
from pathlib import Path
from unittest.mock import patch

from fortysix.auth.store import SESSION_FIELD, SESSION_LABEL_PREFIX, CredentialStore, new_session_label


def test_fresh_store_has_no_state(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path / "auth")
    assert store.exists() is False
    assert store.load() is None
    assert store.session_label() is None


def test_save_and_load_roundtrip(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path / "auth")
    assert store.save({"registered": True, "me": {"id": "1@s.whatsapp.net"}}) is True
    assert store.exists() is True
    assert store.load() == {"registered": True, "me": {"id": "1@s.whatsapp.net"}}


def test_session_label_is_merged_without_clobbering(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path)
    store.save({"registered": True, "noiseKey": "abc"})

    label = store.ensure_session_label()

    assert label.startswith(SESSION_LABEL_PREFIX)
    data = json.loads(store.path.read_text(encoding="utf-8"))
    assert data == {"registered": True, "noiseKey": "abc", SESSION_FIELD: label}
    assert store.ensure_session_label() == label


def test_credential_updates_keep_session_label(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path)
    store.save({"registered": False})
    label = store.ensure_session_label()

    store.save({"registered": True, "account": "x"})

    assert store.load() == {"registered": True, "account": "x", SESSION_FIELD: label}


def test_corrupt_file_is_treated_as_missing(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path)
    store.path.write_text("{not json", encoding="utf-8")
    assert store.load() is None
    assert store.exists() is True


def test_write_failure_is_reported_not_raised(tmp_path: Path) -> None:
    store = CredentialStore(tmp_path)
    with patch.object(Path, "write_text", side_effect=PermissionError("read-only")):
        assert store.save({"registered": True}) is False
        label = store.ensure_session_label()
    assert label.startswith(SESSION_LABEL_PREFIX)


def test_new_session_labels_are_unique() -> None:
    labels = {new_session_label() for _ in range(50)}
    assert len(labels) == 50
