"""Credential persistence."""

from fortysix.auth.store import CredentialStore

__all__ = ["CredentialStore"]
