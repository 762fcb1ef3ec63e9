"""
accounts/models.py -- Domain dataclasses for accounts and account workflows.

Pattern: Data class (pure data container, no I/O). The store maps rows onto
Account; the service consumes the *Input dataclasses, which replace loosely
typed request payloads with explicit optional-field structs.

Layer rule: no imports from api/, auth/, or media/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Provenance(str, Enum):
    """How the account first came into existence."""

    local = "local"
    federated = "federated"


def is_profile_complete(age: int | None, gender: str | None) -> bool:
    return age is not None and gender is not None


@dataclass
class Account:
    """A persisted user identity.

    hashed_password is None for federated accounts that never set a local
    password. profile_complete is written by the store from age/gender and
    is never set on its own.
    """

    id: str
    email: str
    name: str
    provenance: Provenance
    hashed_password: str | None = None
    age: int | None = None
    gender: str | None = None
    picture_url: str | None = None
    federated_id: str | None = None
    profile_complete: bool = False
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""

    @property
    def has_password(self) -> bool:
        return self.hashed_password is not None


@dataclass
class SignupInput:
    email: str
    password: str
    name: str
    age: int | None = None
    gender: str | None = None


@dataclass
class ProfileCompletion:
    """Mandatory demographics plus an optional first local password."""

    age: int | None
    gender: str | None
    password: str | None = None


@dataclass
class ProfileUpdate:
    """Partial profile edit. None means "leave unchanged"."""

    name: str | None = None
    age: int | None = None
    gender: str | None = None


@dataclass
class SecretChange:
    new_password: str
    current_password: str | None = None


@dataclass
class FederatedIdentity:
    """A verified identity asserted by an external provider."""

    email: str
    external_id: str
    display_name: str
    picture_url: str | None = None


@dataclass
class ImageUpload:
    content: bytes
    content_type: str | None
    filename: str | None = None
