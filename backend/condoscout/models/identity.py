"""
Identity models and storage namespacing.

An identity decides which storage namespace a chat workspace reads and writes:
signed-in users get a durable namespace keyed by their id, guests get a
process-lifetime namespace.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from condoscout.constants import GUEST_SESSIONS_KEY, SESSIONS_KEY_PREFIX


class AuthenticatedIdentity(BaseModel):
    """A user verified by the external identity provider."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str = ""
    email: str | None = None
    avatar_uri: str | None = None


class GuestIdentity(BaseModel):
    """An anonymous user. tab_id scopes sessions to one browser tab when supplied."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    tab_id: str | None = None


Identity = AuthenticatedIdentity | GuestIdentity


class StorageScope(str, Enum):
    """Lifetime of a storage namespace."""

    DURABLE = "durable"      # survives restarts
    EPHEMERAL = "ephemeral"  # lives as long as the process


class StorageNamespace(BaseModel):
    """Where one identity's session blob is stored."""

    model_config = ConfigDict(frozen=True)

    scope: StorageScope
    key: str


def storage_namespace(identity: Identity | None) -> StorageNamespace | None:
    """Derive the session namespace for an identity. None means nothing is persisted."""
    if isinstance(identity, AuthenticatedIdentity):
        return StorageNamespace(
            scope=StorageScope.DURABLE,
            key=f"{SESSIONS_KEY_PREFIX}{identity.id}",
        )
    if isinstance(identity, GuestIdentity):
        key = GUEST_SESSIONS_KEY
        if identity.tab_id:
            key = f"{key}_{identity.tab_id}"
        return StorageNamespace(scope=StorageScope.EPHEMERAL, key=key)
    return None
