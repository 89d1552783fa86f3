"""Shared types for the linking workflows: claims, role mappings, signing and the chain client."""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Union

from nacl.signing import SigningKey

SigningKeyLike = Union[SigningKey, bytes, bytearray]


class WorkflowError(Exception):
    """Raised when a workflow cannot complete its task."""


class ClaimType(str, Enum):
    """The kinds of signed claims a workflow produces."""

    USER_LINK = "user_link"
    USER_UNLINK = "user_unlink"
    ROLE_LINK = "role_link"
    ROLE_UNLINK = "role_unlink"


@dataclass
class Claim:
    """A signed message that a user submits on chain."""

    type: ClaimType
    data: str
    signature: str
    created_at: datetime


@dataclass(frozen=True)
class RoleMapping:
    """Link between a realm role and a platform role in one guild."""

    realm_path: str
    realm_role_name: str
    platform_guild_id: str = ""
    platform_role_id: str = ""


@dataclass(frozen=True)
class RoleStatus:
    """Whether a user holds the realm role behind a mapping, as of a sync."""

    role_mapping: RoleMapping
    is_member: bool
    synced_at: datetime


@dataclass
class WorkflowConfig:
    """Settings shared by all workflows."""

    signing_key: SigningKeyLike | None = None
    base_url: str = ""
    user_contract: str = ""
    role_contract: str = ""


class GnoClient(ABC):
    """Read access to the on-chain linking contracts."""

    @abstractmethod
    def get_linked_address(self, platform_id: str) -> str:
        """Return the address linked to a platform user, or "" when none is."""

    @abstractmethod
    def get_current_block_height(self) -> int:
        """Return the latest block height."""

    @abstractmethod
    def get_linked_role(
        self, realm_path: str, role_name: str, platform_guild_id: str
    ) -> RoleMapping | None:
        """Return the mapping for one realm role in a guild."""

    @abstractmethod
    def list_linked_roles(self, realm_path: str, platform_guild_id: str) -> list[RoleMapping]:
        """Return every mapping of a realm in a guild."""

    @abstractmethod
    def list_all_roles_by_guild(self, platform_guild_id: str) -> list[RoleMapping]:
        """Return every mapping of a guild across all realms."""

    @abstractmethod
    def has_role(self, realm_path: str, role_name: str, address: str) -> bool:
        """Return whether the address holds the role in the realm."""


def _to_signing_key(key: SigningKeyLike | None) -> SigningKey:
    if isinstance(key, SigningKey):
        return key
    if isinstance(key, (bytes, bytearray)):
        raw = bytes(key)
        if len(raw) == 32:
            return SigningKey(raw)
        if len(raw) == 64:
            signing_key = SigningKey(raw[:32])
            if signing_key.verify_key.encode() != raw[32:]:
                raise ValueError("signing key: public half does not match the seed")
            return signing_key
        raise ValueError(f"signing key must be 32 or 64 bytes, got {len(raw)}")
    raise ValueError("a signing key is required")


def sign_message(signing_key: SigningKeyLike | None, message: str) -> str:
    """Sign ``message`` with Ed25519 and return the bare signature, unpadded URL-safe base64."""
    key = _to_signing_key(signing_key)
    signature = key.sign(message.encode("utf-8")).signature
    return base64.urlsafe_b64encode(signature).rstrip(b"=").decode("ascii")


def _now() -> datetime:
    return datetime.now(timezone.utc)