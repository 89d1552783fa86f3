"""Linking realm roles to platform roles, for guild admins."""

from __future__ import annotations

from urllib.parse import urlencode

from guildlink.workflows import (
    Claim,
    ClaimType,
    GnoClient,
    RoleMapping,
    WorkflowConfig,
    WorkflowError,
    _now,
    sign_message,
)

_LINK_FIELDS = (
    "blockHeight",
    "discordAccountID",
    "discordGuildID",
    "discordRoleID",
    "address",
    "roleName",
    "realmPath",
)
_UNLINK_FIELDS = ("blockHeight", "discordAccountID", "discordGuildID", "realmPath", "roleName")


class RoleLinkingWorkflow:
    """Produces signed role link and unlink claims and queries role mappings."""

    def __init__(self, client: GnoClient, config: WorkflowConfig) -> None:
        self._client = client
        self._config = config

    def _block_height(self) -> int:
        try:
            return self._client.get_current_block_height()
        except Exception as exc:
            raise WorkflowError(f"failed to get current block height: {exc}") from exc

    def generate_claim(
        self,
        user_id: str,
        platform_guild_id: str,
        platform_role_id: str,
        role_name: str,
        realm_path: str,
    ) -> Claim:
        """Sign a role link claim; the user must have a linked address."""
        try:
            gno_address = self._client.get_linked_address(user_id)
        except Exception as exc:
            raise WorkflowError(f"failed to get linked address: {exc}") from exc
        if not gno_address:
            raise WorkflowError("user has not linked their Gno address")
        height = self._block_height()
        message = ",".join(
            (str(height), user_id, platform_guild_id, platform_role_id, gno_address, role_name, realm_path)
        )
        return Claim(
            type=ClaimType.ROLE_LINK,
            data=message,
            signature=sign_message(self._config.signing_key, message),
            created_at=_now(),
        )

    def generate_unlink_claim(
        self,
        user_id: str,
        platform_guild_id: str,
        platform_role_id: str,
        role_name: str,
        realm_path: str,
    ) -> Claim:
        """Sign a role unlink claim; the role id and address are not part of it."""
        height = self._block_height()
        message = ",".join((str(height), user_id, platform_guild_id, realm_path, role_name))
        return Claim(
            type=ClaimType.ROLE_UNLINK,
            data=message,
            signature=sign_message(self._config.signing_key, message),
            created_at=_now(),
        )

    def get_linked_role(
        self, realm_path: str, role_name: str, platform_guild_id: str
    ) -> RoleMapping | None:
        return self._client.get_linked_role(realm_path, role_name, platform_guild_id)

    def list_linked_roles(self, realm_path: str, platform_guild_id: str) -> list[RoleMapping]:
        return self._client.list_linked_roles(realm_path, platform_guild_id)

    def list_all_roles_by_guild(self, platform_guild_id: str) -> list[RoleMapping]:
        return self._client.list_all_roles_by_guild(platform_guild_id)

    def has_realm_role(self, realm_path: str, role_name: str, address: str) -> bool:
        return self._client.has_role(realm_path, role_name, address)

    def claim_url(self, claim: Claim) -> str:
        """Return the submission URL, or "" when the claim data is malformed."""
        parts = claim.data.split(",")
        if claim.type == ClaimType.ROLE_LINK:
            fields, action = _LINK_FIELDS, "link"
        else:
            fields, action = _UNLINK_FIELDS, "unlink"
        if len(parts) < len(fields):
            return ""
        params = dict(zip(fields, parts))
        params["signature"] = claim.signature
        query = urlencode(sorted(params.items()))
        return f"{self._config.base_url}/{self._config.role_contract}:{action}?{query}"