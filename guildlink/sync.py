"""Synchronising a user's realm role memberships."""

from __future__ import annotations

import logging

from guildlink.workflows import (
    GnoClient,
    RoleStatus,
    WorkflowConfig,
    WorkflowError,
    _now,
)


class SyncWorkflow:
    """Checks which linked realm roles a user currently holds."""

    def __init__(
        self,
        client: GnoClient,
        config: WorkflowConfig,
        logger: logging.Logger | None = None,
    ) -> None:
        self._client = client
        self._config = config
        self._log = logger or logging.getLogger(__name__)

    def sync_user_roles(
        self, platform_id: str, realm_path: str, platform_guild_id: str
    ) -> list[RoleStatus]:
        """Return the membership of every linked role; roles whose check fails are skipped."""
        self._log.debug(
            "sync_user_roles platform_id=%s realm_path=%s guild_id=%s",
            platform_id, realm_path, platform_guild_id,
        )
        try:
            gno_address = self._client.get_linked_address(platform_id)
        except Exception as exc:
            self._log.error("failed to get linked address for %s: %s", platform_id, exc)
            raise WorkflowError(f"failed to get linked address: {exc}") from exc
        if not gno_address:
            self._log.warning("user %s has not linked their Gno address", platform_id)
            raise WorkflowError("user has not linked their Gno address")
        self._log.info("found linked address %s for %s", gno_address, platform_id)

        try:
            linked_roles = self._client.list_linked_roles(realm_path, platform_guild_id)
        except Exception as exc:
            self._log.error(
                "failed to list linked roles for %s in %s: %s", realm_path, platform_guild_id, exc
            )
            raise WorkflowError(f"failed to list linked roles: {exc}") from exc
        self._log.info(
            "found %d linked roles for %s in %s", len(linked_roles), realm_path, platform_guild_id
        )

        sync_time = _now()
        statuses: list[RoleStatus] = []
        for mapping in linked_roles:
            try:
                is_member = self._client.has_role(
                    mapping.realm_path, mapping.realm_role_name, gno_address
                )
            except Exception as exc:
                self._log.error(
                    "failed to check role %s in %s for %s: %s",
                    mapping.realm_role_name, mapping.realm_path, gno_address, exc,
                )
                continue
            self._log.info(
                "role %s in %s: member=%s", mapping.realm_role_name, mapping.realm_path, is_member
            )
            statuses.append(RoleStatus(role_mapping=mapping, is_member=is_member, synced_at=sync_time))

        self._log.info("sync completed for %s with %d statuses", platform_id, len(statuses))
        return statuses