"""Linking a platform user to a chain address."""

from __future__ import annotations

from guildlink.workflows import (
    Claim,
    ClaimType,
    GnoClient,
    WorkflowConfig,
    WorkflowError,
    _now,
    sign_message,
)


class UserLinkingWorkflow:
    """Produces signed user link and unlink claims and their submission URLs."""

    def __init__(self, client: GnoClient, config: WorkflowConfig) -> None:
        self._client = client
        self._config = config

    def _block_height(self) -> int:
        try:
            return self._client.get_current_block_height()
        except Exception as exc:
            raise WorkflowError(f"failed to get current block height: {exc}") from exc

    def generate_claim(self, platform_id: str, gno_address: str) -> Claim:
        """Sign ``height,platform_id,address`` for linking."""
        message = f"{self._block_height()},{platform_id},{gno_address}"
        return Claim(
            type=ClaimType.USER_LINK,
            data=message,
            signature=sign_message(self._config.signing_key, message),
            created_at=_now(),
        )

    def generate_unlink_claim(self, platform_id: str, gno_address: str) -> Claim:
        """Sign ``height,platform_id`` for unlinking; the address is not part of it."""
        message = f"{self._block_height()},{platform_id}"
        return Claim(
            type=ClaimType.USER_UNLINK,
            data=message,
            signature=sign_message(self._config.signing_key, message),
            created_at=_now(),
        )

    def get_linked_address(self, platform_id: str) -> str:
        return self._client.get_linked_address(platform_id)

    def claim_url(self, claim: Claim) -> str:
        """Return the submission URL, or "" when the claim data is malformed."""
        parts = claim.data.split(",")
        if len(parts) < 2:
            return ""
        block_height, discord_id = parts[0], parts[1]
        base = f"{self._config.base_url}/{self._config.user_contract}"
        if claim.type == ClaimType.USER_UNLINK:
            return (
                f"{base}:unlink?blockHeight={block_height}"
                f"&discordID={discord_id}&signature={claim.signature}"
            )
        if len(parts) < 3:
            return ""
        return (
            f"{base}:link?blockHeight={block_height}&discordID={discord_id}"
            f"&address={parts[2]}&signature={claim.signature}"
        )