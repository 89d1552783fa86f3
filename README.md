# guildlink

Building blocks for a bot that links chat-community members and roles to
addresses and roles on a Gno chain.

- **Guild configuration** (`guildlink.models`). `GuildConfig` holds typed
  settings (`get_string`, `set_bool`, `get_int`, `get_duration`, ...) and
  tracks per-query progress through `GuildQueryState`. `GlobalConfig` holds
  bot-wide state. Each of them converts to and from JSON-ready dictionaries
  with `to_dict` / `from_dict`. `GuildConfig` also has `to_json` / `from_json`.
  The module also provides the abstract `ConfigStore` interface and the
  errors `StorageError`, `GuildConfigNotFoundError` and
  `ConcurrencyConflictError`. Two helpers, `parse_duration` and
  `format_duration`, read and write compact durations such as `"1h30m"` and
  `"1.5s"`.
- **Stores**:
  - `MemoryConfigStore` (`guildlink.memory_store`) is a thread-safe store that
    keeps its data in memory.
  - `CachedConfigStore` (`guildlink.cached_store`) puts an LRU cache with a
    time-to-live in front of any `ConfigStore`. Its size and lifetime are set
    with `CacheConfig`. The defaults are 100 entries and one hour.
- **Workflows**:
  - `UserLinkingWorkflow` (`guildlink.user_linking`) and
    `RoleLinkingWorkflow` (`guildlink.role_linking`) produce Ed25519-signed
    claims and the URLs where those claims are submitted.
  - `SyncWorkflow` (`guildlink.sync`) reports which linked realm roles a user
    holds.
  - The types they share live in `guildlink.workflows`: `Claim`, `ClaimType`,
    `RoleMapping`, `RoleStatus`, `WorkflowConfig`, the `GnoClient`
    interface, `WorkflowError` and `sign_message`.

## Installation

```
pip install .
```

To run the test suite:

```
pip install .[test]
pytest
```

## Storing guild configuration

```python
from datetime import timedelta

from guildlink.models import new_guild_config, GuildConfigNotFoundError
from guildlink.memory_store import MemoryConfigStore
from guildlink.cached_store import CachedConfigStore, CacheConfig

backend = MemoryConfigStore()
store = CachedConfigStore(backend, CacheConfig(size=500, ttl=timedelta(minutes=10)))

config = new_guild_config("guild-1")
config.admin_role_id = "admin-role"
config.set_bool("announce_links", True)
config.set_duration("poll_interval", timedelta(minutes=5))
store.set("guild-1", config)

loaded = store.get("guild-1")
assert loaded.get_bool("announce_links", False)
assert loaded.get_duration("poll_interval", timedelta(0)) == timedelta(minutes=5)

try:
    store.get("unknown-guild")
except GuildConfigNotFoundError:
    ...
```

`MemoryConfigStore` stores a copy of each config and hands out copies.
Changing a config you got back does not change what is stored until you call
`set` again. If no global config has been stored, `get_global` returns a
default `GlobalConfig`.

## Query progress

```python
from datetime import timedelta

state = config.ensure_query_state("new-members", enabled=True)
state.update_processing_position(block_height=120, tx_index=3)
if state.is_ready():
    ...
state.update_run_timestamp(timedelta(minutes=1))
```

The processing position never moves backwards. `is_ready` is true when the
query is enabled, is not executing, and its next run time has passed.

## Claims and claim URLs

The workflows need two things:

- a chain client that implements `GnoClient`;
- a `WorkflowConfig` that holds the bot's Ed25519 signing key, the base URL
  and the contract paths. The key can be a `nacl.signing.SigningKey`, a
  32-byte seed or 64 bytes of seed plus public key.

```python
from guildlink.workflows import WorkflowConfig
from guildlink.user_linking import UserLinkingWorkflow

workflow = UserLinkingWorkflow(client, WorkflowConfig(
    signing_key=signing_key,
    base_url="https://chain.example.com",
    user_contract="r/linker/user/v0",
    role_contract="r/linker/role/v0",
))

claim = workflow.generate_claim("user-123", "g1exampleaddress")
print(workflow.claim_url(claim))
```

The claim data is a comma-separated message that starts with the current
block height. The signature is the bare 64-byte Ed25519 signature, encoded as
unpadded URL-safe base64. `claim_url` returns `""` when the claim data has too
few fields.

`RoleLinkingWorkflow` works the same way for mapping realm roles to guild
roles. Before it signs a link claim, the user must already have a linked
address; otherwise it raises `WorkflowError`.

`SyncWorkflow.sync_user_roles` returns one `RoleStatus` for each linked role
it could check. It skips roles whose membership check failed.

## What this package does not do

- It includes no working `GnoClient`. You supply the code that queries the
  chain.
- It includes no chat bot, no command-line program and no server.
- The only storage backend is in memory. Nothing is written to disk or to
  remote object storage.