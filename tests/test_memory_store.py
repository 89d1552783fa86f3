from concurrent.futures import ThreadPoolExecutor

import pytest

from guildlink.memory_store import MemoryConfigStore
from guildlink.models import GlobalConfig, GuildConfigNotFoundError, new_guild_config


def test_new_stores_are_distinct():
    store = MemoryConfigStore()
    other = MemoryConfigStore()
    store.set("g", new_guild_config("g"))
    assert store is not other
    assert len(store) == 1
    assert len(other) == 0


def test_set_and_get():
    store = MemoryConfigStore()
    guild_id = "test-guild-123"
    config = new_guild_config(guild_id)
    config.admin_role_id = "admin-456"
    config.verified_role_id = "verified-789"
    config.set_string("test_key", "test_value")
    store.set(guild_id, config)

    retrieved = store.get(guild_id)
    assert retrieved.guild_id == guild_id
    assert retrieved.admin_role_id == "admin-456"
    assert retrieved.verified_role_id == "verified-789"
    assert retrieved.get_string("test_key", "") == "test_value"


def test_get_not_found():
    store = MemoryConfigStore()
    with pytest.raises(GuildConfigNotFoundError):
        store.get("nonexistent-guild")


def test_update():
    store = MemoryConfigStore()
    guild_id = "test-guild-456"
    first = new_guild_config(guild_id)
    first.admin_role_id = "admin-111"
    first.set_string("version", "1")
    store.set(guild_id, first)

    second = new_guild_config(guild_id)
    second.admin_role_id = "admin-222"
    second.verified_role_id = "verified-333"
    second.set_string("version", "2")
    store.set(guild_id, second)

    retrieved = store.get(guild_id)
    assert retrieved.admin_role_id == "admin-222"
    assert retrieved.verified_role_id == "verified-333"
    assert retrieved.get_string("version", "") == "2"


def test_delete():
    store = MemoryConfigStore()
    guild_id = "test-guild-789"
    store.set(guild_id, new_guild_config(guild_id))
    assert store.get(guild_id).guild_id == guild_id
    store.delete(guild_id)
    with pytest.raises(GuildConfigNotFoundError):
        store.get(guild_id)


def test_delete_nonexistent_is_silent():
    store = MemoryConfigStore()
    store.delete("nonexistent-guild")
    assert len(store) == 0


def test_set_none_config():
    store = MemoryConfigStore()
    with pytest.raises(ValueError, match="config cannot be None"):
        store.set("test-guild", None)


def test_multiple_guilds():
    store = MemoryConfigStore()
    guilds = ["guild-1", "guild-2", "guild-3"]
    for number, guild_id in enumerate(guilds, start=1):
        config = new_guild_config(guild_id)
        config.admin_role_id = f"admin-{number}"
        config.set_string("guild_number", str(number))
        store.set(guild_id, config)

    for number, guild_id in enumerate(guilds, start=1):
        config = store.get(guild_id)
        assert config.admin_role_id == f"admin-{number}"
        assert config.get_string("guild_number", "") == str(number)

    store.delete("guild-2")
    with pytest.raises(GuildConfigNotFoundError):
        store.get("guild-2")
    assert store.get("guild-1").guild_id == "guild-1"
    assert store.get("guild-3").guild_id == "guild-3"


def test_concurrent_writes():
    store = MemoryConfigStore()
    workers, guilds = 50, 20

    def write(worker_id):
        for number in range(guilds):
            guild_id = f"guild-{worker_id}-{number}"
            config = new_guild_config(guild_id)
            config.admin_role_id = f"admin-{worker_id}-{number}"
            config.set_string("worker_id", str(worker_id))
            config.set_string("guild_num", str(number))
            store.set(guild_id, config)

    with ThreadPoolExecutor(max_workers=16) as pool:
        list(pool.map(write, range(workers)))

    assert len(store) == workers * guilds
    for worker_id in range(workers):
        for number in range(guilds):
            config = store.get(f"guild-{worker_id}-{number}")
            assert config.admin_role_id == f"admin-{worker_id}-{number}"
            assert config.get_string("worker_id", "") == str(worker_id)


def test_concurrent_reads_and_writes():
    store = MemoryConfigStore()
    guild_id = "shared-guild"
    initial = new_guild_config(guild_id)
    initial.set_string("counter", "0")
    store.set(guild_id, initial)

    def read(_):
        return [store.get(guild_id).guild_id for _ in range(20)]

    def write(writer_id):
        for operation in range(20):
            config = new_guild_config(guild_id)
            config.set_string("writer", str(writer_id))
            config.set_string("operation", str(operation))
            store.set(guild_id, config)
        return []

    with ThreadPoolExecutor(max_workers=15) as pool:
        reads = [pool.submit(read, n) for n in range(10)]
        writes = [pool.submit(write, n) for n in range(5)]
        results = [f.result() for f in reads + writes]

    assert all(seen == guild_id for batch in results for seen in batch)
    assert store.get(guild_id).guild_id == guild_id


def test_concurrent_deletes():
    store = MemoryConfigStore()
    guild_id = "delete-test-guild"
    store.set(guild_id, new_guild_config(guild_id))

    def remove(_):
        store.delete(guild_id)
        return True

    with ThreadPoolExecutor(max_workers=10) as pool:
        outcomes = list(pool.map(remove, range(20)))

    assert outcomes.count(True) == 20
    with pytest.raises(GuildConfigNotFoundError):
        store.get(guild_id)


def test_data_isolation():
    store = MemoryConfigStore()
    guild_id = "isolation-test"
    config = new_guild_config(guild_id)
    config.admin_role_id = "admin-123"
    config.set_string("test", "original")
    store.set(guild_id, config)

    retrieved = store.get(guild_id)
    retrieved.admin_role_id = "modified-admin"
    retrieved.set_string("test", "modified")

    again = store.get(guild_id)
    assert again.admin_role_id == "admin-123"
    assert again.get_string("test", "") == "original"


def test_stored_copy_isolated_from_caller():
    store = MemoryConfigStore()
    config = new_guild_config("g")
    config.ensure_query_state("q", True).set_state("k", "v")
    store.set("g", config)
    config.query_states["q"].set_state("k", "changed")
    assert store.get("g").query_states["q"].get_state("k") == "v"


def test_global_config_default_and_roundtrip():
    store = MemoryConfigStore()
    assert store.get_global().config_id == "global"
    store.set_global(GlobalConfig(config_id="global", last_processed_block_height=77))
    fetched = store.get_global()
    assert fetched.last_processed_block_height == 77
    fetched.last_processed_block_height = 1
    assert store.get_global().last_processed_block_height == 77


def test_set_global_none():
    store = MemoryConfigStore()
    with pytest.raises(ValueError):
        store.set_global(None)


def test_clear_removes_everything():
    store = MemoryConfigStore()
    store.set("a", new_guild_config("a"))
    store.set_global(GlobalConfig(last_processed_block_height=9))
    store.clear()
    assert len(store) == 0
    assert store.get_global().last_processed_block_height == 0