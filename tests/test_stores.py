"""
Tests for the waiting pool stores, presence tracking and pending markers.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from core.exceptions import StoreUnavailableError
from core.notifier import PendingMatchNotifier
from core.presence import PresenceTracker
from core.queue_store import RedisPoolStore, interest_queue_key, shadow_key

GUEST_ID = "guest_1700000000000_aaaaaaaa"


class TestInMemoryPoolStore:
    """The in-memory backend follows the Redis list, string and set semantics."""

    @pytest.mark.asyncio
    async def test_fifo_order(self, store):
        """Test push-tail and pop-head order."""
        for value in ("a", "b", "c"):
            await store.push_tail("q", value)

        assert [await store.pop_head("q") for _ in range(4)] == ["a", "b", "c", None]

    @pytest.mark.asyncio
    async def test_remove_value_removes_every_occurrence(self, store):
        """Test removal of duplicate entries."""
        for value in ("a", "b", "a"):
            await store.push_tail("q", value)

        assert await store.remove_value("q", "a") == 2
        assert store.list_items("q") == ["b"]
        assert await store.remove_value("missing", "a") == 0

    @pytest.mark.asyncio
    async def test_values_expire(self, store, clock):
        """Test value expiry."""
        await store.set_with_expiry("k", "v", 10)

        clock.advance(9)
        assert await store.get("k") == "v"
        clock.advance(1)
        assert await store.get("k") is None
        assert await store.exists("k") is False

    @pytest.mark.asyncio
    async def test_sets_expire_and_replace(self, store, clock):
        """Test set replacement and expiry."""
        await store.replace_set("s", ["a", "b"], 10)
        await store.replace_set("s", ["c"], 10)

        assert await store.members_many(["s", "other"]) == [{"c"}, set()]
        clock.advance(10)
        assert await store.members_many(["s"]) == [set()]

    @pytest.mark.asyncio
    async def test_delete_counts_live_keys(self, store):
        """Test delete counts."""
        await store.set_with_expiry("k1", "v", 10)
        await store.push_tail("q", "x")

        assert await store.delete("k1", "q", "missing") == 2
        assert await store.exists_many(["k1", "q"]) == [False, False]

    @pytest.mark.asyncio
    async def test_increment_keeps_first_window(self, store, clock):
        """Test that increments keep the first window's TTL."""
        assert await store.increment("rate:u1", 10) == 1
        clock.advance(5)
        assert await store.increment("rate:u1", 10) == 2
        clock.advance(5)
        assert await store.increment("rate:u1", 10) == 1


class TestRedisPoolStore:
    """Redis calls are wrapped and errors surface as StoreUnavailableError."""

    @pytest.mark.asyncio
    async def test_pop_head_decodes_bytes(self):
        """Test decoding of popped values."""
        client = MagicMock()
        client.lpop = AsyncMock(return_value=b"u1")
        store = RedisPoolStore(client)

        assert await store.pop_head("queue:random") == "u1"
        client.lpop.assert_awaited_once_with("queue:random")

    @pytest.mark.asyncio
    async def test_redis_error_becomes_store_unavailable(self):
        """Test Redis error translation."""
        client = MagicMock()
        client.rpush = AsyncMock(side_effect=RedisConnectionError("refused"))
        store = RedisPoolStore(client)

        with pytest.raises(StoreUnavailableError):
            await store.push_tail("queue:random", "u1")

    @pytest.mark.asyncio
    async def test_exists_many_uses_one_pipeline(self):
        """Test pipelined existence checks."""
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[1, 0])
        client = MagicMock()
        client.pipeline.return_value = pipe
        store = RedisPoolStore(client)

        result = await store.exists_many(["a", "b"])

        assert result == [True, False]
        client.pipeline.assert_called_once_with(transaction=False)
        assert pipe.exists.call_count == 2
        pipe.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_members_many_decodes_members(self):
        """Test pipelined set reads."""
        pipe = MagicMock()
        pipe.execute = AsyncMock(return_value=[{b"music", b"art"}, set()])
        client = MagicMock()
        client.pipeline.return_value = pipe
        store = RedisPoolStore(client)

        assert await store.members_many(["x", "y"]) == [{"music", "art"}, set()]

    @pytest.mark.asyncio
    async def test_increment_sets_ttl_on_first_hit_only(self):
        """Test counter TTL on first increment."""
        client = MagicMock()
        client.incr = AsyncMock(side_effect=[1, 2])
        client.expire = AsyncMock()
        store = RedisPoolStore(client)

        await store.increment("rate:u1", 10)
        await store.increment("rate:u1", 10)

        client.expire.assert_awaited_once_with("rate:u1", 10)

    @pytest.mark.asyncio
    async def test_delete_without_keys_skips_redis(self):
        """Test delete with no keys."""
        client = MagicMock()
        client.delete = AsyncMock()
        store = RedisPoolStore(client)

        assert await store.delete() == 0
        client.delete.assert_not_awaited()


class TestKeys:
    def test_interest_queue_key_is_lowercased(self):
        """Test interest queue key normalization."""
        assert interest_queue_key(" Music ") == "queue:interest:music"

    def test_shadow_key(self):
        """Test shadow key format."""
        assert shadow_key("queue:random", "u1") == "queue:random:user:u1"


class TestPresenceTracker:
    @pytest.mark.asyncio
    async def test_refresh_uses_account_and_guest_ttls(self, store, test_settings):
        """Test presence TTLs for accounts and guests."""
        presence = PresenceTracker(store, test_settings)

        assert await presence.refresh("u1") == 90
        assert await presence.refresh(GUEST_ID) == 60
        assert store.ttl("presence:u1") == pytest.approx(90)
        assert store.ttl(f"guest:presence:{GUEST_ID}") == pytest.approx(60)

    @pytest.mark.asyncio
    async def test_marker_expires(self, store, clock, test_settings):
        """Test that the marker disappears after its TTL."""
        presence = PresenceTracker(store, test_settings)
        await presence.refresh("u1")

        clock.advance(90)

        assert await presence.is_live("u1") is False

    @pytest.mark.asyncio
    async def test_are_live_is_batched(self, store, test_settings):
        """Test batched liveness."""
        presence = PresenceTracker(store, test_settings)
        await presence.refresh("u1")

        assert await presence.are_live(["u1", "u2", GUEST_ID]) == [True, False, False]

    @pytest.mark.asyncio
    async def test_clear(self, store, test_settings):
        """Test clearing a marker."""
        presence = PresenceTracker(store, test_settings)
        await presence.refresh("u1")

        await presence.clear("u1")

        assert await presence.is_live("u1") is False


class TestPendingMatchNotifier:
    @pytest.mark.asyncio
    async def test_set_get_clear(self, store, test_settings):
        """Test pending marker set, get and clear."""
        notifier = PendingMatchNotifier(store, test_settings)

        await notifier.set_pending("u1", "abc123def456")

        assert await notifier.get_pending("u1") == "abc123def456"
        assert store.ttl("match:pending:u1") == pytest.approx(120)
        await notifier.clear_pending("u1")
        assert await notifier.get_pending("u1") is None

    @pytest.mark.asyncio
    async def test_guest_markers_use_their_own_namespace(self, store, test_settings):
        """Test guest pending marker keys."""
        notifier = PendingMatchNotifier(store, test_settings)

        await notifier.set_pending(GUEST_ID, "guest_abc")

        assert await store.get(f"guest:match:pending:{GUEST_ID}") == "guest_abc"
        assert await store.get(f"match:pending:{GUEST_ID}") is None

    @pytest.mark.asyncio
    async def test_marker_expires(self, store, clock, test_settings):
        """Test that the marker disappears after its TTL."""
        notifier = PendingMatchNotifier(store, test_settings)
        await notifier.set_pending("u1", "room")

        clock.advance(120)

        assert await notifier.get_pending("u1") is None
