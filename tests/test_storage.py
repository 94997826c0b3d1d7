"""Tests for chat storage backends."""
import pytest

from loomchat.errors import MessageNotFoundError, ThreadNotFoundError
from loomchat.storage import ChatStore, Role, create_chat_store


async def _seed(store: ChatStore, count: int = 4) -> tuple[int, list[int]]:
    thread = await store.create_thread("Seeded")
    ids = []
    for index in range(count):
        role = Role.USER if index % 2 == 0 else Role.ASSISTANT
        message = await store.add_message(thread.id, role, f"m{index}")
        ids.append(message.id)
    return thread.id, ids


class TestChatStoreInterface:
    """Tests for ChatStore interface."""

    def test_store_is_abstract(self):
        """Test that ChatStore cannot be instantiated directly."""
        with pytest.raises(TypeError):
            ChatStore()  # type: ignore

    def test_factory_rejects_unknown_backend(self):
        """Test that unsupported backends fail loudly."""
        with pytest.raises(ValueError, match="'memory' or 'sqlite'"):
            create_chat_store("postgres")

    @pytest.mark.asyncio
    async def test_sqlite_requires_connect(self, tmp_path):
        """Test that using an unconnected database is an error."""
        store = create_chat_store("sqlite", path=tmp_path / "chat.db")

        with pytest.raises(RuntimeError, match="not connected"):
            await store.list_threads()


class TestThreads:
    """Thread operations, run against every backend."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, store):
        """Test creating a thread with instructions."""
        thread = await store.create_thread("First", system_prompt="Be brief.")

        fetched = await store.get_thread(thread.id)

        assert fetched.title == "First"
        assert fetched.system_prompt == "Be brief."
        assert not fetched.is_archived

    @pytest.mark.asyncio
    async def test_get_missing_thread(self, store):
        """Test that unknown ids raise ThreadNotFoundError."""
        with pytest.raises(ThreadNotFoundError):
            await store.get_thread(404)

    @pytest.mark.asyncio
    async def test_list_newest_first(self, store):
        """Test thread ordering."""
        first = await store.create_thread("First")
        second = await store.create_thread("Second")

        threads = await store.list_threads()

        assert [t.id for t in threads] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_rename(self, store):
        """Test renaming a thread."""
        thread = await store.create_thread("Old")

        await store.rename_thread(thread.id, "New")

        assert (await store.get_thread(thread.id)).title == "New"

    @pytest.mark.asyncio
    async def test_rename_missing_thread(self, store):
        """Test renaming an unknown thread."""
        with pytest.raises(ThreadNotFoundError):
            await store.rename_thread(404, "New")

    @pytest.mark.asyncio
    async def test_archive_hides_thread(self, store):
        """Test that archived threads are listed only on request."""
        thread = await store.create_thread("Archived")

        await store.archive_thread(thread.id)

        assert await store.list_threads() == []
        archived = await store.list_threads(include_archived=True)
        assert [t.id for t in archived] == [thread.id]
        assert archived[0].is_archived

    @pytest.mark.asyncio
    async def test_delete_removes_messages(self, store):
        """Test that deleting a thread deletes its messages."""
        thread_id, _ = await _seed(store)

        await store.delete_thread(thread_id)

        assert await store.list_threads() == []
        assert await store.list_messages(thread_id) == []


class TestMessages:
    """Message operations, run against every backend."""

    @pytest.mark.asyncio
    async def test_messages_in_chronological_order(self, store):
        """Test that messages list in insertion order with increasing ids."""
        thread_id, ids = await _seed(store)

        messages = await store.list_messages(thread_id)

        assert [m.id for m in messages] == ids
        assert ids == sorted(ids)
        assert [m.content for m in messages] == ["m0", "m1", "m2", "m3"]
        assert [m.role for m in messages] == ["user", "assistant", "user", "assistant"]
        timestamps = [m.created_at for m in messages]
        assert timestamps == sorted(timestamps)

    @pytest.mark.asyncio
    async def test_add_to_missing_thread(self, store):
        """Test that messages need an existing thread."""
        with pytest.raises(ThreadNotFoundError):
            await store.add_message(404, Role.USER, "lost")

    @pytest.mark.asyncio
    async def test_reply_link_images_and_metrics_round_trip(self, store):
        """Test that optional fields are persisted."""
        thread_id, ids = await _seed(store, count=1)

        await store.add_message(
            thread_id,
            Role.ASSISTANT,
            "answer",
            images=["aGVsbG8="],
            model="qwen3-vl",
            reply_to_id=ids[0],
            metrics={"eval_count": 12, "tokens_per_second": 3.5, "load_duration": None},
        )

        stored = (await store.list_messages(thread_id))[-1]
        assert stored.reply_to_id == ids[0]
        assert stored.images == ["aGVsbG8="]
        assert stored.model == "qwen3-vl"
        assert stored.eval_count == 12
        assert stored.tokens_per_second == 3.5
        assert stored.load_duration is None

    @pytest.mark.asyncio
    async def test_unknown_metric_rejected(self, store):
        """Test that metrics are restricted to known fields."""
        thread_id, _ = await _seed(store, count=0)

        with pytest.raises(ValueError, match="Unknown message metrics"):
            await store.add_message(thread_id, Role.ASSISTANT, "x", metrics={"temperature": 0.7})

    @pytest.mark.asyncio
    async def test_update_message(self, store):
        """Test rewriting a message in place."""
        thread_id, ids = await _seed(store)

        await store.update_message(thread_id, ids[0], "rewritten")

        messages = await store.list_messages(thread_id)
        assert messages[0].content == "rewritten"
        assert messages[0].id == ids[0]

    @pytest.mark.asyncio
    async def test_update_missing_message(self, store):
        """Test that unknown messages raise MessageNotFoundError."""
        thread_id, _ = await _seed(store, count=1)

        with pytest.raises(MessageNotFoundError):
            await store.update_message(thread_id, 999, "nope")

    @pytest.mark.asyncio
    async def test_delete_from_is_inclusive(self, store):
        """Test that a message and all later ones are removed."""
        thread_id, ids = await _seed(store)

        deleted = await store.delete_messages_from(thread_id, ids[1])

        assert deleted == 3
        assert [m.id for m in await store.list_messages(thread_id)] == ids[:1]

    @pytest.mark.asyncio
    async def test_delete_after_is_exclusive(self, store):
        """Test that only later messages are removed."""
        thread_id, ids = await _seed(store)

        deleted = await store.delete_messages_after(thread_id, ids[1])

        assert deleted == 2
        assert [m.id for m in await store.list_messages(thread_id)] == ids[:2]

    @pytest.mark.asyncio
    async def test_delete_cascades_through_reply_chain(self, store):
        """Test that deleting a message removes the replies after it."""
        thread = await store.create_thread("Chain")
        first = await store.add_message(thread.id, Role.USER, "one")
        second = await store.add_message(thread.id, Role.ASSISTANT, "two")
        await store.add_message(thread.id, Role.USER, "three", reply_to_id=second.id)

        await store.delete_messages_from(thread.id, second.id)

        assert [m.id for m in await store.list_messages(thread.id)] == [first.id]

    @pytest.mark.asyncio
    async def test_delete_last_message(self, store):
        """Test popping the newest message."""
        thread_id, ids = await _seed(store, count=2)

        removed = await store.delete_last_message(thread_id)

        assert removed.id == ids[-1]
        assert [m.id for m in await store.list_messages(thread_id)] == ids[:1]

    @pytest.mark.asyncio
    async def test_delete_last_message_empty_thread(self, store):
        """Test popping from an empty thread."""
        thread_id, _ = await _seed(store, count=0)

        assert await store.delete_last_message(thread_id) is None

    @pytest.mark.asyncio
    async def test_deletes_scoped_to_thread(self, store):
        """Test that other threads are untouched."""
        thread_a, ids_a = await _seed(store, count=2)
        thread_b, ids_b = await _seed(store, count=2)

        await store.delete_messages_from(thread_a, ids_a[0])

        assert [m.id for m in await store.list_messages(thread_b)] == ids_b


class TestSQLitePersistence:
    """SQLite-specific behavior."""

    @pytest.mark.asyncio
    async def test_data_survives_reconnect(self, tmp_path):
        """Test that threads and messages persist across connections."""
        path = tmp_path / "nested" / "chat.db"
        async with create_chat_store("sqlite", path=path) as store:
            thread = await store.create_thread("Persistent")
            await store.add_message(thread.id, Role.USER, "remember me")

        async with create_chat_store("sqlite", path=path) as store:
            threads = await store.list_threads()
            messages = await store.list_messages(thread.id)

        assert [t.title for t in threads] == ["Persistent"]
        assert [m.content for m in messages] == ["remember me"]
