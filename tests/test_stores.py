import pytest

from shared.models.chat import MessageRole, Source
from shared.models.document import CreateDocumentInput, NoteRecord
from shared.models.errors import ErrorKind, PipelineError
from shared.stores.BlobStoreSQLite import BlobStoreSQLite
from shared.stores.DocumentStore import parse_json_object


class TestDocumentStore:
    async def test_create_and_get_document(self, document_store):
        record = await document_store.create_document(
            CreateDocumentInput(content="Full text", title="Doc", metadata={"author": "ada"}), "doc-1"
        )
        assert record.uploaded_at > 0
        assert record.metadata == {"title": "Doc", "author": "ada"}

        await document_store.create_note(NoteRecord(id="n1", document_id="doc-1", text="Full", chunk_index=0))
        await document_store.create_note(NoteRecord(id="n2", document_id="doc-1", text="text", chunk_index=1))

        document = await document_store.get_document("doc-1")
        assert document.content == "Full text"
        assert [c.id for c in document.chunks] == ["n1", "n2"]

    async def test_missing_document_is_none(self, document_store):
        assert await document_store.get_document("nope") is None

    async def test_row_without_blob_reads_as_missing(self, document_store, database):
        await document_store.create_document(CreateDocumentInput(content="x"), "doc-1")
        await database.execute("DELETE FROM blobs")
        assert await document_store.get_document("doc-1") is None

    async def test_delete_document_cascades_to_notes(self, document_store):
        await document_store.create_document(CreateDocumentInput(content="x"), "doc-1")
        await document_store.create_note(NoteRecord(id="n1", document_id="doc-1", text="x"))
        await document_store.delete_document("doc-1")
        assert await document_store.get_notes_by_ids(["n1"]) == {}
        assert await document_store.get_document_record("doc-1") is None

    async def test_lookup_by_ids(self, document_store):
        await document_store.create_document(CreateDocumentInput(content="x", title="T"), "doc-1")
        await document_store.create_note(NoteRecord(id="n1", document_id="doc-1", text="x"))
        await document_store.create_note(NoteRecord(id="legacy", document_id=None, text="old note"))

        notes = await document_store.get_notes_by_ids(["n1", "legacy", "ghost"])
        assert set(notes) == {"n1", "legacy"}
        docs = await document_store.get_documents_by_ids(["doc-1", "ghost"])
        assert docs["doc-1"].title == "T"

    async def test_malformed_metadata_reads_as_empty(self, document_store, database):
        await document_store.create_document(CreateDocumentInput(content="x"), "doc-1")
        await database.execute("UPDATE documents SET metadata = '{broken' WHERE id = 'doc-1'")
        record = await document_store.get_document_record("doc-1")
        assert record.metadata == {}

    async def test_clear_all(self, document_store, conversation_store):
        await document_store.create_document(CreateDocumentInput(content="x"), "doc-1")
        await document_store.create_note(NoteRecord(id="n1", document_id="doc-1", text="x"))
        conversation = await conversation_store.create_conversation()
        await document_store.clear_all()
        assert await document_store.list_documents() == []
        assert await document_store.get_all_note_ids() == []
        assert not await conversation_store.conversation_exists(conversation.id)


def test_parse_json_object_fails_soft():
    assert parse_json_object(None) == {}
    assert parse_json_object("[1, 2]") == {}
    assert parse_json_object("not json") == {}
    assert parse_json_object('{"a": 1}') == {"a": 1}


async def test_blob_store_rejects_oversized_values(helper_config, database):
    blobs = BlobStoreSQLite(helper_config, database)
    blobs.MAX_VALUE_BYTES = 10
    with pytest.raises(PipelineError) as exc_info:
        await blobs.put("doc:x", b"x" * 11)
    assert exc_info.value.kind == ErrorKind.PAYLOAD_TOO_LARGE
    await blobs.put("doc:x", b"small")
    await blobs.put("doc:x", b"newer")
    assert await blobs.get("doc:x") == b"newer"


class TestConversationStore:
    async def test_messages_use_database_timestamps_and_order(self, conversation_store):
        conversation = await conversation_store.create_conversation()
        assert conversation.created_at > 0

        first = await conversation_store.insert_message(conversation.id, MessageRole.USER, "one")
        second = await conversation_store.insert_message(
            conversation.id, MessageRole.ASSISTANT, "two", sources=[Source(id="a", text="t")]
        )
        assert first.created_at <= second.created_at
        assert first.seq < second.seq

        messages = await conversation_store.get_messages(conversation.id)
        assert [m.content for m in messages] == ["one", "two"]
        assert messages[1].sources[0].id == "a"
        assert messages[0].sources is None

    async def test_message_for_unknown_conversation_fails(self, conversation_store):
        with pytest.raises(PipelineError) as exc_info:
            await conversation_store.insert_message("ghost", MessageRole.USER, "hi")
        assert exc_info.value.kind == ErrorKind.PERSISTENCE_FAILURE

    async def test_client_key_is_unique_per_conversation(self, conversation_store):
        conversation = await conversation_store.create_conversation()
        stored = await conversation_store.insert_message(conversation.id, MessageRole.USER, "hi", client_key="k1")
        with pytest.raises(PipelineError):
            await conversation_store.insert_message(conversation.id, MessageRole.USER, "hi", client_key="k1")
        found = await conversation_store.find_by_client_key(conversation.id, "k1")
        assert found.id == stored.id

    async def test_reply_to(self, conversation_store):
        conversation = await conversation_store.create_conversation()
        question = await conversation_store.insert_message(conversation.id, MessageRole.USER, "q")
        assert await conversation_store.get_reply_to(conversation.id, question.id) is None
        answer = await conversation_store.insert_message(
            conversation.id, MessageRole.ASSISTANT, "a", reply_to=question.id
        )
        assert answer.reply_to == question.id
        assert (await conversation_store.get_reply_to(conversation.id, question.id)).id == answer.id

    async def test_unanswered_question_has_no_reply_even_if_a_later_one_was_answered(self, conversation_store):
        conversation = await conversation_store.create_conversation()
        failed = await conversation_store.insert_message(conversation.id, MessageRole.USER, "what is a rocket?")
        other = await conversation_store.insert_message(conversation.id, MessageRole.USER, "what is a dog?")
        await conversation_store.insert_message(
            conversation.id, MessageRole.ASSISTANT, "dogs are mammals", reply_to=other.id
        )
        assert await conversation_store.get_reply_to(conversation.id, failed.id) is None

    async def test_summary_archives_atomically(self, conversation_store):
        conversation = await conversation_store.create_conversation()
        old = [await conversation_store.insert_message(conversation.id, MessageRole.USER, f"m{i}") for i in range(3)]
        await conversation_store.insert_summary_and_archive(conversation.id, "first summary", [old[0].id])
        await conversation_store.insert_summary_and_archive(conversation.id, "second summary", [old[1].id])

        active = await conversation_store.get_messages(conversation.id)
        assert [m.content for m in active if m.role == MessageRole.SYSTEM_SUMMARY] == ["second summary"]
        assert [m.content for m in active if m.role == MessageRole.USER] == ["m2"]

        everything = await conversation_store.get_messages(conversation.id, include_archived=True)
        assert len(everything) == 5

    async def test_malformed_sources_read_as_none(self, conversation_store, database):
        conversation = await conversation_store.create_conversation()
        message = await conversation_store.insert_message(conversation.id, MessageRole.ASSISTANT, "a")
        await database.execute("UPDATE messages SET sources = 'oops' WHERE id = ?", (message.id,))
        assert (await conversation_store.get_messages(conversation.id))[0].sources is None
