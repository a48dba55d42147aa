import pytest

from server.core.ContextBuilder import NO_CONTEXT_BLOCK, ContextBuilder
from shared.models.document import DocumentRecord, NoteRecord
from shared.models.retrieval import RetrievalMatch


@pytest.fixture
def builder(helper_config):
    return ContextBuilder(helper_config)


def _doc(doc_id: str, title: str) -> DocumentRecord:
    return DocumentRecord(id=doc_id, title=title, uploaded_at=0)


def test_empty_matches_give_no_context(builder):
    context = builder.build([], {}, {})
    assert context.context_block == NO_CONTEXT_BLOCK
    assert context.sources == []


def test_entries_are_indexed_and_id_tagged(builder):
    notes = {
        "a": NoteRecord(id="a", document_id="d1", text="Dogs are mammals.", chunk_index=0),
        "b": NoteRecord(id="b", document_id="d2", text="Stocks are volatile.", chunk_index=0),
    }
    docs = {"d1": _doc("d1", "Animals"), "d2": _doc("d2", "Finance")}
    matches = [RetrievalMatch(id="a", score=0.9), RetrievalMatch(id="b", score=0.7)]

    context = builder.build(matches, notes, docs)

    assert "[1] (id=a) Dogs are mammals." in context.context_block
    assert "[2] (id=b) Stocks are volatile." in context.context_block
    assert "Document: Animals" in context.context_block
    assert context.get_source_ids() == ["a", "b"]
    assert context.sources[0].title == "Animals"
    assert context.passages["a"] == "Dogs are mammals."


def test_groups_chunks_by_document(builder):
    notes = {
        "a": NoteRecord(id="a", document_id="d1", text="First chunk of d1."),
        "b": NoteRecord(id="b", document_id="d2", text="Only chunk of d2."),
        "c": NoteRecord(id="c", document_id="d1", text="Second chunk of d1."),
    }
    docs = {"d1": _doc("d1", "One"), "d2": _doc("d2", "Two")}
    matches = [RetrievalMatch(id=i, score=s) for i, s in (("a", 0.9), ("b", 0.85), ("c", 0.8))]

    block = builder.build(matches, notes, docs).context_block

    assert block.index("(id=a)") < block.index("(id=c)") < block.index("Document: Two") < block.index("(id=b)")


def test_near_identical_text_included_once_but_ids_kept(builder):
    notes = {
        "a": NoteRecord(id="a", document_id="d1", text="Cats are mammals."),
        "b": NoteRecord(id="b", document_id="d1", text="  cats are   MAMMALS. "),
    }
    docs = {"d1": _doc("d1", "Animals")}
    matches = [RetrievalMatch(id="a", score=0.9), RetrievalMatch(id="b", score=0.89)]

    context = builder.build(matches, notes, docs)

    assert context.context_block.lower().count("cats are") == 1
    assert "[2] (id=b) (same text as [1])" in context.context_block
    assert context.get_source_ids() == ["a", "b"]


def test_preview_is_truncated_but_prompt_keeps_full_text(builder):
    long_text = "mammal " * 100
    notes = {"a": NoteRecord(id="a", document_id=None, text=long_text)}
    context = builder.build([RetrievalMatch(id="a", score=0.9)], notes, {})

    assert len(context.sources[0].text) <= 160
    assert long_text.strip() in context.context_block
    assert context.sources[0].title is None


def test_orphaned_vectors_are_skipped(builder):
    notes = {"a": NoteRecord(id="a", document_id=None, text="Known text.")}
    matches = [RetrievalMatch(id="ghost", score=0.95), RetrievalMatch(id="a", score=0.9)]
    context = builder.build(matches, notes, {})
    assert context.get_source_ids() == ["a"]
    assert "ghost" not in context.context_block


def test_only_orphans_give_no_context(builder):
    context = builder.build([RetrievalMatch(id="ghost", score=0.95)], {}, {})
    assert context.context_block == NO_CONTEXT_BLOCK
    assert context.sources == []
