import re

from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import Source
from shared.models.document import DocumentRecord, NoteRecord
from shared.models.retrieval import BuiltContext, RetrievalMatch

NO_CONTEXT_BLOCK = "No relevant documents were found in the knowledge base."
UNGROUPED_TITLE = "Unfiled notes"

_WS = re.compile(r"\s+")


def _normalize(text: str) -> str:
    return _WS.sub(" ", text).strip().lower()


class ContextBuilder:
    """Turns ranked matches into an id-tagged context block and the source list.

    Entries are grouped by their document. A chunk whose text is identical
    (after whitespace/case normalisation) to one already in the block is
    referenced instead of repeated, but keeps its own id and source entry.
    """

    def __init__(self, helper_config: HelperConfig) -> None:
        self.logging = helper_config.get_logger()
        self.preview_length = int(helper_config.get_number_val("CONTEXT_PREVIEW_LENGTH", default=160))

    def _preview(self, text: str) -> str:
        text = text.strip()
        if len(text) <= self.preview_length:
            return text
        return text[: self.preview_length - 3].rstrip() + "..."

    def build(
        self,
        matches: list[RetrievalMatch],
        note_lookup: dict[str, NoteRecord],
        document_lookup: dict[str, DocumentRecord],
    ) -> BuiltContext:
        """Build the prompt context for the given matches.

        Args:
            matches (list[RetrievalMatch]): Ranked matches, best first.
            note_lookup (dict[str, NoteRecord]): Note rows by note id.
            document_lookup (dict[str, DocumentRecord]): Document rows by document id.

        Returns:
            BuiltContext: The context block, one Source per usable match (in
                rank order) and the full passage text per source id.
        """
        if not matches:
            return BuiltContext(context_block=NO_CONTEXT_BLOCK)

        # group by document, keeping the rank order of each group's best match
        groups: dict[str | None, list[tuple[RetrievalMatch, NoteRecord]]] = {}
        sources: list[Source] = []
        passages: dict[str, str] = {}
        for match in matches:
            if match.id in passages:
                continue
            note = note_lookup.get(match.id)
            if note is None:
                self.logging.warning("Vector %s has no note row (orphaned vector), skipping.", match.id)
                continue
            document = document_lookup.get(note.document_id) if note.document_id else None
            groups.setdefault(note.document_id if document else None, []).append((match, note))
            passages[match.id] = note.text
            sources.append(Source(
                id=match.id,
                text=self._preview(note.text),
                title=document.title if document else None,
                score=round(match.score, 4),
            ))

        if not sources:
            return BuiltContext(context_block=NO_CONTEXT_BLOCK)

        lines: list[str] = []
        seen_text: dict[str, int] = {}
        n = 0
        for document_id, entries in groups.items():
            title = document_lookup[document_id].title if document_id else UNGROUPED_TITLE
            lines.append(f"Document: {title}")
            for match, note in entries:
                n += 1
                key = _normalize(note.text)
                if key in seen_text:
                    lines.append(f"[{n}] (id={match.id}) (same text as [{seen_text[key]}])")
                    continue
                seen_text[key] = n
                lines.append(f"[{n}] (id={match.id}) {note.text.strip()}")
            lines.append("")

        return BuiltContext(context_block="\n".join(lines).strip(), sources=sources, passages=passages)
