import re

from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import Source
from shared.models.retrieval import CitationResult

CITATION_PATTERN = re.compile(r"\[\s*(?:source|id)\s*:\s*([^\]\s]+)\s*\]", re.IGNORECASE)
REMOVED_NOTE = "Note: one or more citations to sources that were not retrieved were removed from this answer."
FOOTER_PREFIX = "Sources: "

_SPACE_BEFORE_PUNCT = re.compile(r"[ \t]+([.,;:!?])")
_DOUBLE_SPACES = re.compile(r"[ \t]{2,}")


def strip_citations(text: str) -> str:
    """Remove every citation token, valid or not."""
    text = CITATION_PATTERN.sub("", text)
    text = _SPACE_BEFORE_PUNCT.sub(r"\1", text)
    return _DOUBLE_SPACES.sub(" ", text).strip()


class CitationValidator:
    """Keeps only citations of sources that were actually retrieved for the turn."""

    def __init__(self, helper_config: HelperConfig) -> None:
        self.logging = helper_config.get_logger()

    def validate(self, text: str, retrieved: list[Source]) -> CitationResult:
        """Check the citation tokens of a generated answer against the retrieved sources.

        Args:
            text (str): Generated answer.
            retrieved (list[Source]): Sources retrieved for this turn.

        Returns:
            CitationResult: Text with invalid tokens removed (plus a visible
                note when that happened) and a "Sources:" footer, the cited
                valid sources in order of first citation, and the removed ids.
        """
        by_id = {s.id: s for s in retrieved}
        valid_ids: list[str] = []
        removed_ids: list[str] = []

        def _check(match: re.Match) -> str:
            cited = match.group(1)
            if cited in by_id:
                if cited not in valid_ids:
                    valid_ids.append(cited)
                return f"[source: {cited}]"
            if cited not in removed_ids:
                removed_ids.append(cited)
            return ""

        cleaned = CITATION_PATTERN.sub(_check, text)
        if removed_ids:
            self.logging.warning(
                "Citation anomaly: removed %d citation(s) to unretrieved ids: %s", len(removed_ids), ", ".join(removed_ids)
            )
            cleaned = _DOUBLE_SPACES.sub(" ", _SPACE_BEFORE_PUNCT.sub(r"\1", cleaned)).strip()
            cleaned = f"{cleaned}\n\n{REMOVED_NOTE}"

        if valid_ids:
            cleaned = f"{cleaned.rstrip()}\n\n{FOOTER_PREFIX}{', '.join(valid_ids)}"

        return CitationResult(
            cleaned_text=cleaned.strip(),
            valid_sources=[by_id[i] for i in valid_ids],
            removed_ids=removed_ids,
        )
