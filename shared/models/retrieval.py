"""Transient models produced during a single retrieval-augmented turn."""

from typing import Any

from pydantic import BaseModel, Field

from shared.models.chat import Source


class RetrievalMatch(BaseModel):
    id: str
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)


class RetrievalResult(BaseModel):
    """Output of the vector retriever.

    Attributes:
        matches:     Ranked matches with raw similarity scores. Empty in guard mode.
        guard_mode:  True when the best match is below the similarity threshold
                     or retrieval failed; the turn must not fabricate an answer.
        expanded:    True when the adaptive top-K expansion was applied.
        degraded:    True when the index could not be reached.
    """

    matches: list[RetrievalMatch] = Field(default_factory=list)
    guard_mode: bool = False
    expanded: bool = False
    degraded: bool = False

    def get_ids(self) -> list[str]:
        return [m.id for m in self.matches]


class BuiltContext(BaseModel):
    context_block: str
    sources: list[Source] = Field(default_factory=list)
    # full chunk text per source id, used to build the fallback answer
    passages: dict[str, str] = Field(default_factory=dict)

    def get_source_ids(self) -> list[str]:
        return [s.id for s in self.sources]


class CitationResult(BaseModel):
    cleaned_text: str
    valid_sources: list[Source] = Field(default_factory=list)
    removed_ids: list[str] = Field(default_factory=list)


class GenerationResult(BaseModel):
    text: str
    model_used: str
    from_fallback: bool = False
