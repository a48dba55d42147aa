"""Error taxonomy shared by the pipeline, the stores and the HTTP layer."""

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_INPUT = "InvalidInput"
    PAYLOAD_TOO_LARGE = "PayloadTooLarge"
    NOT_FOUND = "NotFound"
    RATE_LIMITED = "RateLimited"
    EMBEDDING_FAILURE = "EmbeddingFailure"
    RETRIEVAL_FAILURE = "RetrievalFailure"
    GENERATION_FAILURE = "GenerationFailure"
    PERSISTENCE_FAILURE = "PersistenceFailure"
    CITATION_ANOMALY = "CitationAnomaly"


# Generic, non-leaking messages returned to callers. Details only go to the logs.
PUBLIC_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INVALID_INPUT: "Invalid input.",
    ErrorKind.PAYLOAD_TOO_LARGE: "Payload too large.",
    ErrorKind.NOT_FOUND: "Not found.",
    ErrorKind.RATE_LIMITED: "Too many requests. Please retry later.",
    ErrorKind.EMBEDDING_FAILURE: "Unable to process the request right now.",
    ErrorKind.RETRIEVAL_FAILURE: "Unable to process the request right now.",
    ErrorKind.GENERATION_FAILURE: "Unable to generate a response right now.",
    ErrorKind.PERSISTENCE_FAILURE: "Unable to store the request right now.",
    ErrorKind.CITATION_ANOMALY: "Unable to process the request right now.",
}


class PipelineError(Exception):
    """Raised by any pipeline stage that must short-circuit the request.

    Attributes:
        kind (ErrorKind): The error category, used for the HTTP status mapping.
        detail (str): Internal description. Logged, never returned to the caller.
        public_message (str | None): Optional caller-safe message overriding the generic one.
        retry_after (float | None): Seconds until a retry makes sense (rate limiting only).
    """

    def __init__(
        self,
        kind: ErrorKind,
        detail: str = "",
        public_message: str | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(f"{kind.value}: {detail}" if detail else kind.value)
        self.kind = kind
        self.detail = detail
        self.public_message = public_message
        self.retry_after = retry_after

    def get_public_message(self) -> str:
        return self.public_message or PUBLIC_MESSAGES[self.kind]
