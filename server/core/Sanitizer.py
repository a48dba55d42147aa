import json
import re
from typing import Any

from pydantic import BaseModel

from shared.helper.HelperConfig import HelperConfig
from shared.models.errors import ErrorKind, PipelineError

# control characters except \t (0x09), \n (0x0a) and \r (0x0d)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_HORIZONTAL_WS = re.compile(r"[ \t\f\v]+")
_BLANK_LINES = re.compile(r"\n\s*\n(\s*\n)+")

DEFAULT_INJECTION_PATTERNS = [
    r"ignore (all |any )?(the )?(previous|prior|above) (instructions|prompts?|rules)",
    r"disregard (all |any )?(the )?(previous|prior|above) (instructions|prompts?|rules)",
    r"forget (all |any )?(your|the) (previous )?(instructions|rules)",
    r"(reveal|show|print|repeat) (me )?(your|the) (system )?(prompt|instructions)",
    r"you are now (a|an|in) ",
    r"act as (a|an) .{0,40}(without|no) (restrictions|rules|limits)",
    r"developer mode",
    r"jailbreak",
]

DEFAULT_TITLE = "Untitled Document"
DEFAULT_CONTENT_TYPE = "text/plain"
MAX_TITLE_LENGTH = 1000
# serialisation overhead when the document is stored as JSON
SIZE_SAFETY_MARGIN = 1.2


class SanitizedInput(BaseModel):
    text: str
    injection_flagged: bool = False
    matched_patterns: list[str] = []


class SanitizedDocument(BaseModel):
    text: str
    title: str
    content_type: str
    metadata: dict[str, Any]


class Sanitizer:
    """Cleans and bounds-checks raw user input before any side effect happens."""

    def __init__(self, helper_config: HelperConfig) -> None:
        self.logging = helper_config.get_logger()
        self.max_message_length = int(helper_config.get_number_val("CHAT_MAX_MESSAGE_LENGTH", default=10000))
        self.max_content_bytes = int(
            helper_config.get_number_val("INGEST_MAX_CONTENT_BYTES", default=25 * 1024 * 1024)
        )
        patterns = helper_config.get_list_val(
            "SANITIZER_INJECTION_PATTERNS", default=DEFAULT_INJECTION_PATTERNS, separator=";"
        )
        self._injection_patterns = [re.compile(p, re.IGNORECASE) for p in patterns]

    ##########################################
    ############## CLEANING ##################
    ##########################################

    @staticmethod
    def clean(raw: str) -> str:
        """Strip control characters, collapse whitespace runs and trim. Pure."""
        text = raw.replace("\r\n", "\n")
        text = _CONTROL_CHARS.sub("", text)
        text = _HORIZONTAL_WS.sub(" ", text)
        text = "\n".join(line.strip() for line in text.split("\n"))
        text = _BLANK_LINES.sub("\n\n", text)
        return text.strip()

    def detect_injection(self, text: str) -> list[str]:
        return [p.pattern for p in self._injection_patterns if p.search(text)]

    ##########################################
    ############## VALIDATION ################
    ##########################################

    def validate(self, raw: Any) -> SanitizedInput:
        """Validate a chat message or query.

        Raises:
            PipelineError: InvalidInput for non-string, empty or whitespace-only
                input, PayloadTooLarge above the configured length.
        """
        if not isinstance(raw, str) or not raw.strip():
            raise PipelineError(ErrorKind.INVALID_INPUT, "message is empty", public_message="Message cannot be empty.")
        if len(raw) > self.max_message_length:
            raise PipelineError(
                ErrorKind.PAYLOAD_TOO_LARGE,
                f"message has {len(raw)} chars, limit {self.max_message_length}",
                public_message=f"Message is too long. Maximum length is {self.max_message_length} characters.",
            )
        text = self.clean(raw)
        if not text:
            raise PipelineError(ErrorKind.INVALID_INPUT, "message is empty after cleaning", public_message="Message cannot be empty.")

        matched = self.detect_injection(text)
        if matched:
            self.logging.warning("Possible prompt injection detected (%d pattern(s) matched).", len(matched), color="yellow")
        return SanitizedInput(text=text, injection_flagged=bool(matched), matched_patterns=matched)

    def validate_document(
        self,
        text: Any,
        title: Any = None,
        content_type: Any = None,
        metadata: Any = None,
    ) -> SanitizedDocument:
        """Validate an ingestion request.

        Document text keeps its layout (it is chunked later); only control
        characters are removed.

        Raises:
            PipelineError: InvalidInput or PayloadTooLarge.
        """
        if not isinstance(text, str) or not text.strip():
            raise PipelineError(ErrorKind.INVALID_INPUT, "document text missing", public_message="Missing text.")

        estimated = int(len(text.encode("utf-8")) * SIZE_SAFETY_MARGIN)
        if estimated > self.max_content_bytes:
            limit_mb = self.max_content_bytes / (1024 * 1024)
            raise PipelineError(
                ErrorKind.PAYLOAD_TOO_LARGE,
                f"document of ~{estimated} bytes exceeds {self.max_content_bytes}",
                public_message=f"Document too large. Maximum size is {limit_mb:.0f}MB.",
            )

        if title is not None and not isinstance(title, str):
            raise PipelineError(ErrorKind.INVALID_INPUT, "title is not a string", public_message="Title must be a string.")
        title = (title or "").strip() or DEFAULT_TITLE
        if len(title) > MAX_TITLE_LENGTH:
            raise PipelineError(
                ErrorKind.INVALID_INPUT,
                f"title has {len(title)} chars",
                public_message=f"Title too long. Maximum length is {MAX_TITLE_LENGTH} characters.",
            )

        if content_type is not None and not isinstance(content_type, str):
            raise PipelineError(ErrorKind.INVALID_INPUT, "content type is not a string", public_message="Content type must be a string.")
        content_type = (content_type or "").strip() or DEFAULT_CONTENT_TYPE

        if metadata is None:
            metadata = {}
        if not isinstance(metadata, dict):
            raise PipelineError(ErrorKind.INVALID_INPUT, "metadata is not an object", public_message="Metadata must be a JSON object.")
        try:
            json.dumps(metadata)
        except (TypeError, ValueError) as exc:
            raise PipelineError(ErrorKind.INVALID_INPUT, f"metadata not serialisable: {exc}", public_message="Metadata must be a JSON object.") from exc

        return SanitizedDocument(
            text=_CONTROL_CHARS.sub("", text),
            title=title,
            content_type=content_type,
            metadata=metadata,
        )
