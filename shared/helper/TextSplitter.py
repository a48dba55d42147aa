from shared.helper.HelperConfig import HelperConfig

DEFAULT_SEPARATORS = ["\n\n", "\n", " ", ""]


class TextSplitter:
    """Recursive character splitter.

    Tries the separators in order (paragraphs, lines, words, characters) and
    only falls back to a finer one for pieces that are still too long. Small
    pieces are merged back together up to chunk_size, keeping chunk_overlap
    characters of context between consecutive chunks.
    """

    def __init__(self, helper_config: HelperConfig, chunk_size: int | None = None, chunk_overlap: int | None = None):
        self.logging = helper_config.get_logger()
        self.enabled = helper_config.get_bool_val("ENABLE_TEXT_SPLITTING", default=True)
        self.chunk_size = int(chunk_size or helper_config.get_number_val("CHUNK_SIZE", default=1000))
        self.chunk_overlap = int(
            chunk_overlap if chunk_overlap is not None else helper_config.get_number_val("CHUNK_OVERLAP", default=200)
        )
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"CHUNK_OVERLAP ({self.chunk_overlap}) must be smaller than CHUNK_SIZE ({self.chunk_size})."
            )
        self.separators = DEFAULT_SEPARATORS

    def split(self, text: str) -> list[str]:
        """Split text into ordered chunks. With splitting disabled the whole text is one chunk.

        Args:
            text (str): The full document text.

        Returns:
            list[str]: Ordered, non-empty chunks.
        """
        if not text or not text.strip():
            return []
        if not self.enabled:
            return [text]
        return [c for c in self._split(text, self.separators) if c.strip()]

    def _split(self, text: str, separators: list[str]) -> list[str]:
        # first separator that actually occurs, "" always matches
        separator = separators[-1]
        remaining: list[str] = []
        for i, sep in enumerate(separators):
            if sep == "" or sep in text:
                separator = sep
                remaining = separators[i + 1:]
                break

        pieces = text.split(separator) if separator else list(text)
        chunks: list[str] = []
        pending: list[str] = []
        for piece in pieces:
            if len(piece) <= self.chunk_size:
                pending.append(piece)
                continue
            if pending:
                chunks.extend(self._merge(pending, separator))
                pending = []
            if remaining:
                chunks.extend(self._split(piece, remaining))
            else:
                chunks.append(piece)
        if pending:
            chunks.extend(self._merge(pending, separator))
        return chunks

    def _merge(self, pieces: list[str], separator: str) -> list[str]:
        chunks: list[str] = []
        current: list[str] = []
        total = 0
        sep_len = len(separator)
        for piece in pieces:
            extra = len(piece) + (sep_len if current else 0)
            if current and total + extra > self.chunk_size:
                chunk = separator.join(current).strip()
                if chunk:
                    chunks.append(chunk)
                # drop from the front until the overlap fits again
                while current and (total > self.chunk_overlap or total + extra > self.chunk_size):
                    total -= len(current[0]) + (sep_len if len(current) > 1 else 0)
                    current.pop(0)
                extra = len(piece) + (sep_len if current else 0)
            current.append(piece)
            total += extra
        chunk = separator.join(current).strip()
        if chunk:
            chunks.append(chunk)
        return chunks
