from shared.clients.ClientInterface import is_transient_error
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.retrieval import RetrievalMatch, RetrievalResult


class Retriever:
    """Vector similarity search with similarity gating and adaptive top-K.

    Never raises: an unreachable index degrades into an empty guard-mode
    result so the turn can still be answered honestly.
    """

    def __init__(self, helper_config: HelperConfig, rag_client: RAGClientInterface) -> None:
        self.logging = helper_config.get_logger()
        self._rag_client = rag_client
        self.default_top_k = int(helper_config.get_number_val("RETRIEVAL_TOP_K", default=3))
        self.expanded_top_k = int(helper_config.get_number_val("RETRIEVAL_EXPANDED_TOP_K", default=5))
        self.min_similarity = float(helper_config.get_number_val("RETRIEVAL_MIN_SIMILARITY", default=0.65))
        self.spread_threshold = float(helper_config.get_number_val("RETRIEVAL_SPREAD_THRESHOLD", default=0.05))

    async def _query(self, vector: list[float], top_k: int) -> list[RetrievalMatch]:
        """Query the index, retrying once on a transient error."""
        try:
            return await self._rag_client.do_query(vector, top_k, include_metadata=True)
        except Exception as exc:
            if not is_transient_error(exc):
                raise
            self.logging.warning("Vector query failed (%s), retrying once.", exc)
            return await self._rag_client.do_query(vector, top_k, include_metadata=True)

    async def retrieve(self, query_vector: list[float], top_k: int | None = None) -> RetrievalResult:
        """Return the ranked matches for query_vector.

        Args:
            query_vector (list[float]): Embedding of the question.
            top_k (int | None): Neighbours to fetch; defaults to RETRIEVAL_TOP_K.

        Returns:
            RetrievalResult: guard_mode is set when the best score is below
                the similarity threshold or the index could not be queried.
        """
        top_k = top_k or self.default_top_k
        try:
            matches = await self._query(query_vector, top_k)
        except Exception as exc:
            self.logging.error("Vector retrieval failed, continuing in guard mode: %s", exc)
            return RetrievalResult(guard_mode=True, degraded=True)

        if not matches or matches[0].score < self.min_similarity:
            best = matches[0].score if matches else None
            self.logging.info("Guard mode: best similarity %s below threshold %.2f.", best, self.min_similarity)
            return RetrievalResult(guard_mode=True)

        # a flat similarity curve means several chunks are equally relevant
        top3 = [m.score for m in matches[:3]]
        expanded = False
        if len(top3) >= 2 and max(top3) - min(top3) < self.spread_threshold and self.expanded_top_k > top_k:
            try:
                wider = await self._query(query_vector, self.expanded_top_k)
                if len(wider) > len(matches):
                    matches = wider
                    expanded = True
                    self.logging.debug("Adaptive top-K: expanded to %d matches.", len(matches))
            except Exception as exc:
                self.logging.warning("Expanded vector query failed, keeping %d match(es): %s", len(matches), exc)

        return RetrievalResult(matches=matches, expanded=expanded)
