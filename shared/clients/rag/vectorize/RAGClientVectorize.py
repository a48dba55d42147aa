import json

from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorRecord import VectorRecord
from shared.models.config import EnvConfig
from shared.models.retrieval import RetrievalMatch


class RAGClientVectorize(RAGClientInterface):
    """Cloudflare Vectorize (v2 REST API). Upserts are sent as NDJSON."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._account_id = self.get_config_val("ACCOUNT_ID", default=None, val_type="string")
        self._api_token = self.get_config_val("API_TOKEN", default=None, val_type="string")
        self._base_url = self.get_config_val("BASE_URL", default="https://api.cloudflare.com/client/v4", val_type="string")
        self._index_name = self.get_config_val("INDEX", default="notes", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Vectorize"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="ACCOUNT_ID", val_type="string", default=None),
            EnvConfig(env_key="API_TOKEN", val_type="string", default=None),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {"Authorization": f"Bearer {self._api_token}"}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return f"{self._base_url.rstrip('/')}/accounts/{self._account_id}/vectorize/v2/indexes"

    def _get_endpoint_healthcheck(self) -> str:
        return f"/{self._index_name}"

    def _get_endpoint_collection(self) -> str:
        return f"/{self._index_name}"

    def _get_endpoint_create_collection(self) -> str:
        return ""

    def _get_endpoint_query(self) -> str:
        return f"/{self._index_name}/query"

    def _get_endpoint_upsert(self) -> str:
        return f"/{self._index_name}/upsert"

    def _get_endpoint_delete(self) -> str:
        return f"/{self._index_name}/delete_by_ids"

    def _get_method_create_collection(self) -> str:
        return "POST"

    def _get_method_upsert(self) -> str:
        return "POST"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        metric = {"cosine": "cosine", "dot": "dot-product", "euclid": "euclidean"}.get(distance.lower(), "cosine")
        return {"name": self._index_name, "config": {"dimensions": vector_size, "metric": metric}}

    def get_query_payload(self, vector: list[float], top_k: int, include_metadata: bool) -> dict:
        return {"vector": vector, "topK": top_k, "returnMetadata": "all" if include_metadata else "none"}

    def get_upsert_body(self, records: list[VectorRecord]) -> tuple[str, str]:
        lines = [
            json.dumps({"id": r.id, "values": r.embedding, "metadata": r.metadata.model_dump(exclude_none=True)})
            for r in records
        ]
        return "\n".join(lines), "application/x-ndjson"

    def get_delete_payload(self, ids: list[str]) -> dict:
        return {"ids": ids}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_matches(self, raw_response: dict) -> list[RetrievalMatch]:
        matches = (raw_response.get("result") or {}).get("matches") or []
        return [
            RetrievalMatch(id=str(m["id"]), score=float(m.get("score", 0.0)), metadata=m.get("metadata") or {})
            for m in matches
            if m.get("id")
        ]

    def extract_vector_size(self, raw_response: dict) -> int | None:
        dimensions = ((raw_response.get("result") or {}).get("config") or {}).get("dimensions")
        return int(dimensions) if dimensions is not None else None
