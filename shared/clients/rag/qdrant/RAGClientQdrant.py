import json

from shared.helper.HelperConfig import HelperConfig
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorRecord import VectorRecord
from shared.models.config import EnvConfig
from shared.models.retrieval import RetrievalMatch


class RAGClientQdrant(RAGClientInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default="http://localhost:6333", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._collection_name = self.get_config_val("COLLECTION", default="notes", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Qdrant"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default="http://localhost:6333"),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="COLLECTION", val_type="string", default="notes"),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"api-key": f"{self._api_key}"}
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/healthz"

    def _get_endpoint_collection(self) -> str:
        return f"/collections/{self._collection_name}"

    def _get_endpoint_create_collection(self) -> str:
        return f"/collections/{self._collection_name}"

    def _get_endpoint_query(self) -> str:
        return f"/collections/{self._collection_name}/points/search"

    def _get_endpoint_upsert(self) -> str:
        return f"/collections/{self._collection_name}/points?wait=true"

    def _get_endpoint_delete(self) -> str:
        return f"/collections/{self._collection_name}/points/delete?wait=true"

    def _get_method_create_collection(self) -> str:
        return "PUT"

    def _get_method_upsert(self) -> str:
        return "PUT"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_create_collection_payload(self, vector_size: int, distance: str) -> dict:
        return {"vectors": {"size": vector_size, "distance": distance.capitalize()}}

    def get_query_payload(self, vector: list[float], top_k: int, include_metadata: bool) -> dict:
        return {"vector": vector, "limit": top_k, "with_payload": include_metadata}

    def get_upsert_body(self, records: list[VectorRecord]) -> tuple[str, str]:
        points = [
            {"id": r.id, "vector": r.embedding, "payload": r.metadata.model_dump()}
            for r in records
        ]
        return json.dumps({"points": points}), "application/json"

    def get_delete_payload(self, ids: list[str]) -> dict:
        return {"points": ids}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_matches(self, raw_response: dict) -> list[RetrievalMatch]:
        return [
            RetrievalMatch(id=str(hit["id"]), score=float(hit.get("score", 0.0)), metadata=hit.get("payload") or {})
            for hit in raw_response.get("result") or []
            if hit.get("id") is not None
        ]

    def extract_vector_size(self, raw_response: dict) -> int | None:
        vectors = (((raw_response.get("result") or {}).get("config") or {}).get("params") or {}).get("vectors") or {}
        size = vectors.get("size")
        return int(size) if size is not None else None
