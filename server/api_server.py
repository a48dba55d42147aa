"""FastAPI application entry point for the RAG chat service."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.helper.TextSplitter import TextSplitter
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.llm.LLMClientInterface import LLMClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.clients.llm.LLMClientManager import LLMClientManager
from shared.stores.Database import Database
from shared.stores.BlobStoreSQLite import BlobStoreSQLite
from shared.stores.DocumentStore import DocumentStore
from shared.stores.ConversationStore import ConversationStore
from services.ingestion.IngestionService import IngestionService
from server.core.Sanitizer import Sanitizer
from server.core.Retriever import Retriever
from server.core.ContextBuilder import ContextBuilder
from server.core.ConversationMemory import ConversationMemory
from server.core.PromptComposer import PromptComposer
from server.core.CircuitBreaker import CircuitBreakerRegistry
from server.core.ModelGateway import ModelGateway
from server.core.CitationValidator import CitationValidator
from server.core.RateLimiter import RateLimiter
from server.core.ConversationLocks import ConversationLocks
from server.core.ChatOrchestrator import ChatOrchestrator
from server.dependencies.errors import register_exception_handlers
from server.routers.NotesRouter import router as notes_router
from server.routers.DocumentsRouter import router as documents_router
from server.routers.ChatRouter import router as chat_router
from server.routers.QueryRouter import router as query_router
from server.routers.HealthRouter import router as health_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


def create_app(
    embed_client: EmbedClientInterface | None = None,
    rag_client: RAGClientInterface | None = None,
    llm_client: LLMClientInterface | None = None,
    database_path: str | None = None,
) -> FastAPI:
    """Build the application.

    Clients that are not passed in are created from the environment by their
    managers when the app starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # when the app starts
        app.state.logging = logging
        helper_config = HelperConfig(logger=logging)
        app.state.helper_config = helper_config

        embed = embed_client or EmbedClientManager(helper_config=helper_config).get_client()
        rag = rag_client or RAGClientManager(helper_config=helper_config).get_client()
        llm = llm_client or LLMClientManager(helper_config=helper_config).get_client()
        clients = [embed, rag, llm]

        logging.info("Booting all clients...")
        for client in clients:
            if not client.is_booted():
                await client.boot()
        logging.info("All clients booted successfully.")

        database = Database(helper_config=helper_config, path=database_path)
        await database.boot()

        await check_connections(embed, rag, llm)
        await ensure_vector_index(embed, rag)

        document_store = DocumentStore(helper_config, database, BlobStoreSQLite(helper_config, database))
        conversation_store = ConversationStore(helper_config, database)
        sanitizer = Sanitizer(helper_config)
        breakers = CircuitBreakerRegistry(helper_config)
        gateway = ModelGateway(helper_config, llm, breakers)

        app.state.database = database
        app.state.document_store = document_store
        app.state.breakers = breakers
        app.state.rate_limiter = RateLimiter(helper_config)
        app.state.ingestion_service = IngestionService(
            helper_config=helper_config,
            sanitizer=sanitizer,
            splitter=TextSplitter(helper_config),
            embed_client=embed,
            rag_client=rag,
            document_store=document_store,
        )
        app.state.chat_orchestrator = ChatOrchestrator(
            helper_config=helper_config,
            sanitizer=sanitizer,
            embed_client=embed,
            retriever=Retriever(helper_config, rag),
            context_builder=ContextBuilder(helper_config),
            memory=ConversationMemory(helper_config, conversation_store, gateway),
            composer=PromptComposer(helper_config),
            gateway=gateway,
            citation_validator=CitationValidator(helper_config),
            conversation_store=conversation_store,
            document_store=document_store,
            locks=ConversationLocks(helper_config),
        )

        # while the app is running...
        yield

        # when the app shuts down, close all client connections
        logging.info("Shutting down, closing all clients...")
        for client in clients:
            await client.close()
        await database.close()
        logging.info("All clients closed.")

    app = FastAPI(
        title="rag_chat",
        description=(
            "Retrieval-augmented chat over your own documents. "
            "Documents are ingested via POST /notes, split into chunks and indexed in a vector database. "
            "Questions are answered via GET / or multi-turn chat under /chat/conversations, "
            "citing only the retrieved chunks."
        ),
        version=app_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["x-model-used", "x-source-count", "x-sources", "Retry-After"],
    )

    register_exception_handlers(app)
    app.include_router(notes_router)
    app.include_router(documents_router)
    app.include_router(chat_router)
    app.include_router(health_router)
    app.include_router(query_router)
    return app


async def check_connections(
    embed_client: EmbedClientInterface,
    rag_client: RAGClientInterface,
    llm_client: LLMClientInterface,
) -> None:
    """Check connectivity to all configured backends on startup.

    The vector index is required. Embedding and generation problems are only
    logged: the embedder is probed right after, and generation has a fallback.

    Raises:
        Exception: If the vector index is not reachable.
    """
    result = await rag_client.do_healthcheck()
    if not result.is_success:
        raise Exception(
            f"RAG client '{rag_client.__class__.__name__}' is not reachable "
            f"(status {result.status_code}). Cannot serve queries."
        )

    for client in (embed_client, llm_client):
        try:
            result = await client.do_healthcheck()
        except Exception as exc:
            logging.warning("%s client '%s' is not reachable: %s", client.get_client_type().upper(), client.get_engine_name(), exc)
            continue
        if not result.is_success:
            logging.warning(
                "%s client '%s' healthcheck returned status %d.",
                client.get_client_type().upper(),
                client.get_engine_name(),
                result.status_code,
            )


async def ensure_vector_index(embed_client: EmbedClientInterface, rag_client: RAGClientInterface) -> None:
    """Create the vector index with the embedder's dimension, or verify an existing one.

    Raises:
        ValueError: If the index dimension does not match the embedding model.
    """
    vector_size = await embed_client.do_fetch_vector_size()
    await rag_client.do_ensure_collection(vector_size, embed_client.embed_distance)
    logging.info(
        "Vector index ready: %s with dimension %d (%s).",
        rag_client.get_engine_name(),
        vector_size,
        embed_client.get_model_name(),
        color="green",
    )


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting rag_chat API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("API_SERVER_PORT", "8000")))
