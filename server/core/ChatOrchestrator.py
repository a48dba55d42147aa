"""Per-turn control flow of the retrieval-augmented chat.

A chat turn runs through these stages, in order:

    validate -> persist user message -> load history -> embed -> retrieve
    -> build context -> apply window -> compose -> generate -> check citations
    -> persist assistant message

Any stage may fail with a PipelineError, which the HTTP layer maps to a
status code. Retrieval and generation problems never fail the turn: they turn
into guard mode or the fallback answer instead.
"""

import asyncio

from pydantic import BaseModel, Field

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import ChatMessage, Conversation, Message, MessageRole, Source
from shared.models.errors import ErrorKind, PipelineError
from shared.models.retrieval import BuiltContext, RetrievalResult
from shared.stores.ConversationStore import ConversationStore
from shared.stores.DocumentStore import DocumentStore
from server.core.CitationValidator import CitationValidator
from server.core.ContextBuilder import ContextBuilder
from server.core.ConversationLocks import ConversationLocks
from server.core.ConversationMemory import ConversationMemory
from server.core.ModelGateway import ModelGateway
from server.core.PromptComposer import ComposedPrompt, PromptComposer
from server.core.Retriever import Retriever
from server.core.Sanitizer import Sanitizer

GUARD_TEMPLATE = "I don't have enough information in the knowledge base to answer that question."
GUARD_MODEL_NAME = "none"
REPLAY_MODEL_NAME = "replay"


class TurnResult(BaseModel):
    content: str
    sources: list[Source] = Field(default_factory=list)
    model_used: str
    guard_mode: bool = False

    def get_source_count(self) -> int:
        return len(self.sources)


class ChatOrchestrator:
    """Composes the pipeline components into chat turns and single-shot queries."""

    def __init__(
        self,
        helper_config: HelperConfig,
        sanitizer: Sanitizer,
        embed_client: EmbedClientInterface,
        retriever: Retriever,
        context_builder: ContextBuilder,
        memory: ConversationMemory,
        composer: PromptComposer,
        gateway: ModelGateway,
        citation_validator: CitationValidator,
        conversation_store: ConversationStore,
        document_store: DocumentStore,
        locks: ConversationLocks,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._sanitizer = sanitizer
        self._embed_client = embed_client
        self._retriever = retriever
        self._context_builder = context_builder
        self._memory = memory
        self._composer = composer
        self._gateway = gateway
        self._citations = citation_validator
        self._conversations = conversation_store
        self._documents = document_store
        self._locks = locks

    ##########################################
    ############ CONVERSATIONS ###############
    ##########################################

    async def create_conversation(self) -> Conversation:
        conversation = await self._conversations.create_conversation()
        self.logging.info("Conversation %s created.", conversation.id)
        return conversation

    async def get_history(self, conversation_id: str) -> list[ChatMessage]:
        """Public history of a conversation, oldest first. Summaries are internal and left out.

        Raises:
            PipelineError: NotFound if the conversation does not exist.
        """
        await self._require_conversation(conversation_id)
        messages = await self._conversations.get_messages(conversation_id, include_archived=True)
        return [
            ChatMessage(role=m.role, content=m.content, sources=m.sources)
            for m in messages
            if m.role != MessageRole.SYSTEM_SUMMARY
        ]

    async def _require_conversation(self, conversation_id: str) -> None:
        if not await self._conversations.conversation_exists(conversation_id):
            raise PipelineError(
                ErrorKind.NOT_FOUND, f"conversation {conversation_id} not found", public_message="Conversation not found."
            )

    ##########################################
    ############### RETRIEVAL ################
    ##########################################

    async def _retrieve_context(self, question: str) -> tuple[RetrievalResult, BuiltContext]:
        """Embed the question, retrieve and build the context.

        Raises:
            PipelineError: EmbeddingFailure, fatal for the turn.
        """
        vectors = await self._embed_client.do_embed([question])
        retrieval = await self._retriever.retrieve(vectors[0])
        if retrieval.guard_mode:
            return retrieval, self._context_builder.build([], {}, {})

        notes = await self._documents.get_notes_by_ids(retrieval.get_ids())
        documents = await self._documents.get_documents_by_ids(
            [n.document_id for n in notes.values() if n.document_id]
        )
        context = self._context_builder.build(retrieval.matches, notes, documents)
        if not context.sources:
            # every match was an orphaned vector
            self.logging.warning("No retrieved match has a note row, continuing in guard mode.")
            retrieval = RetrievalResult(guard_mode=True)
        return retrieval, context

    async def _generate_answer(self, prompt: ComposedPrompt, context: BuiltContext) -> TurnResult:
        generation = await self._gateway.generate(prompt.system_prompt, prompt.messages, context)
        checked = self._citations.validate(generation.text, context.sources)
        return TurnResult(content=checked.cleaned_text, sources=checked.valid_sources, model_used=generation.model_used)

    ##########################################
    ################# TURNS ##################
    ##########################################

    async def handle_turn(self, conversation_id: str, raw_message, client_key: str | None = None) -> TurnResult:
        """Run one chat turn.

        Turns of the same conversation are serialised. A retried message with
        the same client_key is stored once; if it was already answered the
        stored answer is returned without generating again.

        Raises:
            PipelineError: InvalidInput, PayloadTooLarge, NotFound, RateLimited
                (turn lock timeout), EmbeddingFailure, PersistenceFailure.
        """
        log = self.logging.child(conversation=conversation_id)
        sanitized = self._sanitizer.validate(raw_message)
        await self._require_conversation(conversation_id)

        async with self._locks.hold(conversation_id):
            user_message: Message | None = None
            if client_key:
                user_message = await self._conversations.find_by_client_key(conversation_id, client_key)
                if user_message is not None:
                    reply = await self._conversations.get_reply_to(conversation_id, user_message.id)
                    if reply is not None:
                        log.info("Duplicate message %s, returning the stored reply.", client_key)
                        return TurnResult(content=reply.content, sources=reply.sources or [], model_used=REPLAY_MODEL_NAME)
                    log.info("Duplicate message %s without reply, answering it now.", client_key)

            if user_message is None:
                # completes even when the caller goes away
                user_message = await asyncio.shield(
                    self._memory.persist(conversation_id, MessageRole.USER, sanitized.text, client_key=client_key)
                )

            history = await self._memory.load_history(conversation_id)
            if history and history[-1].id != user_message.id:
                # a retried question that later turns overtook is asked again last
                history = [m for m in history if m.id != user_message.id] + [user_message]
            retrieval, context = await self._retrieve_context(sanitized.text)

            if retrieval.guard_mode:
                log.info("Guard mode: answering without generation.")
                result = TurnResult(content=GUARD_TEMPLATE, model_used=GUARD_MODEL_NAME, guard_mode=True)
            else:
                windowed = await self._memory.apply_window(conversation_id, history)
                prompt = self._composer.compose(
                    context.context_block, windowed.messages, sanitized.injection_flagged, windowed.summary
                )
                result = await self._generate_answer(prompt, context)

            await self._persist_assistant(conversation_id, result, reply_to=user_message.id)
            log.info("Turn answered by %s with %d source(s).", result.model_used, result.get_source_count())
            return result

    async def _persist_assistant(self, conversation_id: str, result: TurnResult, reply_to: str | None = None) -> None:
        """Store the answer, retrying once. A failure is logged and the answer is still returned."""
        sources = result.sources or None
        for attempt in (1, 2):
            try:
                await self._memory.persist(
                    conversation_id, MessageRole.ASSISTANT, result.content, sources=sources, reply_to=reply_to
                )
                return
            except PipelineError as exc:
                if attempt == 2:
                    self.logging.error(
                        "Conversation %s: assistant message could not be stored, history is missing this reply: %s",
                        conversation_id,
                        exc,
                    )
                else:
                    self.logging.warning("Conversation %s: storing the assistant message failed, retrying.", conversation_id)

    ##########################################
    ############## SINGLE SHOT ###############
    ##########################################

    async def answer_query(self, raw_text) -> TurnResult:
        """Answer a single question without conversation history.

        Raises:
            PipelineError: InvalidInput, PayloadTooLarge, EmbeddingFailure.
        """
        sanitized = self._sanitizer.validate(raw_text)
        retrieval, context = await self._retrieve_context(sanitized.text)
        if retrieval.guard_mode:
            return TurnResult(content=GUARD_TEMPLATE, model_used=GUARD_MODEL_NAME, guard_mode=True)
        prompt = self._composer.compose_single(context.context_block, sanitized.text, sanitized.injection_flagged)
        return await self._generate_answer(prompt, context)
