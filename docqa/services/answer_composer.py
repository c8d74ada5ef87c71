"""
Answer Composer
Builds a grounded prompt from retrieved chunks and turns the model's answer
into a cited response.
"""
from typing import List, Sequence
import structlog

from docqa.models.schemas import ChatMessage, ChatResponse, ChunkMatch, Citation
from docqa.services.generation_service import GenerationService

logger = structlog.get_logger()


NO_RELEVANT_INFORMATION = (
    "I couldn't find relevant information in the document to answer your question. "
    "Could you please rephrase or ask something else?"
)
EMPTY_GENERATION_FALLBACK = "I apologize, but I couldn't generate a response. Please try again."
CONTEXT_SEPARATOR = "\n\n---\n\n"

SYSTEM_INSTRUCTION = """You are a knowledgeable assistant helping users understand documents. Answer questions based strictly on the provided context.

Rules:
- Only use information from the context below
- If the context doesn't contain the answer, politely say you don't have that information
- Be concise but thorough
- Use natural, conversational language
- Cite specific parts of the context when relevant"""


class AnswerComposer:
    """Prompt assembly, generation and citation shaping."""

    def __init__(self, generator: GenerationService, history_turns: int = 5):
        self.generator = generator
        self.history_turns = history_turns

    def build_prompt(
        self,
        question: str,
        matches: Sequence[ChunkMatch],
        history: Sequence[ChatMessage] = (),
    ) -> str:
        sections = [SYSTEM_INSTRUCTION]

        recent = list(history)[-self.history_turns:] if self.history_turns > 0 else []
        if recent:
            conversation = "\n".join(f"{msg.role.value}: {msg.content}" for msg in recent)
            sections.append(f"Previous Conversation:\n{conversation}")

        context = CONTEXT_SEPARATOR.join(m.content for m in matches)
        sections.append(f"Document Context:\n{context}")
        sections.append(f"Current Question: {question}\n\nAnswer:")

        return "\n\n".join(sections)

    @staticmethod
    def citations_for(matches: Sequence[ChunkMatch]) -> List[Citation]:
        return [
            Citation(
                doc_name=m.document_name,
                page=m.page_number,
                section=f"Chunk {m.chunk_index}",
                similarity=round(m.similarity, 2),
            )
            for m in matches
        ]

    async def compose(
        self,
        question: str,
        matches: Sequence[ChunkMatch],
        history: Sequence[ChatMessage] = (),
    ) -> ChatResponse:
        """
        Answer a question from retrieved chunks.

        With no matches the fixed no-information answer is returned and the
        generation model is not called.

        Raises:
            GenerationError: the generation model failed
        """
        if not matches:
            logger.info("No relevant chunks, skipping generation")
            return ChatResponse(content=NO_RELEVANT_INFORMATION, citations=[], chunks=[])

        prompt = self.build_prompt(question, matches, history)
        content = await self.generator.generate(prompt)

        return ChatResponse(
            content=content or EMPTY_GENERATION_FALLBACK,
            citations=self.citations_for(matches),
            chunks=[m.content for m in matches],
        )
