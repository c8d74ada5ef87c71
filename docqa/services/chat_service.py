"""
Chat Service
The query path: resolve the folder, retrieve, compose.
"""
import structlog

from docqa.errors import DocumentNotFoundError, ValidationError
from docqa.models.schemas import ChatRequest, ChatResponse
from docqa.services.answer_composer import AnswerComposer
from docqa.services.document_repository import DocumentRepository
from docqa.services.retrieval import RetrievalEngine

logger = structlog.get_logger()


class ChatService:
    def __init__(
        self,
        repository: DocumentRepository,
        retrieval: RetrievalEngine,
        composer: AnswerComposer,
        max_question_chars: int = 2000,
    ):
        self.repository = repository
        self.retrieval = retrieval
        self.composer = composer
        self.max_question_chars = max_question_chars

    async def answer(self, request: ChatRequest) -> ChatResponse:
        question = (request.message or "").strip()[:self.max_question_chars]
        if not question:
            raise ValidationError("Valid message is required")

        folder_id = await self._resolve_folder(request)
        logger.info("Answering question", folder_id=folder_id, question_length=len(question))

        matches = await self.retrieval.retrieve(question, folder_id)
        return await self.composer.compose(question, matches, request.conversation_history)

    async def _resolve_folder(self, request: ChatRequest) -> str:
        """A folder id is used as-is; a file id searches the file's whole folder."""
        if request.folder_id:
            return request.folder_id

        if not request.file_id:
            raise ValidationError("Valid fileId or folderId is required")

        document = await self.repository.get(request.file_id)
        if document is None:
            raise DocumentNotFoundError(f"Document '{request.file_id}' not found")
        if not document.folder_id:
            raise ValidationError("File folder not found")
        return document.folder_id
