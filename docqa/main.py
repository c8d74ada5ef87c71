"""
FastAPI Application
Upload documents into folders and ask questions answered from them.
"""
from contextlib import asynccontextmanager
from typing import List, Optional
import logging
import sys

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from docqa.config import get_settings
from docqa.dependencies import ServiceContainer, build_services_from_settings, get_services
from docqa.errors import DocQAError
from docqa.models.schemas import (
    ChatRequest,
    ChatResponse,
    Document,
    IncomingFile,
    IngestResult,
    ProgressEvent,
)

logger = structlog.get_logger()


def configure_logging(log_level: str = "INFO") -> None:
    """Human-readable structlog output on top of stdlib logging."""
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level.upper(), force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-built service container. When omitted, real clients
            are created from environment settings at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "services", None) is None:
            settings = get_settings()
            configure_logging(settings.log_level)
            app.state.services = build_services_from_settings(settings)
        else:
            configure_logging(app.state.services.settings.log_level)
        logger.info("Application started", environment=app.state.services.settings.environment)
        yield

    app = FastAPI(
        title="Folder Document Q&A",
        description="Upload PDF/TXT files into folders and ask cited questions about them",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    register_routes(app)
    return app


# ─────────────────────────────────────────────────────────────
# Error Handling
# ─────────────────────────────────────────────────────────────

def _error_body(request: Request, message: str, code: str, details: str) -> dict:
    body = {"error": message, "code": code}
    services = getattr(request.app.state, "services", None)
    if services is not None and services.settings.is_development:
        body["details"] = details
    return body


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DocQAError)
    async def handle_docqa_error(request: Request, exc: DocQAError):
        logger.warning("Request failed", path=request.url.path, code=exc.code, error=exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.user_message, exc.code, exc.message),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error", path=request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(
                request,
                "An unexpected error occurred. Please try again.",
                "internal_error",
                str(exc),
            ),
        )


# ─────────────────────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────────────────────

def register_routes(app: FastAPI) -> None:

    @app.post("/upload", response_model=IngestResult)
    async def upload_files(
        files: Optional[List[UploadFile]] = File(None),
        folder_id: Optional[str] = Form(None),
        services: ServiceContainer = Depends(get_services),
    ):
        """
        Upload one or more PDF/TXT files into a folder and ingest them.
        """
        incoming = []
        for upload in files or []:
            incoming.append(IncomingFile(
                name=upload.filename or "",
                content_type=upload.content_type or "",
                data=await upload.read(),
            ))

        def log_progress(event: ProgressEvent) -> None:
            logger.debug(
                "Ingestion progress",
                file_name=event.file_name,
                stage=event.stage.value,
                page=event.page,
                total_pages=event.total_pages,
            )

        result = await services.ingestion.ingest(folder_id, incoming, on_progress=log_progress)

        if result.failed and not result.succeeded:
            return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=result.model_dump(mode="json"))
        return result

    @app.post("/chat", response_model=ChatResponse)
    async def chat(request: ChatRequest, services: ServiceContainer = Depends(get_services)):
        """Answer a question from the documents in a folder."""
        return await services.chat.answer(request)

    @app.get("/documents", response_model=List[Document])
    async def list_documents(folder_id: Optional[str] = None, services: ServiceContainer = Depends(get_services)):
        """List documents, newest first."""
        return await services.documents.list_documents(folder_id)

    @app.delete("/documents/{document_id}")
    async def delete_document(document_id: str, services: ServiceContainer = Depends(get_services)):
        """Delete a document, its chunk vectors and its stored file."""
        await services.documents.delete_document(document_id)
        return {"success": True}

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("docqa.main:app", host="0.0.0.0", port=8000, reload=True)
