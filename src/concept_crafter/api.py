"""FastAPI entrypoint exposing the concept dialog, summaries and PDFs."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import (
    Annotated,
    Any,
    Dict,
    List,
    Literal,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
import uvicorn
from pydantic import BaseModel, ConfigDict, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import AppSettings
from .conversation import (
    ConversationClosedError,
    Message,
    ReplyGenerator,
)
from .extractor import process_conversation
from .generation import (
    GenerationError,
    SummaryFormatError,
    SummaryGateway,
    TextGenerationGateway,
    shared_client_provider,
)
from .maf_client import GatewayNotConfiguredError, MAFIntegrationError
from .pdf_renderer import PDFRenderError, SummaryPDFRenderer, safe_filename
from .sessions import ConceptSession, SummaryNotReadyError
from .store import ConceptStore, PersistenceError
from .summary import VideoConceptSummary
from .summary_editor import (
    AddArrayItem,
    AddOutlineItem,
    EditOperation,
    ListField,
    OutlinePart,
    RemoveArrayItem,
    RemoveOutlineItem,
    ScalarField,
    SetArrayItem,
    SetOutlineItem,
    SetScalar,
)
from .timestamps import normalize_timestamp

logger = logging.getLogger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ChatRequest(_CamelModel):
    messages: List[Dict[str, Any]]
    system_instruction: str = Field(alias="systemInstruction", min_length=1)


class SaveConversationRequest(_CamelModel):
    session_id: str = Field(alias="sessionId", min_length=1)
    messages: List[Dict[str, Any]]
    concept_data: Dict[str, Any] = Field(alias="conceptData")


class ProcessConversationRequest(_CamelModel):
    id: Optional[str] = None
    session_id: str = Field(alias="sessionId", min_length=1)
    messages: List[Dict[str, Any]]
    concept_data: Dict[str, Any] = Field(alias="conceptData")
    completed_at: Any = Field(default=None, alias="completedAt")


class SummarizeRequest(_CamelModel):
    messages: List[Dict[str, Any]] = Field(min_length=1)


class SaveSummaryRequest(_CamelModel):
    session_id: str = Field(alias="sessionId", min_length=1)
    summary: Dict[str, Any]


class SessionMessageRequest(_CamelModel):
    content: str


class SetScalarEdit(_CamelModel):
    op: Literal["setScalar"]
    field: ScalarField
    value: str

    def to_operation(self) -> EditOperation:
        return SetScalar(self.field, self.value)


class SetArrayItemEdit(_CamelModel):
    op: Literal["setArrayItem"]
    field: ListField
    index: int
    value: str

    def to_operation(self) -> EditOperation:
        return SetArrayItem(self.field, self.index, self.value)


class AddArrayItemEdit(_CamelModel):
    op: Literal["addArrayItem"]
    field: ListField

    def to_operation(self) -> EditOperation:
        return AddArrayItem(self.field)


class RemoveArrayItemEdit(_CamelModel):
    op: Literal["removeArrayItem"]
    field: ListField
    index: int

    def to_operation(self) -> EditOperation:
        return RemoveArrayItem(self.field, self.index)


class SetOutlineItemEdit(_CamelModel):
    op: Literal["setOutlineItem"]
    index: int
    part: OutlinePart
    value: str

    def to_operation(self) -> EditOperation:
        return SetOutlineItem(self.index, self.part, self.value)


class AddOutlineItemEdit(_CamelModel):
    op: Literal["addOutlineItem"]

    def to_operation(self) -> EditOperation:
        return AddOutlineItem()


class RemoveOutlineItemEdit(_CamelModel):
    op: Literal["removeOutlineItem"]
    index: int

    def to_operation(self) -> EditOperation:
        return RemoveOutlineItem(self.index)


SummaryEdit = Annotated[
    Union[
        SetScalarEdit,
        SetArrayItemEdit,
        AddArrayItemEdit,
        RemoveArrayItemEdit,
        SetOutlineItemEdit,
        AddOutlineItemEdit,
        RemoveOutlineItemEdit,
    ],
    Field(discriminator="op"),
]


class SummaryEditRequest(_CamelModel):
    operations: List[SummaryEdit] = Field(min_length=1)


class _SessionRegistry:
    """Live dialog sessions, oldest first, bounded in size and idle time."""

    def __init__(self, *, max_sessions: int, idle_seconds: float) -> None:
        self._max_sessions = max_sessions
        self._idle_seconds = idle_seconds
        self._sessions: "OrderedDict[str, Tuple[ConceptSession, float]]" = (
            OrderedDict()
        )

    def __len__(self) -> int:
        return len(self._sessions)

    def add(self, session: ConceptSession) -> None:
        self._sessions[session.session_id] = (session, time.monotonic())
        self._sessions.move_to_end(session.session_id)
        self._evict()

    def get(self, session_id: str) -> Optional[ConceptSession]:
        self._evict()
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        self._sessions[session_id] = (entry[0], time.monotonic())
        self._sessions.move_to_end(session_id)
        return entry[0]

    def pop(self, session_id: str) -> Optional[ConceptSession]:
        entry = self._sessions.pop(session_id, None)
        return entry[0] if entry is not None else None

    def _evict(self) -> None:
        cutoff = time.monotonic() - self._idle_seconds
        for session_id, (_, last_seen) in list(self._sessions.items()):
            if last_seen > cutoff and len(self._sessions) <= self._max_sessions:
                break
            del self._sessions[session_id]
            logger.info("Session %s evicted", session_id)


def _parse_messages(
    raw_messages: Sequence[Mapping[str, Any]],
    *,
    skip_unknown_roles: bool = False,
) -> List[Message]:
    messages: List[Message] = []
    for raw in raw_messages:
        try:
            messages.append(Message.from_dict(raw))
        except ValueError as exc:
            if skip_unknown_roles:
                continue
            raise HTTPException(
                status_code=400,
                detail=f"Invalid payload: {exc}",
            ) from exc
    return messages


def _stringify_concept_data(concept_data: Mapping[str, Any]) -> Dict[str, str]:
    return {str(key): str(value) for key, value in concept_data.items()}


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid payload."
    first = errors[0]
    location = ".".join(
        str(part) for part in first.get("loc", ()) if part != "body"
    )
    message = first.get("msg", "is invalid")
    if location:
        return f'Invalid payload: "{location}" {message}.'
    return f"Invalid payload: {message}."


def create_app(
    settings: AppSettings,
    *,
    store: Optional[ConceptStore] = None,
    chat_gateway: Optional[ReplyGenerator] = None,
    summary_gateway: Optional[SummaryGateway] = None,
    allow_origins: Sequence[str] | None = None,
    max_sessions: int = 256,
    session_idle_seconds: float = 3600,
) -> FastAPI:
    """Create the FastAPI app serving the concept crafting endpoints."""

    app = FastAPI(title="Concept Crafter")

    origins = list(allow_origins) if allow_origins else ["*"]
    allow_credentials = origins != ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    provider = shared_client_provider(settings)
    concept_store = store or ConceptStore(settings.output_dir, settings.redis_url)
    text_gateway: ReplyGenerator = chat_gateway or TextGenerationGateway(provider)
    summaries = summary_gateway or SummaryGateway(provider)
    renderer = SummaryPDFRenderer()
    sessions = _SessionRegistry(
        max_sessions=max_sessions, idle_seconds=session_idle_seconds
    )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = exc.detail
        content = detail if isinstance(detail, dict) else {"error": detail}
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(
        _: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": _describe_validation_error(exc)},
        )

    @app.exception_handler(MAFIntegrationError)
    async def _integration_error(
        _: Request, exc: MAFIntegrationError
    ) -> JSONResponse:
        logger.error("Chat model integration failed: %s", exc)
        return JSONResponse(status_code=500, content={"error": str(exc)})

    def _persistence_failure(action: str, exc: PersistenceError) -> HTTPException:
        logger.error("%s: %s", action, exc)
        return HTTPException(
            status_code=500,
            detail={"success": False, "error": action, "details": str(exc)},
        )

    def _session_or_404(session_id: str) -> ConceptSession:
        session = sessions.get(session_id)
        if session is None:
            raise HTTPException(
                status_code=404,
                detail=f"Unknown session: {session_id}",
            )
        return session

    @app.post("/api/chat")
    async def chat(payload: ChatRequest) -> Dict[str, str]:
        history = _parse_messages(payload.messages, skip_unknown_roles=True)
        try:
            reply = await text_gateway.reply(history, payload.system_instruction)
        except GatewayNotConfiguredError as exc:
            logger.error("Chat model is not configured")
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except GenerationError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return {"reply": reply}

    @app.post("/api/save-conversation")
    def save_conversation(payload: SaveConversationRequest) -> Dict[str, Any]:
        messages = _parse_messages(payload.messages)
        try:
            concept_store.save_conversation(
                payload.session_id,
                messages,
                _stringify_concept_data(payload.concept_data),
            )
        except PersistenceError as exc:
            raise _persistence_failure("Failed to save conversation.", exc) from exc
        return {"success": True, "message": "Conversation saved successfully."}

    @app.post("/api/process-conversation")
    def process(payload: ProcessConversationRequest) -> Dict[str, Any]:
        messages = _parse_messages(payload.messages)
        processed = process_conversation(
            session_id=payload.session_id,
            messages=messages,
            concept_data=_stringify_concept_data(payload.concept_data),
            completed_at=normalize_timestamp(payload.completed_at),
            record_id=payload.id,
        )
        try:
            concept_store.save_processed(processed)
        except PersistenceError as exc:
            raise _persistence_failure("Error processing conversation", exc) from exc
        return processed.to_dict()

    @app.post("/api/summarize-conversation")
    async def summarize(payload: SummarizeRequest) -> Dict[str, Any]:
        messages = _parse_messages(payload.messages)
        try:
            summary = await summaries.summarize(messages)
        except GatewayNotConfiguredError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except ValueError as exc:
            if not isinstance(exc, SummaryFormatError):
                raise HTTPException(status_code=400, detail=str(exc)) from exc
            logger.error("Summary reply could not be parsed: %s", exc)
            raise HTTPException(
                status_code=500,
                detail={
                    "error": "Failed to generate video concept summary.",
                    "details": str(exc),
                },
            ) from exc
        except GenerationError as exc:
            details = str(exc.__cause__ or exc)
            raise HTTPException(
                status_code=500,
                detail={"error": str(exc), "details": details},
            ) from exc
        return summary.to_dict()

    @app.post("/api/save-summary")
    def save_summary(payload: SaveSummaryRequest) -> Dict[str, Any]:
        summary = VideoConceptSummary.from_dict(
            payload.summary, fill_defaults=False
        )
        try:
            stored = concept_store.save_summary(payload.session_id, summary)
        except PersistenceError as exc:
            raise _persistence_failure("Failed to save summary.", exc) from exc
        return {
            "success": True,
            "message": "Summary saved successfully.",
            "data": stored.to_dict(),
        }

    @app.post("/api/generate-summary-pdf")
    def generate_summary_pdf(payload: Dict[str, Any] = Body(...)) -> Response:
        title = payload.get("videoTitleSuggestion")
        if not isinstance(title, str) or not title.strip():
            raise HTTPException(
                status_code=400,
                detail=(
                    'Invalid summary data provided. "videoTitleSuggestion" '
                    "is missing."
                ),
            )
        summary = VideoConceptSummary.from_dict(payload)
        try:
            document = renderer.render(summary)
        except PDFRenderError as exc:
            logger.exception("Error generating PDF")
            raise HTTPException(
                status_code=500,
                detail={
                    "error": "Failed to generate PDF summary.",
                    "details": str(exc),
                },
            ) from exc
        filename = safe_filename(summary.video_title_suggestion)
        return Response(
            content=document,
            media_type="application/pdf",
            headers={
                "Content-Disposition": f'attachment; filename="{filename}.pdf"'
            },
        )

    @app.post("/api/sessions")
    async def create_session() -> Dict[str, object]:
        session = ConceptSession(
            store=concept_store,
            chat_gateway=text_gateway,
            summary_gateway=summaries,
            max_duration_minutes=settings.max_duration_minutes,
        )
        sessions.add(session)
        logger.info("Session %s started", session.session_id)
        return session.snapshot()

    @app.get("/api/sessions/{session_id}")
    async def get_session(session_id: str) -> Dict[str, object]:
        return _session_or_404(session_id).snapshot()

    @app.post("/api/sessions/{session_id}/messages")
    async def send_message(
        session_id: str,
        payload: SessionMessageRequest,
    ) -> Dict[str, object]:
        session = _session_or_404(session_id)
        try:
            reply = await session.send(payload.content)
        except ConversationClosedError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        snapshot = session.snapshot()
        snapshot["reply"] = reply.to_dict() if reply is not None else None
        return snapshot

    @app.post("/api/sessions/{session_id}/reset")
    async def reset_session(session_id: str) -> Dict[str, object]:
        session = sessions.pop(session_id)
        if session is None:
            raise HTTPException(
                status_code=404,
                detail=f"Unknown session: {session_id}",
            )
        session.reset()
        sessions.add(session)
        return session.snapshot()

    @app.post("/api/sessions/{session_id}/summary")
    async def session_summary(session_id: str) -> Dict[str, object]:
        session = _session_or_404(session_id)
        try:
            await session.generate_summary()
        except SummaryNotReadyError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        except GatewayNotConfiguredError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        except (GenerationError, SummaryFormatError) as exc:
            raise HTTPException(
                status_code=500,
                detail={
                    "error": "Failed to generate video concept summary.",
                    "details": str(exc),
                },
            ) from exc
        return session.snapshot()

    @app.post("/api/sessions/{session_id}/summary/edits")
    async def edit_session_summary(
        session_id: str,
        payload: SummaryEditRequest,
    ) -> Dict[str, object]:
        session = _session_or_404(session_id)
        if session.editor is None:
            raise HTTPException(
                status_code=409, detail="No summary has been generated yet."
            )
        try:
            session.editor.apply_all(
                [edit.to_operation() for edit in payload.operations]
            )
        except IndexError as exc:
            raise HTTPException(
                status_code=400, detail=f"Invalid edit: {exc}"
            ) from exc
        return session.snapshot()

    @app.post("/api/sessions/{session_id}/summary/save")
    async def save_session_summary(session_id: str) -> Dict[str, object]:
        session = _session_or_404(session_id)
        try:
            saved = await session.save_summary()
        except SummaryNotReadyError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        editor = session.editor
        if not saved and editor is not None:
            if editor.duration_error:
                raise HTTPException(status_code=400, detail=editor.duration_error)
            raise HTTPException(
                status_code=500,
                detail={
                    "success": False,
                    "error": "Failed to save summary.",
                    "details": editor.error,
                },
            )
        return session.snapshot()

    @app.get("/health")
    async def health() -> dict[str, str]:  # pragma: no cover - simple health probe
        return {"status": "ok"}

    return app


def run_server(
    settings: AppSettings,
    *,
    host: str = "127.0.0.1",
    port: int = 8080,
    allow_origins: Sequence[str] | None = None,
    log_level: str = "info",
) -> None:
    """Start the concept crafting FastAPI server."""

    app = create_app(settings=settings, allow_origins=allow_origins)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=log_level,
    )


