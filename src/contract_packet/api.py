"""FastAPI application for the Contract Packet Wizard.

Exposes REST endpoints for:
- Starting and resuming contract processes
- Editing buyer, company and internal responsible data
- Contract source selection (photo or template) and AI extraction
- Document attachment and analysis
- Step navigation, missing-field reports and final submission
- The printable contract text
- SSE streaming of wizard events
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import structlog
from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from contract_packet.agents.contract_reader import ContractReaderAgent
from contract_packet.agents.document_reader import DocumentReaderAgent
from contract_packet.agents.interfaces import (
    ContractExtractor,
    DocumentExtractor,
    PhotoVerifier,
)
from contract_packet.agents.photo_inspector import PhotoInspectorAgent
from contract_packet.config import Settings
from contract_packet.errors import (
    AnalysisError,
    InvalidActionError,
    MissingFieldsError,
    ProcessNotStartedError,
    SubmissionFailedError,
)
from contract_packet.flow.wizard_flow import WizardController
from contract_packet.mock_data.templates import (
    CONTRACT_TEMPLATES,
    DIGITAL_PRODUCT_TEMPLATE_NAME,
    PLAYERS,
)
from contract_packet.models import (
    BuyerType,
    ContractSourceType,
    DocumentSlotKey,
    PersonalDocumentKind,
    Step,
)
from contract_packet.persistence import (
    InMemoryStore,
    JsonFileStore,
    KeyValueStore,
    ProcessStore,
)
from contract_packet.streaming import ProcessEventStream
from contract_packet.submission import InMemorySubmissionService, SubmissionService

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    service: str
    version: str


class ErrorResponse(BaseModel):
    error: str
    detail: str | None = None
    status_code: int


class ContractSourceRequest(BaseModel):
    """Request body for choosing the contract source."""

    contract_source_type: ContractSourceType


class BuyerTypeRequest(BaseModel):
    """Request body for choosing individual or company buyer."""

    buyer_type: BuyerType


class PersonalDocumentKindRequest(BaseModel):
    personal_document_kind: PersonalDocumentKind


class PlayerRequest(BaseModel):
    player: str = Field(..., min_length=1, description="Seller offering the product.")


class TemplateRequest(BaseModel):
    template_name: str = Field(
        default=DIGITAL_PRODUCT_TEMPLATE_NAME,
        description="Name of the pre-defined contract template.",
    )


class AttachmentRequest(BaseModel):
    """Reference to an already uploaded image."""

    file_name: str = Field(..., min_length=1)
    preview_handle: str = Field(..., min_length=1, description="URL or data URI for display.")
    storage_handle: str | None = Field(
        None, description="Permanent storage reference, when uploaded."
    )


# ---------------------------------------------------------------------------
# Process manager
# ---------------------------------------------------------------------------


class ProcessManager:
    """Keeps one controller per active process.

    Processes not held in memory are resumed from the key-value store on
    first access.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        settings: Settings,
        event_stream: ProcessEventStream,
    ) -> None:
        self.kv = kv
        self.settings = settings
        self.event_stream = event_stream
        self.photo_verifier: PhotoVerifier = PhotoInspectorAgent()
        self.contract_extractor: ContractExtractor = ContractReaderAgent()
        self.document_extractor: DocumentExtractor = DocumentReaderAgent()
        self.submission_service: SubmissionService = InMemorySubmissionService(
            settings.submission_recipients
        )
        self._controllers: dict[str, WizardController] = {}

    def _collaborators(self) -> dict[str, Any]:
        return {
            "photo_verifier": self.photo_verifier,
            "contract_extractor": self.contract_extractor,
            "document_extractor": self.document_extractor,
            "submission_service": self.submission_service,
            "event_stream": self.event_stream,
            "debounce_seconds": self.settings.autosave_debounce_seconds,
        }

    def start(self) -> WizardController:
        controller = WizardController.start_new(
            self.kv,
            state_key=self.settings.state_key,
            **self._collaborators(),
        )
        self._controllers[controller.process_id] = controller
        return controller

    def get(self, process_id: str) -> WizardController | None:
        controller = self._controllers.get(process_id)
        if controller is not None:
            return controller
        if not ProcessStore(self.kv, process_id, self.settings.state_key).exists():
            return None
        controller = WizardController.resume(
            self.kv,
            process_id,
            state_key=self.settings.state_key,
            **self._collaborators(),
        )
        self._controllers[process_id] = controller
        return controller

    def evict(self, process_id: str) -> None:
        """Forget a finished process; its events go once readers drain."""
        if self._controllers.pop(process_id, None) is not None:
            logger.info("process_evicted", process_id=process_id)
        self.event_stream.release(process_id)

    def active_process_ids(self) -> list[str]:
        return list(self._controllers)

    def flush_all(self) -> None:
        for controller in self._controllers.values():
            controller.flush()


# ---------------------------------------------------------------------------
# Application state container
# ---------------------------------------------------------------------------


def build_store(settings: Settings) -> KeyValueStore:
    if settings.state_store_path:
        return JsonFileStore(settings.state_store_path)
    return InMemoryStore()


class AppState:
    """Shared application state accessible from route handlers."""

    def __init__(self, settings: Settings, kv: KeyValueStore | None = None) -> None:
        self.settings = settings
        self.event_stream = ProcessEventStream()
        self.processes = ProcessManager(
            kv if kv is not None else build_store(settings),
            settings,
            self.event_stream,
        )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # Pending debounced saves must reach the store before exit.
    app.state.app_state.processes.flush_all()


def _process_payload(controller: WizardController) -> dict[str, Any]:
    return {
        "process_id": controller.process_id,
        "current_step": controller.current_step.value,
        "missing_fields": controller.missing_fields_for_current_step(),
        "confirmation_id": controller.confirmation_id,
        "state": controller.state.model_dump(mode="json"),
    }


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None, kv: KeyValueStore | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings()

    app = FastAPI(
        title="Contract Packet Wizard",
        description=(
            "Guided assembly of sales contract packets: contract source, "
            "buyer and company identity, supporting documents with AI "
            "pre-fill, printable contract and final submission."
        ),
        version=settings.service_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Shared state
    state = AppState(settings, kv)
    app.state.app_state = state
    app.state.settings = settings

    def _controller(process_id: str) -> WizardController:
        controller = state.processes.get(process_id)
        if controller is None:
            raise HTTPException(status_code=404, detail=f"Process {process_id} not found")
        return controller

    # -------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            service=settings.service_name,
            version=settings.service_version,
        )

    # -------------------------------------------------------------------
    # Processes
    # -------------------------------------------------------------------

    @app.post("/api/v1/processes", status_code=201, tags=["processes"])
    async def start_process() -> dict[str, Any]:
        """Start a new contract process."""
        controller = state.processes.start()
        payload = _process_payload(controller)
        payload["stream_url"] = f"/api/v1/processes/{controller.process_id}/stream"
        return payload

    @app.get("/api/v1/processes/{process_id}", tags=["processes"])
    async def get_process(process_id: str) -> dict[str, Any]:
        """Current state of a process."""
        return _process_payload(_controller(process_id))

    @app.get("/api/v1/processes/{process_id}/missing-fields", tags=["processes"])
    async def get_missing_fields(process_id: str) -> dict[str, Any]:
        """Deficiencies for the current step and for submission."""
        controller = _controller(process_id)
        return {
            "process_id": process_id,
            "current_step": controller.current_step.value,
            "step_missing_fields": controller.missing_fields_for_current_step(),
            "missing_fields": controller.missing_fields(),
        }

    # -------------------------------------------------------------------
    # Field edits
    # -------------------------------------------------------------------

    @app.patch("/api/v1/processes/{process_id}/buyer", tags=["fields"])
    async def update_buyer(
        process_id: str, updates: dict[str, str] = Body(...)
    ) -> dict[str, Any]:
        controller = _controller(process_id)
        return controller.update_buyer_info(**updates).model_dump()

    @app.patch("/api/v1/processes/{process_id}/company", tags=["fields"])
    async def update_company(
        process_id: str, updates: dict[str, str] = Body(...)
    ) -> dict[str, Any]:
        controller = _controller(process_id)
        return controller.update_company_info(**updates).model_dump()

    @app.patch("/api/v1/processes/{process_id}/internal-member", tags=["fields"])
    async def update_internal_member(
        process_id: str, updates: dict[str, str] = Body(...)
    ) -> dict[str, Any]:
        controller = _controller(process_id)
        return controller.update_internal_team_member_info(**updates).model_dump()

    # -------------------------------------------------------------------
    # Choices
    # -------------------------------------------------------------------

    @app.put("/api/v1/processes/{process_id}/contract-source", tags=["choices"])
    async def set_contract_source(process_id: str, req: ContractSourceRequest) -> dict[str, Any]:
        controller = _controller(process_id)
        controller.set_contract_source_type(req.contract_source_type)
        return _process_payload(controller)

    @app.put("/api/v1/processes/{process_id}/buyer-type", tags=["choices"])
    async def set_buyer_type(process_id: str, req: BuyerTypeRequest) -> dict[str, Any]:
        controller = _controller(process_id)
        controller.set_buyer_type(req.buyer_type)
        return _process_payload(controller)

    @app.put("/api/v1/processes/{process_id}/personal-document-kind", tags=["choices"])
    async def set_personal_document_kind(
        process_id: str, req: PersonalDocumentKindRequest
    ) -> dict[str, Any]:
        controller = _controller(process_id)
        controller.set_personal_document_kind(req.personal_document_kind)
        return _process_payload(controller)

    @app.post("/api/v1/processes/{process_id}/player", tags=["choices"])
    async def select_player(process_id: str, req: PlayerRequest) -> dict[str, Any]:
        controller = _controller(process_id)
        controller.select_player(req.player)
        return _process_payload(controller)

    @app.post("/api/v1/processes/{process_id}/template", tags=["choices"])
    async def load_template(process_id: str, req: TemplateRequest) -> dict[str, Any]:
        controller = _controller(process_id)
        data = controller.load_contract_template(req.template_name)
        return {
            "process_id": process_id,
            "template_name": req.template_name,
            "extracted_contract_data": data.model_dump(),
            "buyer_info": controller.state.buyer_info.model_dump(),
        }

    # -------------------------------------------------------------------
    # Contract photo
    # -------------------------------------------------------------------

    @app.post("/api/v1/processes/{process_id}/contract-photo", tags=["contract"])
    async def attach_contract_photo(process_id: str, req: AttachmentRequest) -> dict[str, Any]:
        controller = _controller(process_id)
        photo = controller.attach_contract_photo(
            req.file_name, req.preview_handle, req.storage_handle
        )
        return photo.model_dump()

    @app.post("/api/v1/processes/{process_id}/contract-photo/verify", tags=["contract"])
    async def verify_contract_photo(process_id: str) -> dict[str, Any]:
        controller = _controller(process_id)
        result = await controller.verify_contract_photo()
        return {
            "process_id": process_id,
            "discarded": result is None,
            "photo_verification": result.model_dump() if result else None,
        }

    @app.post("/api/v1/processes/{process_id}/contract-photo/extract", tags=["contract"])
    async def extract_contract_data(process_id: str) -> dict[str, Any]:
        controller = _controller(process_id)
        data = await controller.extract_contract_data()
        return {
            "process_id": process_id,
            "discarded": data is None,
            "extracted_contract_data": data.model_dump() if data else None,
            "buyer_info": controller.state.buyer_info.model_dump(),
            "company_info": (
                controller.state.company_info.model_dump()
                if controller.state.company_info
                else None
            ),
        }

    # -------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------

    @app.post("/api/v1/processes/{process_id}/documents/{slot}", tags=["documents"])
    async def attach_document(
        process_id: str, slot: DocumentSlotKey, req: AttachmentRequest
    ) -> dict[str, Any]:
        controller = _controller(process_id)
        document = controller.attach_document(
            slot, req.file_name, req.preview_handle, req.storage_handle
        )
        return {"slot": slot.value, "document": document.model_dump()}

    @app.delete("/api/v1/processes/{process_id}/documents/{slot}", tags=["documents"])
    async def remove_document(process_id: str, slot: DocumentSlotKey) -> dict[str, Any]:
        controller = _controller(process_id)
        controller.remove_document(slot)
        return {"slot": slot.value, "document": None}

    @app.post("/api/v1/processes/{process_id}/documents/{slot}/analyze", tags=["documents"])
    async def analyze_document(process_id: str, slot: DocumentSlotKey) -> dict[str, Any]:
        controller = _controller(process_id)
        result = await controller.analyze_document(slot)
        return {
            "slot": slot.value,
            "discarded": result is None,
            "analysis_result": result.model_dump() if result else None,
            "buyer_info": controller.state.buyer_info.model_dump(),
            "company_info": (
                controller.state.company_info.model_dump()
                if controller.state.company_info
                else None
            ),
        }

    @app.post("/api/v1/processes/{process_id}/signed-contract-photo", tags=["documents"])
    async def attach_signed_contract_photo(
        process_id: str, req: AttachmentRequest
    ) -> dict[str, Any]:
        controller = _controller(process_id)
        photo = controller.attach_signed_contract_photo(
            req.file_name, req.preview_handle, req.storage_handle
        )
        return photo.model_dump()

    # -------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------

    @app.post("/api/v1/processes/{process_id}/next", tags=["navigation"])
    async def next_step(process_id: str) -> dict[str, Any]:
        """Advance one step; entering confirmation submits the packet.

        A submitted process is no longer reachable; the response carries
        its confirmation id.
        """
        controller = _controller(process_id)
        await controller.next_step()
        payload = _process_payload(controller)
        if controller.current_step == Step.CONFIRMATION:
            state.processes.evict(process_id)
        return payload

    @app.post("/api/v1/processes/{process_id}/back", tags=["navigation"])
    async def previous_step(process_id: str) -> dict[str, Any]:
        controller = _controller(process_id)
        await controller.previous_step()
        return _process_payload(controller)

    # -------------------------------------------------------------------
    # Printable contract
    # -------------------------------------------------------------------

    @app.get("/api/v1/processes/{process_id}/contract", tags=["contract"])
    async def get_contract_text(process_id: str) -> dict[str, Any]:
        controller = _controller(process_id)
        return {
            "process_id": process_id,
            "template_name": (
                controller.state.selected_template_name or DIGITAL_PRODUCT_TEMPLATE_NAME
            ),
            "text": controller.render_contract(),
        }

    # -------------------------------------------------------------------
    # SSE streaming
    # -------------------------------------------------------------------

    @app.get("/api/v1/processes/{process_id}/stream", tags=["processes"])
    async def stream_process(process_id: str) -> EventSourceResponse:
        """SSE stream of wizard events."""
        _controller(process_id)

        async def event_generator():  # type: ignore[no-untyped-def]
            async for event in state.event_stream.subscribe(process_id):
                yield {
                    "event": event.event_type,
                    "data": json.dumps(event.model_dump(), default=str),
                }

        return EventSourceResponse(event_generator())

    # -------------------------------------------------------------------
    # Players and templates
    # -------------------------------------------------------------------

    @app.get("/api/v1/players", tags=["templates"])
    async def list_players() -> dict[str, Any]:
        """Selectable players and contract templates."""
        return {
            "players": list(PLAYERS),
            "templates": list(CONTRACT_TEMPLATES),
            "default_template": DIGITAL_PRODUCT_TEMPLATE_NAME,
        }

    # -------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------

    @app.exception_handler(MissingFieldsError)
    async def missing_fields_handler(request: Request, exc: MissingFieldsError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={
                "error": "Missing fields",
                "detail": str(exc),
                "step": exc.step.value,
                "missing_fields": exc.missing,
                "status_code": 422,
            },
        )

    def _error(status_code: int, error: str, exc: Exception) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(
                error=error,
                detail=str(exc),
                status_code=status_code,
            ).model_dump(),
        )

    @app.exception_handler(InvalidActionError)
    async def invalid_action_handler(request: Request, exc: InvalidActionError) -> JSONResponse:
        return _error(400, "Invalid action", exc)

    @app.exception_handler(ProcessNotStartedError)
    async def not_started_handler(request: Request, exc: ProcessNotStartedError) -> JSONResponse:
        return _error(409, "Process not started", exc)

    @app.exception_handler(AnalysisError)
    async def analysis_handler(request: Request, exc: AnalysisError) -> JSONResponse:
        logger.warning("analysis_error", error=str(exc), path=request.url.path)
        return _error(502, "Analysis failed", exc)

    @app.exception_handler(SubmissionFailedError)
    async def submission_handler(request: Request, exc: SubmissionFailedError) -> JSONResponse:
        logger.warning("submission_error", error=str(exc), path=request.url.path)
        return _error(502, "Submission failed", exc)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all error handler."""
        logger.error("unhandled_exception", error=str(exc), path=request.url.path)
        return _error(500, "Internal server error", exc)

    return app
