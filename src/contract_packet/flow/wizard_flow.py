"""Wizard controller: step sequencing for one contract packet.

The controller owns a :class:`ProcessState`, applies operator actions to
it, gates forward navigation on the completeness checks, runs the
pre-fill resolver whenever new extracted data arrives, and persists
after every mutation.

Step graph::

    initial_data -> contract_source -> documents -> review
                 -> print -> signed_photo -> confirmation (terminal)

Field edits are saved through a debounce window; every other mutation
saves immediately and supersedes a pending debounced save. Navigation
flushes the pending save before writing the new step.
"""

from __future__ import annotations

from typing import Any, Union

import structlog
from pydantic import BaseModel, ValidationError

from contract_packet.agents.contract_reader import ContractReaderAgent
from contract_packet.agents.document_reader import DocumentReaderAgent
from contract_packet.agents.interfaces import (
    ContractExtractor,
    DocumentExtractor,
    PhotoVerifier,
)
from contract_packet.agents.photo_inspector import PhotoInspectorAgent
from contract_packet.debounce import Debouncer
from contract_packet.errors import (
    AnalysisError,
    InvalidActionError,
    MissingFieldsError,
    ProcessNotStartedError,
    SubmissionFailedError,
)
from contract_packet.flow.conditions import (
    compute_missing_fields,
    missing_fields_for_step,
)
from contract_packet.flow.state import (
    PERSONAL_DOCUMENT_SLOTS,
    PF_ONLY_SLOTS,
    PJ_ONLY_SLOTS,
    ProcessState,
    new_process_state,
    relevant_slots,
)
from contract_packet.mock_data.templates import (
    CONTRACT_TEMPLATES,
    DIGITAL_PRODUCT_TEMPLATE_NAME,
    PLAYERS,
    build_template_data,
)
from contract_packet.models import (
    STEP_ORDER,
    AnalysisFailure,
    BuyerInfo,
    BuyerType,
    CompanyInfo,
    ContractSourceType,
    DocumentAnalysis,
    DocumentSlot,
    DocumentSlotKey,
    ExtractedContractData,
    InternalTeamMemberInfo,
    PersonalDocumentKind,
    PhotoAttachment,
    PhotoVerification,
    Step,
)
from contract_packet.persistence import DEFAULT_STATE_KEY, KeyValueStore, ProcessStore
from contract_packet.streaming import (
    EVENT_ANALYSIS_DISCARDED,
    EVENT_BUYER_TYPE_CHANGED,
    EVENT_CONTRACT_EXTRACTED,
    EVENT_DOCUMENT_ANALYZED,
    EVENT_DOCUMENT_ATTACHED,
    EVENT_DOCUMENT_REMOVED,
    EVENT_ERROR,
    EVENT_FIELDS_PREFILLED,
    EVENT_PHOTO_VERIFIED,
    EVENT_PROCESS_STARTED,
    EVENT_SOURCE_CHANGED,
    EVENT_STEP_CHANGED,
    EVENT_SUBMITTED,
    EVENT_TEMPLATE_LOADED,
    EVENT_TRANSITION_REFUSED,
    ProcessEventStream,
)
from contract_packet.submission import (
    InMemorySubmissionService,
    SubmissionService,
    build_submission_record,
)
from contract_packet.tools.party_tools import DEFAULT_MARKERS, PartyMarkers
from contract_packet.tools.prefill_tools import resolve_prefill_with_report
from contract_packet.tools.print_tools import build_print_data, render_contract

logger = structlog.get_logger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 0.8


def _apply_changes(record: BaseModel, changes: dict[str, Any]) -> BaseModel:
    """Return a validated copy of *record* with *changes* applied.

    Keys may be field names or their camelCase aliases.
    """
    model = type(record)
    by_alias = {info.alias: name for name, info in model.model_fields.items() if info.alias}
    normalized: dict[str, Any] = {}
    for key, value in changes.items():
        name = key if key in model.model_fields else by_alias.get(key)
        if name is None:
            raise InvalidActionError(f"Unknown field '{key}' for {model.__name__}.")
        normalized[name] = value
    try:
        return model.model_validate({**record.model_dump(), **normalized})
    except ValidationError as exc:
        raise InvalidActionError(str(exc)) from exc


class WizardController:
    """Drives one process through the wizard steps.

    Args:
        store: Persistence adapter for this process.
        state: Initial state; loaded from *store* when omitted.
        photo_verifier: Contract photo clarity check.
        contract_extractor: Contract field extraction.
        document_extractor: Identity/address document extraction.
        submission_service: Permanent record store for finished packets.
        event_stream: Receives an event for every visible outcome.
        markers: Marker table for contract party parsing.
        debounce_seconds: Auto-save delay for field edits.
    """

    def __init__(
        self,
        store: ProcessStore,
        state: ProcessState | None = None,
        *,
        photo_verifier: PhotoVerifier | None = None,
        contract_extractor: ContractExtractor | None = None,
        document_extractor: DocumentExtractor | None = None,
        submission_service: SubmissionService | None = None,
        event_stream: ProcessEventStream | None = None,
        markers: PartyMarkers = DEFAULT_MARKERS,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self._store = store
        self.state = state if state is not None else store.load()
        self._photo_verifier = photo_verifier or PhotoInspectorAgent()
        self._contract_extractor = contract_extractor or ContractReaderAgent()
        self._document_extractor = document_extractor or DocumentReaderAgent()
        self._submission = submission_service or InMemorySubmissionService()
        self._events = event_stream or ProcessEventStream()
        self._markers = markers
        self._debouncer = Debouncer(self._persist, debounce_seconds)
        self.confirmation_id: str | None = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def start_new(
        cls,
        kv: KeyValueStore,
        *,
        state_key: str = DEFAULT_STATE_KEY,
        **kwargs: Any,
    ) -> WizardController:
        """Create, persist and return a controller for a fresh process."""
        state = new_process_state()
        store = ProcessStore(kv, state.process_id, state_key)
        controller = cls(store, state, **kwargs)
        store.save(state)
        logger.info("process_started", process_id=state.process_id)
        controller._emit(EVENT_PROCESS_STARTED, message="New contract process started.")
        return controller

    @classmethod
    def resume(
        cls,
        kv: KeyValueStore,
        process_id: str,
        *,
        state_key: str = DEFAULT_STATE_KEY,
        **kwargs: Any,
    ) -> WizardController:
        """Return a controller for the stored process *process_id*."""
        store = ProcessStore(kv, process_id, state_key)
        controller = cls(store, **kwargs)
        logger.info(
            "process_resumed",
            process_id=process_id,
            step=controller.state.current_step.value,
        )
        return controller

    @property
    def process_id(self) -> str:
        return self.state.process_id

    @property
    def current_step(self) -> Step:
        return self.state.current_step

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_process(self) -> None:
        if not self.state.process_id:
            logger.error("process_id_missing", step=self.state.current_step.value)
            raise ProcessNotStartedError()

    def _require_open(self) -> None:
        self._require_process()
        if self.state.current_step == Step.CONFIRMATION:
            raise InvalidActionError("The process has already been submitted.")

    def _persist(self) -> None:
        self._store.save(self.state)

    def _save_now(self) -> None:
        """Immediate save; drops any pending debounced save."""
        self._debouncer.cancel()
        self.state.touch()
        self._persist()

    def _save_debounced(self) -> None:
        self.state.touch()
        self._debouncer.schedule()

    def _emit(self, event_type: str, data: dict[str, Any] | None = None, message: str = "") -> None:
        self._events.emit(self.state.process_id, event_type, data, message)

    def _apply_prefill(self) -> dict[str, str]:
        resolved, filled = resolve_prefill_with_report(self.state, self._markers)
        # Copy back only the records the resolver writes, so attachment
        # objects keep their identity across awaits.
        self.state.buyer_info = resolved.buyer_info
        self.state.company_info = resolved.company_info
        if filled:
            self._emit(
                EVENT_FIELDS_PREFILLED,
                {"fields": filled},
                message=f"{len(filled)} field(s) filled from the extracted data.",
            )
        return filled

    def _clear_slots(
        self, keys: frozenset[DocumentSlotKey] | tuple[DocumentSlotKey, ...]
    ) -> list[str]:
        cleared = []
        for key in keys:
            if self.state.document_slots.get(key) is not None:
                self.state.document_slots[key] = None
                cleared.append(key.value)
        return sorted(cleared)

    # ------------------------------------------------------------------
    # Field edits (debounced save)
    # ------------------------------------------------------------------

    def update_buyer_info(self, **changes: Any) -> BuyerInfo:
        """Edit buyer (or representative) fields."""
        self._require_open()
        self.state.buyer_info = _apply_changes(self.state.buyer_info, changes)
        self._save_debounced()
        return self.state.buyer_info

    def update_company_info(self, **changes: Any) -> CompanyInfo:
        """Edit company fields; only valid for company buyers."""
        self._require_open()
        if self.state.buyer_type != BuyerType.PJ or self.state.company_info is None:
            raise InvalidActionError("Company data only applies to company (PJ) buyers.")
        self.state.company_info = _apply_changes(self.state.company_info, changes)
        self._save_debounced()
        return self.state.company_info

    def update_internal_team_member_info(self, **changes: Any) -> InternalTeamMemberInfo:
        """Edit the internal responsible's fields."""
        self._require_open()
        self.state.internal_team_member_info = _apply_changes(
            self.state.internal_team_member_info, changes
        )
        self._save_debounced()
        return self.state.internal_team_member_info

    # ------------------------------------------------------------------
    # Cascading actions (immediate save)
    # ------------------------------------------------------------------

    def set_contract_source_type(self, source: ContractSourceType) -> None:
        """Switch between photographed and template contracts.

        Switching to ``existing`` drops the photo and its verification;
        contract data survives only if it came from a loaded template.
        Switching to ``new`` drops the player, template and contract data.
        """
        self._require_open()
        source = ContractSourceType(source)
        if source == self.state.contract_source_type:
            return

        self.state.contract_source_type = source
        if source == ContractSourceType.EXISTING:
            self.state.contract_photo = None
            self.state.photo_verification = None
            if self.state.selected_template_name is None:
                self.state.extracted_contract_data = None
        else:
            self.state.selected_player = None
            self.state.selected_template_name = None
            self.state.extracted_contract_data = None

        self._save_now()
        logger.info("contract_source_changed", process_id=self.process_id, source=source.value)
        self._emit(EVENT_SOURCE_CHANGED, {"source": source.value})

    def set_buyer_type(self, buyer_type: BuyerType) -> None:
        """Switch between individual and company buyer.

        Slots that only apply to the previous buyer type are emptied and
        company data is created or dropped to match.
        """
        self._require_open()
        buyer_type = BuyerType(buyer_type)
        if buyer_type == self.state.buyer_type:
            return

        if buyer_type == BuyerType.PJ:
            cleared = self._clear_slots(PF_ONLY_SLOTS)
            self.state.company_info = CompanyInfo()
        else:
            cleared = self._clear_slots(PJ_ONLY_SLOTS)
            self.state.company_info = None
        self.state.buyer_type = buyer_type

        self._save_now()
        logger.info(
            "buyer_type_changed",
            process_id=self.process_id,
            buyer_type=buyer_type.value,
            cleared_slots=cleared,
        )
        self._emit(
            EVENT_BUYER_TYPE_CHANGED,
            {"buyer_type": buyer_type.value, "cleared_slots": cleared},
        )

    def set_personal_document_kind(self, kind: PersonalDocumentKind) -> None:
        """Choose ID card or driver's license; the other kind's slots are emptied."""
        self._require_open()
        kind = PersonalDocumentKind(kind)
        if kind == self.state.personal_document_kind:
            return

        other = PERSONAL_DOCUMENT_SLOTS[self.state.personal_document_kind]
        cleared = self._clear_slots(other)
        self.state.personal_document_kind = kind
        self._save_now()
        logger.info(
            "personal_document_kind_changed",
            process_id=self.process_id,
            kind=kind.value,
            cleared_slots=cleared,
        )

    def select_player(self, player: str) -> None:
        """Pick the seller for a template contract.

        Changing the player drops any template data loaded for the
        previous one.
        """
        self._require_open()
        if self.state.contract_source_type != ContractSourceType.EXISTING:
            raise InvalidActionError("Players only apply to template contracts.")
        if player not in PLAYERS:
            raise InvalidActionError(f"Unknown player '{player}'.")
        if player == self.state.selected_player:
            return

        self.state.selected_player = player
        self.state.selected_template_name = None
        self.state.extracted_contract_data = None
        self._save_now()
        logger.info("player_selected", process_id=self.process_id, player=player)

    def load_contract_template(
        self, template_name: str = DIGITAL_PRODUCT_TEMPLATE_NAME
    ) -> ExtractedContractData:
        """Fill the contract data from a pre-defined template."""
        self._require_open()
        if self.state.contract_source_type != ContractSourceType.EXISTING:
            raise InvalidActionError("Templates only apply to template contracts.")
        if not self.state.selected_player:
            raise InvalidActionError("Select a player before loading a template.")
        if template_name not in CONTRACT_TEMPLATES:
            raise InvalidActionError(f"Unknown contract template '{template_name}'.")

        self.state.extracted_contract_data = build_template_data(self.state.selected_player)
        self.state.selected_template_name = template_name
        self._apply_prefill()
        self._save_now()
        logger.info(
            "template_loaded",
            process_id=self.process_id,
            template=template_name,
            player=self.state.selected_player,
        )
        self._emit(
            EVENT_TEMPLATE_LOADED,
            {"template": template_name, "player": self.state.selected_player},
            message=f"{template_name} loaded for {self.state.selected_player}.",
        )
        return self.state.extracted_contract_data

    def attach_contract_photo(
        self,
        file_name: str,
        preview_handle: str,
        storage_handle: str | None = None,
    ) -> PhotoAttachment:
        """Attach the contract photo; any previous verification and data are dropped."""
        self._require_open()
        if self.state.contract_source_type != ContractSourceType.NEW:
            raise InvalidActionError("Contract photos only apply to new contracts.")

        self.state.contract_photo = PhotoAttachment(
            file_name=file_name,
            preview_handle=preview_handle,
            storage_handle=storage_handle,
        )
        self.state.photo_verification = None
        self.state.extracted_contract_data = None
        self._save_now()
        logger.info("contract_photo_attached", process_id=self.process_id, file_name=file_name)
        return self.state.contract_photo

    def attach_document(
        self,
        slot: DocumentSlotKey,
        file_name: str,
        preview_handle: str,
        storage_handle: str | None = None,
    ) -> DocumentSlot:
        """Attach a document to *slot*, replacing whatever was there."""
        self._require_open()
        slot = DocumentSlotKey(slot)
        if slot not in relevant_slots(self.state.buyer_type, self.state.personal_document_kind):
            raise InvalidActionError(
                f"Slot '{slot.value}' does not apply to the current buyer setup."
            )

        document = DocumentSlot(
            file_name=file_name,
            preview_handle=preview_handle,
            storage_handle=storage_handle,
        )
        self.state.document_slots[slot] = document
        self._save_now()
        logger.info(
            "document_attached",
            process_id=self.process_id,
            slot=slot.value,
            attachment_id=document.attachment_id,
        )
        self._emit(EVENT_DOCUMENT_ATTACHED, {"slot": slot.value, "file_name": file_name})
        return document

    def remove_document(self, slot: DocumentSlotKey) -> None:
        """Empty *slot*; a pending analysis for it will be discarded."""
        self._require_open()
        slot = DocumentSlotKey(slot)
        if self.state.document_slots.get(slot) is None:
            return
        self.state.document_slots[slot] = None
        self._save_now()
        logger.info("document_removed", process_id=self.process_id, slot=slot.value)
        self._emit(EVENT_DOCUMENT_REMOVED, {"slot": slot.value})

    def attach_signed_contract_photo(
        self,
        file_name: str,
        preview_handle: str,
        storage_handle: str | None = None,
    ) -> PhotoAttachment:
        """Attach the photo of the printed and signed contract."""
        self._require_open()
        if self.state.current_step != Step.SIGNED_PHOTO:
            raise InvalidActionError("The signed contract is attached after printing.")

        self.state.signed_contract_photo = PhotoAttachment(
            file_name=file_name,
            preview_handle=preview_handle,
            storage_handle=storage_handle,
        )
        self._save_now()
        logger.info("signed_contract_attached", process_id=self.process_id, file_name=file_name)
        return self.state.signed_contract_photo

    # ------------------------------------------------------------------
    # AI actions
    # ------------------------------------------------------------------

    async def verify_contract_photo(self) -> PhotoVerification | None:
        """Run the clarity check on the attached contract photo.

        A failing check is recorded as "not clear" with the error as the
        reason. Returns ``None`` when the photo was replaced meanwhile.
        """
        self._require_open()
        photo = self.state.contract_photo
        if photo is None:
            raise InvalidActionError("Attach a contract photo before verifying it.")

        try:
            result = await self._photo_verifier.verify(photo.storage_handle or photo.preview_handle)
        except Exception as exc:
            logger.warning("photo_verification_failed", process_id=self.process_id, error=str(exc))
            result = PhotoVerification(is_complete_and_clear=False, reason=str(exc))

        if self.state.contract_photo is not photo:
            logger.debug("photo_verification_discarded", process_id=self.process_id)
            self._emit(EVENT_ANALYSIS_DISCARDED, {"target": "contract_photo"})
            return None

        self.state.photo_verification = result
        self._save_now()
        self._emit(
            EVENT_PHOTO_VERIFIED,
            result.model_dump(by_alias=True),
            message=(
                "Contract photo is complete and clear."
                if result.is_complete_and_clear
                else f"Contract photo rejected: {result.reason}"
            ),
        )
        return result

    async def extract_contract_data(self) -> ExtractedContractData | None:
        """Read the contract fields from the verified photo, then pre-fill.

        Raises:
            InvalidActionError: If the photo is missing or not verified.
            AnalysisError: If extraction fails; the contract data stays unset.
        """
        self._require_open()
        photo = self.state.contract_photo
        if photo is None:
            raise InvalidActionError("Attach a contract photo before extracting data.")
        verification = self.state.photo_verification
        if verification is None or not verification.is_complete_and_clear:
            raise InvalidActionError("The contract photo must be verified as clear first.")

        try:
            data = await self._contract_extractor.extract(
                photo.storage_handle or photo.preview_handle
            )
        except Exception as exc:
            logger.error("contract_extraction_failed", process_id=self.process_id, error=str(exc))
            if self.state.contract_photo is photo:
                self.state.extracted_contract_data = None
                self._save_now()
            self._emit(
                EVENT_ERROR, {"error": str(exc)}, message=f"Contract extraction failed: {exc}"
            )
            if isinstance(exc, AnalysisError):
                raise
            raise AnalysisError(str(exc)) from exc

        if self.state.contract_photo is not photo:
            logger.debug("contract_extraction_discarded", process_id=self.process_id)
            self._emit(EVENT_ANALYSIS_DISCARDED, {"target": "contract_photo"})
            return None

        self.state.extracted_contract_data = data
        self._apply_prefill()
        self._save_now()
        self._emit(
            EVENT_CONTRACT_EXTRACTED,
            {"parties": len(data.party_names), "subject": data.subject},
            message="Contract data extracted.",
        )
        return data

    async def analyze_document(
        self,
        slot: DocumentSlotKey,
    ) -> Union[DocumentAnalysis, AnalysisFailure, None]:
        """Extract fields from the document in *slot*, then pre-fill.

        A result that arrives after the slot was emptied, replaced or made
        irrelevant by a buyer setup change is dropped and ``None`` is
        returned.
        """
        self._require_open()
        slot = DocumentSlotKey(slot)
        document = self.state.document_slots.get(slot)
        if document is None:
            raise InvalidActionError(f"No document attached to slot '{slot.value}'.")
        attachment_id = document.attachment_id

        try:
            result = await self._document_extractor.extract(
                document.storage_handle or document.preview_handle
            )
        except Exception as exc:
            logger.warning(
                "document_analysis_failed",
                process_id=self.process_id,
                slot=slot.value,
                error=str(exc),
            )
            result = AnalysisFailure(error=str(exc))

        current = self.state.document_slots.get(slot)
        still_relevant = slot in relevant_slots(
            self.state.buyer_type, self.state.personal_document_kind
        )
        if current is None or current.attachment_id != attachment_id or not still_relevant:
            logger.debug(
                "analysis_discarded",
                process_id=self.process_id,
                slot=slot.value,
                attachment_id=attachment_id,
            )
            self._emit(EVENT_ANALYSIS_DISCARDED, {"slot": slot.value})
            return None

        current.analysis_result = result
        if isinstance(result, AnalysisFailure):
            self._emit(
                EVENT_ERROR,
                {"slot": slot.value, "error": result.error},
                message=f"Could not read {slot.value}: {result.error}",
            )
        else:
            self._apply_prefill()
        self._save_now()
        self._emit(EVENT_DOCUMENT_ANALYZED, {"slot": slot.value, "outcome": result.kind})
        return result

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def next_step(self) -> Step:
        """Advance one step if the current step's checks pass.

        Entering ``confirmation`` submits the packet; success clears the
        persisted state.

        Raises:
            MissingFieldsError: If the current step is incomplete.
            SubmissionFailedError: If the submission collaborator fails; the
                step and state are kept for a retry.
        """
        self._require_open()
        self._debouncer.flush()

        current = self.state.current_step
        missing = missing_fields_for_step(self.state, current)
        if missing:
            logger.info(
                "transition_refused",
                process_id=self.process_id,
                step=current.value,
                missing=len(missing),
            )
            self._emit(
                EVENT_TRANSITION_REFUSED,
                {"step": current.value, "missing": missing},
                message=f"{len(missing)} field(s) missing.",
            )
            raise MissingFieldsError(current, missing)

        target = STEP_ORDER[STEP_ORDER.index(current) + 1]

        if target == Step.CONFIRMATION:
            await self._submit()
            return self.state.current_step

        if target == Step.PRINT:
            self._store.save_print_data(build_print_data(self.state))

        self.state.current_step = target
        self._save_now()
        logger.info(
            "step_changed",
            process_id=self.process_id,
            from_step=current.value,
            to_step=target.value,
        )
        self._emit(EVENT_STEP_CHANGED, {"from": current.value, "to": target.value})
        return target

    async def previous_step(self) -> Step:
        """Go back one step. Never validated; always persists first.

        Leaving ``print`` backwards drops the print snapshot.
        """
        self._require_open()
        self._debouncer.flush()

        current = self.state.current_step
        index = STEP_ORDER.index(current)
        if index == 0:
            self._save_now()
            return current

        target = STEP_ORDER[index - 1]
        if current == Step.PRINT:
            # Data may change before print is entered again.
            self._store.discard_print_data()
        self.state.current_step = target
        self._save_now()
        logger.info(
            "step_changed",
            process_id=self.process_id,
            from_step=current.value,
            to_step=target.value,
        )
        self._emit(EVENT_STEP_CHANGED, {"from": current.value, "to": target.value})
        return target

    async def _submit(self) -> None:
        record = build_submission_record(self.state)
        try:
            confirmation_id = await self._submission.submit(record)
        except Exception as exc:
            logger.error("submission_failed", process_id=self.process_id, error=str(exc))
            self._save_now()
            self._emit(EVENT_ERROR, {"error": str(exc)}, message=f"Submission failed: {exc}")
            raise SubmissionFailedError(str(exc)) from exc

        previous = self.state.current_step
        self.confirmation_id = confirmation_id
        self.state.current_step = Step.CONFIRMATION
        self.state.touch()
        self._debouncer.cancel()
        self._store.clear()
        logger.info(
            "process_submitted", process_id=self.process_id, confirmation_id=confirmation_id
        )
        self._emit(EVENT_STEP_CHANGED, {"from": previous.value, "to": Step.CONFIRMATION.value})
        self._emit(
            EVENT_SUBMITTED,
            {"confirmation_id": confirmation_id},
            message="Contract packet submitted.",
        )
        self._events.release(self.process_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def missing_fields(self) -> list[str]:
        """Every deficiency blocking submission."""
        self._require_process()
        return compute_missing_fields(self.state)

    def missing_fields_for_current_step(self) -> list[str]:
        self._require_process()
        if self.state.current_step == Step.CONFIRMATION:
            return []
        return missing_fields_for_step(self.state, self.state.current_step)

    def render_contract(self) -> str:
        """Printable contract text, from the print snapshot when one exists."""
        self._require_process()
        data = self._store.load_print_data() or build_print_data(self.state)
        return render_contract(
            data,
            self.state.selected_template_name or DIGITAL_PRODUCT_TEMPLATE_NAME,
            self._markers,
        )

    def flush(self) -> bool:
        """Write a pending debounced save now."""
        return self._debouncer.flush()
