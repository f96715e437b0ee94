"""Tests for the wizard controller."""

from __future__ import annotations

import asyncio

import pytest

from contract_packet.errors import (
    AnalysisError,
    InvalidActionError,
    MissingFieldsError,
    ProcessNotStartedError,
    SubmissionFailedError,
)
from contract_packet.flow.state import PF_ONLY_SLOTS, PJ_ONLY_SLOTS, ProcessState
from contract_packet.flow.wizard_flow import WizardController
from contract_packet.mock_data.documents import SAMPLE_CONTRACT_DATA
from contract_packet.models import (
    AnalysisFailure,
    BuyerType,
    CompanyInfo,
    ContractSourceType,
    DocumentAnalysis,
    DocumentSlotKey,
    ExtractedContractData,
    PersonalDocumentKind,
    PhotoVerification,
    Step,
)
from contract_packet.persistence import InMemoryStore, ProcessStore
from contract_packet.streaming import ProcessEventStream
from contract_packet.submission import InMemorySubmissionService


class _GatedDocumentReader:
    """Holds every extraction until released."""

    def __init__(self, result: DocumentAnalysis) -> None:
        self.result = result
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def extract(self, image_ref: str) -> DocumentAnalysis:
        self.started.set()
        await self.release.wait()
        return self.result


class _FailingSubmission:
    async def submit(self, record) -> str:
        raise ConnectionError("record store offline")


class _BrokenVerifier:
    async def verify(self, image_ref: str):
        raise RuntimeError("vision service unavailable")


class _GatedPhotoService:
    """Verifier and contract reader that wait until released."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def _hold(self) -> None:
        self.started.set()
        await self.release.wait()

    async def verify(self, image_ref: str) -> PhotoVerification:
        await self._hold()
        return PhotoVerification(is_complete_and_clear=True)

    async def extract(self, image_ref: str) -> ExtractedContractData:
        await self._hold()
        return SAMPLE_CONTRACT_DATA.model_copy(deep=True)


def _controller(state: ProcessState, kv: InMemoryStore | None = None, **kwargs) -> WizardController:
    if kv is None:
        kv = InMemoryStore()
    kwargs.setdefault("debounce_seconds", 0)
    return WizardController(ProcessStore(kv, state.process_id), state, **kwargs)


async def _advance_to(controller: WizardController, step: Step) -> None:
    while controller.current_step != step:
        await controller.next_step()


def _event_types(stream: ProcessEventStream, process_id: str) -> list[str]:
    return [event.event_type for event in stream.get_history(process_id)]


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def test_start_new_persists_fresh_state():
    kv = InMemoryStore()
    stream = ProcessEventStream()

    controller = WizardController.start_new(kv, event_stream=stream)

    store = ProcessStore(kv, controller.process_id)
    assert store.exists()
    assert store.load().process_id == controller.process_id
    assert _event_types(stream, controller.process_id) == ["process_started"]


def test_resume_loads_stored_state(complete_pf_state):
    kv = InMemoryStore()
    ProcessStore(kv, complete_pf_state.process_id).save(complete_pf_state)

    controller = WizardController.resume(kv, complete_pf_state.process_id)

    assert controller.state == complete_pf_state


# ---------------------------------------------------------------------------
# Cascading actions
# ---------------------------------------------------------------------------


def test_buyer_type_switch_resets_dependent_slots():
    controller = _controller(ProcessState(process_id="p"))
    controller.attach_document(DocumentSlotKey.ID_FRONT, "rg.jpg", "blob:rg")
    controller.attach_document(DocumentSlotKey.ID_BACK, "rg_verso.jpg", "blob:rg_verso")
    controller.attach_document(DocumentSlotKey.PROOF_OF_ADDRESS, "conta.jpg", "blob:conta")

    controller.set_buyer_type(BuyerType.PJ)

    state = controller.state
    assert all(state.document_slots[key] is None for key in PF_ONLY_SLOTS)
    assert state.document_slots[DocumentSlotKey.PROOF_OF_ADDRESS] is not None
    assert state.company_info == CompanyInfo()

    controller.attach_document(DocumentSlotKey.COMPANY_REGISTRATION, "cnpj.jpg", "blob:cnpj")
    controller.set_buyer_type(BuyerType.PF)

    assert all(state.document_slots[key] is None for key in PJ_ONLY_SLOTS)
    assert state.company_info is None


def test_personal_document_kind_switch_clears_other_kind():
    controller = _controller(ProcessState(process_id="p"))
    controller.attach_document(DocumentSlotKey.ID_FRONT, "rg.jpg", "blob:rg")

    controller.set_personal_document_kind(PersonalDocumentKind.DRIVERS_LICENSE)

    assert controller.state.document_slots[DocumentSlotKey.ID_FRONT] is None
    with pytest.raises(InvalidActionError):
        controller.attach_document(DocumentSlotKey.ID_FRONT, "rg.jpg", "blob:rg")
    controller.attach_document(DocumentSlotKey.LICENSE_FRONT, "cnh.jpg", "blob:cnh")


def test_switching_to_existing_source_drops_photo(complete_pf_state):
    controller = _controller(complete_pf_state)

    controller.set_contract_source_type(ContractSourceType.EXISTING)

    state = controller.state
    assert state.contract_photo is None
    assert state.photo_verification is None
    assert state.extracted_contract_data is None
    # Fields already filled are never cleared.
    assert state.buyer_info.name == "MARIA APARECIDA DOS SANTOS"


def test_template_flow_prefills_buyer():
    stream = ProcessEventStream()
    controller = _controller(ProcessState(process_id="p"), event_stream=stream)

    controller.set_contract_source_type(ContractSourceType.EXISTING)
    controller.select_player("Diego Vicente")
    data = controller.load_contract_template()

    assert data.party_names[1] == "Diego Vicente, COMO VENDEDOR"
    assert controller.state.buyer_info.name == "CLIENTE EXEMPLO"
    assert controller.state.buyer_info.tax_id == "000.000.000-00"
    assert "fields_prefilled" in _event_types(stream, "p")
    assert "Player: Diego Vicente" in controller.render_contract()

    controller.set_contract_source_type(ContractSourceType.NEW)
    assert controller.state.selected_player is None
    assert controller.state.extracted_contract_data is None


def test_switching_to_pj_after_template_leaves_company_empty():
    controller = _controller(ProcessState(process_id="p"))
    controller.set_contract_source_type(ContractSourceType.EXISTING)
    controller.select_player("Pablo Marçal")
    controller.load_contract_template()

    controller.set_buyer_type(BuyerType.PJ)

    assert controller.state.company_info == CompanyInfo()
    assert controller.state.buyer_info.name == "CLIENTE EXEMPLO"


def test_template_requires_player():
    controller = _controller(ProcessState(process_id="p"))
    controller.set_contract_source_type(ContractSourceType.EXISTING)

    with pytest.raises(InvalidActionError):
        controller.load_contract_template()
    with pytest.raises(InvalidActionError):
        controller.select_player("Unknown Player")


def test_field_edit_validation():
    controller = _controller(ProcessState(process_id="p"))

    controller.update_buyer_info(postalCode="01000-000", name="JOÃO")
    assert controller.state.buyer_info.postal_code == "01000-000"

    with pytest.raises(InvalidActionError):
        controller.update_buyer_info(nickname="Jo")
    with pytest.raises(InvalidActionError):
        controller.update_company_info(legal_name="ACME LTDA")


# ---------------------------------------------------------------------------
# AI actions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_analyze_document_prefills():
    stream = ProcessEventStream()
    controller = _controller(ProcessState(process_id="p"), event_stream=stream)
    controller.attach_document(DocumentSlotKey.ID_FRONT, "rg_frente.jpg", "blob:id_front")

    result = await controller.analyze_document(DocumentSlotKey.ID_FRONT)

    assert isinstance(result, DocumentAnalysis)
    assert controller.state.buyer_info.name == "MARIA APARECIDA DOS SANTOS"
    assert controller.state.buyer_info.tax_id == "123.456.789-09"
    assert "document_analyzed" in _event_types(stream, "p")


@pytest.mark.asyncio
async def test_unreadable_document_is_stored_as_failure():
    controller = _controller(ProcessState(process_id="p"))
    controller.attach_document(DocumentSlotKey.ID_FRONT, "foto.jpg", "blob:xyz")

    result = await controller.analyze_document(DocumentSlotKey.ID_FRONT)

    assert isinstance(result, AnalysisFailure)
    assert controller.state.document_slots[DocumentSlotKey.ID_FRONT].analysis_result == result
    assert controller.state.buyer_info.name == ""


@pytest.mark.asyncio
async def test_late_analysis_for_replaced_document_is_discarded():
    reader = _GatedDocumentReader(DocumentAnalysis(full_name="OLD FILE OWNER"))
    stream = ProcessEventStream()
    controller = _controller(
        ProcessState(process_id="p"), document_extractor=reader, event_stream=stream
    )
    controller.attach_document(DocumentSlotKey.ID_FRONT, "old.jpg", "blob:old")

    task = asyncio.create_task(controller.analyze_document(DocumentSlotKey.ID_FRONT))
    await reader.started.wait()
    controller.attach_document(DocumentSlotKey.ID_FRONT, "new.jpg", "blob:new")
    reader.release.set()

    assert await task is None
    assert controller.state.document_slots[DocumentSlotKey.ID_FRONT].analysis_result is None
    assert controller.state.buyer_info.name == ""
    assert "analysis_discarded" in _event_types(stream, "p")


@pytest.mark.asyncio
async def test_late_analysis_after_buyer_type_switch_is_discarded():
    reader = _GatedDocumentReader(DocumentAnalysis(full_name="MARIA"))
    controller = _controller(ProcessState(process_id="p"), document_extractor=reader)
    controller.attach_document(DocumentSlotKey.ID_FRONT, "rg.jpg", "blob:rg")

    task = asyncio.create_task(controller.analyze_document(DocumentSlotKey.ID_FRONT))
    await reader.started.wait()
    controller.set_buyer_type(BuyerType.PJ)
    reader.release.set()

    assert await task is None
    assert controller.state.buyer_info.name == ""


@pytest.mark.asyncio
async def test_photo_verification_failure_means_not_clear():
    controller = _controller(ProcessState(process_id="p"), photo_verifier=_BrokenVerifier())
    controller.attach_contract_photo("contrato.jpg", "blob:contrato")

    result = await controller.verify_contract_photo()

    assert result.is_complete_and_clear is False
    assert result.reason == "vision service unavailable"
    with pytest.raises(InvalidActionError):
        await controller.extract_contract_data()


@pytest.mark.asyncio
async def test_blurred_photo_is_rejected():
    controller = _controller(ProcessState(process_id="p"))
    controller.attach_contract_photo("contrato_blur.jpg", "blob:contrato_blur")

    result = await controller.verify_contract_photo()

    assert result.is_complete_and_clear is False
    assert "blurred" in result.reason


@pytest.mark.asyncio
async def test_extract_contract_data_prefills():
    controller = _controller(ProcessState(process_id="p"))
    controller.attach_contract_photo("contrato.jpg", "blob:contrato")
    await controller.verify_contract_photo()

    data = await controller.extract_contract_data()

    assert data.subject == "Compra de curso online de finanças"
    assert controller.state.buyer_info.name == "JOÃO DA SILVA"
    assert controller.state.buyer_info.tax_id == "111.444.777-35"


@pytest.mark.asyncio
async def test_extract_failure_leaves_data_unset():
    stream = ProcessEventStream()
    controller = _controller(ProcessState(process_id="p"), event_stream=stream)
    controller.attach_contract_photo("IMG_0001.jpg", "blob:IMG_0001")
    await controller.verify_contract_photo()

    with pytest.raises(AnalysisError):
        await controller.extract_contract_data()

    assert controller.state.extracted_contract_data is None
    assert "error" in _event_types(stream, "p")


@pytest.mark.asyncio
async def test_late_photo_verification_after_source_switch_is_discarded():
    service = _GatedPhotoService()
    stream = ProcessEventStream()
    controller = _controller(
        ProcessState(process_id="p"), photo_verifier=service, event_stream=stream
    )
    controller.attach_contract_photo("contrato.jpg", "blob:contrato")

    task = asyncio.create_task(controller.verify_contract_photo())
    await service.started.wait()
    controller.set_contract_source_type(ContractSourceType.EXISTING)
    service.release.set()

    assert await task is None
    assert controller.state.contract_photo is None
    assert controller.state.photo_verification is None
    assert "analysis_discarded" in _event_types(stream, "p")


@pytest.mark.asyncio
async def test_late_contract_extraction_for_replaced_photo_is_discarded():
    kv = InMemoryStore()
    service = _GatedPhotoService()
    controller = _controller(ProcessState(process_id="p"), kv, contract_extractor=service)
    controller.attach_contract_photo("contrato.jpg", "blob:contrato")
    await controller.verify_contract_photo()

    task = asyncio.create_task(controller.extract_contract_data())
    await service.started.wait()
    controller.attach_contract_photo("contrato_novo.jpg", "blob:contrato_novo")
    service.release.set()

    assert await task is None
    state = controller.state
    assert state.contract_photo.file_name == "contrato_novo.jpg"
    assert state.photo_verification is None
    assert state.extracted_contract_data is None
    assert state.buyer_info.name == ""
    assert ProcessStore(kv, "p").load().extracted_contract_data is None


@pytest.mark.asyncio
async def test_pj_contract_seller_never_fills_buyer_company():
    controller = _controller(ProcessState(process_id="p"))
    controller.set_buyer_type(BuyerType.PJ)
    controller.attach_contract_photo("contrato.jpg", "blob:contrato")
    await controller.verify_contract_photo()
    await controller.extract_contract_data()

    assert controller.state.company_info == CompanyInfo()
    assert controller.state.buyer_info.name == "JOÃO DA SILVA"

    controller.attach_document(
        DocumentSlotKey.COMPANY_REGISTRATION, "cnpj.jpg", "blob:company_registration"
    )
    await controller.analyze_document(DocumentSlotKey.COMPANY_REGISTRATION)

    company = controller.state.company_info
    assert company.legal_name == "EXEMPLO COMERCIO DIGITAL LTDA"
    assert company.company_tax_id == "12.345.678/0001-90"


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_forward_transition_refused_with_missing_list():
    controller = _controller(ProcessState(process_id="p"))

    with pytest.raises(MissingFieldsError) as excinfo:
        await controller.next_step()

    assert excinfo.value.step == Step.INITIAL_DATA
    assert "Internal responsible: name" in excinfo.value.missing
    assert controller.current_step == Step.INITIAL_DATA


@pytest.mark.asyncio
async def test_print_gate(complete_pf_state):
    kv = InMemoryStore()
    complete_pf_state.buyer_info.phone = ""
    controller = _controller(complete_pf_state, kv)
    await _advance_to(controller, Step.REVIEW)

    with pytest.raises(MissingFieldsError) as excinfo:
        await controller.next_step()
    assert excinfo.value.missing == ["Buyer: phone"]
    assert controller.current_step == Step.REVIEW

    controller.update_buyer_info(phone="(11) 98888-7777")
    assert await controller.next_step() == Step.PRINT

    print_data = ProcessStore(kv, "proc-pf").load_print_data()
    assert print_data.buyer_info.phone == "(11) 98888-7777"


@pytest.mark.asyncio
async def test_full_submission_clears_persisted_state(complete_pf_state):
    kv = InMemoryStore()
    service = InMemorySubmissionService()
    stream = ProcessEventStream()
    controller = _controller(
        complete_pf_state, kv, submission_service=service, event_stream=stream
    )

    async def watch() -> list[str]:
        return [event.event_type async for event in stream.subscribe("proc-pf")]

    watcher = asyncio.create_task(watch())
    await asyncio.sleep(0)

    await _advance_to(controller, Step.SIGNED_PHOTO)
    with pytest.raises(MissingFieldsError):
        await controller.next_step()
    controller.attach_signed_contract_photo("assinado.jpg", "blob:assinado")

    assert await controller.next_step() == Step.CONFIRMATION

    assert controller.confirmation_id
    record = service.get(controller.confirmation_id)
    assert record.buyer_info.name == "MARIA APARECIDA DOS SANTOS"
    assert record.signed_contract_photo == "blob:assinado"
    assert set(record.documents) == {"id_front", "id_back", "proof_of_address"}
    assert kv.keys() == []

    received = await asyncio.wait_for(watcher, timeout=1)
    assert received[-2:] == ["step_changed", "submitted"]
    # The event history goes once the last reader has seen the submission.
    assert stream.get_history("proc-pf") == []
    assert stream.tracked_processes() == []

    with pytest.raises(InvalidActionError):
        controller.update_buyer_info(name="Outro")


@pytest.mark.asyncio
async def test_submission_failure_keeps_state(complete_pf_state):
    kv = InMemoryStore()
    controller = _controller(complete_pf_state, kv, submission_service=_FailingSubmission())
    await _advance_to(controller, Step.SIGNED_PHOTO)
    controller.attach_signed_contract_photo("assinado.jpg", "blob:assinado")
    before = controller.state.model_copy(deep=True)

    with pytest.raises(SubmissionFailedError):
        await controller.next_step()

    assert controller.current_step == Step.SIGNED_PHOTO
    assert controller.confirmation_id is None
    stored = ProcessStore(kv, "proc-pf").load()
    assert stored.current_step == Step.SIGNED_PHOTO
    assert stored.model_dump(exclude={"updated_at"}) == before.model_dump(exclude={"updated_at"})


@pytest.mark.asyncio
async def test_previous_step_always_allowed(complete_pf_state):
    kv = InMemoryStore()
    controller = _controller(complete_pf_state, kv)
    await _advance_to(controller, Step.DOCUMENTS)
    controller.remove_document(DocumentSlotKey.PROOF_OF_ADDRESS)

    assert await controller.previous_step() == Step.CONTRACT_SOURCE
    assert ProcessStore(kv, "proc-pf").load().current_step == Step.CONTRACT_SOURCE

    await controller.previous_step()
    assert await controller.previous_step() == Step.INITIAL_DATA


@pytest.mark.asyncio
async def test_signed_photo_only_after_printing(complete_pf_state):
    controller = _controller(complete_pf_state)
    with pytest.raises(InvalidActionError):
        controller.attach_signed_contract_photo("assinado.jpg", "blob:assinado")


@pytest.mark.asyncio
async def test_missing_process_id_is_fatal():
    controller = _controller(ProcessState(process_id=""))

    with pytest.raises(ProcessNotStartedError):
        controller.update_buyer_info(name="X")
    with pytest.raises(ProcessNotStartedError):
        await controller.next_step()
    with pytest.raises(ProcessNotStartedError):
        await controller.previous_step()
    with pytest.raises(ProcessNotStartedError):
        controller.missing_fields()


# ---------------------------------------------------------------------------
# Auto-save
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_field_edits_are_debounced_and_flushed_on_navigation():
    kv = InMemoryStore()
    controller = _controller(ProcessState(process_id="p"), kv, debounce_seconds=30)
    store = ProcessStore(kv, "p")

    controller.update_buyer_info(name="JOÃO")
    controller.update_buyer_info(email="joao@example.com")
    assert store.load().buyer_info.name == ""

    await controller.previous_step()

    saved = store.load().buyer_info
    assert saved.name == "JOÃO"
    assert saved.email == "joao@example.com"
    assert controller.flush() is False


@pytest.mark.asyncio
async def test_immediate_save_supersedes_pending_edit():
    kv = InMemoryStore()
    controller = _controller(ProcessState(process_id="p"), kv, debounce_seconds=30)

    controller.update_internal_team_member_info(role="Consultora")
    controller.set_buyer_type(BuyerType.PJ)

    stored = ProcessStore(kv, "p").load()
    assert stored.internal_team_member_info.role == "Consultora"
    assert stored.buyer_type == BuyerType.PJ
    assert controller.flush() is False


@pytest.mark.asyncio
async def test_debounced_save_fires_after_delay():
    kv = InMemoryStore()
    controller = _controller(ProcessState(process_id="p"), kv, debounce_seconds=0.01)

    controller.update_buyer_info(city="Jatai")
    await asyncio.sleep(0.1)

    assert ProcessStore(kv, "p").load().buyer_info.city == "Jatai"


# ---------------------------------------------------------------------------
# Printing
# ---------------------------------------------------------------------------


def test_render_contract_uses_collected_data(complete_pf_state):
    controller = _controller(complete_pf_state)

    text = controller.render_contract()

    assert "MARIA APARECIDA DOS SANTOS" in text
    assert "Curso online" in text
    assert "ANA OPERADORA (Consultora)" in text
    assert "{{" not in text


def test_render_contract_requires_contract_data():
    controller = _controller(ProcessState(process_id="p"))
    with pytest.raises(InvalidActionError):
        controller.render_contract()


@pytest.mark.asyncio
async def test_going_back_from_print_drops_snapshot(complete_pf_state):
    kv = InMemoryStore()
    controller = _controller(complete_pf_state, kv)
    await _advance_to(controller, Step.PRINT)
    assert ProcessStore(kv, "proc-pf").load_print_data() is not None

    assert await controller.previous_step() == Step.REVIEW
    controller.update_buyer_info(name="MARIA CORRIGIDA")

    assert ProcessStore(kv, "proc-pf").load_print_data() is None
    assert "MARIA CORRIGIDA" in controller.render_contract()

    await controller.next_step()
    assert ProcessStore(kv, "proc-pf").load_print_data().buyer_info.name == "MARIA CORRIGIDA"
