"""Test fixtures for the Contract Packet Wizard."""

from __future__ import annotations

import pytest

from contract_packet.models import (
    BuyerType,
    DocumentAnalysis,
    DocumentSlot,
    DocumentSlotKey,
    ExtractedContractData,
    PhotoAttachment,
    PhotoVerification,
)


@pytest.fixture(autouse=True)
def _test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set up test environment variables."""
    monkeypatch.setenv("CONTRACT_PACKET_ENVIRONMENT", "testing")
    monkeypatch.setenv("CONTRACT_PACKET_LOG_LEVEL", "DEBUG")
    for key in ("CONTRACT_PACKET_STATE_STORE_PATH", "CONTRACT_PACKET_STATE_KEY"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture()
def settings():
    """Create test settings."""
    from contract_packet.config import Settings

    return Settings(
        environment="testing",
        log_level="DEBUG",
        autosave_debounce_seconds=0,
    )


@pytest.fixture()
def kv():
    from contract_packet.persistence import InMemoryStore

    return InMemoryStore()


@pytest.fixture()
def app(settings, kv):
    """Create a test FastAPI application."""
    from contract_packet.api import create_app

    return create_app(settings, kv)


@pytest.fixture()
def client(app):
    """Create an async test client."""
    from httpx import ASGITransport, AsyncClient

    transport = ASGITransport(app=app)
    return AsyncClient(transport=transport, base_url="http://test")


# ---------------------------------------------------------------------------
# State builders
# ---------------------------------------------------------------------------


def _filled_person(**overrides: str) -> dict[str, str]:
    person = {
        "name": "MARIA APARECIDA DOS SANTOS",
        "tax_id": "123.456.789-09",
        "phone": "(11) 98888-7777",
        "email": "maria@example.com",
        "address_line": "Rua das Flores, 100",
        "neighborhood": "Centro",
        "city": "São Paulo",
        "state": "SP",
        "postal_code": "01000-000",
    }
    person.update(overrides)
    return person


def _slot(name: str) -> DocumentSlot:
    return DocumentSlot(file_name=f"{name}.jpg", preview_handle=f"blob:{name}")


@pytest.fixture()
def complete_pf_state():
    """A PF state with every required field and document present."""
    from contract_packet.flow.state import new_process_state
    from contract_packet.models import BuyerInfo, InternalTeamMemberInfo

    state = new_process_state("proc-pf")
    state.internal_team_member_info = InternalTeamMemberInfo(
        **_filled_person(name="ANA OPERADORA", email="ana@empresa.com"),
        role="Consultora",
    )
    state.buyer_info = BuyerInfo(**_filled_person())
    state.contract_photo = PhotoAttachment(
        file_name="contrato.jpg", preview_handle="blob:contrato"
    )
    state.photo_verification = PhotoVerification(is_complete_and_clear=True)
    state.extracted_contract_data = ExtractedContractData(
        party_names=["MARIA APARECIDA DOS SANTOS, COMO COMPRADORA"],
        party_documents=["123.456.789-09"],
        subject="Curso online",
        price="R$ 1.000,00",
    )
    for key in (
        DocumentSlotKey.ID_FRONT,
        DocumentSlotKey.ID_BACK,
        DocumentSlotKey.PROOF_OF_ADDRESS,
    ):
        state.document_slots[key] = _slot(key.value)
    return state


@pytest.fixture()
def pj_state():
    """A PJ state with nothing filled in."""
    from contract_packet.flow.state import ProcessState

    return ProcessState(process_id="proc-pj", buyer_type=BuyerType.PJ)


@pytest.fixture()
def id_front_analysis():
    return DocumentAnalysis(
        full_name="MARIA APARECIDA DOS SANTOS",
        tax_id="123.456.789-09",
        birth_date="15/03/1985",
        id_number="12.345.678-9",
    )
