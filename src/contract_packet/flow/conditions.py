"""Completeness checks that gate the wizard's transitions.

Every function here is pure: it reads a :class:`ProcessState` and returns
a list of human-readable deficiencies, empty when the checked part of the
state is complete. :func:`compute_missing_fields` runs all categories in
a fixed order; :func:`missing_fields_for_step` composes the subset a
specific forward transition needs.
"""

from __future__ import annotations

from typing import Callable

from contract_packet.flow.state import (
    PERSONAL_DOCUMENT_SLOTS,
    ProcessState,
    is_extracted_data_empty,
)
from contract_packet.models import (
    BuyerType,
    ContractSourceType,
    DocumentSlotKey,
    PersonalDocumentKind,
    Step,
)

Check = Callable[[ProcessState], list[str]]

INTERNAL_MEMBER_FIELDS: dict[str, str] = {
    "name": "Internal responsible: name",
    "tax_id": "Internal responsible: tax id (CPF)",
    "phone": "Internal responsible: phone",
    "email": "Internal responsible: e-mail",
    "role": "Internal responsible: role",
}

CONTACT_FIELDS: dict[str, str] = {
    "name": "name",
    "tax_id": "tax id (CPF)",
    "phone": "phone",
    "email": "e-mail",
}

ADDRESS_FIELDS: dict[str, str] = {
    "address_line": "street address",
    "neighborhood": "neighborhood",
    "city": "city",
    "state": "state",
    "postal_code": "postal code",
}

PERSONAL_DOCUMENT_LABELS: dict[PersonalDocumentKind, str] = {
    PersonalDocumentKind.ID_CARD: "ID card",
    PersonalDocumentKind.DRIVERS_LICENSE: "driver's license",
}


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _attached(state: ProcessState, key: DocumentSlotKey) -> bool:
    return state.slot(key) is not None


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def internal_member_checks(state: ProcessState) -> list[str]:
    """Internal responsible fields, always required."""
    info = state.internal_team_member_info
    return [
        label for field_name, label in INTERNAL_MEMBER_FIELDS.items()
        if _blank(getattr(info, field_name))
    ]


def contract_source_checks(state: ProcessState) -> list[str]:
    """Checks specific to the contract source, each gated on the previous."""
    if state.contract_source_type == ContractSourceType.EXISTING:
        if not state.selected_player:
            return ["Contract template: select a player"]
        if is_extracted_data_empty(state.extracted_contract_data):
            return ["Contract template: load a contract template"]
        return []

    if state.contract_photo is None:
        return ["Contract photo: attach a photo of the contract"]
    verification = state.photo_verification
    if verification is None or not verification.is_complete_and_clear:
        return ["Contract photo: photo not verified as complete and clear"]
    if is_extracted_data_empty(state.extracted_contract_data):
        return ["Contract photo: contract data not extracted"]
    return []


def company_checks(state: ProcessState) -> list[str]:
    """Company identity fields, PJ buyers only."""
    if state.buyer_type != BuyerType.PJ:
        return []
    company = state.company_info
    missing: list[str] = []
    if company is None or _blank(company.legal_name):
        missing.append("Company: legal name")
    if company is None or _blank(company.company_tax_id):
        missing.append("Company: tax id (CNPJ)")
    return missing


def document_checks(state: ProcessState) -> list[str]:
    """Required attachments for the buyer type."""
    missing: list[str] = []
    if state.buyer_type == BuyerType.PF:
        pairs = PERSONAL_DOCUMENT_SLOTS.values()
        if not any(_attached(state, front) and _attached(state, back) for front, back in pairs):
            label = PERSONAL_DOCUMENT_LABELS[state.personal_document_kind]
            missing.append(f"Documents: {label} front and back")
    else:
        if not _attached(state, DocumentSlotKey.COMPANY_REGISTRATION):
            missing.append("Documents: company registration")
        if not (
            _attached(state, DocumentSlotKey.REPRESENTATIVE_ID_FRONT)
            and _attached(state, DocumentSlotKey.REPRESENTATIVE_ID_BACK)
        ):
            missing.append("Documents: representative ID front and back")
    if not _attached(state, DocumentSlotKey.PROOF_OF_ADDRESS):
        missing.append("Documents: proof of address")
    return missing


def buyer_type_checks(state: ProcessState) -> list[str]:
    """Company identity (PJ) followed by the required attachments."""
    return company_checks(state) + document_checks(state)


def buyer_contact_checks(state: ProcessState) -> list[str]:
    """Buyer (or representative) contact and address fields."""
    subject = "Representative" if state.buyer_type == BuyerType.PJ else "Buyer"
    info = state.buyer_info
    fields = {**CONTACT_FIELDS, **ADDRESS_FIELDS}
    return [
        f"{subject}: {label}" for field_name, label in fields.items()
        if _blank(getattr(info, field_name))
    ]


def signed_photo_checks(state: ProcessState) -> list[str]:
    """The signed contract must be photographed before submission."""
    if state.signed_contract_photo is None:
        return ["Signed contract: attach a photo of the signed contract"]
    return []


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------

FULL_CHECKS: tuple[Check, ...] = (
    internal_member_checks,
    contract_source_checks,
    buyer_type_checks,
    buyer_contact_checks,
)


def compute_missing_fields(state: ProcessState) -> list[str]:
    """Every deficiency blocking submission, in category order.

    Returns an empty list iff the state is ready to print and submit.
    """
    missing: list[str] = []
    for check in FULL_CHECKS:
        missing.extend(check(state))
    return missing


def _initial_data_checks(state: ProcessState) -> list[str]:
    missing = internal_member_checks(state)
    if state.contract_source_type == ContractSourceType.EXISTING:
        missing.extend(contract_source_checks(state))
    return missing


# Checks required to *leave* each step going forward.
STEP_EXIT_CHECKS: dict[Step, tuple[Check, ...]] = {
    Step.INITIAL_DATA: (_initial_data_checks,),
    Step.CONTRACT_SOURCE: (contract_source_checks,),
    Step.DOCUMENTS: (contract_source_checks, buyer_type_checks),
    Step.REVIEW: (compute_missing_fields,),
    Step.PRINT: (compute_missing_fields,),
    Step.SIGNED_PHOTO: (signed_photo_checks, compute_missing_fields),
    Step.CONFIRMATION: (),
}


def missing_fields_for_step(state: ProcessState, step: Step) -> list[str]:
    """Deficiencies blocking the forward transition out of *step*."""
    missing: list[str] = []
    for check in STEP_EXIT_CHECKS[step]:
        missing.extend(check(state))
    return missing
