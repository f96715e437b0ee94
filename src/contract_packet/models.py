"""Pydantic models for the Contract Packet Wizard.

Defines the value objects collected across the wizard: step identifiers,
buyer and company identity records, photo attachments, AI extraction
results, document slots, the print snapshot, the submission record, and
the events emitted while a process moves through its steps.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WizardModel(BaseModel):
    """Base model that serializes with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Step(str, Enum):
    """Wizard steps, in navigation order."""

    INITIAL_DATA = "initial_data"
    CONTRACT_SOURCE = "contract_source"
    DOCUMENTS = "documents"
    REVIEW = "review"
    PRINT = "print"
    SIGNED_PHOTO = "signed_photo"
    CONFIRMATION = "confirmation"


STEP_ORDER: tuple[Step, ...] = tuple(Step)


class ContractSourceType(str, Enum):
    """Where the contract text comes from."""

    NEW = "new"  # photographed document
    EXISTING = "existing"  # pre-defined template


class BuyerType(str, Enum):
    """Individual (PF) or company (PJ) buyer."""

    PF = "pf"
    PJ = "pj"


class PersonalDocumentKind(str, Enum):
    """Personal identity document chosen for an individual buyer."""

    ID_CARD = "id_card"
    DRIVERS_LICENSE = "drivers_license"


class DocumentSlotKey(str, Enum):
    """Named attachment points for supporting documents."""

    ID_FRONT = "id_front"
    ID_BACK = "id_back"
    LICENSE_FRONT = "license_front"
    LICENSE_BACK = "license_back"
    PROOF_OF_ADDRESS = "proof_of_address"
    COMPANY_REGISTRATION = "company_registration"
    REPRESENTATIVE_ID_FRONT = "representative_id_front"
    REPRESENTATIVE_ID_BACK = "representative_id_back"


# ---------------------------------------------------------------------------
# Identity records
# ---------------------------------------------------------------------------


class BuyerInfo(WizardModel):
    """Buyer (or company representative) contact and address data."""

    name: str = ""
    tax_id: str = ""
    phone: str = ""
    email: str = ""
    address_line: str = ""
    neighborhood: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""


class InternalTeamMemberInfo(BuyerInfo):
    """Staff member responsible for the submission."""

    role: str = ""


class CompanyInfo(WizardModel):
    """Company buyer identity, present only for PJ buyers."""

    legal_name: str = ""
    trade_name: str = ""
    company_tax_id: str = ""


# ---------------------------------------------------------------------------
# Attachments and AI results
# ---------------------------------------------------------------------------


class PhotoAttachment(WizardModel):
    """A photographed page (contract or signed contract)."""

    preview_handle: str
    file_name: str
    storage_handle: str | None = None


class PhotoVerification(WizardModel):
    """Outcome of the photo clarity check."""

    is_complete_and_clear: bool
    reason: str | None = None


class ExtractedContractData(WizardModel):
    """Structured contract fields, all optional."""

    party_names: list[str] = Field(default_factory=list)
    party_documents: list[str] = Field(default_factory=list)
    subject: str | None = None
    price: str | None = None
    payment_terms: str | None = None
    term: str | None = None
    signing_place_and_date: str | None = None
    venue: str | None = None
    notes: str | None = None


class DocumentAnalysis(WizardModel):
    """Personal identity and address fields read from a document image."""

    kind: Literal["fields"] = "fields"
    full_name: str | None = None
    tax_id: str | None = None
    birth_date: str | None = None
    mother_name: str | None = None
    id_number: str | None = None
    address_line: str | None = None
    neighborhood: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None


class AnalysisFailure(WizardModel):
    """The analysis ran but could not read the document."""

    kind: Literal["failed"] = "failed"
    error: str


AnalysisResult = Annotated[
    Union[DocumentAnalysis, AnalysisFailure],
    Field(discriminator="kind"),
]


class DocumentSlot(WizardModel):
    """A document attached to one slot.

    ``attachment_id`` changes on every attach so that analysis results
    started for an earlier file can be recognised and dropped.
    """

    attachment_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    file_name: str
    preview_handle: str
    storage_handle: str | None = None
    analysis_result: AnalysisResult | None = None


# ---------------------------------------------------------------------------
# Print snapshot, submission, events
# ---------------------------------------------------------------------------


class PrintData(WizardModel):
    """Snapshot the print step renders from."""

    process_id: str
    buyer_type: BuyerType
    extracted_contract_data: ExtractedContractData
    buyer_info: BuyerInfo
    company_info: CompanyInfo | None = None
    internal_team_member_info: InternalTeamMemberInfo
    selected_player: str | None = None


class SubmissionRecord(WizardModel):
    """Projection of a finished process handed to the record store."""

    process_id: str
    submitted_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)
    )
    internal_team_member_info: InternalTeamMemberInfo
    buyer_type: BuyerType
    buyer_info: BuyerInfo
    company_info: CompanyInfo | None = None
    contract_source_type: ContractSourceType
    selected_player: str | None = None
    extracted_contract_data: ExtractedContractData | None = None
    original_contract_photo: str | None = None
    signed_contract_photo: str | None = None
    documents: dict[str, DocumentSlot] = Field(default_factory=dict)


class ProcessEvent(WizardModel):
    """Event emitted while a process moves through the wizard."""

    event_type: str
    process_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))
