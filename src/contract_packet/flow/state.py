"""Process state for the contract packet wizard.

``ProcessState`` is the single source of truth for everything collected
across the wizard steps. It is a plain data record: the controller
mutates it, the pre-fill resolver derives new copies of it, and the
persistence adapter stores it as JSON text.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from pydantic import Field, model_validator

from contract_packet.models import (
    BuyerInfo,
    BuyerType,
    CompanyInfo,
    ContractSourceType,
    DocumentSlot,
    DocumentSlotKey,
    ExtractedContractData,
    InternalTeamMemberInfo,
    PersonalDocumentKind,
    PhotoAttachment,
    PhotoVerification,
    Step,
    WizardModel,
)

PERSONAL_DOCUMENT_SLOTS: dict[PersonalDocumentKind, tuple[DocumentSlotKey, DocumentSlotKey]] = {
    PersonalDocumentKind.ID_CARD: (DocumentSlotKey.ID_FRONT, DocumentSlotKey.ID_BACK),
    PersonalDocumentKind.DRIVERS_LICENSE: (
        DocumentSlotKey.LICENSE_FRONT,
        DocumentSlotKey.LICENSE_BACK,
    ),
}

PF_ONLY_SLOTS: frozenset[DocumentSlotKey] = frozenset(
    {
        DocumentSlotKey.ID_FRONT,
        DocumentSlotKey.ID_BACK,
        DocumentSlotKey.LICENSE_FRONT,
        DocumentSlotKey.LICENSE_BACK,
    }
)

PJ_ONLY_SLOTS: frozenset[DocumentSlotKey] = frozenset(
    {
        DocumentSlotKey.COMPANY_REGISTRATION,
        DocumentSlotKey.REPRESENTATIVE_ID_FRONT,
        DocumentSlotKey.REPRESENTATIVE_ID_BACK,
    }
)


def _empty_slots() -> dict[DocumentSlotKey, DocumentSlot | None]:
    return {key: None for key in DocumentSlotKey}


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class ProcessState(WizardModel):
    """Everything collected for one in-progress contract submission."""

    process_id: str = ""
    current_step: Step = Step.INITIAL_DATA

    contract_source_type: ContractSourceType = ContractSourceType.NEW
    buyer_type: BuyerType = BuyerType.PF
    personal_document_kind: PersonalDocumentKind = PersonalDocumentKind.ID_CARD

    # Identity data
    buyer_info: BuyerInfo = Field(default_factory=BuyerInfo)
    company_info: CompanyInfo | None = None
    internal_team_member_info: InternalTeamMemberInfo = Field(
        default_factory=InternalTeamMemberInfo
    )

    # Contract source
    selected_player: str | None = None
    selected_template_name: str | None = None
    contract_photo: PhotoAttachment | None = None
    photo_verification: PhotoVerification | None = None
    extracted_contract_data: ExtractedContractData | None = None

    # Attachments
    document_slots: dict[DocumentSlotKey, DocumentSlot | None] = Field(
        default_factory=_empty_slots
    )
    signed_contract_photo: PhotoAttachment | None = None

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def _normalize(self) -> ProcessState:
        # Every slot key is always present, and company data follows buyer type.
        for key in DocumentSlotKey:
            self.document_slots.setdefault(key, None)
        if self.buyer_type == BuyerType.PJ and self.company_info is None:
            self.company_info = CompanyInfo()
        elif self.buyer_type == BuyerType.PF and self.company_info is not None:
            self.company_info = None
        return self

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_json(self) -> str:
        """Serialize to the flat JSON text stored by the persistence layer."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, text: str) -> ProcessState:
        """Inverse of :meth:`to_json`."""
        return cls.model_validate_json(text)

    # ------------------------------------------------------------------
    # Convenience accessors
    # ------------------------------------------------------------------

    def slot(self, key: DocumentSlotKey) -> DocumentSlot | None:
        return self.document_slots.get(key)

    def touch(self) -> None:
        self.updated_at = _utcnow()


def new_process_state(process_id: str | None = None) -> ProcessState:
    """Return the all-empty state for a newly started process."""
    return ProcessState(process_id=process_id or str(uuid.uuid4()))


def relevant_slots(
    buyer_type: BuyerType,
    personal_document_kind: PersonalDocumentKind,
) -> tuple[DocumentSlotKey, ...]:
    """Slots that take part in validation and pre-fill for a buyer setup."""
    if buyer_type == BuyerType.PJ:
        return (
            DocumentSlotKey.COMPANY_REGISTRATION,
            DocumentSlotKey.REPRESENTATIVE_ID_FRONT,
            DocumentSlotKey.REPRESENTATIVE_ID_BACK,
            DocumentSlotKey.PROOF_OF_ADDRESS,
        )
    front, back = PERSONAL_DOCUMENT_SLOTS[personal_document_kind]
    return (front, back, DocumentSlotKey.PROOF_OF_ADDRESS)


def is_extracted_data_empty(data: ExtractedContractData | None) -> bool:
    """``True`` unless at least one extracted field carries a value."""
    if data is None:
        return True
    for value in data.model_dump().values():
        if isinstance(value, list):
            if value:
                return False
        elif value not in (None, ""):
            return False
    return True
