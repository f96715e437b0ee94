"""Final submission of a completed contract packet.

The wizard hands a :class:`SubmissionRecord` projection of its state to a
``SubmissionService`` and receives a confirmation id back. The in-memory
service keeps submitted records for the lifetime of the process and
announces each one to the finance and legal mailboxes (plus the buyer)
through the log.
"""

from __future__ import annotations

import uuid
from typing import Protocol

import structlog

from contract_packet.flow.state import ProcessState
from contract_packet.models import ContractSourceType, SubmissionRecord

logger = structlog.get_logger(__name__)

DEFAULT_RECIPIENTS: tuple[str, ...] = ("financeiro@empresa.com", "juridico@empresa.com")


class SubmissionService(Protocol):
    """Permanent record store for finished processes."""

    async def submit(self, record: SubmissionRecord) -> str: ...


def build_submission_record(state: ProcessState) -> SubmissionRecord:
    """Project the state onto what the record store keeps."""
    original_photo = None
    if state.contract_source_type == ContractSourceType.NEW and state.contract_photo:
        original_photo = state.contract_photo.preview_handle
    return SubmissionRecord(
        process_id=state.process_id,
        internal_team_member_info=state.internal_team_member_info.model_copy(),
        buyer_type=state.buyer_type,
        buyer_info=state.buyer_info.model_copy(),
        company_info=state.company_info.model_copy() if state.company_info else None,
        contract_source_type=state.contract_source_type,
        selected_player=state.selected_player,
        extracted_contract_data=(
            state.extracted_contract_data.model_copy(deep=True)
            if state.extracted_contract_data
            else None
        ),
        original_contract_photo=original_photo,
        signed_contract_photo=(
            state.signed_contract_photo.preview_handle
            if state.signed_contract_photo
            else None
        ),
        documents={
            key.value: slot.model_copy(deep=True)
            for key, slot in state.document_slots.items()
            if slot is not None
        },
    )


class InMemorySubmissionService:
    """Keeps submitted records in memory and returns generated ids."""

    def __init__(self, recipients: tuple[str, ...] | list[str] = DEFAULT_RECIPIENTS) -> None:
        self.recipients = tuple(recipients)
        self._records: dict[str, SubmissionRecord] = {}

    async def submit(self, record: SubmissionRecord) -> str:
        """Store *record* and return its confirmation id."""
        confirmation_id = uuid.uuid4().hex[:20]
        self._records[confirmation_id] = record.model_copy(deep=True)

        recipients = list(self.recipients)
        if record.buyer_info.email:
            recipients.append(record.buyer_info.email)

        logger.info(
            "submission_recorded",
            confirmation_id=confirmation_id,
            process_id=record.process_id,
            documents=len(record.documents),
        )
        logger.info(
            "submission_notification",
            confirmation_id=confirmation_id,
            recipients=recipients,
            buyer=record.buyer_info.name,
            contract_subject=(
                record.extracted_contract_data.subject
                if record.extracted_contract_data
                else None
            ),
        )
        return confirmation_id

    def get(self, confirmation_id: str) -> SubmissionRecord | None:
        return self._records.get(confirmation_id)

    def list_records(self) -> list[SubmissionRecord]:
        return list(self._records.values())
