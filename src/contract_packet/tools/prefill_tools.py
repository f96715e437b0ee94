"""Field pre-fill resolver.

Copies values read from uploaded documents and from extracted contract
text into the buyer and company records. Only empty fields are ever
written, so a value typed by the operator (or filled by an earlier pass)
always wins, and running the resolver again on its own output changes
nothing.

Priority, first match wins per field:

1. ``name`` / ``tax_id``: ID card front, then driver's license front,
   then representative ID front.
2. Address fields: proof of address only.
3. Company fields (PJ): legal name from the company registration
   document; company tax id from its first secondary identifier with
   exactly 14 digits.
4. Contract parties: the buyer entry (role marker) and, for PJ, the
   buying company entry (company marker, never a seller entry), with
   document numbers classified by digit count.
"""

from __future__ import annotations

from typing import Iterable

import structlog
from pydantic import BaseModel

from contract_packet.flow.state import ProcessState
from contract_packet.models import (
    BuyerType,
    DocumentAnalysis,
    DocumentSlotKey,
    ExtractedContractData,
)
from contract_packet.tools.party_tools import (
    DEFAULT_MARKERS,
    PartyMarkers,
    TaxIdKind,
    classify_tax_id,
    extract_party_name,
    is_buyer_party,
    is_company_party,
    is_seller_party,
)

logger = structlog.get_logger(__name__)

IDENTITY_SOURCES: tuple[DocumentSlotKey, ...] = (
    DocumentSlotKey.ID_FRONT,
    DocumentSlotKey.LICENSE_FRONT,
    DocumentSlotKey.REPRESENTATIVE_ID_FRONT,
)

# buyer field -> analysis field
IDENTITY_FIELDS: dict[str, str] = {
    "name": "full_name",
    "tax_id": "tax_id",
}

ADDRESS_FIELDS: dict[str, str] = {
    "address_line": "address_line",
    "neighborhood": "neighborhood",
    "city": "city",
    "state": "state",
    "postal_code": "postal_code",
}

COMPANY_TAX_ID_CANDIDATES: tuple[str, ...] = ("tax_id", "id_number")


class _Filler:
    """Writes values into empty fields and records what it filled."""

    def __init__(self) -> None:
        self.filled: dict[str, str] = {}

    def fill(
        self,
        record: BaseModel,
        label: str,
        field_name: str,
        value: str | None,
        source: str,
    ) -> None:
        if value is None or not value.strip():
            return
        current = getattr(record, field_name)
        if current and current.strip():
            return
        setattr(record, field_name, value.strip())
        self.filled[f"{label}.{field_name}"] = source


def _analysis(state: ProcessState, key: DocumentSlotKey) -> DocumentAnalysis | None:
    slot = state.slot(key)
    if slot is None or not isinstance(slot.analysis_result, DocumentAnalysis):
        return None
    return slot.analysis_result


def _fill_from_documents(state: ProcessState, filler: _Filler) -> None:
    buyer = state.buyer_info

    for buyer_field, analysis_field in IDENTITY_FIELDS.items():
        for key in IDENTITY_SOURCES:
            analysis = _analysis(state, key)
            if analysis is None:
                continue
            filler.fill(
                buyer, "buyer_info", buyer_field, getattr(analysis, analysis_field), key.value
            )

    proof = _analysis(state, DocumentSlotKey.PROOF_OF_ADDRESS)
    if proof is not None:
        for buyer_field, analysis_field in ADDRESS_FIELDS.items():
            filler.fill(
                buyer,
                "buyer_info",
                buyer_field,
                getattr(proof, analysis_field),
                DocumentSlotKey.PROOF_OF_ADDRESS.value,
            )

    if state.buyer_type != BuyerType.PJ or state.company_info is None:
        return

    registration = _analysis(state, DocumentSlotKey.COMPANY_REGISTRATION)
    if registration is None:
        return
    source = DocumentSlotKey.COMPANY_REGISTRATION.value
    filler.fill(state.company_info, "company_info", "legal_name", registration.full_name, source)
    for candidate in COMPANY_TAX_ID_CANDIDATES:
        value = getattr(registration, candidate)
        if classify_tax_id(value) == TaxIdKind.COMPANY:
            filler.fill(state.company_info, "company_info", "company_tax_id", value, source)
            break


def _party_document(data: ExtractedContractData, index: int) -> str | None:
    if index < len(data.party_documents):
        return data.party_documents[index]
    return None


def _company_candidates(
    parties: list[str], markers: PartyMarkers
) -> Iterable[int]:
    """Party indexes that may name the buying company, best first.

    Entries carrying both a buyer and a company marker come first, then
    company entries without any role. Seller entries never qualify: they
    name the other side of the contract.
    """
    company = [i for i, p in enumerate(parties) if is_company_party(p, markers)]
    buying = [i for i in company if is_buyer_party(parties[i], markers)]
    others = [
        i for i in company
        if i not in buying and not is_seller_party(parties[i], markers)
    ]
    return buying + others


def _fill_from_contract(
    state: ProcessState, filler: _Filler, markers: PartyMarkers
) -> None:
    data = state.extracted_contract_data
    if data is None or not data.party_names:
        return

    parties = data.party_names
    is_pj = state.buyer_type == BuyerType.PJ and state.company_info is not None

    for index, party in enumerate(parties):
        if not is_buyer_party(party, markers):
            continue
        if is_pj and is_company_party(party, markers):
            # The buying company, handled below; not the representative.
            continue
        filler.fill(
            state.buyer_info,
            "buyer_info",
            "name",
            extract_party_name(party, markers),
            "contract_parties",
        )
        document = _party_document(data, index)
        kind = classify_tax_id(document)
        if kind == TaxIdKind.PERSONAL:
            filler.fill(state.buyer_info, "buyer_info", "tax_id", document, "contract_parties")
        elif kind == TaxIdKind.COMPANY and is_pj:
            filler.fill(
                state.company_info, "company_info", "company_tax_id", document, "contract_parties"
            )
        break

    if not is_pj:
        return

    for index in _company_candidates(parties, markers):
        filler.fill(
            state.company_info,
            "company_info",
            "legal_name",
            extract_party_name(parties[index], markers),
            "contract_parties",
        )
        document = _party_document(data, index)
        if classify_tax_id(document) == TaxIdKind.COMPANY:
            filler.fill(
                state.company_info, "company_info", "company_tax_id", document, "contract_parties"
            )
        break


def resolve_prefill_with_report(
    state: ProcessState,
    markers: PartyMarkers = DEFAULT_MARKERS,
) -> tuple[ProcessState, dict[str, str]]:
    """Pre-fill empty buyer/company fields on a copy of *state*.

    Args:
        state: The current process state; it is not modified.
        markers: Marker table for contract party parsing.

    Returns:
        The updated copy and a mapping of ``"record.field"`` to the
        source that filled it (a slot key or ``"contract_parties"``).
    """
    resolved = state.model_copy(deep=True)
    filler = _Filler()

    _fill_from_documents(resolved, filler)
    _fill_from_contract(resolved, filler, markers)

    if filler.filled:
        logger.info(
            "fields_prefilled",
            process_id=state.process_id,
            fields=sorted(filler.filled),
        )
    return resolved, filler.filled


def resolve_prefill(
    state: ProcessState,
    markers: PartyMarkers = DEFAULT_MARKERS,
) -> ProcessState:
    """Return *state* with every resolvable empty field filled."""
    resolved, _ = resolve_prefill_with_report(state, markers)
    return resolved
