"""Printable contract rendering.

Builds the print snapshot from a process state and merges it into the
purchase template. Missing values render as bracketed placeholders so
the operator can still print and fill them in by hand.
"""

from __future__ import annotations

import re

import structlog

from contract_packet.errors import InvalidActionError
from contract_packet.flow.state import ProcessState, is_extracted_data_empty
from contract_packet.mock_data.templates import (
    CONTRACT_TEMPLATES,
    DIGITAL_PRODUCT_TEMPLATE_NAME,
    SELLER_DOCUMENT_PLACEHOLDER,
)
from contract_packet.models import BuyerType, PrintData
from contract_packet.tools.party_tools import (
    DEFAULT_MARKERS,
    PartyMarkers,
    extract_party_name,
    is_seller_party,
)

logger = structlog.get_logger(__name__)

DEFAULT_SELLER_NAME = "[NOME DO VENDEDOR]"


def build_print_data(state: ProcessState) -> PrintData:
    """Snapshot the parts of *state* the print step needs.

    Raises:
        InvalidActionError: If no contract data has been extracted or loaded.
    """
    if is_extracted_data_empty(state.extracted_contract_data):
        raise InvalidActionError("There is no contract data to print.")
    return PrintData(
        process_id=state.process_id,
        buyer_type=state.buyer_type,
        extracted_contract_data=state.extracted_contract_data.model_copy(deep=True),
        buyer_info=state.buyer_info.model_copy(),
        company_info=state.company_info.model_copy() if state.company_info else None,
        internal_team_member_info=state.internal_team_member_info.model_copy(),
        selected_player=state.selected_player,
    )


def merge_template(template: str, variables: dict[str, str]) -> str:
    """Replace ``{{name}}`` placeholders in *template* with *variables*."""
    result = template
    for key, value in variables.items():
        result = result.replace("{{" + key + "}}", str(value))

    remaining = re.findall(r"\{\{(\w+)\}\}", result)
    if remaining:
        logger.warning("unresolved_placeholders", placeholders=remaining)

    return result


def _or(value: str | None, placeholder: str) -> str:
    if value is None or not value.strip():
        return placeholder
    return value.strip()


def _seller(data: PrintData, markers: PartyMarkers) -> tuple[str, str]:
    """Seller name and document: the chosen player, else the seller party."""
    contract = data.extracted_contract_data
    player = (data.selected_player or "").upper()
    for index, party in enumerate(contract.party_names):
        if is_seller_party(party, markers) or (player and player in party.upper()):
            name = data.selected_player or extract_party_name(party, markers)
            document = (
                contract.party_documents[index]
                if index < len(contract.party_documents)
                else ""
            )
            return _or(name, DEFAULT_SELLER_NAME), _or(document, SELLER_DOCUMENT_PLACEHOLDER)
    return _or(data.selected_player, DEFAULT_SELLER_NAME), SELLER_DOCUMENT_PLACEHOLDER


def _buyer_block(data: PrintData) -> str:
    buyer = data.buyer_info
    if data.buyer_type == BuyerType.PJ and data.company_info is not None:
        company = data.company_info
        lines = [
            "COMPRADOR (PESSOA JURÍDICA):",
            f"Razão Social: {_or(company.legal_name, '[RAZÃO SOCIAL DA EMPRESA]')}",
            f"CNPJ: {_or(company.company_tax_id, '[CNPJ DA EMPRESA]')}",
            f"Representada por: {_or(buyer.name, '[NOME DO REPRESENTANTE]')}",
            f"CPF do Representante: {_or(buyer.tax_id, '[CPF DO REPRESENTANTE]')}",
            f"E-mail: {_or(buyer.email, '[E-MAIL DO REPRESENTANTE]')}",
            f"Telefone: {_or(buyer.phone, '[TELEFONE DO REPRESENTANTE]')}",
        ]
    else:
        lines = [
            "COMPRADOR:",
            f"Nome: {_or(buyer.name, '[NOME DO COMPRADOR]')}",
            f"CPF: {_or(buyer.tax_id, '[CPF DO COMPRADOR]')}",
            f"E-mail: {_or(buyer.email, '[E-MAIL DO COMPRADOR]')}",
            f"Telefone: {_or(buyer.phone, '[TELEFONE DO COMPRADOR]')}",
        ]
    return "\n".join(lines)


def render_contract(
    data: PrintData,
    template_name: str = DIGITAL_PRODUCT_TEMPLATE_NAME,
    markers: PartyMarkers = DEFAULT_MARKERS,
) -> str:
    """Render the printable contract text for *data*.

    Args:
        data: Print snapshot, usually from :func:`build_print_data`.
        template_name: Key into the contract template table.
        markers: Marker table used to find the seller party.

    Raises:
        InvalidActionError: If *template_name* is unknown.
    """
    template = CONTRACT_TEMPLATES.get(template_name)
    if template is None:
        raise InvalidActionError(f"Unknown contract template '{template_name}'.")

    contract = data.extracted_contract_data
    seller_name, seller_document = _seller(data, markers)

    if data.buyer_type == BuyerType.PJ and data.company_info is not None:
        signature_name = _or(data.company_info.legal_name, "[RAZÃO SOCIAL DA EMPRESA]")
    else:
        signature_name = _or(data.buyer_info.name, "[NOME DO COMPRADOR]")

    notes_block = f"Observações Adicionais: {contract.notes.strip()}\n" if contract.notes else ""

    text = merge_template(
        template,
        {
            "player_suffix": f" - Player: {data.selected_player}" if data.selected_player else "",
            "buyer_block": _buyer_block(data),
            "seller_name": seller_name,
            "seller_document": seller_document,
            "subject": _or(contract.subject, "[NOME DO PRODUTO DIGITAL]"),
            "price": _or(contract.price, "R$ [VALOR TOTAL]"),
            "payment_terms": _or(
                contract.payment_terms,
                "Conforme selecionado pelo COMPRADOR no ato da compra.",
            ),
            "term": _or(contract.term, "[PRAZO DE ACESSO]"),
            "venue": _or(contract.venue, "[CIDADE/UF DO FORO]"),
            "notes_block": notes_block,
            "signing_place_and_date": _or(contract.signing_place_and_date, "[LOCAL E DATA]"),
            "buyer_signature_name": signature_name,
            "internal_name": _or(data.internal_team_member_info.name, "[RESPONSÁVEL INTERNO]"),
            "internal_role": _or(data.internal_team_member_info.role, "[CARGO]"),
        },
    )
    logger.debug("contract_rendered", process_id=data.process_id, template=template_name)
    return text
