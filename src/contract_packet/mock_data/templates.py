"""Pre-defined contract templates for the ``existing`` contract source.

An operator who does not photograph a contract picks a player (the
seller) and loads the digital-product purchase template, which fills the
extracted contract data exactly as a photo extraction would.
"""

from __future__ import annotations

from contract_packet.models import ExtractedContractData

PLAYERS: tuple[str, ...] = (
    "Pablo Marçal",
    "Antônio Fogaça",
    "Diego Vicente",
    "Diego Abner",
    "Patrícia Pimentel",
    "Matheus Ribeiro",
    "Rogério Penna",
)

DIGITAL_PRODUCT_TEMPLATE_NAME = "Modelo de Compra de Produto Digital"

SELLER_DOCUMENT_PLACEHOLDER = "[CNPJ DA EMPRESA VENDEDORA]"


def build_template_data(player: str) -> ExtractedContractData:
    """Contract data of the digital-product template for *player*."""
    return ExtractedContractData(
        party_names=["CLIENTE EXEMPLO, COMO COMPRADOR", f"{player}, COMO VENDEDOR"],
        party_documents=["000.000.000-00", SELLER_DOCUMENT_PLACEHOLDER],
        subject=f"PRODUTO DIGITAL (Player: {player})",
        price="R$ 1.000,00 (mil reais)",
        payment_terms="Pagamento único via Pix.",
        term="Acesso por 12 meses",
        signing_place_and_date="São Paulo, Data Atual",
        venue="Comarca de São Paulo/SP",
        notes=f"Contrato modelo para {player} carregado para demonstração.",
    )


CONTRACT_TEMPLATES: dict[str, str] = {
    DIGITAL_PRODUCT_TEMPLATE_NAME: (
        "CONTRATO DE COMPRA DE PRODUTO DIGITAL\n"
        "Instrumento Particular de Compra e Acesso{{player_suffix}}\n"
        "\n"
        "Pelo presente instrumento particular, de um lado:\n"
        "{{buyer_block}}\n"
        "\n"
        "E de outro lado:\n"
        "Nome: {{seller_name}}\n"
        "CNPJ/CPF: {{seller_document}}\n"
        "Endereço: [ENDEREÇO COMPLETO DA EMPRESA VENDEDORA]\n"
        "E-mail: [E-MAIL DA EMPRESA VENDEDORA]\n"
        "\n"
        "Têm entre si justo e contratado o seguinte:\n"
        "\n"
        "1. OBJETO: {{subject}}\n"
        "2. VALOR: {{price}}\n"
        "3. CONDIÇÕES DE PAGAMENTO: {{payment_terms}}\n"
        "4. PRAZO: {{term}}\n"
        "5. FORO: {{venue}}\n"
        "{{notes_block}}"
        "\n"
        "{{signing_place_and_date}}\n"
        "\n"
        "______________________________\n"
        "{{buyer_signature_name}}\n"
        "\n"
        "______________________________\n"
        "{{seller_name}}\n"
        "\n"
        "Responsável interno: {{internal_name}} ({{internal_role}})\n"
    ),
}
