"""Sample analysis results used by the offline reader agents.

Keys are the keywords the agents look for in an image reference (file
name or URL) when no explicit fixture matches.
"""

from __future__ import annotations

from contract_packet.models import (
    DocumentAnalysis,
    ExtractedContractData,
    PhotoVerification,
)

SAMPLE_DOCUMENT_ANALYSES: dict[str, DocumentAnalysis] = {
    "id_front": DocumentAnalysis(
        full_name="MARIA APARECIDA DOS SANTOS",
        tax_id="123.456.789-09",
        birth_date="12/03/1985",
        mother_name="JOANA DOS SANTOS",
        id_number="12.345.678-9 SSP/SP",
    ),
    "license_front": DocumentAnalysis(
        full_name="JOSE CARLOS PEREIRA",
        tax_id="987.654.321-00",
        birth_date="01/07/1979",
        id_number="MG-11.222.333",
    ),
    "representative_id_front": DocumentAnalysis(
        full_name="ANA PAULA FERREIRA",
        tax_id="321.654.987-11",
        birth_date="22/11/1990",
    ),
    "proof_of_address": DocumentAnalysis(
        full_name="MARIA APARECIDA DOS SANTOS",
        address_line="R. Albanir Peres, 1415",
        neighborhood="Vila Fatima",
        city="Jatai",
        state="GO",
        postal_code="75.803-140",
    ),
    "company_registration": DocumentAnalysis(
        full_name="EXEMPLO COMERCIO DIGITAL LTDA",
        tax_id="12.345.678/0001-90",
    ),
}

# Back sides rarely carry the fields the resolver uses.
SAMPLE_DOCUMENT_ANALYSES["id_back"] = DocumentAnalysis(
    mother_name="JOANA DOS SANTOS",
    id_number="12.345.678-9 SSP/SP",
)
SAMPLE_DOCUMENT_ANALYSES["license_back"] = DocumentAnalysis()
SAMPLE_DOCUMENT_ANALYSES["representative_id_back"] = DocumentAnalysis()

SAMPLE_CONTRACT_DATA = ExtractedContractData(
    party_names=[
        "JOÃO DA SILVA, CPF 111.444.777-35, como COMPRADOR",
        "EXEMPLO PRODUTOS DIGITAIS LTDA, como VENDEDORA",
    ],
    party_documents=["111.444.777-35", "11.222.333/0001-81"],
    subject="Compra de curso online de finanças",
    price="R$ 2.400,00 (dois mil e quatrocentos reais)",
    payment_terms="Entrada de R$ 400,00 e saldo em 4x R$ 500,00",
    term="Acesso por 12 meses a contar da assinatura",
    signing_place_and_date="São Paulo, 02 de Janeiro de 2025",
    venue="Foro da Comarca de São Paulo/SP",
)

CLEAR_PHOTO = PhotoVerification(is_complete_and_clear=True)

UNCLEAR_PHOTO_REASONS: dict[str, str] = {
    "blur": "The photo is blurred; text is not readable.",
    "dark": "The photo is too dark to read the contract.",
    "crop": "Part of the contract is outside the photo.",
    "partial": "Part of the contract is outside the photo.",
    "glare": "Glare hides part of the contract text.",
}
