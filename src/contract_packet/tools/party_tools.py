"""Heuristic parsing of contract party entries.

Extracted contracts list their parties as free text such as
``"CLIENTE EXEMPLO, COMO COMPRADOR"`` or ``"ACME LTDA, CNPJ ..., como
VENDEDORA"``. These helpers decide which entry is the buyer or a company,
clean a display name out of the entry, and classify document numbers by
digit count. Matching is best effort: all marker lists live in one
:class:`PartyMarkers` table so deployments can tune them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from functools import cached_property

import structlog

logger = structlog.get_logger(__name__)

PERSONAL_TAX_ID_DIGITS = 11
COMPANY_TAX_ID_DIGITS = 14


class TaxIdKind(str, Enum):
    """Classification of a document number by its digit count."""

    PERSONAL = "personal"
    COMPANY = "company"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PartyMarkers:
    """Marker words used to classify and clean party entries.

    All comparisons are case-insensitive and anchored on word boundaries.
    """

    buyer_roles: tuple[str, ...] = (
        "comprador",
        "compradora",
        "cliente",
        "contratante",
        "adquirente",
        "buyer",
        "client",
        "contracting party",
    )
    seller_roles: tuple[str, ...] = (
        "vendedor",
        "vendedora",
        "contratada",
        "contratado",
        "seller",
        "vendor",
    )
    company_forms: tuple[str, ...] = (
        "empresa",
        "ltda",
        "eireli",
        "s/a",
        "s.a.",
        "me",
        "epp",
        "company",
        "ltd",
        "inc",
        "llc",
    )
    honorifics: tuple[str, ...] = (
        "sr",
        "sra",
        "srta",
        "dr",
        "dra",
        "mr",
        "mrs",
        "ms",
    )
    qualifiers: tuple[str, ...] = (
        "como",
        "na qualidade de",
        "doravante denominado",
        "doravante denominada",
        "as",
        "as the",
    )

    @property
    def roles(self) -> tuple[str, ...]:
        return self.buyer_roles + self.seller_roles

    @cached_property
    def buyer_pattern(self) -> re.Pattern[str]:
        return _word_alternation(self.buyer_roles)

    @cached_property
    def seller_pattern(self) -> re.Pattern[str]:
        return _word_alternation(self.seller_roles)

    @cached_property
    def company_pattern(self) -> re.Pattern[str]:
        return _word_alternation(self.company_forms + self.seller_roles)

    @cached_property
    def honorific_pattern(self) -> re.Pattern[str]:
        return re.compile(
            rf"(?<!\w)(?:{_alternation(self.honorifics)})\.?(?!\w)", re.IGNORECASE
        )

    @cached_property
    def leading_role_pattern(self) -> re.Pattern[str]:
        return re.compile(rf"^\s*(?:{_alternation(self.roles)})\s*[:\-]\s*", re.IGNORECASE)

    @cached_property
    def trailing_role_pattern(self) -> re.Pattern[str]:
        roles = _alternation(self.roles)
        qualifiers = _alternation(self.qualifiers)
        return re.compile(
            rf"[\s,;\-(]+(?:(?:{qualifiers})\s+)?(?:{roles})\)?\s*$",
            re.IGNORECASE,
        )


def _alternation(words: tuple[str, ...]) -> str:
    # Longest first so "compradora" wins over "comprador".
    return "|".join(
        re.escape(w).replace(r"\ ", r"\s+") for w in sorted(set(words), key=len, reverse=True)
    )


def _word_alternation(words: tuple[str, ...]) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w)(?:{_alternation(words)})(?!\w)", re.IGNORECASE)


DEFAULT_MARKERS = PartyMarkers()


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def is_buyer_party(text: str, markers: PartyMarkers = DEFAULT_MARKERS) -> bool:
    """``True`` when the entry names the buyer role."""
    return bool(markers.buyer_pattern.search(text))


def is_company_party(text: str, markers: PartyMarkers = DEFAULT_MARKERS) -> bool:
    """``True`` when the entry names a company (or the selling company)."""
    return bool(markers.company_pattern.search(text))


def is_seller_party(text: str, markers: PartyMarkers = DEFAULT_MARKERS) -> bool:
    """``True`` when the entry names the selling side."""
    return bool(markers.seller_pattern.search(text))


def count_digits(value: str | None) -> int:
    if not value:
        return 0
    return sum(1 for ch in value if ch.isdigit())


def classify_tax_id(value: str | None) -> TaxIdKind:
    """Classify a document number: 11 digits personal, 14 digits company."""
    digits = count_digits(value)
    if digits == PERSONAL_TAX_ID_DIGITS:
        return TaxIdKind.PERSONAL
    if digits == COMPANY_TAX_ID_DIGITS:
        return TaxIdKind.COMPANY
    return TaxIdKind.UNKNOWN


# ---------------------------------------------------------------------------
# Name extraction
# ---------------------------------------------------------------------------


def extract_party_name(text: str, markers: PartyMarkers = DEFAULT_MARKERS) -> str:
    """Clean a person or company name out of a party entry.

    Drops a leading ``"ROLE:"`` label, everything after the first comma
    or parenthesis (document numbers and role qualifiers live there), a
    trailing role qualifier such as ``"como COMPRADOR"``, and honorific
    prefixes. Returns ``""`` when nothing name-like is left.

    >>> extract_party_name("CLIENTE EXEMPLO, COMO COMPRADOR")
    'CLIENTE EXEMPLO'
    >>> extract_party_name("Sr. João Silva (comprador)")
    'João Silva'
    """
    name = markers.leading_role_pattern.sub("", text, count=1)
    name = re.split(r"[,;(]", name, maxsplit=1)[0]

    # Qualifiers can stack: "Fulano como cliente comprador"
    previous = None
    while previous != name:
        previous = name
        name = markers.trailing_role_pattern.sub("", name)

    name = markers.honorific_pattern.sub("", name)
    name = re.sub(r"\s+", " ", name).strip(" .-:")

    # A bare marker is not a name.
    if not name or markers.leading_role_pattern.match(name + ":"):
        logger.debug("party_name_not_found", entry=text)
        return ""
    return name
