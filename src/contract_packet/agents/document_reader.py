"""Document Reader agent.

Reads personal identity and address fields (name, tax id, birth date,
mother's name, ID number, street, neighborhood, city, state, postal
code) from ID cards, driver's licenses, company registrations and
proofs of address. Unreadable documents come back as an
:class:`AnalysisFailure` value rather than an exception.
"""

from __future__ import annotations

from typing import Union

import structlog

from contract_packet.mock_data.documents import SAMPLE_DOCUMENT_ANALYSES
from contract_packet.models import AnalysisFailure, DocumentAnalysis

logger = structlog.get_logger(__name__)

ROLE = "Identity Document Reader"
GOAL = (
    "Extract the holder's identity and address fields from a Brazilian "
    "personal or company document, keeping only clearly legible values."
)

UNRECOGNIZED = "Document not recognized; fill the fields manually."


class DocumentReaderAgent:
    """Offline implementation of document field extraction."""

    def __init__(
        self,
        fixtures: dict[str, Union[DocumentAnalysis, AnalysisFailure]] | None = None,
    ) -> None:
        self.role = ROLE
        self.goal = GOAL
        self.fixtures = dict(fixtures or {})

    async def extract(self, image_ref: str) -> Union[DocumentAnalysis, AnalysisFailure]:
        """Return the fields read from *image_ref*, or a failure value."""
        if image_ref in self.fixtures:
            result = self.fixtures[image_ref]
        else:
            result = self._match_sample(image_ref) or AnalysisFailure(error=UNRECOGNIZED)

        logger.info(
            "document_read",
            image_ref=image_ref[:80],
            outcome=result.kind,
        )
        return result.model_copy(deep=True)

    def _match_sample(self, image_ref: str) -> DocumentAnalysis | None:
        lowered = image_ref.lower()
        # Longest keyword first: "representative_id_front" before "id_front".
        for keyword in sorted(SAMPLE_DOCUMENT_ANALYSES, key=len, reverse=True):
            if keyword in lowered:
                return SAMPLE_DOCUMENT_ANALYSES[keyword]
        return None
