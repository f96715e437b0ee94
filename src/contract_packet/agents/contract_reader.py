"""Contract Reader agent.

Extracts parties, subject, price, payment terms, term, signing place and
date, venue and notes from a photographed contract. The offline
implementation answers from a fixture table and falls back to the sample
contract for references that look like contract photos.
"""

from __future__ import annotations

import structlog

from contract_packet.errors import AnalysisError
from contract_packet.mock_data.documents import SAMPLE_CONTRACT_DATA
from contract_packet.models import ExtractedContractData

logger = structlog.get_logger(__name__)

ROLE = "Contract Reader"
GOAL = (
    "Read a photographed contract and return its parties, object, value, "
    "payment conditions, term, signing place and date, and venue."
)

_CONTRACT_KEYWORDS: tuple[str, ...] = ("contract", "contrato")


class ContractReaderAgent:
    """Offline implementation of contract data extraction."""

    def __init__(self, fixtures: dict[str, ExtractedContractData] | None = None) -> None:
        self.role = ROLE
        self.goal = GOAL
        self.fixtures = dict(fixtures or {})

    async def extract(self, image_ref: str) -> ExtractedContractData:
        """Return the contract fields read from *image_ref*.

        Raises:
            AnalysisError: If nothing could be read from the image.
        """
        if image_ref in self.fixtures:
            data = self.fixtures[image_ref]
        elif any(keyword in image_ref.lower() for keyword in _CONTRACT_KEYWORDS):
            data = SAMPLE_CONTRACT_DATA
        else:
            logger.warning("contract_not_readable", image_ref=image_ref[:80])
            raise AnalysisError("The contract data could not be extracted from the photo.")

        logger.info(
            "contract_read",
            image_ref=image_ref[:80],
            parties=len(data.party_names),
        )
        return data.model_copy(deep=True)
