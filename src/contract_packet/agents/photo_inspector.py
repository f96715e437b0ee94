"""Photo Inspector agent.

Decides whether a contract photo is complete and clear enough to read.
Works offline: answers come from an explicit fixture table, then from
keywords in the image reference, so no API keys are required.
"""

from __future__ import annotations

import structlog

from contract_packet.errors import AnalysisError
from contract_packet.mock_data.documents import CLEAR_PHOTO, UNCLEAR_PHOTO_REASONS
from contract_packet.models import PhotoVerification

logger = structlog.get_logger(__name__)

ROLE = "Contract Photo Inspector"
GOAL = (
    "Confirm that every part of a photographed contract is visible and "
    "that all of its text is readable."
)


class PhotoInspectorAgent:
    """Offline implementation of the photo clarity check."""

    def __init__(self, fixtures: dict[str, PhotoVerification] | None = None) -> None:
        self.role = ROLE
        self.goal = GOAL
        self.fixtures = dict(fixtures or {})

    async def verify(self, image_ref: str) -> PhotoVerification:
        """Return the clarity verdict for *image_ref*.

        Raises:
            AnalysisError: If the reference is empty.
        """
        if not image_ref:
            raise AnalysisError("No contract photo to verify.")

        if image_ref in self.fixtures:
            result = self.fixtures[image_ref]
        else:
            result = CLEAR_PHOTO
            lowered = image_ref.lower()
            for keyword, reason in UNCLEAR_PHOTO_REASONS.items():
                if keyword in lowered:
                    result = PhotoVerification(is_complete_and_clear=False, reason=reason)
                    break

        logger.info(
            "photo_inspected",
            image_ref=image_ref[:80],
            clear=result.is_complete_and_clear,
        )
        return result
