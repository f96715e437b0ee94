"""Contracts of the document analysis capabilities the wizard consumes.

The controller only depends on these protocols. The agents in this
package implement them offline; a deployment can plug in model-backed
implementations with the same signatures.
"""

from __future__ import annotations

from typing import Protocol, Union

from contract_packet.models import (
    AnalysisFailure,
    DocumentAnalysis,
    ExtractedContractData,
    PhotoVerification,
)


class PhotoVerifier(Protocol):
    """Checks that a contract photo is complete and readable."""

    async def verify(self, image_ref: str) -> PhotoVerification: ...


class ContractExtractor(Protocol):
    """Reads structured contract fields from a contract photo.

    Raises on failure; there is no partial result.
    """

    async def extract(self, image_ref: str) -> ExtractedContractData: ...


class DocumentExtractor(Protocol):
    """Reads identity and address fields from a document photo.

    An unreadable document is a normal result (:class:`AnalysisFailure`),
    not an exception.
    """

    async def extract(self, image_ref: str) -> Union[DocumentAnalysis, AnalysisFailure]: ...
