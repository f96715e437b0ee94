"""Exceptions raised by the wizard controller and its collaborators."""

from __future__ import annotations

from contract_packet.models import Step


class WizardError(Exception):
    """Base class for recoverable wizard failures."""


class ProcessNotStartedError(WizardError):
    """The state carries no process id; the operator must start over."""

    def __init__(self) -> None:
        super().__init__("No process id found. Start a new process.")


class MissingFieldsError(WizardError):
    """A forward transition was refused because fields are missing."""

    def __init__(self, step: Step, missing: list[str]) -> None:
        self.step = step
        self.missing = list(missing)
        super().__init__(
            f"Cannot leave step '{step.value}': {len(self.missing)} missing field(s)."
        )


class InvalidActionError(WizardError):
    """The requested action does not apply to the current state."""


class AnalysisError(WizardError):
    """An external analysis call failed."""


class SubmissionFailedError(WizardError):
    """The submission collaborator rejected or failed the final packet."""
