"""Orchestrator error classes.

Only precondition failures surface as exceptions from a run. Tool failures
are converted to textual results at the handler boundary and budget or
quality-gate outcomes are reported on the result object.
"""

from typing import Optional


class OrchestratorError(RuntimeError):
    """Base exception for orchestrator runs."""

    def __init__(self, message: str, *, page_id: Optional[str] = None):
        self.page_id = page_id
        super().__init__(message)


class MissingContentError(OrchestratorError):
    """Raised when a run is started without a document to improve."""
