"""
Typed errors raised by the project asset pipeline.

Each pipeline stage raises exactly one error kind so that a failed project
can be reported with a specific cause:

- DownloadError: archive could not be fetched
- ExtractionError: archive bytes could not be unpacked
- NotFoundError: manifest and extracted files do not line up
- MergeError: a PDF could not be parsed or combined
- PersistError: the merged PDF could not be written
- DeliveryError: the persisted PDF could not be handed to the messaging client

CleanupWarning is not an error: it is issued through the ``warnings`` module
when a workspace could not be removed and never changes a project's outcome.
"""

from __future__ import annotations

from typing import Any, Dict


class PipelineError(Exception):
    """
    Base class for every failure that ends a single project's processing.

    Attributes:
        message: Human-readable cause, safe to return to API clients
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class DownloadError(PipelineError):
    """Network failure, non-success status, timeout or truncated body."""


class ExtractionError(PipelineError):
    """Malformed archive data or a write failure while unpacking."""


class NotFoundError(PipelineError):
    """Manifest lists no usable filename, or no listed file exists on disk."""


class MergeError(PipelineError):
    """A present PDF input is structurally corrupt."""


class PersistError(PipelineError):
    """Writing the merged PDF to the output directory failed."""


class DeliveryError(PipelineError):
    """The messaging collaborator rejected or could not receive the document."""


class InternalError(PipelineError):
    """Unexpected exception captured so that sibling projects keep running."""


class CleanupWarning(UserWarning):
    """A workspace directory could not be removed."""
