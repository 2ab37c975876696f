from __future__ import annotations
from typing import Dict, List, Optional


class BadUpload(Exception):
    """Staged or proposed content (or the records built from it) failed validation."""

    def __init__(self, message: str, errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}


class Forbidden(Exception):
    """The acting user lacks the capability an action requires."""


class NotPending(Exception):
    """A transition was attempted on a change request that already left pending."""
