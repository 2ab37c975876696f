from __future__ import annotations
import enum
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from app.models.notebook import Notebook
    from app.models.user import User


class Capability(str, enum.Enum):
    VIEW = "view"
    EDIT = "edit"
    ADMIN = "admin"


@dataclass(frozen=True)
class AuthContext:
    """
    The acting user plus the capability checks every workflow operation needs.

    Built once per request by the auth dependency and handed to the crud layer
    explicitly.
    """
    user: "User"

    @property
    def is_admin(self) -> bool:
        return bool(self.user.admin)

    @property
    def accepted_terms(self) -> bool:
        return self.user.terms_accepted_at is not None

    def is_user(self, other: Optional["User"]) -> bool:
        return other is not None and other.id == self.user.id

    def can(self, capability: Capability, notebook: Optional["Notebook"] = None) -> bool:
        if self.is_admin:
            return True
        if capability == Capability.ADMIN or notebook is None:
            return False
        owns = notebook.owner_id == self.user.id
        if capability == Capability.EDIT:
            return owns
        return owns or bool(notebook.public)
