# app/services/mailer.py
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import yaml

from app.core.config import MAIL_TEMPLATES_PATH
from app.models.change_request import ChangeRequest
from app.models.user import User

logger = logging.getLogger(__name__)

MAIL_KINDS = ("create", "accept", "decline", "cancel")

_DEFAULTS: Dict[str, Dict[str, str]] = {
    "create": {
        "subject": "Change request for {notebook}",
        "body": "{requestor} proposed a change to your notebook \"{notebook}\".\n\n"
                "Comment: {comment}\n\nReview it at {link}\n",
    },
    "accept": {
        "subject": "Change request accepted: {notebook}",
        "body": "{actor} accepted your change request for \"{notebook}\".\n\nComment: {comment}\n\n{link}\n",
    },
    "decline": {
        "subject": "Change request declined: {notebook}",
        "body": "{actor} declined your change request for \"{notebook}\".\n\nComment: {comment}\n\n{link}\n",
    },
    "cancel": {
        "subject": "Change request canceled: {notebook}",
        "body": "{requestor} canceled their change request for \"{notebook}\".\n\n{link}\n",
    },
}

# cache in memory
_TEMPLATES: Optional[Dict[str, Dict[str, str]]] = None


@dataclass
class MailMessage:
    kind: str
    to: List[str]
    subject: str
    body: str
    reqid: str = ""
    headers: Dict[str, str] = field(default_factory=dict)


# -------------------------- templates --------------------------

def _load_templates_from_file() -> Dict[str, Dict[str, str]]:
    templates = {k: dict(v) for k, v in _DEFAULTS.items()}
    if MAIL_TEMPLATES_PATH.exists():
        with open(MAIL_TEMPLATES_PATH, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if isinstance(data, dict):
            for kind, tpl in data.items():
                if kind in templates and isinstance(tpl, dict):
                    templates[kind].update({k: str(v) for k, v in tpl.items() if k in ("subject", "body")})
        else:
            logger.warning(f"[mail] ignoring malformed template file {MAIL_TEMPLATES_PATH}")
    return templates

def get_templates() -> Dict[str, Dict[str, str]]:
    global _TEMPLATES
    if _TEMPLATES is None:
        _TEMPLATES = _load_templates_from_file()
    return _TEMPLATES

def reload_templates() -> Dict[str, Dict[str, str]]:
    global _TEMPLATES
    _TEMPLATES = _load_templates_from_file()
    return _TEMPLATES


# -------------------------- builders --------------------------

def _render(kind: str, to: List[str], cr: ChangeRequest, base_url: str,
            actor: Optional[User], comment: Optional[str]) -> MailMessage:
    tpl = get_templates()[kind]
    notebook = cr.notebook
    ctx = {
        "notebook": notebook.title,
        "requestor": cr.requestor.full_name,
        "owner": notebook.owner.full_name if notebook.owner else "",
        "actor": actor.full_name if actor else "",
        "comment": comment or "(none)",
        "link": f"{base_url.rstrip('/')}/change_requests/{cr.reqid}",
    }
    return MailMessage(
        kind=kind,
        to=[addr for addr in to if addr],
        subject=tpl["subject"].format(**ctx),
        body=tpl["body"].format(**ctx),
        reqid=cr.reqid,
    )

def create_mail(cr: ChangeRequest, base_url: str) -> MailMessage:
    owner = cr.notebook.owner
    return _render("create", [owner.email if owner else ""], cr, base_url, None, cr.requestor_comment)

def accept_mail(cr: ChangeRequest, owner: User, base_url: str) -> MailMessage:
    return _render("accept", [cr.requestor.email], cr, base_url, owner, cr.owner_comment)

def decline_mail(cr: ChangeRequest, owner: User, base_url: str) -> MailMessage:
    return _render("decline", [cr.requestor.email], cr, base_url, owner, cr.owner_comment)

def cancel_mail(cr: ChangeRequest, base_url: str) -> MailMessage:
    owner = cr.notebook.owner
    return _render("cancel", [owner.email if owner else ""], cr, base_url, cr.requestor, None)
