"""
External id → internal row resolution.

Each function performs a single-table query. An unresolved reference yields
None and a warning; callers decide whether that aborts the write.
"""
import uuid
from sqlalchemy.orm import Session
from typing import Optional

import structlog

from leadsync.models.user import User
from leadsync.models.contact import Contact
from leadsync.models.opportunity import Opportunity

logger = structlog.get_logger(__name__)


def _warn_unresolved(reference: str, external_id: str) -> None:
    logger.warning("reference_unresolved", reference=reference, external_id=external_id)


def resolve_user_id(db: Session, ghl_id: Optional[str], reference: str = "propietario") -> Optional[uuid.UUID]:
    """Map a CRM user id to usuarios.id"""
    if not ghl_id:
        return None
    user_id = db.query(User.id).filter(User.ghl_id == ghl_id).scalar()
    if user_id is None:
        _warn_unresolved(reference, ghl_id)
    return user_id


def get_user(db: Session, user_id: Optional[str]) -> Optional[User]:
    """Load a user by internal id (form submissions carry usuarios.id)"""
    if not user_id:
        return None
    try:
        parsed = uuid.UUID(str(user_id))
    except ValueError:
        return None
    return db.query(User).filter(User.id == parsed).first()


def find_contact(db: Session, hl_contact_id: Optional[str]) -> Optional[Contact]:
    if not hl_contact_id:
        return None
    return db.query(Contact).filter(Contact.hl_contact_id == hl_contact_id).first()


def resolve_contact_id(db: Session, hl_contact_id: Optional[str], reference: str = "contacto") -> Optional[uuid.UUID]:
    """Map a CRM contact id to contactos.id"""
    if not hl_contact_id:
        return None
    contact_id = db.query(Contact.id).filter(Contact.hl_contact_id == hl_contact_id).scalar()
    if contact_id is None:
        _warn_unresolved(reference, hl_contact_id)
    return contact_id


def find_opportunity(db: Session, hl_opportunity_id: Optional[str]) -> Optional[Opportunity]:
    if not hl_opportunity_id:
        return None
    return db.query(Opportunity).filter(Opportunity.hl_opportunity_id == hl_opportunity_id).first()


def latest_opportunity_for_contact(db: Session, contacto_id: Optional[uuid.UUID]) -> Optional[Opportunity]:
    """Most recently created opportunity of a contact"""
    if contacto_id is None:
        return None
    return (
        db.query(Opportunity)
        .filter(Opportunity.contacto_id == contacto_id)
        .order_by(Opportunity.created_at.desc())
        .first()
    )
