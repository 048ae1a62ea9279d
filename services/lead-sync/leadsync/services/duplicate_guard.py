"""
Natural-key existence checks before inserting contacts
"""
from sqlalchemy.orm import Session
from typing import Optional

from leadsync.core.errors import ConflictError
from leadsync.models.contact import Contact


def find_contact_by_phone(db: Session, celular: Optional[str]) -> Optional[Contact]:
    if not celular:
        return None
    return db.query(Contact).filter(Contact.celular == celular).first()


def find_contact_by_name(db: Session, nombre_completo: Optional[str]) -> Optional[Contact]:
    if not nombre_completo:
        return None
    return db.query(Contact).filter(Contact.nombre_completo == nombre_completo).first()


def ensure_phone_available(db: Session, celular: Optional[str]) -> None:
    existing = find_contact_by_phone(db, celular)
    if existing is not None:
        raise ConflictError(
            "a contact with this phone number already exists",
            field="celular",
            contacto_id=str(existing.id),
        )


def ensure_name_available(db: Session, nombre_completo: Optional[str]) -> None:
    existing = find_contact_by_name(db, nombre_completo)
    if existing is not None:
        raise ConflictError(
            "a contact with this full name already exists",
            field="nombre_completo",
            contacto_id=str(existing.id),
        )
