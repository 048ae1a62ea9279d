"""
Contact webhooks: created / updated
"""
import uuid
from typing import Any, Dict, Tuple

import structlog
from sqlalchemy.orm import Session

from leadsync.core.config import Settings
from leadsync.core.errors import ConflictError, ValidationError
from leadsync.models.contact import Contact, Channel
from leadsync.services.duplicate_guard import find_contact_by_phone
from leadsync.services.payload import MISSING, PayloadView, normalize_local_phone, parse_date, parse_number, present_only
from leadsync.services.resolver import find_contact

logger = structlog.get_logger(__name__)

CONTACT_ID_KEYS = ("hl_contact_id", "contact_id", "contact.id")
PHONE_KEYS = ("celular", "phone")
DIGITAL_FIELDS = (
    "nombre_anuncio",
    "conjunto_de_anuncios",
    "fuente_digital",
    "proyecto_formulario",
    "id_registro_cliente",
)


def channel_tag(channel: str) -> str:
    return Channel.DIGITAL.value if channel == "digital" else Channel.TRADICIONAL.value


def contact_created(db: Session, settings: Settings, channel: str, view: PayloadView) -> Tuple[int, Dict[str, Any]]:
    """
    Insert a contact announced by the CRM.

    Replays for a stored CRM id are skipped. A contact written earlier by a form
    (same phone, no CRM id yet) gets the CRM id linked instead of a new row.
    """
    hl_contact_id = view.text(*CONTACT_ID_KEYS, "id")
    celular = normalize_local_phone(view.text(*PHONE_KEYS), settings.LOCAL_PHONE_DIGITS)
    if not celular and not hl_contact_id:
        raise ValidationError("missing celular or hl_contact_id")

    existing = find_contact(db, hl_contact_id)
    if existing is not None:
        logger.info("contact_already_synced", contacto_id=str(existing.id), hl_contact_id=hl_contact_id)
        return 200, {"ok": True, "skipped": True, "reason": "already_exists", "contacto_id": str(existing.id)}

    same_phone = find_contact_by_phone(db, celular)
    if same_phone is not None:
        if same_phone.hl_contact_id and same_phone.hl_contact_id != hl_contact_id:
            raise ConflictError(
                "phone number already belongs to another CRM contact",
                field="celular",
                contacto_id=str(same_phone.id),
            )
        if hl_contact_id:
            same_phone.hl_contact_id = hl_contact_id
            db.commit()
        logger.info("contact_linked", contacto_id=str(same_phone.id), hl_contact_id=hl_contact_id)
        return 200, {"ok": True, "linked": True, "contacto_id": str(same_phone.id)}

    latitud = view.number("latitud")
    if latitud is None:
        latitud = parse_number(view.custom_field("latitud"))
    longitud = view.number("longitud")
    if longitud is None:
        longitud = parse_number(view.custom_field("longitud"))

    contact = Contact(
        id=uuid.uuid4(),
        nombre_completo=view.full_name(),
        celular=celular,
        email=view.text("email"),
        hl_contact_id=hl_contact_id,
        documento_de_identidad=view.text("documento_de_identidad") or view.custom_field("documento"),
        origen=view.text("origen", "source") or view.custom_field("origen"),
        estado_civil=view.text("estado_civil") or view.custom_field("civil"),
        distrito_de_residencia=view.text("distrito_de_residencia") or view.custom_field("distrito"),
        profesion=view.text("profesion") or view.custom_field("profesion"),
        fecha_de_nacimiento=(
            view.date_value("fecha_de_nacimiento", "dateOfBirth", "date_of_birth")
            or parse_date(view.custom_field("nacimiento", "fecha de nac"))
        ),
        latitud=latitud,
        longitud=longitud,
        canal=channel_tag(channel),
    )
    if channel == "digital":
        for name in DIGITAL_FIELDS:
            setattr(contact, name, view.text(name))
        contact.nombre_campana = view.text("nombre_campaña", "nombre_campana")

    db.add(contact)
    db.commit()
    logger.info("contact_created", contacto_id=str(contact.id), hl_contact_id=hl_contact_id, channel=channel)
    return 201, {"ok": True, "contacto_id": str(contact.id)}


def _phone_field(view: PayloadView, settings: Settings) -> Any:
    raw = view.field(*PHONE_KEYS)
    if raw is MISSING:
        return MISSING
    return normalize_local_phone(raw, settings.LOCAL_PHONE_DIGITS)


def contact_updated(db: Session, settings: Settings, channel: str, view: PayloadView) -> Tuple[int, Dict[str, Any]]:
    """Partial update keyed on the CRM contact id"""
    hl_contact_id = view.text(*CONTACT_ID_KEYS)
    if not hl_contact_id:
        raise ValidationError("missing hl_contact_id", field="hl_contact_id")

    contact = find_contact(db, hl_contact_id)
    if contact is None:
        logger.info("contact_update_skipped", hl_contact_id=hl_contact_id, reason="not_found")
        return 200, {"ok": True, "updated": False, "reason": "not_found"}

    fields = {
        "nombre_completo": view.full_name_field(),
        "celular": _phone_field(view, settings),
        "email": view.field("email"),
        "documento_de_identidad": view.field("documento_de_identidad"),
        "estado_civil": view.field("estado_civil"),
        "distrito_de_residencia": view.field("distrito_de_residencia"),
        "profesion": view.field("profesion"),
        "origen": view.field("origen"),
        "fecha_de_nacimiento": view.date_field("fecha_de_nacimiento"),
    }
    if channel == "digital":
        for name in DIGITAL_FIELDS:
            fields[name] = view.field(name)
        fields["nombre_campana"] = view.field("nombre_campaña", "nombre_campana")
        fields["canal"] = Channel.DIGITAL.value

    updates = present_only(fields)

    new_phone = updates.get("celular")
    if new_phone:
        owner = find_contact_by_phone(db, new_phone)
        if owner is not None and owner.id != contact.id:
            logger.warning("contact_phone_in_use", contacto_id=str(contact.id), other_contacto_id=str(owner.id))
            del updates["celular"]

    for name, value in updates.items():
        setattr(contact, name, value)
    db.commit()

    logger.info("contact_updated", contacto_id=str(contact.id), fields=sorted(updates))
    return 200, {"ok": True, "updated": True, "contacto_id": str(contact.id), "fields": sorted(updates)}
