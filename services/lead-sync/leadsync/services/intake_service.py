"""
First-party form intake: field agents and personal-network referrals.

Flow per submission:
1. Validate and normalize fields
2. Duplicate guard on the channel's natural key
3. Resolve the submitting agent
4. Write the local contact (committed before any CRM call)
5. CRM contact upsert, note, opportunity
"""
import uuid
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leadsync.core.config import Settings
from leadsync.core.errors import ConflictError, UpstreamGatewayError, ValidationError, missing_reference
from leadsync.models.contact import Contact, Channel
from leadsync.models.user import User
from leadsync.services.crm_client import CRMClient
from leadsync.services.duplicate_guard import ensure_name_available, ensure_phone_available
from leadsync.services.payload import clean_text, normalize_local_phone, to_e164
from leadsync.services.resolver import get_user

logger = structlog.get_logger(__name__)

FIELD_FORM_ORIGIN = "CAMPO"
PERSONAL_NETWORK_ORIGIN = "Entorno personal"
OPPORTUNITY_WARNING = "contact created, but the CRM opportunity could not be created"


def _require(values: Dict[str, Optional[str]]) -> None:
    for name, value in values.items():
        if not value:
            raise ValidationError(f"missing required field {name}", field=name)


def _note_body(lines: List[Optional[str]]) -> str:
    return "\n".join(line for line in lines if line)


def _save_contact(db: Session, contact: Contact) -> Contact:
    db.add(contact)
    try:
        db.commit()
    except IntegrityError:
        # A concurrent submission won the unique phone index
        db.rollback()
        raise ConflictError("a contact with this phone number already exists", field="celular")
    db.refresh(contact)
    return contact


async def _sync_to_crm(
    db: Session,
    crm: CRMClient,
    contact: Contact,
    first_name: str,
    last_name: Optional[str],
    phone: Optional[str],
    custom_values: Dict[str, Any],
    note: str,
    opportunity_name: str,
    owner_ghl_id: Optional[str],
    source: Optional[str] = None,
) -> Dict[str, Any]:
    contacto_id = str(contact.id)

    contact_result = await crm.upsert_contact(
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        email=contact.email,
        custom_values=custom_values,
    )
    if not contact_result.ok:
        raise UpstreamGatewayError(
            "CRM contact sync failed",
            upstream_status=contact_result.status_code,
            contacto_id=contacto_id,
        )

    hl_contact_id = contact_result.resource_id
    if not hl_contact_id:
        logger.error("crm_contact_id_missing", contacto_id=contacto_id, body=contact_result.body)
        raise UpstreamGatewayError(
            "CRM contact response has no id",
            upstream_status=contact_result.status_code,
            contacto_id=contacto_id,
        )

    contact.hl_contact_id = hl_contact_id
    db.commit()

    # A failed note is logged by the client and does not stop the flow
    note_result = await crm.create_note(hl_contact_id, note)

    response: Dict[str, Any] = {
        "ok": True,
        "contacto_id": contacto_id,
        "hl_contact_id": hl_contact_id,
        "note_synced": note_result.ok,
    }

    opportunity_result = await crm.create_opportunity(
        contact_id=hl_contact_id,
        name=opportunity_name,
        assigned_to=owner_ghl_id,
        source=source,
    )
    if not opportunity_result.ok:
        logger.warning(
            "crm_opportunity_not_created",
            contacto_id=contacto_id,
            hl_contact_id=hl_contact_id,
            upstream_status=opportunity_result.status_code,
        )
        response["warning"] = OPPORTUNITY_WARNING
        return response

    response["hl_opportunity_id"] = opportunity_result.resource_id
    return response


async def submit_field_form(db: Session, crm: CRMClient, settings: Settings, form: Any) -> Dict[str, Any]:
    """Field agent intake; phone is the natural key"""
    usuario_id = clean_text(form.usuarioId)
    nombre = clean_text(form.nombre)
    apellido = clean_text(form.apellido)
    celular_raw = clean_text(form.celular)
    _require({"usuarioId": usuario_id, "nombre": nombre, "apellido": apellido, "celular": celular_raw})

    celular = normalize_local_phone(celular_raw, settings.LOCAL_PHONE_DIGITS)
    if not celular:
        raise ValidationError(f"celular must contain at least {settings.LOCAL_PHONE_DIGITS} digits", field="celular")

    ensure_phone_available(db, celular)

    user: Optional[User] = get_user(db, usuario_id)
    if user is None:
        raise missing_reference("usuarioId")
    if not user.ghl_id:
        raise ValidationError("the agent has no CRM user id", field="usuarioId")

    documento = clean_text(form.documentoIdentidad)
    contact = _save_contact(
        db,
        Contact(
            id=uuid.uuid4(),
            nombre_completo=f"{nombre} {apellido}",
            celular=celular,
            email=clean_text(form.email),
            documento_de_identidad=documento,
            canal=Channel.TRADICIONAL.value,
            origen=FIELD_FORM_ORIGIN,
        ),
    )
    logger.info("field_form_contact_saved", contacto_id=str(contact.id), usuario_id=usuario_id)

    lugar = clean_text(form.lugarProspeccion)
    proyecto = clean_text(form.proyectoInteres)
    presupuesto = clean_text(form.presupuesto)
    modalidad = clean_text(form.modalidadPago)
    comentarios = clean_text(form.comentarios)
    note = _note_body([
        f"Lugar de prospección: {lugar}" if lugar else None,
        f"Proyecto de interés: {proyecto}" if proyecto else None,
        f"Presupuesto: {presupuesto}" if presupuesto else None,
        f"Modalidad de pago: {modalidad}" if modalidad else None,
        f"Comentarios: {comentarios}" if comentarios else None,
        f"Documento de identidad: {documento}" if documento else None,
        f"Celular: {celular}",
    ])

    return await _sync_to_crm(
        db,
        crm,
        contact,
        first_name=nombre,
        last_name=apellido,
        phone=to_e164(celular, settings.PHONE_COUNTRY_CODE),
        custom_values={
            settings.GHL_CF_ORIGEN_ID: FIELD_FORM_ORIGIN,
            settings.GHL_CF_DOC_IDENTIDAD_ID: documento,
        },
        note=note,
        opportunity_name=f"{nombre} {apellido}",
        owner_ghl_id=user.ghl_id,
    )


async def submit_personal_network(db: Session, crm: CRMClient, settings: Settings, form: Any) -> Dict[str, Any]:
    """Personal-network referral; full name is the natural key, owner optional"""
    nombre_completo = clean_text(form.nombre_completo)
    token = clean_text(form.token)
    _require({"nombre_completo": nombre_completo, "token": token})

    celular_raw = clean_text(form.celular)
    celular = normalize_local_phone(celular_raw, settings.LOCAL_PHONE_DIGITS)
    if celular_raw and not celular:
        raise ValidationError(f"celular must contain at least {settings.LOCAL_PHONE_DIGITS} digits", field="celular")

    ensure_name_available(db, nombre_completo)
    ensure_phone_available(db, celular)

    user: Optional[User] = get_user(db, token)
    if user is None:
        raise missing_reference("token")
    if not user.ghl_id:
        logger.warning("personal_network_owner_without_crm_id", usuario_id=str(user.id))

    lat = form.lat
    lon = form.lon
    contact = _save_contact(
        db,
        Contact(
            id=uuid.uuid4(),
            nombre_completo=nombre_completo,
            celular=celular,
            canal=Channel.TRADICIONAL.value,
            origen=PERSONAL_NETWORK_ORIGIN,
            latitud=lat,
            longitud=lon,
        ),
    )
    logger.info("personal_network_contact_saved", contacto_id=str(contact.id), usuario_id=str(user.id))

    proyecto = clean_text(form.proyecto_interes)
    comentarios = clean_text(form.comentarios)
    note = _note_body([
        f"Proyecto de interés: {proyecto}" if proyecto else None,
        f"Comentarios: {comentarios}" if comentarios else None,
        f"Celular registrado: {celular_raw}" if celular_raw else None,
        f"Coordenadas: {lat}, {lon}" if lat is not None and lon is not None else None,
        f"Origen: {PERSONAL_NETWORK_ORIGIN}",
    ])

    return await _sync_to_crm(
        db,
        crm,
        contact,
        first_name=nombre_completo,
        last_name=None,
        phone=to_e164(celular, settings.PHONE_COUNTRY_CODE),
        custom_values={
            settings.GHL_CF_ORIGEN_ID: PERSONAL_NETWORK_ORIGIN,
            settings.GHL_CF_LATITUD_ID: lat,
            settings.GHL_CF_LONGITUD_ID: lon,
        },
        note=note,
        opportunity_name=nombre_completo,
        owner_ghl_id=user.ghl_id,
        source=PERSONAL_NETWORK_ORIGIN,
    )
