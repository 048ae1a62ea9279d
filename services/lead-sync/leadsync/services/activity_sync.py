"""
Activity webhooks: notes and scheduled appointments
"""
import uuid
from typing import Any, Dict, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from leadsync.core.config import Settings
from leadsync.core.errors import ValidationError
from leadsync.models.activity import Appointment, Note
from leadsync.services.payload import PayloadView, parse_date, parse_datetime
from leadsync.services.resolver import (
    find_opportunity,
    latest_opportunity_for_contact,
    resolve_contact_id,
    resolve_user_id,
)

logger = structlog.get_logger(__name__)

PRESENTATION = "Presentación"
PROJECT_VISIT = "Visita a proyecto"
_PRESENTATION_HINTS = ("pres", "vir", "ofi", "zo", "mee")
_VISIT_HINTS = ("vis", "proy")


def classify_appointment(raw_type: Optional[str]) -> Optional[str]:
    """Map free-text calendar names onto the two appointment kinds"""
    if not raw_type:
        return None
    lowered = raw_type.lower()
    if any(hint in lowered for hint in _PRESENTATION_HINTS):
        return PRESENTATION
    if any(hint in lowered for hint in _VISIT_HINTS):
        return PROJECT_VISIT
    return raw_type


def note_created(db: Session, settings: Settings, channel: str, view: PayloadView) -> Tuple[int, Dict[str, Any]]:
    text = view.text("nota", "body", "note.body", "note")
    if not text:
        raise ValidationError("missing nota", field="nota")

    contacto_id = resolve_contact_id(db, view.text("contacto", "contact_id", "contact.id"))
    propietario_id = resolve_user_id(db, view.text("propietario", "ghl_id", "userId", "user_id"))

    hl_opportunity_id = view.text("hl_opportunity_id", "opportunity.id", "opportunity_id")
    if hl_opportunity_id:
        opportunity = find_opportunity(db, hl_opportunity_id)
    else:
        opportunity = latest_opportunity_for_contact(db, contacto_id)

    pipeline = opportunity.pipeline if opportunity is not None and opportunity.pipeline else None
    if pipeline is None:
        pipeline = view.text("pipeline", "pipeline_name")

    note = Note(
        id=uuid.uuid4(),
        contacto_id=contacto_id,
        oportunidad_id=opportunity.id if opportunity is not None else None,
        propietario_id=propietario_id,
        pipeline=pipeline,
        nota=text,
    )
    db.add(note)
    db.commit()
    logger.info("note_recorded", nota_id=str(note.id), contacto_id=str(contacto_id) if contacto_id else None)
    return 201, {"ok": True, "nota_id": str(note.id), "pipeline": pipeline}


def appointment_scheduled(db: Session, settings: Settings, channel: str, view: PayloadView) -> Tuple[int, Dict[str, Any]]:
    ghl_appointment_id = view.text("ghl_appointment_id", "appointment_id", "calendar.appointmentId")
    if ghl_appointment_id:
        existing = db.query(Appointment.id).filter(Appointment.ghl_appointment_id == ghl_appointment_id).first()
        if existing is not None:
            return 200, {"ok": True, "skipped": True, "reason": "already_exists", "cita_id": str(existing.id)}

    # Unresolved references are stored as null
    contacto_id = resolve_contact_id(db, view.text("contacto", "contact_id", "contact.id"))
    opportunity = latest_opportunity_for_contact(db, contacto_id)
    propietario_id = resolve_user_id(db, view.text("propietario", "calendar.assignedUserId", "assignedUserId"))
    if propietario_id is None and opportunity is not None:
        propietario_id = opportunity.propietario_id

    starts_at = parse_datetime(view.text("fecha_hora_inicio", "calendar.startTime", "startTime"))
    meeting_date = parse_date(view.text("date_inicio_reunion"))
    if meeting_date is None and starts_at is not None:
        meeting_date = starts_at.date()

    appointment = Appointment(
        id=uuid.uuid4(),
        ghl_appointment_id=ghl_appointment_id,
        contacto_id=contacto_id,
        oportunidad_id=opportunity.id if opportunity is not None else None,
        propietario_id=propietario_id,
        tipo=classify_appointment(view.text("tipo", "calendar.calendarName", "calendar.title")),
        fecha_hora_inicio=starts_at,
        date_inicio_reunion=meeting_date,
    )
    db.add(appointment)
    db.commit()
    logger.info("appointment_recorded", cita_id=str(appointment.id), tipo=appointment.tipo)
    return 201, {
        "ok": True,
        "cita_id": str(appointment.id),
        "oportunidad": str(opportunity.id) if opportunity is not None else None,
        "tipo": appointment.tipo,
    }
