"""
Opportunity webhooks: created, updated, stage changed, owner changed and the
terminal outcomes (won / lost / abandoned).

CRM-originated events never fail on an unknown opportunity: they answer 200
with ``skipped`` (or ``updated: false``) so the sender stops retrying.
"""
import uuid
from typing import Any, Callable, Dict, Optional, Tuple, Type

import structlog
from sqlalchemy.orm import Session

from leadsync.core.config import Settings
from leadsync.core.errors import NotFoundError, ValidationError, missing_reference
from leadsync.models.opportunity import Opportunity, OpportunityStatus
from leadsync.models.outcome import AbandonedOpportunity, LostOpportunity, WonOpportunity
from leadsync.services.change_detector import (
    last_stage,
    record_pipeline_change,
    record_reassignment,
    record_stage_change,
    seed_stage,
)
from leadsync.services.payload import MISSING, PayloadView, present_only
from leadsync.services.resolver import (
    find_opportunity,
    latest_opportunity_for_contact,
    resolve_contact_id,
    resolve_user_id,
)

logger = structlog.get_logger(__name__)

OPPORTUNITY_ID_KEYS = ("hl_opportunity_id", "opportunity.id", "opportunity_id")
OUTCOME_ID_KEYS = ("oportunidad",) + OPPORTUNITY_ID_KEYS
OWNER_KEYS = ("propietario", "opportunity.assignedUserId", "assignedTo", "ghl_id")
CONTACT_KEYS = ("contacto", "contact_id", "opportunity.contactId", "contact.id")
PIPELINE_KEYS = ("pipeline", "pipeline_name", "opportunity.pipelineName", "opportunity.pipelineId")
STAGE_KEYS = ("etapa_destino", "etapa", "opportunity.stageName", "pipeline_stage")
STATUS_KEYS = ("estado", "opportunity.status", "status")

TEXT_FIELDS = (
    "nivel_de_interes",
    "tipo_de_cliente",
    "producto",
    "proyecto",
    "modalidad_de_pago",
    "motivo_de_seguimiento",
    "principales_objeciones",
)
MONEY_FIELDS = ("arras", "cuota_inicial_pagada")


def _skip(reason: str, **context: Any) -> NotFoundError:
    return NotFoundError(reason.replace("_", " "), reason=reason, soft=True, **context)


def _str(value: Optional[uuid.UUID]) -> Optional[str]:
    return str(value) if value is not None else None


def _opportunity_name(view: PayloadView) -> Optional[str]:
    return view.text("nombre_completo", "opportunity.name", "opportunity_name") or view.full_name()


def opportunity_created(db: Session, settings: Settings, channel: str, view: PayloadView) -> Tuple[int, Dict[str, Any]]:
    hl_opportunity_id = view.text(*OPPORTUNITY_ID_KEYS)
    if not hl_opportunity_id:
        raise ValidationError("missing hl_opportunity_id", field="hl_opportunity_id")

    existing = find_opportunity(db, hl_opportunity_id)
    if existing is not None:
        logger.info("opportunity_already_synced", oportunidad_id=str(existing.id))
        return 200, {"ok": True, "skipped": True, "reason": "already_exists", "oportunidad_id": str(existing.id)}

    propietario_id = resolve_user_id(db, view.text(*OWNER_KEYS))
    if propietario_id is None and settings.REQUIRE_OPPORTUNITY_OWNER:
        raise missing_reference("propietario")

    opportunity = Opportunity(
        id=uuid.uuid4(),
        hl_opportunity_id=hl_opportunity_id,
        contacto_id=resolve_contact_id(db, view.text(*CONTACT_KEYS)),
        propietario_id=propietario_id,
        nombre_completo=_opportunity_name(view),
        pipeline=view.text(*PIPELINE_KEYS),
        estado=view.text(*STATUS_KEYS) or OpportunityStatus.OPEN.value,
    )
    for name in TEXT_FIELDS:
        setattr(opportunity, name, view.text(name))
    for name in MONEY_FIELDS:
        setattr(opportunity, name, view.number(name))
    db.add(opportunity)

    stage = view.text(*STAGE_KEYS)
    if settings.RECORD_INITIAL_STAGE_ON_CREATE:
        seed_stage(db, opportunity, stage or settings.INITIAL_STAGE_NAME)
    else:
        opportunity.etapa = stage

    db.commit()
    logger.info("opportunity_created", oportunidad_id=str(opportunity.id), hl_opportunity_id=hl_opportunity_id)
    return 201, {
        "ok": True,
        "oportunidad_id": str(opportunity.id),
        "propietario": _str(opportunity.propietario_id),
        "contacto": _str(opportunity.contacto_id),
    }


def _locate_for_update(db: Session, view: PayloadView) -> Optional[Opportunity]:
    hl_opportunity_id = view.text(*OPPORTUNITY_ID_KEYS)
    if hl_opportunity_id:
        return find_opportunity(db, hl_opportunity_id)
    # No opportunity id: fall back to the contact's latest opportunity
    contacto_id = resolve_contact_id(db, view.text(*CONTACT_KEYS))
    return latest_opportunity_for_contact(db, contacto_id)


def opportunity_updated(db: Session, settings: Settings, channel: str, view: PayloadView) -> Tuple[int, Dict[str, Any]]:
    """
    Partial update. Absent keys keep the stored value, empty keys clear it.
    Owner, pipeline and stage changes are appended to their history tables.
    """
    opportunity = _locate_for_update(db, view)
    if opportunity is None:
        logger.info("opportunity_update_skipped", reason="not_found")
        return 200, {"ok": True, "updated": False, "reason": "not_found"}

    fields: Dict[str, Any] = {
        "estado": view.field(*STATUS_KEYS),
        "nombre_completo": view.field("nombre_completo", "opportunity.name"),
    }
    for name in TEXT_FIELDS:
        fields[name] = view.field(name)
    for name in MONEY_FIELDS:
        fields[name] = view.number_field(name)

    contact_ref = view.field(*CONTACT_KEYS)
    if contact_ref is not MISSING:
        fields["contacto_id"] = resolve_contact_id(db, contact_ref)

    updates = present_only(fields)
    for name, value in updates.items():
        setattr(opportunity, name, value)

    reassigned = False
    owner_ref = view.field(*OWNER_KEYS)
    if owner_ref is not MISSING:
        new_owner_id = resolve_user_id(db, owner_ref)
        if new_owner_id is None and settings.REQUIRE_OPPORTUNITY_OWNER:
            db.rollback()
            raise missing_reference("propietario")
        # An empty or unknown owner clears the assignment
        reassigned = record_reassignment(db, opportunity, new_owner_id) is not None
        updates["propietario_id"] = opportunity.propietario_id

    # Pipeline is only touched when a value is sent
    pipeline_changed = record_pipeline_change(db, opportunity, view.text(*PIPELINE_KEYS)) is not None

    entry = record_stage_change(
        db,
        opportunity,
        view.text(*STAGE_KEYS),
        settings.INITIAL_STAGE_NAME,
        settings.RECORD_INITIAL_STAGE_ON_CREATE,
    )

    db.commit()
    logger.info(
        "opportunity_updated",
        oportunidad_id=str(opportunity.id),
        fields=sorted(updates),
        reassigned=reassigned,
        pipeline_changed=pipeline_changed,
        stage_recorded=entry is not None,
    )
    return 200, {
        "ok": True,
        "updated": True,
        "oportunidad_id": str(opportunity.id),
        "fields": sorted(updates),
        "reassigned": reassigned,
        "pipeline_changed": pipeline_changed,
        "historial_etapas_id": _str(entry.id) if entry else None,
    }


def stage_changed(db: Session, settings: Settings, channel: str, view: PayloadView) -> Tuple[int, Dict[str, Any]]:
    hl_opportunity_id = view.text(*OPPORTUNITY_ID_KEYS)
    if not hl_opportunity_id:
        raise ValidationError("missing hl_opportunity_id", field="hl_opportunity_id")
    destination = view.text(*STAGE_KEYS)
    if not destination:
        raise ValidationError("missing etapa_destino", field="etapa_destino")

    opportunity = find_opportunity(db, hl_opportunity_id)
    if opportunity is None:
        raise _skip("opportunity_not_found", hl_opportunity_id=hl_opportunity_id)

    pipeline = view.text(*PIPELINE_KEYS)
    propietario_id = resolve_user_id(db, view.text(*OWNER_KEYS))

    entry = record_stage_change(
        db,
        opportunity,
        destination,
        settings.INITIAL_STAGE_NAME,
        settings.RECORD_INITIAL_STAGE_ON_CREATE,
        pipeline=pipeline,
        propietario_id=propietario_id,
    )
    if entry is None:
        return 200, {
            "ok": True,
            "skipped": True,
            "reason": "stage_unchanged",
            "oportunidad": str(opportunity.id),
            "etapa_destino": destination,
        }

    db.commit()
    logger.info(
        "stage_recorded",
        oportunidad_id=str(opportunity.id),
        etapa_origen=entry.etapa_origen,
        etapa_destino=entry.etapa_destino,
    )
    return 201, {
        "ok": True,
        "historial_etapas_id": str(entry.id),
        "oportunidad": str(opportunity.id),
        "etapa_origen": entry.etapa_origen,
        "etapa_destino": entry.etapa_destino,
        "pipeline": entry.pipeline,
        "propietario": _str(entry.propietario_id),
    }


def owner_changed(db: Session, settings: Settings, channel: str, view: PayloadView) -> Tuple[int, Dict[str, Any]]:
    hl_opportunity_id = view.text(*OUTCOME_ID_KEYS)
    new_owner_ghl_id = view.text("propietario", "opportunity.assignedUserId", "assignedTo")
    if not hl_opportunity_id:
        raise ValidationError("missing oportunidad", field="oportunidad")
    if not new_owner_ghl_id:
        raise ValidationError("missing propietario", field="propietario")

    opportunity = find_opportunity(db, hl_opportunity_id)
    if opportunity is None:
        raise _skip("opportunity_not_found", hl_opportunity_id=hl_opportunity_id)

    new_owner_id = resolve_user_id(db, new_owner_ghl_id)
    if new_owner_id is None:
        raise _skip("new_owner_not_found", propietario=new_owner_ghl_id)

    previous_owner_id = opportunity.propietario_id
    reassignment = record_reassignment(db, opportunity, new_owner_id)
    if reassignment is None:
        return 200, {"ok": True, "skipped": True, "reason": "same_owner", "oportunidad": str(opportunity.id)}

    db.commit()
    logger.info(
        "opportunity_reassigned",
        oportunidad_id=str(opportunity.id),
        propietario_anterior=_str(previous_owner_id),
        propietario_actual=str(new_owner_id),
    )
    return 201, {
        "ok": True,
        "reasignacion_id": str(reassignment.id),
        "oportunidad": str(opportunity.id),
        "propietario_anterior": _str(previous_owner_id),
        "propietario_actual": str(new_owner_id),
    }


def _stage_at_close(db: Session, opportunity: Opportunity) -> Optional[str]:
    return last_stage(db, opportunity.id) or opportunity.etapa


def _record_outcome(
    db: Session,
    view: PayloadView,
    model: Type,
    status: OpportunityStatus,
    outcome_fields: Callable[[Opportunity], Dict[str, Any]],
) -> Tuple[int, Dict[str, Any]]:
    hl_opportunity_id = view.text(*OUTCOME_ID_KEYS)
    if not hl_opportunity_id:
        raise ValidationError("missing oportunidad", field="oportunidad")

    opportunity = find_opportunity(db, hl_opportunity_id)
    if opportunity is None:
        raise _skip("opportunity_not_found", hl_opportunity_id=hl_opportunity_id)

    already = db.query(model.id).filter(model.oportunidad_id == opportunity.id).first()
    if already is not None:
        return 200, {"ok": True, "skipped": True, "reason": "already_recorded", "oportunidad": str(opportunity.id)}

    propietario_id = resolve_user_id(db, view.text(*OWNER_KEYS)) or opportunity.propietario_id
    fact = model(
        id=uuid.uuid4(),
        oportunidad_id=opportunity.id,
        propietario_id=propietario_id,
        pipeline=view.text(*PIPELINE_KEYS) or opportunity.pipeline,
        **outcome_fields(opportunity),
    )
    db.add(fact)
    opportunity.estado = status.value

    db.commit()
    logger.info("opportunity_closed", oportunidad_id=str(opportunity.id), estado=status.value)
    return 201, {
        "ok": True,
        "id": str(fact.id),
        "oportunidad": str(opportunity.id),
        "estado": status.value,
        "propietario": _str(propietario_id),
        "pipeline": fact.pipeline,
    }


def opportunity_won(db: Session, settings: Settings, channel: str, view: PayloadView) -> Tuple[int, Dict[str, Any]]:
    def won_fields(opportunity: Opportunity) -> Dict[str, Any]:
        arras = view.number("arras")
        cuota = view.number("cuota_inicial_pagada")
        return {
            "etapa": _stage_at_close(db, opportunity),
            "arras": arras if arras is not None else opportunity.arras,
            "cuota_inicial_pagada": cuota if cuota is not None else opportunity.cuota_inicial_pagada,
        }

    return _record_outcome(db, view, WonOpportunity, OpportunityStatus.WON, won_fields)


def opportunity_lost(db: Session, settings: Settings, channel: str, view: PayloadView) -> Tuple[int, Dict[str, Any]]:
    def lost_fields(opportunity: Opportunity) -> Dict[str, Any]:
        return {
            "etapa_de_perdida": _stage_at_close(db, opportunity),
            "motivo_de_perdida": view.text("motivo_de_perdida", "lost_reason", "opportunity.lostReason"),
        }

    return _record_outcome(db, view, LostOpportunity, OpportunityStatus.LOST, lost_fields)


def opportunity_abandoned(db: Session, settings: Settings, channel: str, view: PayloadView) -> Tuple[int, Dict[str, Any]]:
    return _record_outcome(
        db,
        view,
        AbandonedOpportunity,
        OpportunityStatus.ABANDONED,
        lambda opportunity: {"etapa_de_abandono": _stage_at_close(db, opportunity)},
    )
