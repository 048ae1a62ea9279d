"""
Stage, pipeline and owner change detection.

History tables are append-only. A row is added only when the incoming value
differs from the last known one, so replayed webhooks are no-ops.
"""
import uuid
from sqlalchemy.orm import Session
from typing import Optional

import structlog

from leadsync.models.opportunity import Opportunity
from leadsync.models.history import StageHistory, PipelineChange, Reassignment

logger = structlog.get_logger(__name__)


def last_stage(db: Session, oportunidad_id: uuid.UUID) -> Optional[str]:
    """Current stage: destination of the most recent history row"""
    entry = (
        db.query(StageHistory)
        .filter(StageHistory.oportunidad_id == oportunidad_id)
        .order_by(StageHistory.created_at.desc())
        .first()
    )
    return entry.etapa_destino if entry else None


def should_record_stage(
    last_destination: Optional[str],
    destination: Optional[str],
    initial_stage: str,
    initial_stage_on_create: bool,
) -> bool:
    """
    Decide whether a transition gets a history row.

    - no destination, or destination equal to the current stage: no row
    - first transition into the initial stage when creation already
      established that stage: no row
    """
    if not destination:
        return False
    if last_destination == destination:
        return False
    if last_destination is None and initial_stage_on_create and destination == initial_stage:
        return False
    return True


def record_stage_change(
    db: Session,
    opportunity: Opportunity,
    destination: Optional[str],
    initial_stage: str,
    initial_stage_on_create: bool,
    pipeline: Optional[str] = None,
    propietario_id: Optional[uuid.UUID] = None,
) -> Optional[StageHistory]:
    origin = last_stage(db, opportunity.id)
    if not should_record_stage(origin, destination, initial_stage, initial_stage_on_create):
        if not destination:
            return None
        logger.info(
            "stage_unchanged",
            oportunidad_id=str(opportunity.id),
            etapa_origen=origin,
            etapa_destino=destination,
        )
        return None

    entry = StageHistory(
        id=uuid.uuid4(),
        oportunidad_id=opportunity.id,
        etapa_origen=origin,
        etapa_destino=destination,
        pipeline=pipeline or opportunity.pipeline,
        propietario_id=propietario_id or opportunity.propietario_id,
    )
    db.add(entry)
    opportunity.etapa = destination
    return entry


def seed_stage(db: Session, opportunity: Opportunity, stage: Optional[str]) -> Optional[StageHistory]:
    """Initial history row written when an opportunity is created"""
    if not stage:
        return None
    entry = StageHistory(
        id=uuid.uuid4(),
        oportunidad_id=opportunity.id,
        etapa_origen=None,
        etapa_destino=stage,
        pipeline=opportunity.pipeline,
        propietario_id=opportunity.propietario_id,
    )
    db.add(entry)
    opportunity.etapa = stage
    return entry


def record_pipeline_change(db: Session, opportunity: Opportunity, new_pipeline: Optional[str]) -> Optional[PipelineChange]:
    """An empty value never clears the stored pipeline; a first assignment is a change from null"""
    previous = opportunity.pipeline
    if not new_pipeline or new_pipeline == previous:
        return None

    opportunity.pipeline = new_pipeline
    change = PipelineChange(
        id=uuid.uuid4(),
        oportunidad_id=opportunity.id,
        estado=opportunity.estado,
        pipeline_origen=previous,
        pipeline_destino=new_pipeline,
    )
    db.add(change)
    return change


def record_reassignment(db: Session, opportunity: Opportunity, new_owner_id: Optional[uuid.UUID]) -> Optional[Reassignment]:
    """Clearing the owner (new_owner_id None) is a reassignment too"""
    previous = opportunity.propietario_id
    if new_owner_id == previous:
        return None

    reassignment = Reassignment(
        id=uuid.uuid4(),
        oportunidad_id=opportunity.id,
        propietario_anterior_id=previous,
        propietario_actual_id=new_owner_id,
    )
    db.add(reassignment)
    opportunity.propietario_id = new_owner_id
    return reassignment
