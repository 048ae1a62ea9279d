"""
Tests for opportunity webhooks: create, partial update, stage, owner, outcomes
"""
from leadsync.models import (
    AbandonedOpportunity,
    LostOpportunity,
    Opportunity,
    PipelineChange,
    Reassignment,
    StageHistory,
    WonOpportunity,
)

from conftest import DIGITAL_TOKEN, add_history, make_contact, make_opportunity, make_user, webhook_url


def test_opportunity_created_resolves_references(client, db_session):
    user = make_user(db_session, ghl_id="ghl-u-1")
    contact = make_contact(db_session, hl_contact_id="hl-c-1")

    response = client.post(webhook_url("opportunity-created"), json={
        "customData": {
            "hl_opportunity_id": "hl-o-1",
            "propietario": "ghl-u-1",
            "contacto": "hl-c-1",
            "pipeline": "Cartera propia",
            "nivel_de_interes": "Alto",
            "arras": "S/ 1,500.00",
        }
    })

    assert response.status_code == 201
    opportunity = db_session.query(Opportunity).filter(Opportunity.hl_opportunity_id == "hl-o-1").one()
    assert opportunity.propietario_id == user.id
    assert opportunity.contacto_id == contact.id
    assert opportunity.pipeline == "Cartera propia"
    assert opportunity.nivel_de_interes == "Alto"
    assert opportunity.arras == 1500.0
    assert opportunity.estado == "open"
    assert db_session.query(StageHistory).count() == 0


def test_opportunity_created_unresolved_owner_is_null(client, db_session):
    response = client.post(webhook_url("opportunity-created"), json={
        "opportunity": {"id": "hl-o-2", "assignedUserId": "unknown-user", "status": "open"}
    })

    assert response.status_code == 201
    assert response.json()["propietario"] is None


def test_opportunity_created_owner_required(client, db_session, settings):
    settings.REQUIRE_OPPORTUNITY_OWNER = True

    response = client.post(webhook_url("opportunity-created"), json={
        "hl_opportunity_id": "hl-o-3",
        "propietario": "unknown-user",
    })

    assert response.status_code == 400
    assert response.json()["detail"] == "missing reference propietario"
    assert db_session.query(Opportunity).count() == 0


def test_opportunity_created_seeds_initial_stage(client, db_session, settings):
    settings.RECORD_INITIAL_STAGE_ON_CREATE = True

    response = client.post(webhook_url("opportunity-created"), json={"hl_opportunity_id": "hl-o-4"})

    assert response.status_code == 201
    entry = db_session.query(StageHistory).one()
    assert entry.etapa_origen is None
    assert entry.etapa_destino == "Oportunidad recibida"


def test_opportunity_created_replay_is_skipped(client, db_session):
    make_opportunity(db_session, hl_opportunity_id="hl-o-5")

    response = client.post(webhook_url("opportunity-created"), json={"hl_opportunity_id": "hl-o-5"})

    assert response.status_code == 200
    assert response.json()["skipped"] is True
    assert db_session.query(Opportunity).count() == 1


def test_opportunity_updated_unknown_opportunity(client, db_session):
    """Unknown opportunity: 200 with updated=false, nothing written"""
    existing = make_opportunity(db_session, hl_opportunity_id="hl-o-6", producto="Lote")

    response = client.post(webhook_url("opportunity-updated"), json={
        "hl_opportunity_id": "does-not-exist",
        "producto": "Departamento",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["updated"] is False
    db_session.refresh(existing)
    assert existing.producto == "Lote"
    assert db_session.query(StageHistory).count() == 0


def test_opportunity_updated_partial_fields(client, db_session):
    opportunity = make_opportunity(
        db_session,
        hl_opportunity_id="hl-o-7",
        producto="Lote",
        proyecto="Las Lomas",
        principales_objeciones="Precio",
    )

    response = client.post(webhook_url("opportunity-updated"), json={
        "hl_opportunity_id": "hl-o-7",
        "producto": "Casa",
        "principales_objeciones": "",
        "cuota_inicial_pagada": "2.500,50",
    })

    assert response.status_code == 200
    db_session.refresh(opportunity)
    assert opportunity.producto == "Casa"
    assert opportunity.proyecto == "Las Lomas"
    assert opportunity.principales_objeciones is None
    assert opportunity.cuota_inicial_pagada == 2500.5


def test_opportunity_updated_records_changes(client, db_session):
    """Owner, pipeline and stage changes each append one history row"""
    first = make_user(db_session, ghl_id="u-1")
    second = make_user(db_session, ghl_id="u-2")
    opportunity = make_opportunity(
        db_session,
        hl_opportunity_id="hl-o-8",
        propietario_id=first.id,
        pipeline="Tradicional",
        estado="open",
    )
    add_history(db_session, opportunity, "Oportunidad recibida")

    payload = {
        "customData": {
            "hl_opportunity_id": "hl-o-8",
            "ghl_id": "u-2",
            "pipeline": "Digital",
            "etapa_destino": "Presentación",
        }
    }
    response = client.post(webhook_url("opportunity-updated", channel="digital", token=DIGITAL_TOKEN), json=payload)

    assert response.status_code == 200
    body = response.json()
    assert body["reassigned"] is True
    assert body["pipeline_changed"] is True
    assert body["historial_etapas_id"] is not None

    db_session.refresh(opportunity)
    assert opportunity.propietario_id == second.id
    assert opportunity.pipeline == "Digital"
    assert db_session.query(Reassignment).count() == 1
    change = db_session.query(PipelineChange).one()
    assert (change.pipeline_origen, change.pipeline_destino) == ("Tradicional", "Digital")

    # Same webhook again: nothing new
    replay = client.post(webhook_url("opportunity-updated", channel="digital", token=DIGITAL_TOKEN), json=payload)
    assert replay.status_code == 200
    assert replay.json()["historial_etapas_id"] is None
    assert db_session.query(Reassignment).count() == 1
    assert db_session.query(PipelineChange).count() == 1
    assert db_session.query(StageHistory).count() == 2


def test_opportunity_updated_falls_back_to_contact(client, db_session):
    contact = make_contact(db_session, hl_contact_id="hl-c-9")
    opportunity = make_opportunity(db_session, hl_opportunity_id="hl-o-9", contacto_id=contact.id)

    response = client.post(webhook_url("opportunity-updated"), json={"contact_id": "hl-c-9", "producto": "Casa"})

    assert response.status_code == 200
    assert response.json()["oportunidad_id"] == str(opportunity.id)
    db_session.refresh(opportunity)
    assert opportunity.producto == "Casa"


def test_opportunity_updated_clearing_owner_appends_reassignment(client, db_session):
    """Empty or unknown owner unassigns the opportunity and records the change"""
    owner = make_user(db_session, ghl_id="u-1")
    opportunity = make_opportunity(db_session, hl_opportunity_id="hl-o-10", propietario_id=owner.id)

    response = client.post(webhook_url("opportunity-updated"), json={"hl_opportunity_id": "hl-o-10", "assignedTo": ""})

    assert response.status_code == 200
    assert response.json()["reassigned"] is True
    db_session.refresh(opportunity)
    assert opportunity.propietario_id is None
    reassignment = db_session.query(Reassignment).one()
    assert reassignment.propietario_anterior_id == owner.id
    assert reassignment.propietario_actual_id is None

    # Unknown owner while already unassigned: no new row
    again = client.post(webhook_url("opportunity-updated"), json={"hl_opportunity_id": "hl-o-10", "assignedTo": "ghost"})
    assert again.json()["reassigned"] is False
    assert db_session.query(Reassignment).count() == 1


def test_opportunity_updated_owner_required(client, db_session, settings):
    """Unresolved owner with the owner requirement on: 400, nothing written"""
    settings.REQUIRE_OPPORTUNITY_OWNER = True
    owner = make_user(db_session, ghl_id="u-1")
    opportunity = make_opportunity(db_session, hl_opportunity_id="hl-o-11", propietario_id=owner.id)

    response = client.post(webhook_url("opportunity-updated"), json={
        "hl_opportunity_id": "hl-o-11",
        "producto": "Casa",
        "assignedTo": "unknown-user",
    })

    assert response.status_code == 400
    assert response.json()["detail"] == "missing reference propietario"
    db_session.refresh(opportunity)
    assert opportunity.propietario_id == owner.id
    assert opportunity.producto is None
    assert db_session.query(Reassignment).count() == 0


def test_opportunity_updated_first_pipeline_is_recorded(client, db_session):
    opportunity = make_opportunity(db_session, hl_opportunity_id="hl-o-12")

    response = client.post(webhook_url("opportunity-updated"), json={"hl_opportunity_id": "hl-o-12", "pipeline": "Digital"})

    assert response.status_code == 200
    assert response.json()["pipeline_changed"] is True
    db_session.refresh(opportunity)
    assert opportunity.pipeline == "Digital"
    change = db_session.query(PipelineChange).one()
    assert (change.pipeline_origen, change.pipeline_destino) == (None, "Digital")


def test_stage_changed_appends_history(client, db_session):
    """Stage change from the initial stage records origin and destination"""
    owner = make_user(db_session, ghl_id="u-9")
    opportunity = make_opportunity(db_session, hl_opportunity_id="hl-o-10", pipeline="Cartera propia")
    add_history(db_session, opportunity, "Oportunidad recibida")

    response = client.post(webhook_url("stage-changed"), json={
        "customData": {"hl_opportunity_id": "hl-o-10", "etapa_destino": "Presentación", "propietario": "u-9"}
    })

    assert response.status_code == 201
    body = response.json()
    assert body["etapa_origen"] == "Oportunidad recibida"
    assert body["etapa_destino"] == "Presentación"
    assert body["pipeline"] == "Cartera propia"
    assert body["propietario"] == str(owner.id)

    entries = db_session.query(StageHistory).order_by(StageHistory.created_at).all()
    assert len(entries) == 2
    assert entries[-1].etapa_origen == "Oportunidad recibida"
    assert entries[-1].etapa_destino == "Presentación"


def test_stage_changed_same_stage_is_noop(client, db_session):
    opportunity = make_opportunity(db_session, hl_opportunity_id="hl-o-11")
    add_history(db_session, opportunity, "Presentación")

    response = client.post(webhook_url("stage-changed"), json={
        "hl_opportunity_id": "hl-o-11",
        "etapa_destino": "Presentación",
    })

    assert response.status_code == 200
    assert response.json()["reason"] == "stage_unchanged"
    assert db_session.query(StageHistory).count() == 1


def test_stage_changed_validation_and_unknown(client, db_session):
    missing_stage = client.post(webhook_url("stage-changed"), json={"hl_opportunity_id": "hl-o-12"})
    assert missing_stage.status_code == 400

    unknown = client.post(webhook_url("stage-changed"), json={
        "hl_opportunity_id": "nope",
        "opportunity": {"stageName": "Visita"},
    })
    assert unknown.status_code == 200
    assert unknown.json() == {"ok": True, "skipped": True, "reason": "opportunity_not_found", "hl_opportunity_id": "nope"}


def test_owner_changed(client, db_session):
    first = make_user(db_session, ghl_id="u-1")
    second = make_user(db_session, ghl_id="u-2")
    opportunity = make_opportunity(db_session, hl_opportunity_id="hl-o-13", propietario_id=first.id)

    response = client.post(webhook_url("owner-changed"), json={"oportunidad": "hl-o-13", "propietario": "u-2"})

    assert response.status_code == 201
    body = response.json()
    assert body["propietario_anterior"] == str(first.id)
    assert body["propietario_actual"] == str(second.id)
    db_session.refresh(opportunity)
    assert opportunity.propietario_id == second.id

    same = client.post(webhook_url("owner-changed"), json={"oportunidad": "hl-o-13", "propietario": "u-2"})
    assert same.status_code == 200
    assert same.json()["reason"] == "same_owner"
    assert db_session.query(Reassignment).count() == 1


def test_owner_changed_skips(client, db_session):
    make_opportunity(db_session, hl_opportunity_id="hl-o-14")

    missing = client.post(webhook_url("owner-changed"), json={"oportunidad": "hl-o-14"})
    assert missing.status_code == 400

    no_opportunity = client.post(webhook_url("owner-changed"), json={"oportunidad": "nope", "propietario": "u-1"})
    assert no_opportunity.json()["reason"] == "opportunity_not_found"

    no_owner = client.post(webhook_url("owner-changed"), json={"oportunidad": "hl-o-14", "propietario": "ghost"})
    assert no_owner.status_code == 200
    assert no_owner.json()["reason"] == "new_owner_not_found"


def test_opportunity_won(client, db_session):
    owner = make_user(db_session, ghl_id="u-1")
    opportunity = make_opportunity(
        db_session,
        hl_opportunity_id="hl-o-15",
        propietario_id=owner.id,
        pipeline="Cartera propia",
        cuota_inicial_pagada=5000.0,
    )
    add_history(db_session, opportunity, "Separación")

    response = client.post(webhook_url("opportunity-won"), json={"oportunidad": "hl-o-15", "arras": "1,000"})

    assert response.status_code == 201
    fact = db_session.query(WonOpportunity).one()
    assert fact.arras == 1000.0
    assert fact.cuota_inicial_pagada == 5000.0
    assert fact.etapa == "Separación"
    assert fact.propietario_id == owner.id
    assert fact.pipeline == "Cartera propia"
    db_session.refresh(opportunity)
    assert opportunity.estado == "won"

    replay = client.post(webhook_url("opportunity-won"), json={"oportunidad": "hl-o-15"})
    assert replay.json()["reason"] == "already_recorded"
    assert db_session.query(WonOpportunity).count() == 1


def test_opportunity_lost_and_abandoned(client, db_session):
    lost = make_opportunity(db_session, hl_opportunity_id="hl-o-16")
    add_history(db_session, lost, "Presentación")
    abandoned = make_opportunity(db_session, hl_opportunity_id="hl-o-17", etapa="Visita a proyecto")

    response = client.post(webhook_url("opportunity-lost"), json={
        "opportunity": {"id": "hl-o-16"},
        "motivo_de_perdida": "Sin presupuesto",
    })
    assert response.status_code == 201
    fact = db_session.query(LostOpportunity).one()
    assert fact.motivo_de_perdida == "Sin presupuesto"
    assert fact.etapa_de_perdida == "Presentación"

    response = client.post(webhook_url("opportunity-abandoned"), json={"hl_opportunity_id": "hl-o-17"})
    assert response.status_code == 201
    assert db_session.query(AbandonedOpportunity).one().etapa_de_abandono == "Visita a proyecto"

    db_session.refresh(lost)
    db_session.refresh(abandoned)
    assert lost.estado == "lost"
    assert abandoned.estado == "abandoned"


def test_outcome_for_unknown_opportunity_is_skipped(client, db_session):
    response = client.post(webhook_url("opportunity-lost"), json={"oportunidad": "nope"})

    assert response.status_code == 200
    assert response.json()["skipped"] is True
    assert db_session.query(LostOpportunity).count() == 0
