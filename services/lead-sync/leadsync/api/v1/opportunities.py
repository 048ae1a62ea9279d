"""
Opportunity webhook endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from leadsync.api.deps import WebhookContext, respond, webhook_context
from leadsync.core.database import get_db
from leadsync.services import opportunity_sync
from leadsync.services.payload import PayloadView

router = APIRouter()


@router.post("/{channel}/opportunity-created")
async def opportunity_created(ctx: WebhookContext = Depends(webhook_context), db: Session = Depends(get_db)):
    return respond(opportunity_sync.opportunity_created(db, ctx.settings, ctx.channel, PayloadView(ctx.body)))


@router.post("/{channel}/opportunity-updated")
async def opportunity_updated(ctx: WebhookContext = Depends(webhook_context), db: Session = Depends(get_db)):
    """
    Partial update; keys missing from the payload are left untouched.
    Unknown opportunities answer 200 with updated=false.
    """
    return respond(opportunity_sync.opportunity_updated(db, ctx.settings, ctx.channel, PayloadView(ctx.body)))


@router.post("/{channel}/stage-changed")
async def stage_changed(ctx: WebhookContext = Depends(webhook_context), db: Session = Depends(get_db)):
    return respond(opportunity_sync.stage_changed(db, ctx.settings, ctx.channel, PayloadView(ctx.body)))


@router.post("/{channel}/owner-changed")
async def owner_changed(ctx: WebhookContext = Depends(webhook_context), db: Session = Depends(get_db)):
    return respond(opportunity_sync.owner_changed(db, ctx.settings, ctx.channel, PayloadView(ctx.body)))


@router.post("/{channel}/opportunity-won")
async def opportunity_won(ctx: WebhookContext = Depends(webhook_context), db: Session = Depends(get_db)):
    return respond(opportunity_sync.opportunity_won(db, ctx.settings, ctx.channel, PayloadView(ctx.body)))


@router.post("/{channel}/opportunity-lost")
async def opportunity_lost(ctx: WebhookContext = Depends(webhook_context), db: Session = Depends(get_db)):
    return respond(opportunity_sync.opportunity_lost(db, ctx.settings, ctx.channel, PayloadView(ctx.body)))


@router.post("/{channel}/opportunity-abandoned")
async def opportunity_abandoned(ctx: WebhookContext = Depends(webhook_context), db: Session = Depends(get_db)):
    return respond(opportunity_sync.opportunity_abandoned(db, ctx.settings, ctx.channel, PayloadView(ctx.body)))
