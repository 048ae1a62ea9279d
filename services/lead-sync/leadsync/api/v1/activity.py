"""
Activity webhook endpoints (notes, appointments)
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from leadsync.api.deps import WebhookContext, respond, webhook_context
from leadsync.core.database import get_db
from leadsync.services import activity_sync
from leadsync.services.payload import PayloadView

router = APIRouter()


@router.post("/{channel}/note-created")
async def note_created(ctx: WebhookContext = Depends(webhook_context), db: Session = Depends(get_db)):
    return respond(activity_sync.note_created(db, ctx.settings, ctx.channel, PayloadView(ctx.body)))


@router.post("/{channel}/appointment")
async def appointment(ctx: WebhookContext = Depends(webhook_context), db: Session = Depends(get_db)):
    """Scheduled appointment, linked to the contact's latest opportunity"""
    return respond(activity_sync.appointment_scheduled(db, ctx.settings, ctx.channel, PayloadView(ctx.body)))
