"""
Contact webhook endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from leadsync.api.deps import WebhookContext, respond, webhook_context
from leadsync.core.database import get_db
from leadsync.services import contact_sync
from leadsync.services.payload import PayloadView

router = APIRouter()


def _view(ctx: WebhookContext) -> PayloadView:
    # Contact events never carry a nested opportunity
    return PayloadView(ctx.body, nested=("contact",))


@router.post("/{channel}/contact-created")
async def contact_created(ctx: WebhookContext = Depends(webhook_context), db: Session = Depends(get_db)):
    """Insert (or link) a contact created in the CRM"""
    return respond(contact_sync.contact_created(db, ctx.settings, ctx.channel, _view(ctx)))


@router.post("/{channel}/contact-updated")
async def contact_updated(ctx: WebhookContext = Depends(webhook_context), db: Session = Depends(get_db)):
    """Partial update of a stored contact"""
    return respond(contact_sync.contact_updated(db, ctx.settings, ctx.channel, _view(ctx)))
