"""
SQLAlchemy models
"""
from leadsync.models.user import User
from leadsync.models.contact import Contact, Channel
from leadsync.models.opportunity import Opportunity, OpportunityStatus
from leadsync.models.history import StageHistory, PipelineChange, Reassignment
from leadsync.models.outcome import WonOpportunity, LostOpportunity, AbandonedOpportunity
from leadsync.models.activity import Note, Appointment

__all__ = [
    "User",
    "Contact",
    "Channel",
    "Opportunity",
    "OpportunityStatus",
    "StageHistory",
    "PipelineChange",
    "Reassignment",
    "WonOpportunity",
    "LostOpportunity",
    "AbandonedOpportunity",
    "Note",
    "Appointment",
]
