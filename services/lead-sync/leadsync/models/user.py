"""
Sales agent (owner) model
"""
from sqlalchemy import Column, String, DateTime, Uuid
from datetime import datetime
import uuid
from leadsync.core.database import Base


class User(Base):
    """Read-only from this service: resolves CRM user ids to owners"""

    __tablename__ = "usuarios"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    nombre = Column(String, nullable=True)
    email = Column(String, nullable=True)
    ghl_id = Column(String, nullable=True, unique=True, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
