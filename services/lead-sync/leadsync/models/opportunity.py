"""
Opportunity model
"""
from sqlalchemy import Column, String, DateTime, Float, ForeignKey, Uuid
from datetime import datetime
import uuid
import enum
from leadsync.core.database import Base


class OpportunityStatus(str, enum.Enum):
    OPEN = "open"
    WON = "won"
    LOST = "lost"
    ABANDONED = "abandoned"


class Opportunity(Base):
    __tablename__ = "oportunidades"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    contacto_id = Column("contacto", Uuid, ForeignKey("contactos.id"), nullable=True, index=True)
    propietario_id = Column("propietario", Uuid, ForeignKey("usuarios.id"), nullable=True, index=True)
    hl_opportunity_id = Column(String, nullable=True, unique=True, index=True)

    nombre_completo = Column(String, nullable=True)
    pipeline = Column(String, nullable=True)
    etapa = Column(String, nullable=True)
    estado = Column(String, nullable=True)
    nivel_de_interes = Column(String, nullable=True)
    tipo_de_cliente = Column(String, nullable=True)
    producto = Column(String, nullable=True)
    proyecto = Column(String, nullable=True)
    modalidad_de_pago = Column(String, nullable=True)
    motivo_de_seguimiento = Column(String, nullable=True)
    principales_objeciones = Column(String, nullable=True)

    arras = Column(Float, nullable=True)
    cuota_inicial_pagada = Column(Float, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
