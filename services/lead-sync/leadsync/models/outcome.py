"""
Terminal opportunity outcomes (won / lost / abandoned fact rows)
"""
from sqlalchemy import Column, String, DateTime, Float, ForeignKey, Uuid
from datetime import datetime
import uuid
from leadsync.core.database import Base


class WonOpportunity(Base):
    __tablename__ = "op_ganadas"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    oportunidad_id = Column("oportunidad", Uuid, ForeignKey("oportunidades.id"), nullable=False, index=True)
    propietario_id = Column("propietario", Uuid, ForeignKey("usuarios.id"), nullable=True)
    pipeline = Column(String, nullable=True)
    etapa = Column(String, nullable=True)
    arras = Column(Float, nullable=True)
    cuota_inicial_pagada = Column(Float, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class LostOpportunity(Base):
    __tablename__ = "op_perdidas"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    oportunidad_id = Column("oportunidad", Uuid, ForeignKey("oportunidades.id"), nullable=False, index=True)
    propietario_id = Column("propietario", Uuid, ForeignKey("usuarios.id"), nullable=True)
    pipeline = Column(String, nullable=True)
    etapa_de_perdida = Column(String, nullable=True)
    motivo_de_perdida = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class AbandonedOpportunity(Base):
    __tablename__ = "op_abandonadas"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    oportunidad_id = Column("oportunidad", Uuid, ForeignKey("oportunidades.id"), nullable=False, index=True)
    propietario_id = Column("propietario", Uuid, ForeignKey("usuarios.id"), nullable=True)
    pipeline = Column(String, nullable=True)
    etapa_de_abandono = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
