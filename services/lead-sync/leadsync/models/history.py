"""
Append-only opportunity history: stage transitions, pipeline moves, reassignments
"""
from sqlalchemy import Column, String, DateTime, ForeignKey, Uuid
from datetime import datetime
import uuid
from leadsync.core.database import Base


class StageHistory(Base):
    __tablename__ = "historial_etapas"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    oportunidad_id = Column("oportunidad", Uuid, ForeignKey("oportunidades.id"), nullable=False, index=True)
    etapa_origen = Column(String, nullable=True)
    etapa_destino = Column(String, nullable=False)
    pipeline = Column(String, nullable=True)
    propietario_id = Column("propietario", Uuid, ForeignKey("usuarios.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)


class PipelineChange(Base):
    __tablename__ = "cambios_pipeline"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    oportunidad_id = Column("oportunidad", Uuid, ForeignKey("oportunidades.id"), nullable=False, index=True)
    estado = Column(String, nullable=True)
    pipeline_origen = Column(String, nullable=True)
    pipeline_destino = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Reassignment(Base):
    __tablename__ = "reasignaciones"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    oportunidad_id = Column("oportunidad", Uuid, ForeignKey("oportunidades.id"), nullable=False, index=True)
    propietario_anterior_id = Column("propietario_anterior", Uuid, ForeignKey("usuarios.id"), nullable=True)
    propietario_actual_id = Column("propietario_actual", Uuid, ForeignKey("usuarios.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
