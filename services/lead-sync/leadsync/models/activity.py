"""
Notes and scheduled appointments
"""
from sqlalchemy import Column, String, Text, DateTime, Date, ForeignKey, Uuid
from datetime import datetime
import uuid
from leadsync.core.database import Base


class Note(Base):
    __tablename__ = "notas"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    contacto_id = Column("contacto", Uuid, ForeignKey("contactos.id"), nullable=True, index=True)
    oportunidad_id = Column("oportunidad", Uuid, ForeignKey("oportunidades.id"), nullable=True, index=True)
    propietario_id = Column("propietario", Uuid, ForeignKey("usuarios.id"), nullable=True)
    pipeline = Column(String, nullable=True)
    nota = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Appointment(Base):
    __tablename__ = "citas_programadas"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    ghl_appointment_id = Column(String, nullable=True, unique=True, index=True)
    contacto_id = Column("contacto", Uuid, ForeignKey("contactos.id"), nullable=True, index=True)
    oportunidad_id = Column("oportunidad", Uuid, ForeignKey("oportunidades.id"), nullable=True)
    propietario_id = Column("propietario", Uuid, ForeignKey("usuarios.id"), nullable=True)
    tipo = Column(String, nullable=True)
    fecha_hora_inicio = Column(DateTime, nullable=True)
    date_inicio_reunion = Column(Date, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
