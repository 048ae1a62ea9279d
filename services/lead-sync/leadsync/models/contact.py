"""
Contact model
"""
from sqlalchemy import Column, String, DateTime, Date, Float, Uuid
from datetime import datetime
import uuid
import enum
from leadsync.core.database import Base


class Channel(str, enum.Enum):
    TRADICIONAL = "TRADICIONAL"
    DIGITAL = "DIGITAL"


class Contact(Base):
    __tablename__ = "contactos"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    nombre_completo = Column(String, nullable=True, index=True)
    # Local 9-digit format; E.164 is derived
    celular = Column(String, nullable=True, unique=True, index=True)
    email = Column(String, nullable=True)
    hl_contact_id = Column(String, nullable=True, unique=True, index=True)
    documento_de_identidad = Column(String, nullable=True)
    canal = Column(String, nullable=True)
    origen = Column(String, nullable=True)

    estado_civil = Column(String, nullable=True)
    distrito_de_residencia = Column(String, nullable=True)
    profesion = Column(String, nullable=True)
    fecha_de_nacimiento = Column(Date, nullable=True)
    latitud = Column(Float, nullable=True)
    longitud = Column(Float, nullable=True)

    # Digital attribution
    nombre_anuncio = Column(String, nullable=True)
    conjunto_de_anuncios = Column(String, nullable=True)
    nombre_campana = Column("nombre_campaña", String, nullable=True)
    fuente_digital = Column(String, nullable=True)
    proyecto_formulario = Column(String, nullable=True)
    id_registro_cliente = Column(String, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
