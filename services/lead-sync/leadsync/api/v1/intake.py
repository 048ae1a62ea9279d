"""
First-party form intake endpoints
"""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, EmailStr, field_validator
from typing import Optional

from leadsync.core.config import Settings, get_settings
from leadsync.core.database import get_db
from leadsync.services.crm_client import CRMClient, get_crm_client
from leadsync.services.intake_service import submit_field_form, submit_personal_network

router = APIRouter()


class FieldFormRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    usuarioId: Optional[str] = None
    lugarProspeccion: Optional[str] = None
    nombre: Optional[str] = None
    apellido: Optional[str] = None
    celular: Optional[str] = None
    documentoIdentidad: Optional[str] = None
    email: Optional[EmailStr] = None
    proyectoInteres: Optional[str] = None
    presupuesto: Optional[str] = None
    modalidadPago: Optional[str] = None
    comentarios: Optional[str] = None

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class PersonalNetworkRequest(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    nombre_completo: Optional[str] = None
    celular: Optional[str] = None
    proyecto_interes: Optional[str] = None
    comentarios: Optional[str] = None
    token: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None


@router.post("/field-form")
async def field_form(
    request: FieldFormRequest,
    db: Session = Depends(get_db),
    crm: CRMClient = Depends(get_crm_client),
    settings: Settings = Depends(get_settings),
):
    """
    Field agent form ("formulario de campo")

    Flow:
    1. Reject duplicates by phone (409)
    2. Save the contact locally
    3. CRM contact, note and opportunity assigned to the agent
    """
    result = await submit_field_form(db, crm, settings, request)
    return JSONResponse(status_code=201, content=result)


@router.post("/personal-network")
async def personal_network(
    request: PersonalNetworkRequest,
    db: Session = Depends(get_db),
    crm: CRMClient = Depends(get_crm_client),
    settings: Settings = Depends(get_settings),
):
    """Personal-network referral ("entorno personal"); duplicates by full name are rejected"""
    result = await submit_personal_network(db, crm, settings, request)
    return JSONResponse(status_code=201, content=result)
