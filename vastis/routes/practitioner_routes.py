from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vastis.auth.dependencies import get_current_identity
from vastis.core.errors import BookingError
from vastis.core.identity import Identity
from vastis.database import get_db
from vastis.routes.appointment_routes import ServiceTypeResponse
from vastis.routes.common import database_unavailable, ensure_database_ready, to_http_exception
from vastis.services import practitioners as practitioner_service

router = APIRouter(tags=['practitioners'])


class PractitionerResponse(BaseModel):
    id: int
    full_name: str | None = None

    class Config:
        from_attributes = True


class LocationResponse(BaseModel):
    id: int
    name: str
    address: str | None = None

    class Config:
        from_attributes = True


class LocationLinkRequest(BaseModel):
    location_id: int


class ServiceLinkRequest(BaseModel):
    service_type_id: int


@router.get('', response_model=list[PractitionerResponse])
def list_practitioners(
    service_type_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return practitioner_service.list_practitioners(db, service_type_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{practitioner_id}/locations', response_model=list[LocationResponse])
def list_practitioner_locations(practitioner_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return practitioner_service.list_practitioner_locations(db, practitioner_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{practitioner_id}/locations', response_model=LocationResponse, status_code=status.HTTP_201_CREATED)
def add_practitioner_location(
    practitioner_id: int,
    data: LocationLinkRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return practitioner_service.add_practitioner_location(db, identity, practitioner_id, data.location_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.delete('/{practitioner_id}/locations/{location_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_practitioner_location(
    practitioner_id: int,
    location_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        practitioner_service.remove_practitioner_location(db, identity, practitioner_id, location_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{practitioner_id}/services', response_model=list[ServiceTypeResponse])
def list_practitioner_services(practitioner_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return practitioner_service.list_practitioner_services(db, practitioner_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{practitioner_id}/services', response_model=ServiceTypeResponse, status_code=status.HTTP_201_CREATED)
def add_practitioner_service(
    practitioner_id: int,
    data: ServiceLinkRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return practitioner_service.add_practitioner_service(db, identity, practitioner_id, data.service_type_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.delete('/{practitioner_id}/services/{service_type_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_practitioner_service(
    practitioner_id: int,
    service_type_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        practitioner_service.remove_practitioner_service(db, identity, practitioner_id, service_type_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
