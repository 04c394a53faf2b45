from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vastis.auth.dependencies import get_current_identity
from vastis.core.errors import BookingError
from vastis.core.identity import Identity
from vastis.database import get_db
from vastis.routes.common import database_unavailable, ensure_database_ready, to_http_exception
from vastis.services import availability as availability_service
from vastis.services import slots as slot_service

router = APIRouter(tags=['availability'])


class WindowRequest(BaseModel):
    location_id: int
    weekday: int
    start_time: time
    end_time: time

    @field_validator('weekday')
    @classmethod
    def validate_weekday(cls, value: int) -> int:
        if value < 0 or value > 6:
            raise ValueError('Weekday must be between 0 (Monday) and 6 (Sunday).')
        return value

    @field_validator('start_time', 'end_time')
    @classmethod
    def drop_seconds(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0, tzinfo=None)

    @model_validator(mode='after')
    def validate_range(self) -> 'WindowRequest':
        if self.start_time >= self.end_time:
            raise ValueError('Start time must be before end time.')
        return self


class CreateWindowRequest(WindowRequest):
    practitioner_id: int | None = None


class AvailabilityWindowResponse(BaseModel):
    id: int
    practitioner_id: int
    location_id: int
    weekday: int
    start_time: time
    end_time: time
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class SlotResponse(BaseModel):
    date: date
    time: time
    available: bool

    class Config:
        from_attributes = True


@router.get('/windows', response_model=list[AvailabilityWindowResponse])
def list_windows(
    practitioner_id: int = Query(...),
    location_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return availability_service.get_windows(db, practitioner_id, location_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/windows', response_model=AvailabilityWindowResponse, status_code=status.HTTP_201_CREATED)
def create_window(
    data: CreateWindowRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    practitioner_id = data.practitioner_id if data.practitioner_id is not None else identity.user_id
    try:
        return availability_service.create_window(
            db,
            identity,
            practitioner_id=practitioner_id,
            location_id=data.location_id,
            weekday=data.weekday,
            start_time=data.start_time,
            end_time=data.end_time,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/windows/{window_id}', response_model=AvailabilityWindowResponse)
def update_window(
    window_id: int,
    data: WindowRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return availability_service.update_window(
            db,
            identity,
            window_id,
            weekday=data.weekday,
            start_time=data.start_time,
            end_time=data.end_time,
            location_id=data.location_id,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.delete('/windows/{window_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_window(
    window_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        availability_service.delete_window(db, identity, window_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/slots', response_model=list[SlotResponse])
def list_slots(
    practitioner_id: int = Query(...),
    location_id: int = Query(...),
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return slot_service.generate_slots(db, practitioner_id, location_id, slot_date)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
