"""Availability index: recurring weekly windows per practitioner and location."""

import logging
from datetime import date, time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vastis.core.errors import (
    AvailabilityConflictError,
    BookingValidationError,
    WindowNotFoundError,
)
from vastis.core.identity import Identity
from vastis.models.availability import AvailabilityWindow
from vastis.services.practitioners import check_can_manage, get_location, get_practitioner, works_at

logger = logging.getLogger(__name__)


def get_windows(db: Session, practitioner_id: int, location_id: int | None = None) -> list[AvailabilityWindow]:
    """Return the practitioner's windows, optionally limited to one location.

    An unconfigured practitioner simply has no windows.
    """
    query = db.query(AvailabilityWindow).filter(AvailabilityWindow.practitioner_id == practitioner_id)
    if location_id is not None:
        query = query.filter(AvailabilityWindow.location_id == location_id)

    return query.order_by(
        AvailabilityWindow.location_id.asc(),
        AvailabilityWindow.weekday.asc(),
        AvailabilityWindow.start_time.asc(),
    ).all()


def get_windows_for_date(
    db: Session,
    practitioner_id: int,
    location_id: int,
    on_date: date,
) -> list[AvailabilityWindow]:
    return db.query(AvailabilityWindow).filter(
        AvailabilityWindow.practitioner_id == practitioner_id,
        AvailabilityWindow.location_id == location_id,
        AvailabilityWindow.weekday == on_date.weekday(),
    ).order_by(AvailabilityWindow.start_time.asc()).all()


def validate_window(weekday: int, start_time: time, end_time: time) -> None:
    if weekday < 0 or weekday > 6:
        raise BookingValidationError('Weekday must be between 0 (Monday) and 6 (Sunday).')

    if start_time >= end_time:
        raise BookingValidationError('Start time must be before end time.')


def _check_can_manage(identity: Identity, practitioner_id: int) -> None:
    check_can_manage(identity, practitioner_id, 'Only the practitioner can manage their availability.')


def _check_location(db: Session, practitioner_id: int, location_id: int) -> None:
    get_location(db, location_id)
    if not works_at(db, practitioner_id, location_id):
        raise BookingValidationError('The practitioner does not work at this location.')


def _find_overlapping_window(
    db: Session,
    practitioner_id: int,
    location_id: int,
    weekday: int,
    start_time: time,
    end_time: time,
    exclude_id: int | None = None,
) -> AvailabilityWindow | None:
    query = db.query(AvailabilityWindow).filter(
        AvailabilityWindow.practitioner_id == practitioner_id,
        AvailabilityWindow.location_id == location_id,
        AvailabilityWindow.weekday == weekday,
        AvailabilityWindow.start_time < end_time,
        AvailabilityWindow.end_time > start_time,
    )
    if exclude_id is not None:
        query = query.filter(AvailabilityWindow.id != exclude_id)
    return query.first()


def create_window(
    db: Session,
    identity: Identity,
    practitioner_id: int,
    location_id: int,
    weekday: int,
    start_time: time,
    end_time: time,
) -> AvailabilityWindow:
    _check_can_manage(identity, practitioner_id)
    validate_window(weekday, start_time, end_time)
    get_practitioner(db, practitioner_id)
    _check_location(db, practitioner_id, location_id)

    if _find_overlapping_window(db, practitioner_id, location_id, weekday, start_time, end_time):
        raise AvailabilityConflictError('This window overlaps existing availability on the same day.')

    window = AvailabilityWindow(
        practitioner_id=practitioner_id,
        location_id=location_id,
        weekday=weekday,
        start_time=start_time,
        end_time=end_time,
    )
    try:
        db.add(window)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(window)

    logger.info(
        'Practitioner %s opened weekday %s %s-%s at location %s',
        practitioner_id, weekday, start_time, end_time, location_id,
    )
    return window


def _get_window_or_raise(db: Session, window_id: int) -> AvailabilityWindow:
    window = db.query(AvailabilityWindow).filter(AvailabilityWindow.id == window_id).first()
    if window is None:
        raise WindowNotFoundError('Availability window not found.')
    return window


def update_window(
    db: Session,
    identity: Identity,
    window_id: int,
    weekday: int,
    start_time: time,
    end_time: time,
    location_id: int | None = None,
) -> AvailabilityWindow:
    window = _get_window_or_raise(db, window_id)
    _check_can_manage(identity, window.practitioner_id)
    validate_window(weekday, start_time, end_time)

    target_location_id = location_id if location_id is not None else window.location_id
    if target_location_id != window.location_id:
        _check_location(db, window.practitioner_id, target_location_id)

    overlapping = _find_overlapping_window(
        db,
        window.practitioner_id,
        target_location_id,
        weekday,
        start_time,
        end_time,
        exclude_id=window.id,
    )
    if overlapping:
        raise AvailabilityConflictError('This window overlaps existing availability on the same day.')

    window.location_id = target_location_id
    window.weekday = weekday
    window.start_time = start_time
    window.end_time = end_time
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(window)
    return window


def delete_window(db: Session, identity: Identity, window_id: int) -> None:
    """Remove a window. Appointments already booked inside it are left untouched."""
    window = _get_window_or_raise(db, window_id)
    _check_can_manage(identity, window.practitioner_id)

    try:
        db.delete(window)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info('Availability window %s removed by user %s', window_id, identity.user_id)
