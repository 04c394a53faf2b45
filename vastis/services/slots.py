"""
Slot generation.

Expands the availability windows that match a date's weekday into discrete
ticks and marks the ticks already taken by a non-cancelled appointment.
Nothing is cached; a cancelled appointment frees its tick on the next call.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from vastis.core import config
from vastis.models.appointment import Appointment, AppointmentStatus
from vastis.services.availability import get_windows_for_date


@dataclass(frozen=True)
class Slot:
    date: date
    time: time
    available: bool


def iterate_ticks(start_time: time, end_time: time, granularity_minutes: int) -> list[time]:
    """Split ``[start_time, end_time)`` into ticks of ``granularity_minutes``.

    A trailing partial tick is dropped so no tick runs past ``end_time``.
    """
    if granularity_minutes <= 0:
        raise ValueError('Granularity must be a positive number of minutes.')

    step = timedelta(minutes=granularity_minutes)
    current = datetime.combine(date.min, start_time)
    window_end = datetime.combine(date.min, end_time)

    ticks: list[time] = []
    while current + step <= window_end:
        ticks.append(current.time())
        current += step

    return ticks


def get_booked_times(db: Session, practitioner_id: int, location_id: int, on_date: date) -> set[time]:
    rows = db.query(Appointment.appointment_time).filter(
        Appointment.practitioner_id == practitioner_id,
        Appointment.location_id == location_id,
        Appointment.appointment_date == on_date,
        Appointment.status != AppointmentStatus.CANCELLED.value,
    ).all()

    return {appointment_time for (appointment_time,) in rows}


def get_ticks_for_date(db: Session, practitioner_id: int, location_id: int, on_date: date) -> list[time]:
    """Bookable start times for the date, always at ``SLOT_GRANULARITY_MINUTES``."""
    granularity = config.SLOT_GRANULARITY_MINUTES
    windows = get_windows_for_date(db, practitioner_id, location_id, on_date)

    ticks: set[time] = set()
    for window in windows:
        ticks.update(iterate_ticks(window.start_time, window.end_time, granularity))

    return sorted(ticks)


def generate_slots(db: Session, practitioner_id: int, location_id: int, on_date: date) -> list[Slot]:
    ticks = get_ticks_for_date(db, practitioner_id, location_id, on_date)
    if not ticks:
        return []

    booked_times = get_booked_times(db, practitioner_id, location_id, on_date)

    return [Slot(date=on_date, time=tick, available=tick not in booked_times) for tick in ticks]
