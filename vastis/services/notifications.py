"""
Appointment notification hooks.

E-mail and calendar integrations register a listener here. Listeners run
after the appointment write has been committed; a failing listener is
logged and skipped, it never undoes the booking or cancellation.
"""

import logging
from typing import Callable

from vastis.models.appointment import Appointment

logger = logging.getLogger(__name__)

APPOINTMENT_BOOKED = 'appointment.booked'
APPOINTMENT_CANCELLED = 'appointment.cancelled'
APPOINTMENT_STATUS_CHANGED = 'appointment.status_changed'

Listener = Callable[[str, Appointment], None]

_listeners: list[Listener] = []


def register_listener(listener: Listener) -> None:
    if listener not in _listeners:
        _listeners.append(listener)


def unregister_listener(listener: Listener) -> None:
    if listener in _listeners:
        _listeners.remove(listener)


def clear_listeners() -> None:
    _listeners.clear()


def dispatch(event: str, appointment: Appointment) -> None:
    for listener in list(_listeners):
        try:
            listener(event, appointment)
        except Exception:
            logger.exception(
                'Notification listener %r failed for %s on appointment %s',
                listener, event, appointment.id,
            )
