"""
Practitioner directory.

Where a practitioner works and which services they offer. Availability
windows may only be opened at a linked location, and a booking needs both
links, so these rows decide who a patient can book for what.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from vastis.core.errors import (
    AlreadyExistsError,
    BookingValidationError,
    LinkNotFoundError,
    PermissionDeniedError,
)
from vastis.core.identity import ROLE_PRACTITIONER, Identity
from vastis.models.availability import AvailabilityWindow
from vastis.models.location import Location
from vastis.models.practitioner import PractitionerLocation, PractitionerService
from vastis.models.service_type import ServiceType
from vastis.models.user import User

logger = logging.getLogger(__name__)


def check_can_manage(
    identity: Identity,
    practitioner_id: int,
    message: str = 'Only the practitioner can manage their profile.',
) -> None:
    if identity.is_admin:
        return
    if identity.role != ROLE_PRACTITIONER or identity.user_id != practitioner_id:
        raise PermissionDeniedError(message)


def get_practitioner(db: Session, practitioner_id: int) -> User:
    practitioner = db.query(User).filter(
        User.id == practitioner_id,
        User.role == ROLE_PRACTITIONER,
    ).first()
    if practitioner is None:
        raise BookingValidationError('Unknown practitioner.')
    return practitioner


def get_location(db: Session, location_id: int) -> Location:
    location = db.query(Location).filter(Location.id == location_id).first()
    if location is None:
        raise BookingValidationError('Unknown location.')
    return location


def works_at(db: Session, practitioner_id: int, location_id: int) -> bool:
    return db.query(PractitionerLocation.id).filter(
        PractitionerLocation.practitioner_id == practitioner_id,
        PractitionerLocation.location_id == location_id,
    ).first() is not None


def offers_service(db: Session, practitioner_id: int, service_type_id: int) -> bool:
    return db.query(PractitionerService.id).filter(
        PractitionerService.practitioner_id == practitioner_id,
        PractitionerService.service_type_id == service_type_id,
    ).first() is not None


def list_practitioner_locations(db: Session, practitioner_id: int) -> list[Location]:
    return db.query(Location).join(
        PractitionerLocation,
        PractitionerLocation.location_id == Location.id,
    ).filter(
        PractitionerLocation.practitioner_id == practitioner_id,
    ).order_by(Location.name.asc(), Location.id.asc()).all()


def list_practitioner_services(db: Session, practitioner_id: int) -> list[ServiceType]:
    return db.query(ServiceType).join(
        PractitionerService,
        PractitionerService.service_type_id == ServiceType.id,
    ).filter(
        PractitionerService.practitioner_id == practitioner_id,
    ).order_by(ServiceType.name.asc()).all()


def list_practitioners(db: Session, service_type_id: int | None = None) -> list[User]:
    """Practitioners a patient can book: linked to a location and offering a service.

    With ``service_type_id`` only practitioners offering that service are returned.
    """
    located = select(PractitionerLocation.practitioner_id)
    offering = select(PractitionerService.practitioner_id)
    if service_type_id is not None:
        offering = offering.where(PractitionerService.service_type_id == service_type_id)

    return db.query(User).filter(
        User.role == ROLE_PRACTITIONER,
        User.id.in_(located),
        User.id.in_(offering),
    ).order_by(User.id.asc()).all()


def _save_link(db: Session, link, duplicate_message: str) -> None:
    try:
        db.add(link)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise AlreadyExistsError(duplicate_message) from exc
    except SQLAlchemyError:
        db.rollback()
        raise


def add_practitioner_location(db: Session, identity: Identity, practitioner_id: int, location_id: int) -> Location:
    check_can_manage(identity, practitioner_id)
    get_practitioner(db, practitioner_id)
    location = get_location(db, location_id)

    if works_at(db, practitioner_id, location_id):
        raise AlreadyExistsError('The practitioner already works at this location.')

    _save_link(
        db,
        PractitionerLocation(practitioner_id=practitioner_id, location_id=location_id),
        'The practitioner already works at this location.',
    )

    logger.info('Practitioner %s now works at location %s', practitioner_id, location_id)
    return location


def remove_practitioner_location(db: Session, identity: Identity, practitioner_id: int, location_id: int) -> None:
    """Unlink a location and drop the practitioner's windows there. Booked appointments stay."""
    check_can_manage(identity, practitioner_id)

    link = db.query(PractitionerLocation).filter(
        PractitionerLocation.practitioner_id == practitioner_id,
        PractitionerLocation.location_id == location_id,
    ).first()
    if link is None:
        raise LinkNotFoundError('The practitioner does not work at this location.')

    try:
        removed_windows = db.query(AvailabilityWindow).filter(
            AvailabilityWindow.practitioner_id == practitioner_id,
            AvailabilityWindow.location_id == location_id,
        ).delete(synchronize_session='fetch')
        db.delete(link)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info(
        'Practitioner %s no longer works at location %s (%s windows removed)',
        practitioner_id, location_id, removed_windows,
    )


def add_practitioner_service(db: Session, identity: Identity, practitioner_id: int, service_type_id: int) -> ServiceType:
    check_can_manage(identity, practitioner_id)
    get_practitioner(db, practitioner_id)

    service_type = db.query(ServiceType).filter(ServiceType.id == service_type_id).first()
    if service_type is None:
        raise BookingValidationError('Unknown service type.')

    if offers_service(db, practitioner_id, service_type_id):
        raise AlreadyExistsError('The practitioner already offers this service.')

    _save_link(
        db,
        PractitionerService(practitioner_id=practitioner_id, service_type_id=service_type_id),
        'The practitioner already offers this service.',
    )

    logger.info('Practitioner %s now offers service type %s', practitioner_id, service_type_id)
    return service_type


def remove_practitioner_service(db: Session, identity: Identity, practitioner_id: int, service_type_id: int) -> None:
    check_can_manage(identity, practitioner_id)

    link = db.query(PractitionerService).filter(
        PractitionerService.practitioner_id == practitioner_id,
        PractitionerService.service_type_id == service_type_id,
    ).first()
    if link is None:
        raise LinkNotFoundError('The practitioner does not offer this service.')

    try:
        db.delete(link)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info('Practitioner %s no longer offers service type %s', practitioner_id, service_type_id)
