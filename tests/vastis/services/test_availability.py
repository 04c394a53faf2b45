import os
from datetime import date, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from vastis.core.errors import (  # noqa: E402
    AvailabilityConflictError,
    BookingValidationError,
    PermissionDeniedError,
    WindowNotFoundError,
)
from vastis.core.identity import ROLE_ADMIN, ROLE_PATIENT, ROLE_PRACTITIONER, Identity  # noqa: E402
from vastis.database import Base  # noqa: E402
from vastis.models import appointment, insurance, service_type  # noqa: E402, F401
from vastis.models.availability import AvailabilityWindow  # noqa: E402
from vastis.models.location import Location  # noqa: E402
from vastis.models.practitioner import PractitionerLocation  # noqa: E402
from vastis.models.user import User  # noqa: E402
from vastis.services.availability import (  # noqa: E402
    create_window,
    delete_window,
    get_windows,
    get_windows_for_date,
    update_window,
)

PRACTITIONER = Identity(user_id=1, role=ROLE_PRACTITIONER)
OTHER_PRACTITIONER = Identity(user_id=5, role=ROLE_PRACTITIONER)
PATIENT = Identity(user_id=2, role=ROLE_PATIENT)
ADMIN = Identity(user_id=100, role=ROLE_ADMIN)


@pytest.fixture
def availability_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        db.add_all([
            User(id=1, email='physio@vastis.test', role='practitioner'),
            User(id=2, email='patient@vastis.test', role='patient'),
            User(id=5, email='other-physio@vastis.test', role='practitioner'),
            Location(id=7, name='Harbour Gym'),
            Location(id=8, name='Riverside Gym'),
            Location(id=9, name='Hilltop Clinic'),
            PractitionerLocation(practitioner_id=1, location_id=7),
            PractitionerLocation(practitioner_id=1, location_id=8),
        ])
        db.commit()
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


def test_get_windows_is_empty_for_unconfigured_practitioner(availability_db) -> None:
    assert get_windows(availability_db, practitioner_id=1) == []


def test_create_window_persists_window(availability_db) -> None:
    window = create_window(availability_db, PRACTITIONER, 1, 7, 0, time(9, 0), time(12, 0))

    assert window.id is not None
    assert get_windows(availability_db, practitioner_id=1, location_id=7) == [window]


def test_get_windows_filters_by_location_and_orders_by_day(availability_db) -> None:
    create_window(availability_db, PRACTITIONER, 1, 7, 2, time(9, 0), time(12, 0))
    create_window(availability_db, PRACTITIONER, 1, 7, 0, time(13, 0), time(15, 0))
    create_window(availability_db, PRACTITIONER, 1, 7, 0, time(8, 0), time(10, 0))
    create_window(availability_db, PRACTITIONER, 1, 8, 0, time(8, 0), time(10, 0))

    at_seven = get_windows(availability_db, practitioner_id=1, location_id=7)
    everywhere = get_windows(availability_db, practitioner_id=1)

    assert [(w.weekday, w.start_time) for w in at_seven] == [(0, time(8, 0)), (0, time(13, 0)), (2, time(9, 0))]
    assert len(everywhere) == 4


def test_get_windows_for_date_matches_weekday(availability_db) -> None:
    create_window(availability_db, PRACTITIONER, 1, 7, 0, time(9, 0), time(12, 0))
    create_window(availability_db, PRACTITIONER, 1, 7, 1, time(9, 0), time(12, 0))

    windows = get_windows_for_date(availability_db, 1, 7, date(2040, 1, 2))

    assert [window.weekday for window in windows] == [0]


@pytest.mark.parametrize(
    ('weekday', 'start', 'end', 'message'),
    [
        (7, time(9, 0), time(12, 0), 'Weekday must be between 0 (Monday) and 6 (Sunday).'),
        (-1, time(9, 0), time(12, 0), 'Weekday must be between 0 (Monday) and 6 (Sunday).'),
        (0, time(12, 0), time(9, 0), 'Start time must be before end time.'),
        (0, time(9, 0), time(9, 0), 'Start time must be before end time.'),
    ],
)
def test_create_window_rejects_invalid_ranges(availability_db, weekday: int, start: time, end: time, message: str) -> None:
    with pytest.raises(BookingValidationError) as exception_info:
        create_window(availability_db, PRACTITIONER, 1, 7, weekday, start, end)

    assert exception_info.value.message == message
    assert availability_db.query(AvailabilityWindow).count() == 0


def test_create_window_rejects_overlap_on_same_day(availability_db) -> None:
    create_window(availability_db, PRACTITIONER, 1, 7, 0, time(9, 0), time(12, 0))

    with pytest.raises(AvailabilityConflictError):
        create_window(availability_db, PRACTITIONER, 1, 7, 0, time(11, 0), time(14, 0))


def test_create_window_allows_adjacent_windows(availability_db) -> None:
    create_window(availability_db, PRACTITIONER, 1, 7, 0, time(9, 0), time(12, 0))
    create_window(availability_db, PRACTITIONER, 1, 7, 0, time(12, 0), time(14, 0))

    assert len(get_windows(availability_db, practitioner_id=1)) == 2


@pytest.mark.parametrize('identity', [OTHER_PRACTITIONER, PATIENT])
def test_create_window_rejects_callers_other_than_the_practitioner(availability_db, identity: Identity) -> None:
    with pytest.raises(PermissionDeniedError):
        create_window(availability_db, identity, 1, 7, 0, time(9, 0), time(12, 0))


def test_admin_can_manage_any_practitioner(availability_db) -> None:
    window = create_window(availability_db, ADMIN, 1, 7, 0, time(9, 0), time(12, 0))

    delete_window(availability_db, ADMIN, window.id)

    assert get_windows(availability_db, practitioner_id=1) == []


def test_update_window_changes_range_and_ignores_itself_for_overlap(availability_db) -> None:
    window = create_window(availability_db, PRACTITIONER, 1, 7, 0, time(9, 0), time(12, 0))

    updated = update_window(availability_db, PRACTITIONER, window.id, 0, time(10, 0), time(13, 0))

    assert (updated.start_time, updated.end_time) == (time(10, 0), time(13, 0))


def test_update_window_rejects_overlap_with_sibling(availability_db) -> None:
    create_window(availability_db, PRACTITIONER, 1, 7, 0, time(9, 0), time(12, 0))
    afternoon = create_window(availability_db, PRACTITIONER, 1, 7, 0, time(13, 0), time(17, 0))

    with pytest.raises(AvailabilityConflictError):
        update_window(availability_db, PRACTITIONER, afternoon.id, 0, time(11, 0), time(17, 0))


def test_update_and_delete_missing_window_raise_not_found(availability_db) -> None:
    with pytest.raises(WindowNotFoundError):
        update_window(availability_db, PRACTITIONER, 404, 0, time(9, 0), time(12, 0))

    with pytest.raises(WindowNotFoundError):
        delete_window(availability_db, PRACTITIONER, 404)


def test_delete_window_rejects_other_practitioner(availability_db) -> None:
    window = create_window(availability_db, PRACTITIONER, 1, 7, 0, time(9, 0), time(12, 0))

    with pytest.raises(PermissionDeniedError):
        delete_window(availability_db, OTHER_PRACTITIONER, window.id)


@pytest.mark.parametrize(
    ('identity', 'practitioner_id', 'location_id', 'message'),
    [
        (PRACTITIONER, 1, 999, 'Unknown location.'),
        (PRACTITIONER, 1, 9, 'The practitioner does not work at this location.'),
        (ADMIN, 2, 7, 'Unknown practitioner.'),
        (ADMIN, 404, 7, 'Unknown practitioner.'),
    ],
)
def test_create_window_rejects_unknown_or_unlinked_references(
    availability_db,
    identity: Identity,
    practitioner_id: int,
    location_id: int,
    message: str,
) -> None:
    with pytest.raises(BookingValidationError) as exception_info:
        create_window(availability_db, identity, practitioner_id, location_id, 0, time(9, 0), time(10, 0))

    assert exception_info.value.message == message
    assert availability_db.query(AvailabilityWindow).count() == 0


def test_update_window_can_move_to_linked_location_only(availability_db) -> None:
    window = create_window(availability_db, PRACTITIONER, 1, 7, 0, time(9, 0), time(12, 0))

    moved = update_window(availability_db, PRACTITIONER, window.id, 0, time(9, 0), time(12, 0), location_id=8)
    assert moved.location_id == 8

    with pytest.raises(BookingValidationError) as exception_info:
        update_window(availability_db, PRACTITIONER, window.id, 0, time(9, 0), time(12, 0), location_id=999)

    assert exception_info.value.message == 'Unknown location.'
    assert availability_db.get(AvailabilityWindow, window.id).location_id == 8
