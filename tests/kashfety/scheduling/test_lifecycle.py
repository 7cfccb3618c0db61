from datetime import date, time

import pytest

from kashfety.models.appointment import Appointment, AppointmentNote, AppointmentStatus
from kashfety.scheduling.booking import book
from kashfety.scheduling.errors import AppointmentClosed, AppointmentNotFound, InvalidTransition
from kashfety.scheduling.lifecycle import (
    ALLOWED_TRANSITIONS,
    CLOSED_STATUSES,
    ClinicalOutcome,
    get_appointment,
    list_appointment_notes,
    list_patient_appointments,
    list_provider_appointments,
    transition,
)

PROVIDER_ID = 'doctor-1'
SERVICE_ID = 'consultation'
MONDAY = date(2026, 1, 5)

ALLOWED_PAIRS = [
    (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED),
    (AppointmentStatus.SCHEDULED, AppointmentStatus.CANCELLED),
    (AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED),
    (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED),
    (AppointmentStatus.SCHEDULED, AppointmentStatus.NO_SHOW),
    (AppointmentStatus.CONFIRMED, AppointmentStatus.NO_SHOW),
]

OPEN_REJECTED_PAIRS = [
    (current, target)
    for current in (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)
    for target in AppointmentStatus
    if (current, target) not in ALLOWED_PAIRS
]


class RecordingMedicalRecords:
    def __init__(self):
        self.calls = []

    def record_outcome(self, appointment, outcome):
        self.calls.append((appointment.id, outcome))


class FailingMedicalRecords:
    def record_outcome(self, appointment, outcome):
        raise RuntimeError('records service down')


def test_allowed_transition_table_has_exactly_six_edges() -> None:
    edges = {(current, target) for current, targets in ALLOWED_TRANSITIONS.items() for target in targets}

    assert edges == set(ALLOWED_PAIRS)
    assert CLOSED_STATUSES == {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }


@pytest.mark.parametrize(('current', 'target'), ALLOWED_PAIRS)
def test_allowed_transitions_succeed(db, make_appointment, current, target) -> None:
    appointment = make_appointment(status=current)

    updated = transition(db, appointment.id, target, actor_id='doctor-1')

    assert updated.status == target.value


@pytest.mark.parametrize(('current', 'target'), OPEN_REJECTED_PAIRS)
def test_transitions_outside_table_fail(db, make_appointment, current, target) -> None:
    appointment = make_appointment(status=current)

    with pytest.raises(InvalidTransition):
        transition(db, appointment.id, target)

    assert get_appointment(db, appointment.id).status == current.value


@pytest.mark.parametrize('current', sorted(CLOSED_STATUSES, key=lambda status: status.value))
@pytest.mark.parametrize('target', list(AppointmentStatus))
def test_closed_appointments_cannot_change(db, make_appointment, current, target) -> None:
    appointment = make_appointment(status=current)

    with pytest.raises(AppointmentClosed):
        transition(db, appointment.id, target)

    assert get_appointment(db, appointment.id).status == current.value


def test_completed_then_cancelled_fails_as_closed(db, make_appointment) -> None:
    appointment = make_appointment()
    transition(db, appointment.id, 'confirmed')
    transition(db, appointment.id, 'completed')

    with pytest.raises(AppointmentClosed):
        transition(db, appointment.id, 'cancelled')


def test_booked_appointment_can_be_completed(db, monday_schedule) -> None:
    appointment = book(db, PROVIDER_ID, SERVICE_ID, 'patient-1', MONDAY, time(9, 30))

    transition(db, appointment.id, AppointmentStatus.CONFIRMED)
    completed = transition(db, appointment.id, AppointmentStatus.COMPLETED)

    assert completed.status == 'completed'


def test_transition_accepts_case_insensitive_status_names(db, make_appointment) -> None:
    appointment = make_appointment()

    assert transition(db, appointment.id, ' Confirmed ').status == 'confirmed'


def test_unknown_status_is_invalid_transition(db, make_appointment) -> None:
    appointment = make_appointment()

    with pytest.raises(InvalidTransition):
        transition(db, appointment.id, 'archived')


def test_transition_of_missing_appointment_fails(db) -> None:
    with pytest.raises(AppointmentNotFound):
        transition(db, 404, AppointmentStatus.CONFIRMED)


def test_cancellation_stores_reason_separately_from_audit_notes(db, make_appointment) -> None:
    appointment = make_appointment()

    cancelled = transition(db, appointment.id, AppointmentStatus.CANCELLED, actor_id='patient-1', reason='Travelling')

    assert cancelled.cancellation_reason == 'Travelling'
    notes = list_appointment_notes(db, appointment.id)
    assert [(note.author_id, note.body) for note in notes] == [
        ('patient-1', 'Status changed from scheduled to cancelled: Travelling'),
    ]


def test_transitions_append_notes_without_rewriting_history(db, make_appointment) -> None:
    appointment = make_appointment()
    transition(db, appointment.id, AppointmentStatus.CONFIRMED, actor_id='doctor-1')
    first_note = list_appointment_notes(db, appointment.id)[0]
    first_body, first_created_at = first_note.body, first_note.created_at

    transition(db, appointment.id, AppointmentStatus.COMPLETED, actor_id='doctor-1', reason='Routine check')

    notes = list_appointment_notes(db, appointment.id)
    assert len(notes) == 2
    assert notes[0].id == first_note.id
    assert notes[0].body == first_body
    assert notes[0].created_at == first_created_at
    assert notes[1].body == 'Status changed from confirmed to completed: Routine check'


def test_completion_hands_clinical_outcome_to_medical_records(db, make_appointment) -> None:
    appointment = make_appointment(status=AppointmentStatus.CONFIRMED)
    records = RecordingMedicalRecords()
    outcome = ClinicalOutcome(diagnosis='Seasonal flu', prescription='Rest and fluids')

    transition(db, appointment.id, AppointmentStatus.COMPLETED, outcome=outcome, medical_records=records)

    assert records.calls == [(appointment.id, outcome)]


def test_outcome_is_only_accepted_with_completion(db, make_appointment) -> None:
    appointment = make_appointment()

    with pytest.raises(InvalidTransition):
        transition(db, appointment.id, AppointmentStatus.CONFIRMED, outcome=ClinicalOutcome(diagnosis='n/a'))

    assert get_appointment(db, appointment.id).status == 'scheduled'


def test_medical_records_failure_does_not_reopen_appointment(db, make_appointment, caplog) -> None:
    appointment = make_appointment(status=AppointmentStatus.CONFIRMED)

    completed = transition(
        db,
        appointment.id,
        AppointmentStatus.COMPLETED,
        outcome=ClinicalOutcome(diagnosis='Migraine'),
        medical_records=FailingMedicalRecords(),
    )

    assert completed.status == 'completed'
    assert 'Medical record hand-off failed' in caplog.text


def test_stale_status_read_cannot_overwrite_terminal_state(file_session_factory) -> None:
    seed = file_session_factory()
    try:
        appointment = Appointment(
            provider_id=PROVIDER_ID,
            service_offering_id=SERVICE_ID,
            patient_id='patient-1',
            date=MONDAY,
            time=time(9, 0),
            duration_minutes=30,
            status=AppointmentStatus.SCHEDULED.value,
        )
        seed.add(appointment)
        seed.commit()
        appointment_id = appointment.id
    finally:
        seed.close()

    stale = file_session_factory()
    fresh = file_session_factory()
    try:
        # The stale session keeps its loaded 'scheduled' copy in the identity map.
        assert get_appointment(stale, appointment_id).status == 'scheduled'

        transition(fresh, appointment_id, AppointmentStatus.CANCELLED, reason='Closed elsewhere')

        with pytest.raises(AppointmentClosed):
            transition(stale, appointment_id, AppointmentStatus.CONFIRMED)

        notes = fresh.query(AppointmentNote).filter(AppointmentNote.appointment_id == appointment_id).count()
        assert notes == 1
    finally:
        stale.close()
        fresh.close()


def test_list_provider_appointments_filters_by_status_and_date(db, make_appointment) -> None:
    make_appointment(slot_time=time(9, 0))
    confirmed = make_appointment(slot_time=time(9, 30), status=AppointmentStatus.CONFIRMED)
    make_appointment(slot_time=time(9, 0), slot_date=date(2026, 1, 12))

    assert len(list_provider_appointments(db, PROVIDER_ID)) == 3
    assert [a.id for a in list_provider_appointments(db, PROVIDER_ID, status=AppointmentStatus.CONFIRMED)] == [
        confirmed.id,
    ]
    on_monday = list_provider_appointments(db, PROVIDER_ID, on_date=MONDAY)
    assert [a.time for a in on_monday] == [time(9, 30), time(9, 0)]
    assert len(list_provider_appointments(db, PROVIDER_ID, limit=1)) == 1


def test_list_patient_appointments_only_returns_patient_rows(db, make_appointment) -> None:
    mine = make_appointment(slot_time=time(9, 0), patient_id='patient-1')
    make_appointment(slot_time=time(9, 30), patient_id='patient-2')

    assert [a.id for a in list_patient_appointments(db, 'patient-1')] == [mine.id]
    assert list_patient_appointments(db, 'patient-1', status=AppointmentStatus.CANCELLED) == []
