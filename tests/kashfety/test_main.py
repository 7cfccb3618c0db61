from datetime import date

import pytest
from fastapi.testclient import TestClient

from kashfety.auth.dependencies import Caller, get_current_caller
from kashfety.main import app
from kashfety.routes.shared import get_db, get_today


@pytest.fixture
def client(db, monkeypatch: pytest.MonkeyPatch):
    for module in ('appointment_routes', 'availability_routes', 'schedule_routes'):
        monkeypatch.setattr(f'kashfety.routes.{module}.ensure_database_ready', lambda: None)

    caller = {'value': Caller(caller_id='patient-1', role='patient')}

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_caller] = lambda: caller['value']
    app.dependency_overrides[get_today] = lambda: date(2026, 1, 1)
    try:
        yield TestClient(app), caller
    finally:
        app.dependency_overrides.clear()


def test_root_reports_service_running() -> None:
    response = TestClient(app).get('/')

    assert response.status_code == 200
    assert response.json() == {'status': 'Kashfety Booking Engine Running'}


def test_booking_flow_over_http(client, monday_schedule) -> None:
    http, caller = client

    slots = http.get('/availability/doctor-1/consultation/slots', params={'date': '2026-01-05'})
    assert slots.status_code == 200
    assert [slot['time'] for slot in slots.json()['slots']] == [
        '09:00:00',
        '09:30:00',
        '10:30:00',
        '11:00:00',
        '11:30:00',
    ]

    payload = {
        'provider_id': 'doctor-1',
        'service_offering_id': 'consultation',
        'date': '2026-01-05',
        'time': '09:30:00',
    }
    created = http.post('/appointments', json=payload)
    assert created.status_code == 201
    appointment_id = created.json()['id']

    duplicate = http.post('/appointments', json=payload)
    assert duplicate.status_code == 409

    slots = http.get('/availability/doctor-1/consultation/slots', params={'date': '2026-01-05'})
    assert '09:30:00' not in [slot['time'] for slot in slots.json()['slots']]

    caller['value'] = Caller(caller_id='doctor-1', role='doctor')
    assert http.post(f'/appointments/{appointment_id}/transition', json={'status': 'confirmed'}).status_code == 200
    assert http.post(f'/appointments/{appointment_id}/transition', json={'status': 'completed'}).status_code == 200

    closed = http.post(f'/appointments/{appointment_id}/transition', json={'status': 'cancelled'})
    assert closed.status_code == 423


def test_schedule_changes_require_a_token() -> None:
    response = TestClient(app).put('/schedules/doctor-1/consultation/week', json={'days': []})

    assert response.status_code in (401, 403)


def test_startup_bootstraps_schema_without_writing_database_files(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    with TestClient(app) as http:
        assert http.get('/').status_code == 200

    assert list(tmp_path.iterdir()) == []
