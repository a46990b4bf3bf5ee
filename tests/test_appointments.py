from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError

from clinic.core.dates import clinic_today
from clinic.models import Appointment, AppointmentStatus
from clinic.services.booking import BookingConflictChecker, is_slot_collision

from .conftest import auth_headers, make_appointment, make_patient, make_schedule

APPOINTMENTS_URL = "/api/v1/appointments"
CONFLICT_MESSAGE = (
    "This time slot has just been booked by another patient. Please select a different time."
)


def booking_body(day, time="09:00", **overrides):
    body = {
        "appointmentDate": day.isoformat(),
        "appointmentTime": time,
        "symptoms": "Persistent cough for a week",
        "notes": "Prefers morning",
    }
    body.update(overrides)
    return body


class TestBooking:
    """Test appointment requests made by patients."""

    def test_book_appointment(self, client, db, doctor, patient, tomorrow, side_effects):
        make_schedule(db, doctor, tomorrow)

        response = client.post(APPOINTMENTS_URL, json=booking_body(tomorrow), headers=auth_headers(patient))

        assert response.status_code == 201
        appointment = response.json()["appointment"]
        assert appointment["status"] == "PENDING"
        assert appointment["paymentStatus"] == "PENDING"
        assert appointment["appointmentTime"] == "09:00"
        assert appointment["doctorId"] == doctor.id
        assert "slotSeat" not in appointment

        created = side_effects.realtime.named("appointment-created")
        assert created == [{"appointment": {"id": appointment["id"], "status": "PENDING",
                                            "patientId": appointment["patientId"]}}]
        notified = [item["data"]["userId"] for item in side_effects.realtime.events
                    if item["event"] == "new-notification"]
        assert patient.id in notified and doctor.id in notified
        assert side_effects.mailer.subjects_to(doctor.email)
        # Patients are emailed only once the doctor decides
        assert side_effects.mailer.subjects_to(patient.email) == []

    def test_booking_without_schedule_uses_single_seat(self, client, patient, tomorrow):
        response = client.post(APPOINTMENTS_URL, json=booking_body(tomorrow, "15:45"), headers=auth_headers(patient))
        assert response.status_code == 201
        assert response.json()["appointment"]["doctorId"] is None

    def test_doctor_cannot_book(self, client, doctor, tomorrow):
        response = client.post(APPOINTMENTS_URL, json=booking_body(tomorrow), headers=auth_headers(doctor))
        assert response.status_code == 403
        assert response.json() == {"error": "Doctors cannot book appointments"}

    def test_medical_history_required(self, client, db, tomorrow):
        newcomer = make_patient(db, email="new@example.com", history=False)
        response = client.post(APPOINTMENTS_URL, json=booking_body(tomorrow), headers=auth_headers(newcomer))
        assert response.status_code == 400
        assert response.json() == {"error": "Please complete your medical history first"}

    def test_invalid_requests(self, client, db, doctor, patient, tomorrow):
        make_schedule(db, doctor, tomorrow)
        headers = auth_headers(patient)
        yesterday = clinic_today() - timedelta(days=1)
        cases = [
            booking_body(tomorrow, "9:00"),
            booking_body(tomorrow, "09:15"),
            booking_body(tomorrow, symptoms="cough"),
            booking_body(yesterday),
            booking_body(tomorrow, appointmentDate="soon"),
        ]
        for body in cases:
            response = client.post(APPOINTMENTS_URL, json=body, headers=headers)
            assert response.status_code == 400, body
        assert db.query(Appointment).count() == 0

    def test_missing_fields(self, client, patient):
        response = client.post(APPOINTMENTS_URL, json={"appointmentTime": "09:00"}, headers=auth_headers(patient))
        assert response.status_code == 400
        assert "error" in response.json()

    def test_requires_authentication(self, client, tomorrow):
        response = client.post(APPOINTMENTS_URL, json=booking_body(tomorrow))
        assert response.status_code == 401


class TestBookingConflicts:
    """Test that one slot cannot be booked twice."""

    def test_taken_slot_conflicts(self, client, db, doctor, patient, other_patient, tomorrow):
        make_schedule(db, doctor, tomorrow)
        assert client.post(APPOINTMENTS_URL, json=booking_body(tomorrow), headers=auth_headers(patient)).status_code == 201

        response = client.post(APPOINTMENTS_URL, json=booking_body(tomorrow), headers=auth_headers(other_patient))
        assert response.status_code == 409
        assert response.json() == {"error": CONFLICT_MESSAGE}

    def test_conflict_matches_by_day_not_timestamp(self, client, db, patient, other_patient, tomorrow):
        existing = make_appointment(db, patient, tomorrow, "10:00")
        existing.appointment_date = datetime.combine(tomorrow, datetime.min.time()) + timedelta(hours=7, minutes=13)
        db.commit()

        response = client.post(
            APPOINTMENTS_URL,
            json=booking_body(tomorrow, "10:00", appointmentDate=f"{tomorrow.isoformat()}T00:00:00"),
            headers=auth_headers(other_patient),
        )
        assert response.status_code == 409

    def test_cancelled_booking_frees_slot(self, client, db, patient, other_patient, tomorrow):
        make_appointment(db, patient, tomorrow, "09:00", status=AppointmentStatus.CANCELLED)
        response = client.post(APPOINTMENTS_URL, json=booking_body(tomorrow), headers=auth_headers(other_patient))
        assert response.status_code == 201

    def test_declined_booking_still_holds_slot(self, client, db, patient, other_patient, tomorrow):
        make_appointment(db, patient, tomorrow, "09:00", status=AppointmentStatus.DECLINED)
        response = client.post(APPOINTMENTS_URL, json=booking_body(tomorrow), headers=auth_headers(other_patient))
        assert response.status_code == 409

    def test_same_time_on_other_day_is_free(self, client, db, patient, other_patient, tomorrow):
        make_appointment(db, patient, tomorrow + timedelta(days=1), "09:00")
        response = client.post(APPOINTMENTS_URL, json=booking_body(tomorrow), headers=auth_headers(other_patient))
        assert response.status_code == 201

    def test_capacity_assigns_seats(self, client, db, doctor, patient, other_patient, tomorrow):
        make_schedule(db, doctor, tomorrow, capacity=2)
        third = make_patient(db, email="third@example.com", name="Third Patient")

        assert client.post(APPOINTMENTS_URL, json=booking_body(tomorrow), headers=auth_headers(patient)).status_code == 201
        assert client.post(APPOINTMENTS_URL, json=booking_body(tomorrow), headers=auth_headers(other_patient)).status_code == 201
        assert client.post(APPOINTMENTS_URL, json=booking_body(tomorrow), headers=auth_headers(third)).status_code == 409

        seats = sorted(row.slot_seat for row in db.query(Appointment).all())
        assert seats == [1, 2]

    def test_lost_race_is_reported_as_conflict(self, client, db, patient, other_patient, tomorrow, monkeypatch):
        assert client.post(APPOINTMENTS_URL, json=booking_body(tomorrow), headers=auth_headers(patient)).status_code == 201

        # A concurrent request that read before the first insert sees no conflicts
        monkeypatch.setattr(BookingConflictChecker, "find_conflicts", lambda self, day, time, exclude_id=None: [])

        response = client.post(APPOINTMENTS_URL, json=booking_body(tomorrow), headers=auth_headers(other_patient))
        assert response.status_code == 409
        assert response.json() == {"error": CONFLICT_MESSAGE}
        assert db.query(Appointment).count() == 1

    def test_unknown_doctor_rejected(self, client, db, doctor, patient, other_patient, tomorrow):
        for doctor_id in (9999, other_patient.id):
            response = client.post(APPOINTMENTS_URL, json=booking_body(tomorrow, doctorId=doctor_id),
                                   headers=auth_headers(patient))
            assert response.status_code == 400
            assert response.json() == {"error": "Selected doctor not found"}
        assert db.query(Appointment).count() == 0

        response = client.post(APPOINTMENTS_URL, json=booking_body(tomorrow, doctorId=doctor.id),
                               headers=auth_headers(patient))
        assert response.status_code == 201
        assert response.json()["appointment"]["doctorId"] == doctor.id

    def test_only_slot_index_violations_count_as_races(self):
        sqlite_error = IntegrityError(
            "INSERT", {}, Exception("UNIQUE constraint failed: appointments.slot_date, "
                                    "appointments.appointment_time, appointments.slot_seat"))
        postgres_error = IntegrityError(
            "INSERT", {}, Exception('duplicate key value violates unique constraint "appointments_active_slot_idx"'))
        foreign_key_error = IntegrityError(
            "INSERT", {}, Exception('insert or update on table "appointments" violates foreign key constraint'))

        assert is_slot_collision(sqlite_error)
        assert is_slot_collision(postgres_error)
        assert not is_slot_collision(foreign_key_error)


class TestListing:
    """Test who sees which appointments."""

    def test_patient_sees_own_appointments(self, client, db, patient, other_patient, tomorrow):
        own = make_appointment(db, patient, tomorrow, "09:00")
        make_appointment(db, other_patient, tomorrow, "09:30")

        response = client.get(APPOINTMENTS_URL, headers=auth_headers(patient))
        assert response.status_code == 200
        appointments = response.json()["appointments"]
        assert [item["id"] for item in appointments] == [own.id]
        assert appointments[0]["patient"]["name"] == "Asha Patient"

    def test_staff_see_all_appointments(self, client, db, doctor, patient, other_patient, tomorrow):
        make_appointment(db, patient, tomorrow, "09:00")
        make_appointment(db, other_patient, tomorrow, "09:30")

        response = client.get(APPOINTMENTS_URL, headers=auth_headers(doctor))
        assert len(response.json()["appointments"]) == 2

    def test_get_single_appointment(self, client, db, doctor, patient, other_patient, tomorrow):
        appointment = make_appointment(db, patient, tomorrow, "09:00")

        response = client.get(f"{APPOINTMENTS_URL}/{appointment.id}", headers=auth_headers(patient))
        assert response.status_code == 200
        assert response.json()["appointment"]["id"] == appointment.id
        assert response.json()["appointment"]["payment"] is None

        assert client.get(f"{APPOINTMENTS_URL}/{appointment.id}", headers=auth_headers(doctor)).status_code == 200
        assert client.get(f"{APPOINTMENTS_URL}/{appointment.id}", headers=auth_headers(other_patient)).status_code == 404
        assert client.get(f"{APPOINTMENTS_URL}/999", headers=auth_headers(doctor)).status_code == 404
