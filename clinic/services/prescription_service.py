import logging
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from ..core.exceptions import DuplicatePrescription, NotFound, ValidationError
from ..models.appointment import Appointment, AppointmentStatus
from ..models.patient import PatientProfile
from ..models.prescription import Medication, Prescription
from ..schemas.prescription import PrescriptionCreate
from .permissions import Action, authorize, is_staff

logger = logging.getLogger(__name__)


class PrescriptionService:
    def __init__(self, db: Session):
        self.db = db

    def list_prescriptions(self, user) -> List[Prescription]:
        query = self.db.query(Prescription).options(
            joinedload(Prescription.medications),
            joinedload(Prescription.appointment).joinedload(Appointment.doctor),
        ).join(Appointment, Prescription.appointment_id == Appointment.id)

        if not is_staff(user):
            profile = self.db.query(PatientProfile).filter(PatientProfile.user_id == user.id).first()
            if not profile:
                return []
            query = query.filter(Appointment.patient_id == profile.id)
        return query.order_by(Prescription.created_at.desc(), Prescription.id.desc()).all()

    def create_prescription(self, user, data: PrescriptionCreate) -> Prescription:
        authorize(Action.WRITE_PRESCRIPTION, user)

        appointment = self.db.query(Appointment).filter(Appointment.id == data.appointment_id).first()
        if not appointment:
            raise NotFound("Appointment not found")
        if appointment.status != AppointmentStatus.COMPLETED:
            raise ValidationError("Prescriptions can only be written for completed appointments")
        if appointment.prescription is not None:
            raise DuplicatePrescription()

        prescription = Prescription(
            appointment_id=appointment.id,
            diagnosis=data.diagnosis,
            notes=data.notes,
            follow_up_date=data.follow_up_date,
            medications=[
                Medication(
                    medicine_name=item.medicine_name,
                    dosage=item.dosage,
                    frequency=item.frequency,
                    duration=item.duration,
                    instructions=item.instructions,
                )
                for item in data.medications
            ],
        )
        self.db.add(prescription)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicatePrescription()
        self.db.refresh(prescription)

        logger.info(f"Prescription {prescription.id} written for appointment {appointment.id} by user {user.id}")
        return prescription
