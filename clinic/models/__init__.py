from .user import User
from .patient import PatientProfile, MedicalHistory
from .doctor import DoctorProfile
from .schedule import DoctorSchedule
from .appointment import Appointment, AppointmentStatus, PaymentStatus
from .payment import Payment, PaymentMethod
from .prescription import Prescription, Medication

__all__ = [
    "User",
    "PatientProfile",
    "MedicalHistory",
    "DoctorProfile",
    "DoctorSchedule",
    "Appointment",
    "AppointmentStatus",
    "PaymentStatus",
    "Payment",
    "PaymentMethod",
    "Prescription",
    "Medication",
]
