"""
Clinic Management System

A FastAPI-based service coordinating patients, doctors and administrators
around appointment booking, schedules, medical history, prescriptions and payments.
"""

__version__ = "1.0.0"
