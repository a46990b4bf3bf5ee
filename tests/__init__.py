"""
Test suite for the Clinic Management System.

Contains unit and integration tests for booking, scheduling and billing.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
