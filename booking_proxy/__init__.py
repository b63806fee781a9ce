"""
Appointment booking proxy in front of a Google calendar.
"""

__version__ = "1.0.0"
