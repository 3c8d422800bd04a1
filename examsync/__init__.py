"""examsync - iCal ingestion and reconciliation for exam and timetable tracking.

Turns school iCal feeds into exams, timetable lessons and school events,
detects moved lessons and room changes, and reports changes between syncs.
"""

__version__ = "0.1.0"
