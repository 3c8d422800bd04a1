"""Transport, URL policy, time zone and error-classification helpers for examsync."""
