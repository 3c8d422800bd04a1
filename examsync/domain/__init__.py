"""Classification, import, movement detection and reconciliation of school calendar data."""
