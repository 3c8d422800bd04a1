"""iCalendar text handling: line unfolding, property parsing, date resolution and event extraction."""
