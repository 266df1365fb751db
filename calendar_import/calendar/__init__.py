"""ICS parsing: unfolding, property parsing, date-time codec and recurrence expansion."""
