"""Background workers (Dramatiq actors and their scheduler)."""
