"""Core infrastructure: exceptions and database sessions."""
