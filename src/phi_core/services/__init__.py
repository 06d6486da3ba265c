"""Service layer for the PHI core."""
