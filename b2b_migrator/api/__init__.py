"""HTTP API for the migration pipeline."""
