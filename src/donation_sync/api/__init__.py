"""HTTP API for the UI layer."""
