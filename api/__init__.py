"""HTTP API for Visicheck."""
