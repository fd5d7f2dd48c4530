"""HTTP API for the staff pay engine."""
