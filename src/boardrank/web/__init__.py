"""HTTP surface for Boardrank (FastAPI)."""
