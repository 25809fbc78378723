"""HTTP API for the clip worker (FastAPI app, job store, schemas)."""
