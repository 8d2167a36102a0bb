"""tierstream FastAPI application."""
