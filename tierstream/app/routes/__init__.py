"""Route modules for the tierstream FastAPI application.

Routes:
- health: Health check and metrics endpoints
- relay: Authenticated model stream and tier projection
"""

from tierstream.app.routes import health, relay

__all__ = ["health", "relay"]
