"""
FastAPI routers grouped by domain.

Each module exposes an APIRouter that is included by the app factory
(``account_api.app.create_app``).
"""
