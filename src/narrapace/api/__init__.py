"""
FastAPI REST API Layer for narrapace.

    - routes.py: session control endpoints, /v1/voices, /health, /metrics
    - schemas.py: Request/response Pydantic models
    - dependencies.py: FastAPI dependency injection
"""
