"""
Standup Pulse Backend

Structure:
- pulse/core/       - Infrastructure (config, logging, metrics, resilience, health, cache)
- pulse/models/     - Database models
- pulse/routers/    - API routes
- pulse/schemas/    - Pydantic schemas
- pulse/services/   - Entry store and the analytics engines
- pulse/main.py     - FastAPI application entry point
"""

__version__ = "1.0.0"
