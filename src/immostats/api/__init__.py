"""
FastAPI REST API for the Immostats market statistics service

Provides REST endpoints for:
- Market statistics (aggregates, city ranking, price distribution, trends)
- Geographic radius search and city autocomplete
- Stored property listing and detail
- Ingestion administration (scheduler status, manual trigger, retention cleanup)
- Health checks
"""
