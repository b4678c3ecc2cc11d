"""
HTTP API: FastAPI routes and dependency wiring.
"""
