"""
Core business logic for video scoring.

This module is framework-agnostic - it doesn't import FastAPI, Snowflake,
or any infrastructure concerns. Collaborators arrive through the
protocols in pipeline.py and scoring.py.
"""
