"""
Pydantic schemas for API request and response validation.

All FastAPI endpoints use strict Pydantic models with explicit types.
Free-form JSON (preferences, insight data) is the only place Any appears.
"""
