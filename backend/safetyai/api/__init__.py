"""
SafetyAI - API Package

REST surface over the SafetyGateway: pydantic schemas and the FastAPI router.
"""
