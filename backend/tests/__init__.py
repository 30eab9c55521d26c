"""
Test Suite

Unit tests for the engine, services and scheduler run against an in-memory
mongomock database; test_api exercises the FastAPI app over ASGI.

To run tests:
    pytest backend/tests/
"""
