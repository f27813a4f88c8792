"""
Unit Tests

Unit tests run in isolation without external dependencies.
All external services (database, Redis, filesystem) are mocked.

These tests are fast and can run without Docker or any services running.
"""
