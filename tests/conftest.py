"""Pytest configuration and shared fixtures."""

pytest_plugins = ["tests.fixtures.relay_fixtures"]
