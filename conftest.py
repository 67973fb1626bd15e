"""Pytest root marker so tests can import the `src` package from the project root."""
