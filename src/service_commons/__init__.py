"""Shared building blocks for the SevaSetu services."""
