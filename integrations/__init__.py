"""Integrations with external data sources."""
