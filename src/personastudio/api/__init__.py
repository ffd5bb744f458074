"""Local HTTP API for Persona Studio."""
