"""Persona Studio: AI-assisted character authoring with versioned edits."""

__version__ = "0.1.0"
