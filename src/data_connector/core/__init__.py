"""Relationship and schema inference engine."""
