"""Streetlifting competition ingestion pipeline."""
