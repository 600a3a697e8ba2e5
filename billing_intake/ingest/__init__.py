"""Readers, parsers and ingestion entry points for carrier documents."""
