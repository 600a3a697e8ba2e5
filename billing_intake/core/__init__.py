"""Domain models, carrier identifiers and the error taxonomy."""
