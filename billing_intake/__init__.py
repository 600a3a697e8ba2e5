"""
billing-intake

Ingests carrier billing documents (CSV, XLSX, ZIP-of-PDFs, CALNET PDFs),
stages them per batch for human review and promotes approved batches
into the authoritative carrier tables.
"""

__version__ = "0.1.0"
