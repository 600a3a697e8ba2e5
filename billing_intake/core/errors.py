"""
Exception taxonomy for the billing intake pipeline.

Input validation errors never touch persistent state. Configuration
errors always propagate. Approval failures are raised only after the
batch has been moved to FAILED.
"""


class IntakeError(Exception):
    """Base class for all pipeline errors"""


# =======================
# INPUT VALIDATION
# =======================

class InputValidationError(IntakeError, ValueError):
    """Uploaded content was rejected before anything was written"""


class EmptyFileError(InputValidationError):
    """Uploaded file has no content or no data rows"""


class UnsupportedFileTypeError(InputValidationError):
    """File extension is not one the reader understands"""


class MissingHeadersError(InputValidationError):
    """
    Required columns are absent from the uploaded file.

    Attributes:
        missing: Expected header names not found, in configuration order
        provider: Configuration key the headers were checked against
    """

    def __init__(self, missing: list[str], provider: str):
        self.missing = list(missing)
        self.provider = provider
        super().__init__(
            f"Invalid file headers for provider '{provider}'. "
            f"Missing required headers: {', '.join(self.missing)}"
        )


class MalformedFileError(InputValidationError):
    """File container or delimited structure could not be read"""


# =======================
# DOCUMENT STRUCTURE
# =======================

class DocumentStructureError(IntakeError):
    """A PDF document lacks structure the parser depends on"""


class InvoiceHeaderNotFoundError(DocumentStructureError):
    """Invoice number, invoice date or BAN missing from the first page"""


# =======================
# CONFIGURATION
# =======================

class ConfigurationError(IntakeError):
    """Non-recoverable configuration problem"""


class UnknownCarrierError(ConfigurationError, LookupError):
    """No strategy or header configuration is registered for a carrier"""

    def __init__(self, carrier: str, file_type: str | None = None):
        self.carrier = carrier
        self.file_type = file_type
        suffix = f" ({file_type.lower()})" if file_type else ""
        super().__init__(f"Unsupported provider: {carrier}{suffix}")


class ProviderConfigError(ConfigurationError):
    """Provider header configuration could not be loaded"""


# =======================
# BATCH LIFECYCLE
# =======================

class BatchNotFoundError(IntakeError, LookupError):
    """No batch exists for the given batch id"""

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class InvalidBatchStateError(IntakeError):
    """Batch is not in the status the requested operation needs"""

    def __init__(self, batch_id: str, status: str, expected: str):
        self.batch_id = batch_id
        self.status = getattr(status, "value", status)
        self.expected = getattr(expected, "value", expected)
        super().__init__(
            f"Batch {batch_id} is in status {self.status}; expected {self.expected}"
        )


class EmptyBatchError(IntakeError):
    """Conversion produced no usable rows for a batch"""


class BatchProcessingError(IntakeError):
    """Staging failed; the batch has been marked FAILED"""

    def __init__(self, batch_id: str, reason: str):
        self.batch_id = batch_id
        self.reason = reason
        super().__init__(f"Processing failed for batch {batch_id}: {reason}")


class ApprovalFailedError(IntakeError):
    """Approval rolled back; the batch has been finalized as FAILED"""

    def __init__(self, batch_id: str, reason: str):
        self.batch_id = batch_id
        self.reason = reason
        super().__init__(f"Approval failed for batch {batch_id}: {reason}")
