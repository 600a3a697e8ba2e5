"""
CALNET "Detail of Charges" table parser.

Rows extracted from the statement's detail pages are classified one at a
time, in document order:

- empty and column-header rows are ignored
- a row whose first cell starts with a digit opens a new charge item
- "BTN:", "Svc ID :" and "Charges & Adjustments" rows update the
  ParsingContext that every following charge item inherits
- anything else continues the charge item in progress

Charge rows are parsed right to left: the fixed-format trailing fields
(charge type, bill period, amounts, usage, quantity) are peeled off the
end first, and only the remaining free text is read left to right.
"""

import re
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Iterator, Sequence

from billing_intake.core.errors import InvoiceHeaderNotFoundError
from billing_intake.core.models import InvoiceHeader, ServiceAddress, WiredReport
from billing_intake.observability.logger import get_logger
from billing_intake.observability.metrics import increment_counter, pdf_rows_total

logger = get_logger(__name__)

DETAIL_PAGE_MARKER = "Detail of Charges"
CHARGE_TYPES = ("ADJ", "NRC", "PRC", "MRC", "PMT", "SUR", "TAX", "USG")
_CHARGE_TYPE_ALT = "|".join(CHARGE_TYPES)

# Header (first page text)
BAN_PATTERN = re.compile(r"Billing Acct Nbr \(BAN\)\s+(\d+)")
INVOICE_NUMBER_PATTERN = re.compile(r"Invoice Number\s+(\d+)")
INVOICE_DATE_PATTERN = re.compile(r"Invoice Date\s+(\d{2}/\d{2}/\d{4})")

# Charge row peeling, applied right to left in this order
_ITEM = re.compile(r"^(\d+)\s+(.*)", re.DOTALL)
_PEEL_CHARGE_TYPE = re.compile(rf"(.*?)\s+({_CHARGE_TYPE_ALT})$", re.DOTALL)
_PEEL_BILL_PERIOD = re.compile(r"(.*?)\s+(\d{2}/\d{2}/\d{2,4})$", re.DOTALL)
_PEEL_AMOUNT = re.compile(r"(.*?)\s+(-?[\d,]+\.\d{2})$", re.DOTALL)
_PEEL_USAGE = re.compile(r"(.*?)\s+(\d{2}:\d{2}:\d{2})$", re.DOTALL)
_PEEL_QUANTITY = re.compile(r"(.*?)\s+(\d+)$", re.DOTALL)
_PROVIDER = re.compile(r"^(AT&T(?:\s+\w+)?)\s+(.*)", re.DOTALL)
_PRODUCT_SPLIT = re.compile(r"\s*\|\s*")

# Continuation rows
_SUB_USAGE = re.compile(r"^\d{2,}:\d{2}:\d{2}$")
_SUB_CHARGE_TYPE = re.compile(rf"^(.*?)\s+({_CHARGE_TYPE_ALT})$", re.DOTALL)
_SUB_PROVIDER = re.compile(r"^(AT&T(?:\s+\w+)?)\s*(.*)", re.DOTALL)

# Context rows
BTN_PREFIX = "BTN:"
SVC_ID_PREFIX = "Svc ID :"
CHARGES_AND_ADJUSTMENTS = "Charges & Adjustments"
_BTN = re.compile(r"BTN:\s+([^|]+)\|?(.*)")
_SVC_ID = re.compile(r"Svc ID :\s+([^|]+?)\s*(?:\|\s*(\d*)\s*(?:\|\s*(.*))?)?$")
_TRAILING_AMOUNT = re.compile(r"\s+[\d,]+\.\d{2}$")

# Service address
_ADDRESS_FULL = re.compile(r"^(.*?),\s*([^,]+?),\s*([A-Z]{2})\s+(\d{5}(?:-\d{4})?)$")
_ADDRESS_STATE_ZIP = re.compile(r"^(.*?)\s+([A-Z]{2})\s+(\d{5}(?:-\d{4})?)$")

_MINUTES_SCALE = Decimal("0.0001")


class RowKind(str, Enum):
    IGNORED = "ignored"
    CHARGE = "charge"
    CONTEXT = "context"
    SUB = "sub"


class ParsingContext:
    """
    Context declared by BTN and Svc ID rows, inherited by later charges.

    Lives for exactly one document parse. A BTN row resets everything;
    a Svc ID row resets only the service-id level.
    """

    def __init__(self) -> None:
        self.btn: str | None = None
        self.btn_description: str | None = None
        self.svc_id: str | None = None
        self.node: str | None = None
        self.address = ServiceAddress()

    def clear_svc_id(self) -> None:
        self.svc_id = None
        self.node = None
        self.address = ServiceAddress()

    def clear_btn(self) -> None:
        self.btn = None
        self.btn_description = None
        self.clear_svc_id()


# =======================
# HEADER
# =======================

def extract_header(text: str) -> InvoiceHeader | None:
    """
    Find invoice number, invoice date and BAN in first-page text.

    Returns:
        InvoiceHeader, or None if any of the three is missing
    """
    ban = BAN_PATTERN.search(text or "")
    number = INVOICE_NUMBER_PATTERN.search(text or "")
    invoice_date = INVOICE_DATE_PATTERN.search(text or "")
    if not (ban and number and invoice_date):
        return None
    try:
        parsed_date = datetime.strptime(invoice_date.group(1), "%m/%d/%Y").date()
    except ValueError:
        return None
    return InvoiceHeader(
        invoice_number=f"{int(number.group(1)):012d}",
        invoice_date=parsed_date,
        ban=ban.group(1),
    )


# =======================
# FIELD HELPERS
# =======================

def time_to_minutes(value: str | None) -> Decimal | None:
    """Convert HH:MM:SS to minutes, rounded half-up to 4 places"""
    if value is None:
        return None
    parts = value.split(":")
    if len(parts) != 3:
        return None
    try:
        hours, minutes, seconds = (Decimal(p) for p in parts)
    except InvalidOperation:
        return None
    total = hours * 60 + minutes + seconds / Decimal(60)
    return total.quantize(_MINUTES_SCALE, rounding=ROUND_HALF_UP)


def _amount(value: str) -> Decimal:
    return Decimal(value.replace(",", ""))


def _peel(pattern: re.Pattern, text: str) -> tuple[str | None, str]:
    """Strip the trailing field pattern matches; returns (field, rest)"""
    match = pattern.match(text)
    if not match:
        return None, text
    return match.group(2), match.group(1).strip()


def parse_service_address(text: str) -> ServiceAddress:
    """
    Split a service address into street, city, state and ZIP.

    "street, city, ST ZIP" is tried first. Otherwise a trailing "ST ZIP"
    is removed and the rest is split on its last comma, or failing that
    its last space. Parts that cannot be found stay unset.
    """
    address = ServiceAddress()
    clean = re.sub(r"[,\s]+$", "", text.replace("#", " ")).strip()
    if not clean:
        return address

    match = _ADDRESS_FULL.match(clean)
    if match:
        address.address1 = match.group(1).strip()
        address.city = match.group(2).strip()
        address.state = match.group(3)
        address.zip = match.group(4)
        return address

    remaining = clean
    match = _ADDRESS_STATE_ZIP.match(remaining)
    if match:
        remaining = match.group(1).strip()
        address.state = match.group(2)
        address.zip = match.group(3)

    if "," in remaining:
        street, _, city = remaining.rpartition(",")
    elif " " in remaining:
        street, _, city = remaining.rpartition(" ")
    else:
        address.address1 = remaining
        return address
    address.address1 = street.strip()
    address.city = city.strip()
    return address


# =======================
# ROW CLASSIFICATION
# =======================

def _cell(value: Any) -> str:
    return "" if value is None else str(value)


def row_text(cells: Sequence[Any]) -> str:
    """Cells joined by single spaces, trimmed"""
    return " ".join(_cell(c) for c in cells).strip()


def context_text(cells: Sequence[Any]) -> str:
    """Context row text with line breaks flattened and a stray trailing amount removed"""
    text = " ".join(re.sub(r"[\r\n]", " ", _cell(c)).strip() for c in cells).strip()
    return _TRAILING_AMOUNT.sub("", text)


def _is_context(text: str) -> bool:
    return (
        text.startswith(BTN_PREFIX)
        or text.startswith(SVC_ID_PREFIX)
        or CHARGES_AND_ADJUSTMENTS in text
    )


def classify_row(cells: Sequence[Any]) -> RowKind:
    text = row_text(cells)
    if not text or text.startswith("Item #"):
        return RowKind.IGNORED
    # a bare duration starts with digits but continues the previous item
    if _SUB_USAGE.match(text):
        return RowKind.SUB
    if cells and re.match(r"^\d+", _cell(cells[0]).strip()):
        return RowKind.CHARGE
    if _is_context(text):
        return RowKind.CONTEXT
    return RowKind.SUB


def update_context(cells: Sequence[Any], context: ParsingContext) -> None:
    """Apply a BTN, Svc ID or Charges & Adjustments row to the context"""
    text = row_text(cells)
    if text.startswith(BTN_PREFIX):
        context.clear_btn()
        match = _BTN.search(context_text(cells))
        if match:
            context.btn = match.group(1).strip()
            context.btn_description = match.group(2).strip() or None
            logger.debug(f"Context BTN={context.btn} desc={context.btn_description}")
    elif text.startswith(SVC_ID_PREFIX):
        context.clear_svc_id()
        match = _SVC_ID.search(context_text(cells))
        if match:
            context.svc_id = match.group(1).strip()
            context.node = match.group(2).strip() if match.group(2) else None
            if match.group(3) is not None:
                context.address = parse_service_address(match.group(3).strip())
            logger.debug(f"Context Svc ID={context.svc_id} node={context.node}")
    elif CHARGES_AND_ADJUSTMENTS in text:
        context.clear_svc_id()
        context.svc_id = text


# =======================
# CHARGE ROWS
# =======================

def new_report(header: InvoiceHeader, context: ParsingContext) -> WiredReport:
    """Blank charge item carrying header fields and the current context"""
    return WiredReport(
        invoice_number=header.invoice_number,
        invoice_date=header.invoice_date,
        ban=header.ban,
        btn=context.btn,
        btn_description=context.btn_description,
        svc_id=context.svc_id,
        node=context.node,
        svc_address1=context.address.address1,
        svc_address2=context.address.address2,
        svc_city=context.address.city,
        svc_state=context.address.state,
        svc_zip=context.address.zip,
    )


def parse_charge_row(
    text: str,
    header: InvoiceHeader,
    context: ParsingContext,
) -> WiredReport | None:
    """
    Build a charge item from a charge row's text.

    Returns:
        WiredReport, or None if the text has no leading item number
    """
    text = re.sub(r"[\r\n]", " ", text).strip()
    match = _ITEM.match(text)
    if not match:
        logger.warning(f"Could not parse item number from row: {text}")
        return None

    report = new_report(header, context)
    report.item_number = match.group(1)
    remaining = match.group(2).strip()

    # each peel is independent; a miss leaves its field unset
    report.charge_type, remaining = _peel(_PEEL_CHARGE_TYPE, remaining)
    report.bill_period, remaining = _peel(_PEEL_BILL_PERIOD, remaining)
    total_charge, remaining = _peel(_PEEL_AMOUNT, remaining)
    contract_rate, remaining = _peel(_PEEL_AMOUNT, remaining)
    usage, remaining = _peel(_PEEL_USAGE, remaining)
    quantity, remaining = _peel(_PEEL_QUANTITY, remaining)
    if total_charge is not None:
        report.total_charge = _amount(total_charge)
    if contract_rate is not None:
        report.contract_rate = _amount(contract_rate)
    report.minutes = time_to_minutes(usage)
    if quantity is not None:
        report.quantity = int(quantity)

    if remaining[:2] in ("Y ", "N "):
        report.contract = remaining[0]
        remaining = remaining[2:].strip()

    match = _PROVIDER.match(remaining)
    if match:
        report.provider = match.group(1)
        # "AT&T | Product": the delimiter belongs to the provider token
        remaining = match.group(2).strip()
        if remaining.startswith("|"):
            remaining = remaining[1:].strip()

    parts = _PRODUCT_SPLIT.split(remaining, maxsplit=1)
    report.product_id = parts[0].strip() or None
    if len(parts) > 1:
        report.feature_name = parts[1].strip() or None
    return report


def apply_sub_row(text: str, report: WiredReport) -> None:
    """Merge a continuation row into the charge item in progress"""
    text = text.strip()
    if _SUB_USAGE.match(text):
        report.minutes = time_to_minutes(text)
        return

    match = _SUB_CHARGE_TYPE.match(text)
    if match:
        if report.charge_type is None:
            report.charge_type = match.group(2)
        text = match.group(1).strip()
    if not text:
        return

    prefix = "" if report.description is None else report.description + "\n"
    match = _SUB_PROVIDER.match(text)
    if match:
        if report.provider is None:
            report.provider = match.group(1).strip()
        extra = match.group(2).strip()
        if extra:
            report.description = prefix + extra
    else:
        report.description = prefix + text


def parse_rows(
    rows: Iterable[Sequence[Any]],
    header: InvoiceHeader,
    context: ParsingContext | None = None,
) -> list[WiredReport]:
    """
    Turn extracted table rows into charge items.

    Args:
        rows: Table rows in document order, each a list of cell texts
        header: Invoice header stamped on every item
        context: Context to start from; a fresh one by default

    Returns:
        One WiredReport per charge row, in document order
    """
    context = context or ParsingContext()
    reports: list[WiredReport] = []
    current: WiredReport | None = None

    for cells in rows:
        kind = classify_row(cells)
        increment_counter(pdf_rows_total, kind=kind.value)

        if kind is RowKind.IGNORED:
            continue
        if kind is RowKind.CHARGE:
            if current is not None:
                reports.append(current)
            current = parse_charge_row(row_text(cells), header, context)
        elif kind is RowKind.CONTEXT:
            if current is not None:
                reports.append(current)
            current = None
            update_context(cells, context)
        elif current is not None:
            apply_sub_row(row_text(cells), current)

    if current is not None:
        reports.append(current)
    return reports


# =======================
# DOCUMENT
# =======================

class DetailOfChargesParser:
    """
    Parses an opened CALNET statement.

    Works on any document exposing ``pages``, where each page offers
    ``extract_text()`` and ``extract_tables(table_settings)`` the way a
    pdfplumber PDF does.

    Args:
        table_settings: pdfplumber table settings for detail pages
    """

    DEFAULT_TABLE_SETTINGS = {
        "vertical_strategy": "text",
        "horizontal_strategy": "text",
        "intersection_tolerance": 5,
    }

    def __init__(self, table_settings: dict | None = None):
        self.table_settings = table_settings or dict(self.DEFAULT_TABLE_SETTINGS)

    def read_header(self, document) -> InvoiceHeader:
        """
        Raises:
            InvoiceHeaderNotFoundError: If the first page lacks any header field
        """
        text = document.pages[0].extract_text() if document.pages else ""
        header = extract_header(text or "")
        if header is None:
            raise InvoiceHeaderNotFoundError(
                "Invoice Number, Invoice Date or Billing Acct Nbr (BAN) not found on first page"
            )
        return header

    def detail_rows(self, document) -> Iterator[list]:
        """Rows of every table on detail pages, in page order"""
        for number, page in enumerate(document.pages, start=1):
            if DETAIL_PAGE_MARKER not in (page.extract_text() or ""):
                logger.debug(f"Skipping page {number}: not a detail page")
                continue
            for table in page.extract_tables(self.table_settings) or []:
                yield from table

    def parse(self, document) -> list[WiredReport]:
        """
        Parse a whole statement.

        Raises:
            InvoiceHeaderNotFoundError: If the header is missing; nothing is parsed
        """
        header = self.read_header(document)
        logger.info(
            f"Parsing CALNET report BAN={header.ban} invoice={header.invoice_number} "
            f"date={header.invoice_date}"
        )
        return parse_rows(self.detail_rows(document), header)
