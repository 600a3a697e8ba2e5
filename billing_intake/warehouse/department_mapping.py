"""
Read-only lookup of account number to department.

The mapping table is maintained outside the pipeline; conversion only
reads it once per batch.
"""

import psycopg

from billing_intake.observability.logger import get_logger

logger = get_logger(__name__)


def load_department_mapping(conn: psycopg.Connection) -> dict[str, str]:
    """
    Load the account-to-department mapping.

    Returns:
        Dict keyed by account number
    """
    with conn.cursor() as cur:
        cur.execute(
            "SELECT account_number, department FROM account_department_mapping"
        )
        rows = cur.fetchall()
    mapping = {row["account_number"].strip(): row["department"] for row in rows}
    logger.debug(f"Loaded {len(mapping)} department mappings")
    return mapping
