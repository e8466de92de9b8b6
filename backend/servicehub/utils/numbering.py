"""Invoice number generation.

Format: INV-<epoch milliseconds>, e.g. INV-1767225600000.  Assignments are
created by a handful of admins, so millisecond resolution is unique in
practice; the column is indexed, not unique.
"""

import time


def generate_invoice_id(now: float | None = None) -> str:
    ts = time.time() if now is None else now
    return f"INV-{int(ts * 1000)}"
