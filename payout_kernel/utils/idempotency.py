"""
Payout reference generation.

A payout reference identifies exactly one seller window.  It is passed to the
payment rail so retried transfer calls for the same window can be
deduplicated on the rail side.
"""

from datetime import datetime, timezone


def _stamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%S.%fZ")


def generate_payout_reference(
    seller_id: str,
    window_start: datetime,
    window_end: datetime,
) -> str:
    """
    Generate the payout reference for one seller window.

    Format: payout:seller_id:window_start:window_end (UTC, microseconds)

    Example:
        >>> generate_payout_reference("s-1", start, end)
        "payout:s-1:20260101T000000.000000Z:20260201T000000.000000Z"
    """
    return f"payout:{seller_id}:{_stamp(window_start)}:{_stamp(window_end)}"
