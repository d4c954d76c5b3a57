"""
Row building for the sink table
Each queue message becomes exactly one row with a single content column
"""

from typing import Any, Dict, Union

CONTENT_COLUMN = 'RECORD_CONTENT'


def build_row(payload: Union[bytes, str], content_column: str = CONTENT_COLUMN) -> Dict[str, Any]:
    """
    Build a sink row from one raw message payload

    Any byte sequence is accepted: undecodable bytes are replaced rather than
    rejected, so the row builder never fails.

    Args:
        payload: Raw message body as read from the queue
        content_column: Target column for the message content

    Returns:
        dict: Row mapping column name to value
    """
    if isinstance(payload, (bytes, bytearray)):
        content = bytes(payload).decode('utf-8', errors='replace')
    else:
        content = payload
    return {content_column: content}
