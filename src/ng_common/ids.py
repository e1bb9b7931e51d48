"""Prefixed opaque identifiers for negotiation records.

IDs are random (uuid4) so that they reveal nothing about volume or ordering;
ordering inside a session's log is carried by the message `seq` instead.
"""

import uuid


def _new(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def new_negotiation_id() -> str:
    return _new("neg")


def new_message_id() -> str:
    return _new("msg")


def new_token_id() -> str:
    return _new("tok")
