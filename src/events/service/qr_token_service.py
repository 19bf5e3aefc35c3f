"""Signed QR tokens for tickets.

A token binds a ticket's identity fields (ticket number, event, buyer and
issue time) with an HMAC-SHA256 signature. The token presented at the door is a
compact JSON document carrying the payload and its signature.
"""

import typing as t
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import orjson
from django.conf import settings
from django.utils import timezone

from common import signing
from events.exceptions import TokenSigningError

if t.TYPE_CHECKING:
    from events.models import Ticket

QR_KEY_DOMAIN = "boxoffice:ticket-qr:v1"


@dataclass(frozen=True)
class QRToken:
    payload: str
    signature: str
    issued_at: datetime


def build_payload(ticket_number: str, event_id: UUID, buyer_id: UUID, issued_at: datetime) -> str:
    """Canonical payload: sorted keys, no whitespace."""
    return orjson.dumps(
        {
            "ticket_number": ticket_number,
            "event_id": str(event_id),
            "buyer_id": str(buyer_id),
            "issued_at": issued_at.isoformat(),
        },
        option=orjson.OPT_SORT_KEYS,
    ).decode()


def sign(payload: str) -> str:
    try:
        return signing.generate_signature(payload, domain=QR_KEY_DOMAIN, secret=settings.QR_SIGNING_KEY)
    except signing.SigningKeyMissing as e:
        raise TokenSigningError() from e


def issue(ticket_number: str, event_id: UUID, buyer_id: UUID) -> QRToken:
    """Create a signed token for a ticket that is about to be minted.

    Raises:
        TokenSigningError: no signing key is configured.
    """
    issued_at = timezone.now()
    payload = build_payload(ticket_number, event_id, buyer_id, issued_at)
    return QRToken(payload=payload, signature=sign(payload), issued_at=issued_at)


def presentable_token(ticket: "Ticket") -> str:
    """The string encoded in the ticket's QR code."""
    return orjson.dumps({"payload": ticket.qr_payload, "signature": ticket.qr_signature}).decode()


def _parse_presented(presented: str) -> tuple[str, str] | None:
    try:
        data = orjson.loads(presented)
    except orjson.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    payload, signature = data.get("payload"), data.get("signature")
    if not isinstance(payload, str) or not isinstance(signature, str):
        return None
    return payload, signature


def verify(ticket: "Ticket", presented: str) -> bool:
    """Check a presented token against the ticket record.

    The expected payload is rebuilt from the ticket's own fields and re-signed,
    so a token copied from another ticket or with an edited payload fails.
    """
    parsed = _parse_presented(presented)
    if parsed is None:
        return False
    payload, signature = parsed
    expected_payload = build_payload(ticket.ticket_number, ticket.event_id, ticket.buyer_id, ticket.qr_issued_at)
    if not signing.constant_time_equals(payload, expected_payload):
        return False
    try:
        return signing.verify_signature(
            expected_payload, signature, domain=QR_KEY_DOMAIN, secret=settings.QR_SIGNING_KEY
        )
    except signing.SigningKeyMissing as e:
        raise TokenSigningError() from e
