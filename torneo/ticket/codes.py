"""Ticket code and QR payload generation.

Codes are short, human-readable and unique among stored tickets. The QR
payload is an opaque string; rendering it as an image is left to clients.
"""

import base64
import json
from typing import Any, Awaitable, Callable, Dict
from uuid import uuid4

from torneo.logging_config import get_logger
from torneo.ticket.models import Ticket
from torneo.utils.errors import StorageError

logger = get_logger(__name__)

CodeExists = Callable[[str], Awaitable[bool]]


class TicketCodeGenerator:
    """Generate `PREFIX + N uppercase hex` codes that are not yet taken.

    Usage:
        generator = TicketCodeGenerator(prefix="TKT-", length=8)
        code = await generator.generate(repository.code_exists)
    """

    def __init__(self, prefix: str = "TKT-", length: int = 8, max_attempts: int = 5):
        if not 1 <= length <= 32:
            raise ValueError("length must be between 1 and 32")
        self.prefix = prefix
        self.length = length
        self.max_attempts = max_attempts

    def candidate(self) -> str:
        return f"{self.prefix}{uuid4().hex[: self.length].upper()}"

    async def generate(self, exists: CodeExists) -> str:
        for attempt in range(1, self.max_attempts + 1):
            code = self.candidate()
            if not await exists(code):
                return code
            logger.debug("ticket_code_collision", code=code, attempt=attempt)
        raise StorageError(
            "Could not allocate a unique ticket code",
            details={"attempts": self.max_attempts},
        )


def build_qr_payload(ticket: Ticket) -> str:
    document = {
        "ticket_code": ticket.ticket_code,
        "tournament_id": ticket.tournament_id,
        "user_id": ticket.user_id,
        "price": str(ticket.price),
        "issued_at": ticket.reserved_at.isoformat(),
    }
    raw = json.dumps(document, separators=(",", ":"), sort_keys=True)
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")


def decode_qr_payload(value: str) -> Dict[str, Any]:
    """Decode a payload produced by `build_qr_payload`.

    Raises:
        ValueError: The value is not a well-formed payload
    """
    raw = base64.urlsafe_b64decode(value.encode("ascii"))
    document = json.loads(raw.decode("utf-8"))
    if not isinstance(document, dict) or not document.get("ticket_code"):
        raise ValueError("QR payload carries no ticket code")
    return document


def is_valid_qr_payload(value: str | None) -> bool:
    if not value or not value.strip():
        return False
    try:
        decode_qr_payload(value)
    except ValueError:
        return False
    return True
