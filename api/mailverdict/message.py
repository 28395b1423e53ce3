import logging
from dataclasses import dataclass, field
from email import message_from_bytes, policy
from email.message import EmailMessage
from email.utils import parseaddr
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParsedMessage:
    id: str
    raw: bytes
    subject: str = ""
    sender: str = ""
    sender_address: str = ""
    headers: dict = field(default_factory=dict)
    text: str = ""
    # todas las partes text/* decodificadas, no solo el cuerpo preferido
    all_text: str = ""
    path: Optional[Path] = None

    @property
    def sender_domain(self) -> Optional[str]:
        local, sep, domain = self.sender_address.rpartition("@")
        if not sep or not local or not domain.strip():
            return None
        return domain.strip().lower()

    def header(self, name: str) -> str:
        return self.headers.get(name.lower(), "")

    def body_preview(self, max_chars: int = 1500) -> str:
        text = self.text.strip()
        if len(text) > max_chars:
            return text[:max_chars] + "…"
        return text


def _decode(part: EmailMessage) -> str:
    try:
        return part.get_content()
    except (LookupError, UnicodeError) as exc:
        logger.debug("Could not decode body part: %s", exc)
        payload = part.get_payload(decode=True) or b""
        return payload.decode("utf-8", errors="replace")


def _extract_text(msg: EmailMessage) -> str:
    # texto plano primero, HTML como alternativa
    part = msg.get_body(preferencelist=("plain", "html"))
    if part is None:
        return ""
    return _decode(part)


def _all_text(msg: EmailMessage) -> str:
    return "\n".join(
        _decode(part)
        for part in msg.walk()
        if not part.is_multipart() and part.get_content_maintype() == "text"
    )


def parse_message(raw: bytes, message_id: str = "", path: Optional[Path] = None) -> ParsedMessage:
    msg = message_from_bytes(raw, policy=policy.default)
    sender = str(msg.get("From", "") or "")
    _, address = parseaddr(sender)
    headers = {}
    for name, value in msg.items():
        # nos quedamos con la primera aparición de cada header
        headers.setdefault(name.lower(), str(value))
    return ParsedMessage(
        id=message_id,
        raw=raw,
        subject=str(msg.get("Subject", "") or ""),
        sender=sender,
        sender_address=address or sender,
        headers=headers,
        text=_extract_text(msg),
        all_text=_all_text(msg),
        path=path,
    )


def load_messages(directory: str) -> List[ParsedMessage]:
    """Lee todos los .eml de un directorio (sin recursión), ordenados por nombre."""
    root = Path(directory)
    messages = []
    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        if entry.is_dir() or entry.suffix.lower() != ".eml":
            continue
        messages.append(parse_message(entry.read_bytes(), message_id=entry.name, path=entry))
    return messages
