"""
Señales locales: DKIM, SPF/procedencia y lista negra de dominios.

Ninguna de estas funciones falla por la red: los errores del verificador o
del DNS quedan registrados en el propio resultado.
"""
import ipaddress
import logging
import re
from typing import Callable, Iterable, Optional, Tuple

import dkim
import dns.exception
import dns.resolver

from .message import ParsedMessage
from .models import AuthenticationResult, BlocklistResult, ProvenanceResult

logger = logging.getLogger(__name__)

SPF_STATUSES = {"pass", "softfail", "fail", "neutral", "none"}
_TAG = r"(?:^|;)\s*{}\s*=\s*([^;\s]+)"


def _tag(value: str, name: str) -> str:
    match = re.search(_TAG.format(name), value)
    return match.group(1) if match else ""


def _signature_headers(raw: bytes) -> list:
    headers, _ = dkim.rfc822_parse(raw)
    out = []
    for name, value in headers:
        if name.lower() == b"dkim-signature":
            # desplegar líneas continuadas
            out.append(re.sub(r"\r?\n[ \t]+", " ", value.decode("ascii", errors="replace")))
    return out


def check_dkim(raw: bytes, dnsfunc: Optional[Callable] = None) -> Tuple[AuthenticationResult, ...]:
    """Verifica cada DKIM-Signature por separado; cualquier error cuenta como fail."""
    try:
        signatures = _signature_headers(raw)
    except dkim.MessageFormatError as exc:
        logger.debug("DKIM could not parse message: %s", exc)
        return ()
    if not signatures:
        return ()

    verifier = dkim.DKIM(raw)
    results = []
    for idx, value in enumerate(signatures):
        detail = ""
        try:
            if dnsfunc is not None:
                ok = verifier.verify(idx=idx, dnsfunc=dnsfunc)
            else:
                ok = verifier.verify(idx=idx)
            if not ok:
                detail = "signature did not verify"
        except Exception as exc:
            # cualquier fallo del verificador cuenta como fail de esa firma
            logger.debug("DKIM signature %d (%s) failed: %r", idx, _tag(value, "d"), exc)
            ok = False
            detail = str(exc) or exc.__class__.__name__
        results.append(
            AuthenticationResult(
                domain=_tag(value, "d"),
                selector=_tag(value, "s"),
                status="pass" if ok else "fail",
                detail=detail,
            )
        )
    return tuple(results)


def reverse_dns(ip: str, lifetime: float = 5.0) -> str:
    answer = dns.resolver.resolve_address(ip, lifetime=lifetime)
    return str(answer[0]).rstrip(".")


def _spf_status(header: str) -> str:
    # Received-SPF: <resultado> (comentario) clave=valor...
    first = header.strip().split(None, 1)[0].lower() if header.strip() else ""
    if first in SPF_STATUSES:
        return first
    return "neutral"


def check_spf(
    message: ParsedMessage,
    source_ip: Optional[str] = None,
    reverse_lookup: Callable[[str], str] = reverse_dns,
) -> ProvenanceResult:
    header = message.header("Received-SPF")
    if header:
        status, evidence = _spf_status(header), header
    else:
        status, evidence = "none", "no Received-SPF header"

    hostname = None
    error = None
    if source_ip:
        try:
            ip = str(ipaddress.ip_address(source_ip.strip()))
        except ValueError:
            error = "invalid source IP"
        else:
            try:
                hostname = reverse_lookup(ip) or None
            except (dns.exception.DNSException, OSError) as exc:
                # sin PTR no cambia el estado SPF
                error = str(exc) or exc.__class__.__name__
                logger.debug("Reverse lookup of %s failed: %s", ip, error)

    return ProvenanceResult(
        status=status,
        raw_evidence=evidence,
        resolved_hostname=hostname,
        lookup_error=error,
    )


def check_blocklist(message: ParsedMessage, blocklist: Iterable[str]) -> BlocklistResult:
    domain = message.sender_domain
    if domain is None:
        return BlocklistResult(sender_domain=message.sender_address, is_listed=False, reason_code="invalid-sender")
    listed = {d.strip().lower() for d in blocklist}
    if domain in listed:
        return BlocklistResult(sender_domain=domain, is_listed=True, reason_code="sender-domain-blocklisted")
    return BlocklistResult(sender_domain=domain, is_listed=False, reason_code="not-listed")
