import logging
import math
import socket
import time
from typing import Dict, List, Optional, Tuple

from .errors import DeadlineExceeded, ProtocolError, RemoteConnectionError
from .models import ClassificationRequest, ClassificationResult, Verb

logger = logging.getLogger(__name__)

PROTOCOL = "SPAMC/1.2"
RESPONSE_PREFIX = "SPAMD/"
SUCCESS_MARKER = "EX_OK"
TRUTHY = ("true", "yes")


def build_request(request: ClassificationRequest, user: Optional[str] = None) -> bytes:
    # Protocolo spamc: línea de comando, Content-Length exacto en bytes, línea en blanco
    # y el mensaje tal cual, sin recodificar ni terminador extra.
    headers = [f"{request.command.value} {PROTOCOL}"]
    if request.command.scores:
        headers.append(f"Content-Length: {len(request.payload)}")
    if user:
        # spamd aplica las preferencias de ese usuario
        headers.append(f"User: {user}")
    head = "\r\n".join(headers) + "\r\n\r\n"
    return head.encode("ascii") + request.payload


def _to_float(text: str) -> float:
    try:
        value = float(text.strip())
    except ValueError:
        logger.debug("Unparsable number in Spam header: %r", text)
        return 0.0
    return value if math.isfinite(value) else 0.0


def _parse_spam_header(value: str) -> Tuple[bool, float, float]:
    # Ej: "True ; 6.2 / 5.0". El booleano es la fuente de verdad; si los números
    # no se pueden leer quedan a 0.0 y seguimos.
    verdict, _, numbers = value.partition(";")
    is_spam = verdict.strip().lower() in TRUTHY
    score_text, _, threshold_text = numbers.partition("/")
    return is_spam, _to_float(score_text), _to_float(threshold_text)


def _split_lines(data: bytes) -> List[str]:
    text = data.decode("utf-8", errors="replace")
    if text.endswith("\n"):
        # el último salto cierra una línea, no abre una vacía
        text = text[:-1]
    return [line[:-1] if line.endswith("\r") else line for line in text.split("\n")]


def _check_status(lines: List[str]) -> Tuple[str, str, str]:
    # SPAMD/<versión> <código> <texto>
    status_line = lines[0].strip() if lines else ""
    if not status_line:
        raise ProtocolError("empty response from spamd", status_line="")
    fields = status_line.split(None, 2)
    if len(fields) < 3 or not fields[0].startswith(RESPONSE_PREFIX):
        raise ProtocolError(f"unexpected status line: {status_line}", status_line=status_line)
    return status_line, fields[1], fields[2]


def parse_response(data: bytes, command: Verb = Verb.SYMBOLS) -> ClassificationResult:
    """
    Parsea la respuesta de spamd:

        SPAMD/1.1 0 EX_OK
        Content-length: 22
        Spam: True ; 10.5 / 5.0

        VIAGRA,NIGERIAN_PRINCE

    Falla con ProtocolError si la línea de estado no indica éxito, si la
    respuesta se corta antes de terminar la sección de headers o si falta
    el header Spam. Nunca devuelve un resultado a cero en silencio.
    """
    lines = _split_lines(data)
    status_line, code, text = _check_status(lines)
    if code != "0" or not text.startswith(SUCCESS_MARKER):
        raise ProtocolError(f"spamd error: {status_line}", status_line=status_line)

    headers: Dict[str, str] = {}
    body_start = None
    for idx, line in enumerate(lines[1:], start=1):
        if line == "":
            body_start = idx + 1
            break
        name, sep, value = line.partition(":")
        if sep:
            headers[name.strip().lower()] = value.strip()
    if body_start is None:
        raise ProtocolError("response ended before header section completed", status_line=status_line)

    if "spam" not in headers:
        raise ProtocolError("missing Spam header in spamd response", status_line=status_line)
    is_spam, score, threshold = _parse_spam_header(headers["spam"])

    body_lines = lines[body_start:]
    rules: Tuple[str, ...] = ()
    report = None
    if command is Verb.SYMBOLS:
        # la lista puede venir partida en varias líneas
        joined = ",".join(line.strip() for line in body_lines)
        rules = tuple(token.strip() for token in joined.split(",") if token.strip())
    elif command is Verb.REPORT:
        report = "\n".join(body_lines).strip() or None

    return ClassificationResult(
        combined_score=score,
        threshold=threshold,
        is_over_threshold=is_spam,
        matched_rule_names=rules,
        report=report,
    )


class SpamdClient:
    """
    Cliente spamd. Abre y cierra exactamente una conexión por llamada, sin
    reintentos: si hace falta reintentar lo decide el orquestador.
    """

    def __init__(self, host: str, port: int, timeout: float = 12.0, user: Optional[str] = None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.user = user

    def classify(
        self,
        payload: bytes,
        command: Verb = Verb.SYMBOLS,
        timeout: Optional[float] = None,
    ) -> ClassificationResult:
        if not command.scores:
            raise ValueError(f"{command.value} does not return a classification")
        request = ClassificationRequest(payload=payload, command=command)
        data = self._exchange(build_request(request, self.user), timeout)
        result = parse_response(data, command)
        logger.debug(
            "spamd %s: spam=%s score=%s/%s rules=%d",
            command.value, result.is_over_threshold, result.combined_score,
            result.threshold, len(result.matched_rule_names),
        )
        return result

    def ping(self, timeout: Optional[float] = None) -> bool:
        request = ClassificationRequest(payload=b"", command=Verb.PING)
        data = self._exchange(build_request(request), timeout)
        _, code, text = _check_status(_split_lines(data))
        return code == "0" and "PONG" in text

    def _exchange(self, request: bytes, timeout: Optional[float]) -> bytes:
        budget = self.timeout if timeout is None else timeout
        deadline = time.monotonic() + budget

        def remaining() -> float:
            left = deadline - time.monotonic()
            if left <= 0:
                raise DeadlineExceeded(f"spamd deadline of {budget}s exceeded")
            return left

        try:
            s = socket.create_connection((self.host, self.port), timeout=remaining())
        except DeadlineExceeded:
            raise
        except socket.timeout as exc:
            raise DeadlineExceeded(f"connect to {self.host}:{self.port} timed out") from exc
        except OSError as exc:
            raise RemoteConnectionError(f"failed to connect to spamd at {self.host}:{self.port}: {exc}") from exc

        try:
            s.settimeout(remaining())
            s.sendall(request)
            try:
                # fin de escritura; Content-Length ya delimita el mensaje
                s.shutdown(socket.SHUT_WR)
            except OSError:
                pass
            chunks = []
            while True:
                s.settimeout(remaining())
                chunk = s.recv(65536)
                if not chunk:
                    break
                chunks.append(chunk)
        except DeadlineExceeded:
            raise
        except socket.timeout as exc:
            raise DeadlineExceeded(f"spamd exchange exceeded {budget}s") from exc
        except OSError as exc:
            raise RemoteConnectionError(f"spamd connection failed: {exc}") from exc
        finally:
            s.close()
        return b"".join(chunks)
