from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Verb(str, Enum):
    """Comandos spamd soportados."""
    CHECK = "CHECK"        # solo puntuación
    SYMBOLS = "SYMBOLS"    # puntuación + reglas que hicieron match
    REPORT = "REPORT"      # puntuación + informe en texto
    PING = "PING"          # liveness, sin cuerpo

    @property
    def scores(self) -> bool:
        return self is not Verb.PING


class Status(str, Enum):
    CLEAN = "CLEAN"
    QUARANTINE = "QUARANTINE"
    SPAM = "SPAM"


class ClassificationRequest(Frozen):
    payload: bytes
    command: Verb = Verb.SYMBOLS


class ClassificationResult(Frozen):
    # is_over_threshold es el veredicto del propio spamd; manda sobre score/threshold
    combined_score: float = 0.0
    threshold: float = 0.0
    is_over_threshold: bool = False
    matched_rule_names: Tuple[str, ...] = ()
    report: Optional[str] = None


class AuthenticationResult(Frozen):
    domain: str = ""
    selector: str = ""
    status: str = "fail"  # pass | fail
    detail: str = ""

    @property
    def passed(self) -> bool:
        return self.status.lower() == "pass"


class ProvenanceResult(Frozen):
    status: str = "none"  # pass | softfail | fail | neutral | none
    raw_evidence: str = ""
    resolved_hostname: Optional[str] = None
    lookup_error: Optional[str] = None


class BlocklistResult(Frozen):
    sender_domain: str = ""
    is_listed: bool = False
    reason_code: str = "unknown"


class AdversarialResult(Frozen):
    is_flagged: bool = False
    reason_code: Optional[str] = None


class LanguageModelJudgment(Frozen):
    is_spam_judgment: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    rationale: str = ""


class SignalSet(Frozen):
    """
    Todas las señales de un único mensaje.
    classifier y language_model son opcionales (su proveedor puede no responder);
    el resto siempre está presente, con un valor neutro si no se pudo obtener.
    unavailable lista las señales que faltaron, para que el resumen lo muestre.
    """
    authentication: Tuple[AuthenticationResult, ...] = ()
    provenance: ProvenanceResult = ProvenanceResult()
    blocklist: BlocklistResult = BlocklistResult()
    adversarial: AdversarialResult = AdversarialResult()
    classifier: Optional[ClassificationResult] = None
    language_model: Optional[LanguageModelJudgment] = None
    unavailable: Tuple[str, ...] = ()


class SignalDetails(Frozen):
    domain: str = "OK"     # OK | BLOCKED
    spf: str = "none"
    dkim: str = "NONE"     # PASS | FAIL | NONE


class Verdict(Frozen):
    status: Status
    decision_score: float = Field(..., ge=0.0, le=10.0)
    reasons: Tuple[str, ...]
    details: SignalDetails
    signal_summary: SignalSet
