from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .models import Verdict


class SpamdDetails(BaseModel):
    score: float
    threshold: float
    isSpam: bool
    rules: List[str]


class LLMDetails(BaseModel):
    isSpam: bool
    confidence: float
    reason: str


class VerdictResponse(BaseModel):
    status: str
    decisionScore: float
    reasons: List[str]
    details: Dict[str, str]  # {'domain': 'OK', 'spf': 'pass', 'dkim': 'PASS'}
    spamAssassin: Optional[SpamdDetails] = None
    llm: Optional[LLMDetails] = None
    securityAlert: Optional[str] = None
    unavailable: List[str]
    processingMs: int


class JsonEmailInput(BaseModel):
    raw_mime: str = Field(..., description="Mensaje RFC 822 completo (MIME) como string")
    source_ip: Optional[str] = Field(default=None, description="IP de origen para la búsqueda inversa")
    return_details: bool = True


def to_response(verdict: Verdict, processing_ms: int, return_details: bool = True) -> VerdictResponse:
    signals = verdict.signal_summary
    spamd = None
    llm = None
    if return_details and signals.classifier is not None:
        c = signals.classifier
        spamd = SpamdDetails(
            score=c.combined_score,
            threshold=c.threshold,
            isSpam=c.is_over_threshold,
            rules=list(c.matched_rule_names),
        )
    if return_details and signals.language_model is not None:
        j = signals.language_model
        llm = LLMDetails(isSpam=j.is_spam_judgment, confidence=j.confidence, reason=j.rationale)
    alert = signals.adversarial.reason_code if signals.adversarial.is_flagged else None

    return VerdictResponse(
        status=verdict.status.value,
        decisionScore=round(verdict.decision_score, 2),
        reasons=list(verdict.reasons),
        details=verdict.details.model_dump() if return_details else {},
        spamAssassin=spamd,
        llm=llm,
        securityAlert=alert,
        unavailable=list(signals.unavailable),
        processingMs=processing_ms,
    )
