"""
Motor de decisión: SignalSet -> Verdict.

Función pura y determinista. Cada señal suma (o descuenta, de forma acotada)
una cantidad fija a una puntuación de severidad, y cada punto queda
explicado por exactamente una razón. El contenido adversarial no puntúa:
es un evento de seguridad y fuerza SPAM con 10.0.
"""
import logging
from typing import List

from pydantic import BaseModel, ConfigDict

from .models import SignalDetails, SignalSet, Status, Verdict

logger = logging.getLogger(__name__)

MAX_SCORE = 10.0
NO_INDICATORS = "No negative indicators found"


class ScoringWeights(BaseModel):
    model_config = ConfigDict(frozen=True)

    blocklist: float = 10.0
    spf_fail: float = 2.0
    spf_softfail: float = 0.5
    dkim_pass_bonus: float = 1.0
    dkim_fail: float = 1.0
    classifier_spam: float = 5.0
    classifier_partial_factor: float = 0.5
    llm_spam: float = 4.0
    llm_clean_bonus: float = 0.5
    spam_threshold: float = 5.0
    quarantine_threshold: float = 2.0


DEFAULT_WEIGHTS = ScoringWeights()


def decide(signals: SignalSet, weights: ScoringWeights = DEFAULT_WEIGHTS) -> Verdict:
    score = 0.0
    reasons: List[str] = []
    forced_spam = False

    # 1. Adversarial: se anota ahora, se aplica al final
    adversarial = signals.adversarial.is_flagged
    if adversarial:
        reasons.append(f"SECURITY ALERT: {signals.adversarial.reason_code or 'adversarial content'}")

    # 2. Lista negra de dominios
    domain = "OK"
    if signals.blocklist.is_listed:
        domain = "BLOCKED"
        forced_spam = True
        score += weights.blocklist
        reasons.append(f"Sender domain {signals.blocklist.sender_domain} is blocklisted")

    # 3. SPF
    spf = signals.provenance.status.lower()
    if spf == "fail":
        score += weights.spf_fail
        reasons.append("SPF Check Failed")
    elif spf == "softfail":
        score += weights.spf_softfail
        reasons.append("SPF Softfail")

    # 4. DKIM: basta una firma válida; sin firmas no se penaliza
    if any(result.passed for result in signals.authentication):
        dkim = "PASS"
        score -= weights.dkim_pass_bonus
    elif signals.authentication:
        dkim = "FAIL"
        score += weights.dkim_fail
        reasons.append("DKIM verification failed")
    else:
        dkim = "NONE"

    # 5. spamd
    classifier = signals.classifier
    if classifier is not None:
        rules = ", ".join(classifier.matched_rule_names) or "none"
        if classifier.is_over_threshold:
            score += weights.classifier_spam
            reasons.append(
                f"SpamAssassin flagged as SPAM (score: {classifier.combined_score:.1f}, rules: {rules})"
            )
        elif classifier.combined_score > 0:
            partial = classifier.combined_score * weights.classifier_partial_factor
            score += partial
            reasons.append(
                f"SpamAssassin score {classifier.combined_score:.1f} below threshold "
                f"{classifier.threshold:.1f} (+{partial:.2f})"
            )

    # 6. LLM
    judgment = signals.language_model
    if judgment is not None:
        if judgment.is_spam_judgment:
            score += weights.llm_spam
            reasons.append(f"LLM Analysis: SPAM (confidence: {judgment.confidence:.2f})")
        else:
            score -= weights.llm_clean_bonus

    # 7. Acotar y clasificar
    score = min(max(score, 0.0), MAX_SCORE)
    if adversarial:
        score = MAX_SCORE
        forced_spam = True

    if forced_spam or score >= weights.spam_threshold:
        status = Status.SPAM
    elif score >= weights.quarantine_threshold:
        status = Status.QUARANTINE
    else:
        status = Status.CLEAN

    if not reasons:
        reasons.append(NO_INDICATORS)

    logger.debug("decide: status=%s score=%.2f reasons=%d", status.value, score, len(reasons))
    return Verdict(
        status=status,
        decision_score=score,
        reasons=tuple(reasons),
        details=SignalDetails(domain=domain, spf=spf, dkim=dkim),
        signal_summary=signals,
    )
