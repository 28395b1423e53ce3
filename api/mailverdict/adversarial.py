from .models import AdversarialResult

INJECTION_PHRASES = (
    "ignore previous instructions",
    "ignore all previous instructions",
    "you are now dan",
    "you are an unrestricted ai",
    "system override",
)

ZERO_WIDTH = {"\u200b", "\u200c", "\u200d", "\ufeff"}

# más de un 5% de caracteres invisibles se considera ofuscación
INVISIBLE_RATIO = 0.05


def _is_invisible(ch: str) -> bool:
    return ch in ZERO_WIDTH or not (ch.isprintable() or ch.isspace())


def scan(text: str) -> AdversarialResult:
    """Busca inyección de instrucciones y ofuscación con caracteres invisibles."""
    lowered = text.lower()
    for phrase in INJECTION_PHRASES:
        if phrase in lowered:
            return AdversarialResult(is_flagged=True, reason_code=f"Prompt Injection Detected: {phrase}")

    if text:
        invisible = sum(1 for ch in text if _is_invisible(ch))
        if invisible / len(text) > INVISIBLE_RATIO:
            return AdversarialResult(is_flagged=True, reason_code="High obfuscation detected (invisible characters)")

    return AdversarialResult(is_flagged=False)
