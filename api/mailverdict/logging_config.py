import logging


class PrivacyFilter(logging.Filter):
    """Evita que el contenido de los correos acabe en los logs."""

    BLOCKED_KEYS = {"raw_mime", "body", "payload", "subject"}

    def filter(self, record: logging.LogRecord) -> bool:
        for key in self.BLOCKED_KEYS:
            if hasattr(record, key):
                setattr(record, key, "[REDACTED]")
        return True


def configure_logging(level: str = "info") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    # los filtros del logger raíz no ven los registros propagados; van en los handlers
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, PrivacyFilter) for f in handler.filters):
            handler.addFilter(PrivacyFilter())
