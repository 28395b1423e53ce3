from typing import Optional


class MailVerdictError(Exception):
    """Base de todos los errores propios del clasificador."""


class RemoteConnectionError(MailVerdictError, ConnectionError):
    """Servicio remoto (spamd, proveedor LLM) inaccesible: fallo al conectar, reset o cierre."""


class ProtocolError(MailVerdictError):
    """
    Respuesta mal formada o no exitosa pese a tener conexión viva.
    Guarda la línea de estado cruda para poder diagnosticar.
    """

    def __init__(self, message: str, status_line: Optional[str] = None):
        super().__init__(message)
        self.status_line = status_line


class DeadlineExceeded(MailVerdictError, TimeoutError):
    """Se agotó el plazo total (connect + write + read) fijado por el llamador."""


class ConfigurationError(MailVerdictError):
    """No hay ningún proveedor LLM utilizable configurado."""
