from functools import lru_cache
from typing import Annotated, Optional, Tuple

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .decision import ScoringWeights

DEFAULT_BLOCKLIST = ("spam.com", "spamsite.biz", "badmailer.test")


class Settings(BaseSettings):
    """
    Configuración inmutable. Se construye una vez y se pasa explícitamente
    al orquestador; el núcleo (decide, SpamdClient) no lee el entorno.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        frozen=True,
    )

    log_level: str = "info"
    api_key: str = ""
    max_concurrency: int = 4

    spamd_host: str = "127.0.0.1"
    spamd_port: int = 783
    spamd_user: Optional[str] = None
    request_timeout_ms: int = 12000

    sample_dir: str = "samples"
    source_ip: str = "203.0.113.1"
    malicious_domains: Annotated[Tuple[str, ...], NoDecode] = DEFAULT_BLOCKLIST

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: Optional[str] = None
    gemini_api_key: str = ""
    gemini_model: str = "gemini-1.5-flash"
    llm_timeout_s: float = 20.0

    # plazo total por mensaje para reunir todas las señales
    message_deadline_s: float = 30.0

    quarantine_dir: str = "quarantine"
    spam_dir: str = "spam"
    clean_dir: str = "clean"

    weights: ScoringWeights = ScoringWeights()

    @field_validator("malicious_domains", mode="before")
    @classmethod
    def _split_domains(cls, value):
        # MALICIOUS_DOMAINS=a.com, b.net ; vacío => lista por defecto
        if isinstance(value, str):
            parts = tuple(p.strip().lower() for p in value.split(",") if p.strip())
            return parts or DEFAULT_BLOCKLIST
        return tuple(str(p).strip().lower() for p in value)

    @property
    def request_timeout_s(self) -> float:
        return self.request_timeout_ms / 1000.0


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
