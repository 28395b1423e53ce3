import asyncio
import functools
import logging
import shutil
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from . import adversarial
from .checks import check_blocklist, check_dkim, check_spf, reverse_dns
from .config import Settings
from .decision import decide
from .errors import ConfigurationError, MailVerdictError
from .llm import Judge, build_judge
from .message import ParsedMessage
from .models import SignalSet, Status, Verdict
from .spamd_client import SpamdClient

logger = logging.getLogger(__name__)

_ABSENT = object()


class Orchestrator:
    """
    Reúne las señales de un mensaje en paralelo, decide y reubica el fichero.

    Cada señal corre como tarea independiente con su propio timeout; si falla
    o no termina a tiempo queda "ausente" y el mensaje sigue teniendo veredicto.
    """

    def __init__(
        self,
        settings: Settings,
        spamd: Optional[SpamdClient] = None,
        judge: Optional[Judge] = None,
        reverse_lookup: Callable[[str], str] = reverse_dns,
    ):
        self.settings = settings
        self.spamd = spamd or SpamdClient(
            settings.spamd_host,
            settings.spamd_port,
            timeout=settings.request_timeout_s,
            user=settings.spamd_user,
        )
        self.judge = judge
        self.reverse_lookup = reverse_lookup
        self.semaphore = asyncio.Semaphore(settings.max_concurrency)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Orchestrator":
        try:
            judge = build_judge(settings)
        except ConfigurationError as exc:
            logger.warning("LLM disabled: %s", exc)
            judge = None
        return cls(settings, judge=judge)

    async def _run(self, name: str, func: Callable, timeout: float):
        try:
            return await asyncio.wait_for(asyncio.to_thread(func), timeout)
        except asyncio.TimeoutError:
            logger.warning("Signal %s timed out after %.1fs", name, timeout)
        except MailVerdictError as exc:
            logger.warning("Signal %s unavailable: %s", name, exc)
        except Exception:
            logger.exception("Signal %s failed unexpectedly", name)
        return _ABSENT

    def _signal_jobs(self, message: ParsedMessage, source_ip: Optional[str]) -> Dict[str, Tuple[Callable, float]]:
        settings = self.settings
        local = settings.message_deadline_s
        jobs = {
            "authentication": (functools.partial(check_dkim, message.raw), local),
            "provenance": (
                functools.partial(check_spf, message, source_ip or settings.source_ip, self.reverse_lookup),
                local,
            ),
            "blocklist": (functools.partial(check_blocklist, message, settings.malicious_domains), local),
            "adversarial": (functools.partial(adversarial.scan, f"{message.subject}\n{message.all_text}"), local),
            "classifier": (
                functools.partial(self.spamd.classify, message.raw, timeout=settings.request_timeout_s),
                settings.request_timeout_s,
            ),
        }
        if self.judge is not None:
            jobs["language_model"] = (
                functools.partial(self.judge.judge, message.subject, message.sender, message.body_preview()),
                settings.llm_timeout_s,
            )
        return jobs

    async def gather_signals(self, message: ParsedMessage, source_ip: Optional[str] = None) -> SignalSet:
        jobs = self._signal_jobs(message, source_ip)
        tasks = {
            name: asyncio.create_task(self._run(name, func, timeout))
            for name, (func, timeout) in jobs.items()
        }
        _, pending = await asyncio.wait(tasks.values(), timeout=self.settings.message_deadline_s)
        for task in pending:
            task.cancel()

        values = {}
        unavailable: List[str] = []
        for name, task in tasks.items():
            if task in pending:
                logger.warning("Signal %s missed the message deadline", name)
                value = _ABSENT
            else:
                value = task.result()
            if value is _ABSENT:
                unavailable.append(name)
            else:
                values[name] = value
        if self.judge is None:
            unavailable.append("language_model")

        # las señales obligatorias ausentes toman el valor neutro por defecto del modelo
        return SignalSet(unavailable=tuple(unavailable), **values)

    async def evaluate(self, message: ParsedMessage, source_ip: Optional[str] = None) -> Verdict:
        signals = await self.gather_signals(message, source_ip)
        verdict = decide(signals, self.settings.weights)
        logger.info(
            "Message %s: %s (score %.1f)", message.id or "<inline>", verdict.status.value, verdict.decision_score
        )
        return verdict

    async def evaluate_batch(self, messages: Sequence[ParsedMessage]) -> List[Tuple[ParsedMessage, Verdict]]:
        async def bounded(message: ParsedMessage) -> Tuple[ParsedMessage, Verdict]:
            async with self.semaphore:
                return message, await self.evaluate(message)

        return list(await asyncio.gather(*(bounded(m) for m in messages)))

    def destination(self, status: Status) -> Path:
        directories = {
            Status.SPAM: self.settings.spam_dir,
            Status.QUARANTINE: self.settings.quarantine_dir,
            Status.CLEAN: self.settings.clean_dir,
        }
        return Path(directories[status])

    def relocate(self, message: ParsedMessage, status: Status) -> Path:
        if message.path is None:
            raise ValueError(f"message {message.id} has no file to relocate")
        target_dir = self.destination(status)
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / message.path.name
        shutil.move(str(message.path), str(target))
        return target
