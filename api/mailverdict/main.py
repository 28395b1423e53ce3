import asyncio
import time
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request

from .config import Settings, get_settings
from .errors import MailVerdictError
from .logging_config import configure_logging
from .message import parse_message
from .orchestrator import Orchestrator
from .schemas import JsonEmailInput, VerdictResponse, to_response
from .security import assert_api_key

settings = get_settings()
configure_logging(settings.log_level)

# Cola implícita: si hay demasiadas solicitudes, estas esperan en el semaphore
semaphore = asyncio.Semaphore(settings.max_concurrency)

api = FastAPI(title="Mail Verdict API", version="1.0.0")


@lru_cache(maxsize=1)
def get_orchestrator() -> Orchestrator:
    return Orchestrator.from_settings(get_settings())


async def _classify(raw: bytes, source_ip: Optional[str], return_details: bool, orchestrator: Orchestrator) -> VerdictResponse:
    if not raw.strip():
        raise HTTPException(status_code=422, detail="Empty message")
    start = time.time()
    async with semaphore:
        message = parse_message(raw)
        verdict = await orchestrator.evaluate(message, source_ip=source_ip)
    processingMs = int((time.time() - start) * 1000)
    return to_response(verdict, processingMs, return_details)


@api.get("/health")
async def health(orchestrator: Orchestrator = Depends(get_orchestrator)):
    try:
        spamd_up = await asyncio.to_thread(orchestrator.spamd.ping, 2.0)
    except MailVerdictError:
        spamd_up = False
    return {
        "status": "ok",
        "spamd": "up" if spamd_up else "down",
        "llm": orchestrator.judge.name if orchestrator.judge is not None else "disabled",
    }


@api.post("/classify/mime", response_model=VerdictResponse)
async def classify_mime(
    request: Request,
    source_ip: Optional[str] = None,
    return_details: bool = True,
    settings: Settings = Depends(get_settings),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    assert_api_key(request, settings)
    # bytes tal cual: DKIM y Content-Length dependen del mensaje exacto
    raw = await request.body()
    return await _classify(raw, source_ip, return_details, orchestrator)


@api.post("/classify/json", response_model=VerdictResponse)
async def classify_json(
    request: Request,
    payload: JsonEmailInput,
    settings: Settings = Depends(get_settings),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    assert_api_key(request, settings)
    raw = payload.raw_mime.encode("utf-8")
    return await _classify(raw, payload.source_ip, payload.return_details, orchestrator)
