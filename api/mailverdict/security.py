from fastapi import HTTPException, Request

from .config import Settings


def assert_api_key(request: Request, settings: Settings):
    key = request.headers.get("X-Api-Key")
    if not settings.api_key or key != settings.api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
