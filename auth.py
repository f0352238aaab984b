import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Path, Query, Request

from config import Settings, get_settings
from utils.hls_signing import TokenSigner

logger = logging.getLogger(__name__)


# ---------- Signer ----------
def get_signer(request: Request) -> TokenSigner:
    return request.app.state.signer


def parse_expiry(value: Optional[str]) -> int:
    """Unparsable expiry reads as 0, i.e. already expired."""
    try:
        return int((value or "").strip())
    except ValueError:
        return 0


# ---------- Stream token gate ----------
def require_stream_token(
    file_id: str = Path(...),
    t: Optional[str] = Query(None),
    e: Optional[str] = Query(None),
    signer: TokenSigner = Depends(get_signer),
) -> str:
    """
    Gate for /stream routes: ?t=<token>&e=<expiry> must be a live signature
    for this file_id. Anything else is a 401 before the song is even looked up.
    """
    if not t or not e:
        raise HTTPException(status_code=401, detail="Unauthorized")

    expires_at = parse_expiry(e)
    if not signer.validate(file_id, t, expires_at):
        logger.info("Rejected stream token for %s (exp=%s)", file_id, expires_at)
        raise HTTPException(status_code=401, detail="Unauthorized")
    return file_id


# ---------- API key gate ----------
def require_api_key(
    x_api_key: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Management routes require X-API-Key to match the shared secret."""
    if not settings.secret:
        raise HTTPException(status_code=500, detail="Server misconfigured")
    supplied = (x_api_key or "").strip().encode("utf-8")
    if not supplied or not hmac.compare_digest(supplied, settings.secret):
        raise HTTPException(status_code=401, detail="Unauthorized")
