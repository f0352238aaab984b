from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query

from auth import get_signer, require_api_key
from config import Settings, get_settings
from schemas import StreamTokenOut
from utils.hls_signing import TokenSigner

router = APIRouter(tags=["Tokens"], dependencies=[Depends(require_api_key)])


def parse_ttl_minutes(value: Optional[str], default: int) -> int:
    try:
        minutes = int((value or "").strip())
    except ValueError:
        return default
    return minutes if minutes > 0 else default


@router.get("/token/{file_id}", response_model=StreamTokenOut)
def issue_token(
    file_id: str,
    ttl: Optional[str] = Query(None),
    signer: TokenSigner = Depends(get_signer),
    settings: Settings = Depends(get_settings),
):
    """Mint a stream URL for file_id, valid for ttl minutes (default 10)."""
    minutes = parse_ttl_minutes(ttl, settings.default_token_ttl_minutes)
    access = signer.issue(file_id, minutes * 60)
    return {
        "file_id": file_id,
        "expires": access.expires_at,
        "url": f"/stream/{quote(file_id, safe='')}?{access.query}",
    }
