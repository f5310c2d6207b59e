"""
Token issuance route used by collaborating services.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..auth import verify_api_key_only
from ..config import get_token_manager
from ..exceptions import RefreshFailed, TokenNotFound
from ..schemas import TokenResponse
from ..tokens import TokenManager

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["tokens"],
    dependencies=[Depends(verify_api_key_only)]
)


@router.get("/token/{user_id}/{company_id}")
async def get_token(
    user_id: str,
    company_id: str,
    tokens: TokenManager = Depends(get_token_manager),
) -> TokenResponse:
    """Return a non-expired Pipedrive token for the account, refreshing if needed."""
    try:
        issued = await tokens.issue(user_id, company_id)
    except TokenNotFound:
        raise HTTPException(status_code=404, detail="Token not found")
    except RefreshFailed as e:
        logger.warning(f"Token refresh failed for {company_id}:{user_id}: {e}")
        raise HTTPException(status_code=401, detail="Token refresh failed")

    return TokenResponse.from_issued(issued)
