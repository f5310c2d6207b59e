"""
Pipedrive JSON panel webhook: MailUp engagement for a person.
"""

import logging
import secrets

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from ..auth import verify_panel_basic_auth
from ..config import config, get_pipeline
from ..models import AccountKey
from ..schemas import PanelItem, PanelResponse
from ..stats import StatsPipeline

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["panel"],
    dependencies=[Depends(verify_panel_basic_auth)]
)

PANEL_PATH = "/" + config.WEBHOOK_BASE_PATH.lstrip("/")


@router.get(PANEL_PATH, response_model=None)
async def person_detail_panel(
    resource: str | None = Query(None),
    view: str | None = Query(None),
    user_id: str | None = Query(None, alias="userId"),
    company_id: str | None = Query(None, alias="companyId"),
    selected_ids: str | None = Query(None, alias="selectedIds"),
    pipeline: StatsPipeline = Depends(get_pipeline),
) -> PanelResponse | JSONResponse:
    """
    Build the panel rows for the selected person.

    Any upstream failure yields a generic 500; nothing partial is returned.
    """
    request_id = secrets.token_hex(4)
    logger.info(
        f"Panel request {request_id}: resource={resource} view={view} "
        f"company={company_id} user={user_id} person={selected_ids}"
    )

    if resource != "person" or view != "details":
        logger.warning(f"Invalid request type {request_id}: resource={resource} view={view}")
        return JSONResponse(status_code=400, content={"error": "Invalid request type"})

    if not user_id or not company_id or not selected_ids:
        return JSONResponse(status_code=400, content={"error": "Missing required parameters"})

    person_id = selected_ids.split(",")[0].strip()
    account = AccountKey(company_id=company_id, user_id=user_id)

    try:
        items = await pipeline.person_stats(person_id, account)
    except Exception:
        logger.exception(f"Error processing panel request {request_id}")
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    logger.info(f"Panel request {request_id} completed: {[item.id for item in items]}")
    return PanelResponse(data=[PanelItem.from_stat(item) for item in items])
