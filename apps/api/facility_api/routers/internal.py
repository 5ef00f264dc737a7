"""
Internal endpoints for scheduled/cron operations.

Protected by X-Internal-Secret header.
Call from an external scheduler.
"""
import logging

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from facility_api.core.config import settings
from facility_api.core.deps import get_db
from facility_api.schemas.work_order import AutoCloseResponse
from facility_api.services import work_order_action_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal/scheduled", tags=["internal"])


def verify_internal_secret(x_internal_secret: str = Header(...)):
    """Verify the internal secret header."""
    expected = settings.INTERNAL_SECRET
    if not expected:
        raise HTTPException(status_code=501, detail="INTERNAL_SECRET not configured")
    if x_internal_secret != expected:
        raise HTTPException(status_code=403, detail="Invalid internal secret")


@router.post(
    "/auto-close",
    response_model=AutoCloseResponse,
    dependencies=[Depends(verify_internal_secret)],
)
def auto_close_work_orders(db: Session = Depends(get_db)):
    """
    Sweep work orders awaiting reporter closure.

    Anything pending longer than AUTO_CLOSE_AFTER_HOURS moves to auto_closed
    and the reporter is notified.
    """
    checked, closed = work_order_action_service.auto_close_overdue(db)
    logger.info("auto_close_sweep_completed", extra={"checked": checked, "closed": closed})
    return AutoCloseResponse(checked=checked, closed=closed)
