from fastapi import APIRouter, Depends

from app.api.dependencies import get_ledger
from app.config.logger import get_logger
from app.core.ledger import UsageLedger

router = APIRouter()
LOGGER = get_logger("routes.health")


@router.get("/health")
async def health_check(ledger: UsageLedger = Depends(get_ledger)) -> dict:
    LOGGER.debug("Health check requested", extra={"ledgerSize": len(ledger.records())})
    return {"ok": True}
