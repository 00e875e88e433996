from fastapi import APIRouter, Depends

from app.api.dependencies import get_ledger
from app.config.logger import get_logger
from app.core.ledger import UsageLedger
from app.schemas.usage import UsageSummary

router = APIRouter(prefix="/api/dj", tags=["usage"])
LOGGER = get_logger("routes.usage")


# Plain def: the sink fallback is a blocking Firestore read.
@router.get("/usage", response_model=UsageSummary)
def usage_summary(ledger: UsageLedger = Depends(get_ledger)) -> UsageSummary:
    summary = ledger.summary()
    LOGGER.info(
        "Usage summary served",
        extra={"count": summary.count, "source": summary.source, "totalCost": summary.total_cost},
    )
    return summary
