import logging

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from storefront import payments
from storefront.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def _process(db, event):
    try:
        return payments.handle_event(db, event)
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Error processing Stripe event %s", event.get("id"))
        # 500 makes Stripe retry the delivery
        return JSONResponse(status_code=500, content={"error": "Webhook processing failed"})


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    db: Session = Depends(get_db),
):
    # Signature is computed over the exact bytes Stripe sent
    payload = await request.body()
    event = payments.construct_event(payload, stripe_signature)

    # Database writes and notification emails block; keep them off the event loop
    return await run_in_threadpool(_process, db, event)
