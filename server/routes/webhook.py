import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from line_channel.security import validate_signature
from line_channel.webhook import handle_webhook
from server.dependencies import get_db, get_line_channel, get_deadline_scheduler

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("")
async def webhook_receive(
    request: Request,
    db: Session = Depends(get_db),
    channel = Depends(get_line_channel),
    notifier = Depends(get_deadline_scheduler),
) -> JSONResponse:
    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}

    if not validate_signature(raw_body, headers, channel.config.CHANNEL_SECRET):
        logger.warning("Rejected webhook with invalid signature")
        return JSONResponse({"status": "error", "message": "Invalid signature"}, status_code=403)

    try:
        body = await request.json()
    except ValueError:
        body = {}

    # commands hit the database and may push paced LINE batches; keep them off the event loop
    content, status = await run_in_threadpool(handle_webhook, body, db, channel, notifier)
    return JSONResponse(content, status_code=status)
