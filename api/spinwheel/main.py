import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Callable, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from .campaigns import CampaignRegistry
from .config import Settings, settings
from .db import Base, engine, get_db
from .dispatch_queue import QueuePublisher, build_publisher
from .eligibility import check_eligibility
from .exceptions import SpinWheelError, StoreError, ValidationError
from .logging_config import setup_logging
from .notifications import NotificationDispatcher, build_dispatcher, run_dispatch
from .schemas import (
    ActivityEnvelope,
    ActivitySnapshot,
    CampaignOut,
    EligibilityResponse,
    IncrementRequest,
    OkResponse,
    SpinRecordRequest,
    SpinUpdateRequest,
)
from .security import verify_queue_signature
from .utils import utcnow
from .workflows import SpinOutcome, increment_spin_count, record_spin, update_activity

logger = logging.getLogger(__name__)

# built once per process and shared by every request
campaigns = CampaignRegistry.from_settings(settings)
dispatcher = build_dispatcher(settings, campaigns)
publisher = build_publisher(settings)


def get_settings() -> Settings:
    return settings

def get_campaigns() -> CampaignRegistry:
    return campaigns

def get_dispatcher() -> NotificationDispatcher:
    return dispatcher

def get_publisher() -> Optional[QueuePublisher]:
    return publisher

def get_clock() -> Callable[[], datetime]:
    return utcnow


def schedule_notifications(
    background_tasks: BackgroundTasks,
    snapshot: ActivitySnapshot,
    dispatcher: NotificationDispatcher,
    publisher: Optional[QueuePublisher],
) -> None:
    """Queue the emails to run after the response has been sent."""
    if publisher is not None:
        background_tasks.add_task(publisher.publish, snapshot)
    else:
        background_tasks.add_task(run_dispatch, dispatcher, snapshot)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(settings.log_level)
    # Dev convenience: create tables if they don't exist
    Base.metadata.create_all(bind=engine)
    logger.info("Spin wheel API ready (%d configured campaign(s))", len(campaigns))
    yield


app = FastAPI(title="Spin Wheel API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins or ["*"],
    allow_origin_regex=settings.allowed_origin_regex,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exc_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail), "code": "HTTP_ERROR"})

@app.exception_handler(RequestValidationError)
async def validation_exc_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=422, content={"message": "Validation error", "code": "VALIDATION_ERROR", "errors": exc.errors()})

@app.exception_handler(SpinWheelError)
async def spin_wheel_exc_handler(request: Request, exc: SpinWheelError):
    if isinstance(exc, StoreError) or exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"message": "Internal server error", "code": exc.code})
    return JSONResponse(status_code=exc.status_code, content={"message": str(exc), "code": exc.code})


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/api/campaigns/{campaign_id}", response_model=CampaignOut)
def get_campaign(campaign_id: str, campaigns: CampaignRegistry = Depends(get_campaigns)):
    return CampaignOut.model_validate(campaigns.get(campaign_id).model_dump())


@app.get("/api/check-eligibility", response_model=EligibilityResponse)
def eligibility(
    email: Optional[str] = Query(default=None),
    wheel_id: Optional[str] = Query(default=None, alias="wheelId"),
    db: Session = Depends(get_db),
    campaigns: CampaignRegistry = Depends(get_campaigns),
    clock: Callable[[], datetime] = Depends(get_clock),
):
    verdict = check_eligibility(db, campaigns, wheel_id, email, clock())
    return EligibilityResponse(
        eligible=verdict.eligible,
        reason=verdict.reason,
        message=verdict.message,
        has_won_prize=verdict.has_won_prize,
        spins_used=verdict.spins_used,
        activity=ActivitySnapshot.model_validate(verdict.activity) if verdict.activity else None,
    )


@app.post("/api/spin-activity", response_model=ActivityEnvelope, status_code=201)
def create_spin_activity(
    payload: SpinRecordRequest,
    background_tasks: BackgroundTasks,
    response: Response,
    db: Session = Depends(get_db),
    campaigns: CampaignRegistry = Depends(get_campaigns),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    publisher: Optional[QueuePublisher] = Depends(get_publisher),
):
    record, created = record_spin(
        db,
        campaigns,
        SpinOutcome(
            campaign_id=payload.campaign_id,
            email=payload.email,
            name=payload.name,
            phone=payload.phone,
            prize_label=payload.prize,
            is_winning=payload.is_winning,
        ),
    )
    snapshot = ActivitySnapshot.model_validate(record)
    schedule_notifications(background_tasks, snapshot, dispatcher, publisher)

    if not created:
        response.status_code = 200
    return ActivityEnvelope(
        message="Spin activity created successfully" if created else "Spin recorded successfully",
        activity=snapshot,
    )


@app.put("/api/spin-activity", response_model=ActivityEnvelope)
def edit_spin_activity(payload: SpinUpdateRequest, db: Session = Depends(get_db)):
    changes = payload.model_dump(exclude_unset=True, exclude={"id"})
    if payload.id is not None:
        record = update_activity(db, changes, record_id=payload.id)
    else:
        # email (and wheelId) locate the record here; they are not edits
        changes.pop("email", None)
        changes.pop("campaign_id", None)
        record = update_activity(db, changes, email=payload.email, campaign_id=payload.campaign_id)
    return ActivityEnvelope(
        message="Spin activity updated successfully",
        activity=ActivitySnapshot.model_validate(record),
    )


@app.patch("/api/spin-activity", response_model=ActivityEnvelope)
def increment_spin_activity(payload: IncrementRequest, db: Session = Depends(get_db)):
    record = increment_spin_count(db, payload.email, payload.campaign_id)
    return ActivityEnvelope(
        message="Spin count incremented successfully",
        activity=ActivitySnapshot.model_validate(record),
    )


@app.post("/api/send-spin-emails", response_model=OkResponse)
def send_spin_emails(
    payload: ActivitySnapshot,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    dispatcher.dispatch(payload)
    return OkResponse(ok=True)


@app.post("/api/spin/email", response_model=OkResponse)
async def queued_spin_emails(
    request: Request,
    upstash_signature: Optional[str] = Header(default=None, alias="Upstash-Signature"),
    settings: Settings = Depends(get_settings),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    body = await request.body()
    if settings.queue_signing_key:
        verify_queue_signature(upstash_signature, body, settings.queue_signing_key)
    try:
        snapshot = ActivitySnapshot.model_validate_json(body)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid payload") from exc

    result = await run_in_threadpool(dispatcher.dispatch, snapshot)
    failed = dispatcher.enabled and (
        not result.internal_sent or (result.participant_template and not result.participant_sent)
    )
    if failed:
        # non-2xx makes the queue redeliver
        return JSONResponse(status_code=502, content={"ok": False, "message": "Email send failed"})
    return OkResponse(ok=True)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "spinwheel.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8080)),
        reload=False,
    )
