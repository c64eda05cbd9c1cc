from fastapi import APIRouter, FastAPI, HTTPException, Depends, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Dict, List, Optional
import asyncio
import secrets
import sentry_sdk
from datetime import datetime, date, time as dt_time, timedelta
from dateutil.relativedelta import relativedelta
import uuid
import logging
import time
from contextlib import asynccontextmanager, suppress

# Import our logging configuration
from .logging_config import (
    setup_logging, log_error, log_api_call,
    AppError, ValidationError, NotFoundError, StateConflict,
    DatabaseError, StorageUnavailable
)

# Import validation utilities
from .validation import (
    validate_name, validate_dose, validate_clock_time, validate_course_days,
    validate_frequency, validate_image_url, validate_image_urls,
    validate_optional_text, validate_overflow_policy, validate_date_range,
    normalize_instant
)

from .config import Settings
from .database import build_store
from .health import health_checker, metrics_collector
from .schemas import (
    Profile, Medicine, Schedule,
    CreateProfileReq, UpdateProfileReq, CreateMedicineReq, ResolveDoseReq,
    IdResp, MedicineCreatedResp, ScheduleView, ResolveDoseResp,
    AdherenceResp, TodayResp, HistoryResp, ReportResp
)

from backend.dosing import (
    DoseTracker, calculate_adherence, create_course, delete_medicine, delete_profile,
    display_status, find_due, build_notifier, build_report
)
from backend.worker.main import DueScheduleWatcher

settings = Settings.from_env()

# Initialize logging
logger = setup_logging(settings.log_level)

sentry_sdk.init(dsn=settings.sentry_dsn, environment=settings.environment, traces_sample_rate=0.2)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager: owns the store, the notifier and the due watcher"""
    app.state.store = build_store(settings)
    app.state.notifier = build_notifier(settings)
    watcher_task = None

    if app.state.store.ping():
        logger.info("[lifespan] Store warm OK")
    else:
        logger.error("[lifespan] Store warmup failed")

    if settings.run_due_watcher:
        watcher = DueScheduleWatcher(app.state.store)
        watcher_task = asyncio.create_task(watcher.run_async(settings.poll_interval_seconds))

    yield

    if watcher_task is not None:
        watcher_task.cancel()
        with suppress(asyncio.CancelledError):
            await watcher_task
    app.state.store.dispose()

app = FastAPI(title="Medicine Reminder API", version="1.0.0", lifespan=lifespan)

# Add request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    # Generate request ID for tracing
    request_id = str(uuid.uuid4())

    logger.info(
        f"Request started: {request.method} {request.url.path}",
        extra={
            "request_id": request_id,
            "endpoint": f"{request.method} {request.url.path}"
        }
    )

    try:
        response = await call_next(request)

        execution_time = (time.time() - start_time) * 1000

        metrics_collector.increment_requests()
        if response.status_code >= 400:
            metrics_collector.increment_errors()

        log_api_call(
            logger=logger,
            endpoint=f"{request.method} {request.url.path}",
            execution_time=execution_time,
            status_code=response.status_code,
            request_id=request_id
        )

        return response

    except Exception as e:
        execution_time = (time.time() - start_time) * 1000

        log_error(logger, e, {
            "request_id": request_id,
            "endpoint": f"{request.method} {request.url.path}",
            "execution_time": execution_time
        })

        # Re-raise the exception
        raise

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept"],
)

@app.exception_handler(AppError)
async def app_error_handler(request: Request, e: AppError):
    if isinstance(e, ValidationError):
        logger.warning(f"Validation failed: {e.message}", extra={"endpoint": request.url.path})
        return JSONResponse(status_code=422, content={"detail": {"error": e.error_code, "message": e.message, "field": e.field}})
    if isinstance(e, NotFoundError):
        return JSONResponse(status_code=404, content={"detail": e.message})
    if isinstance(e, StateConflict):
        return JSONResponse(status_code=409, content={"detail": e.message})

    log_error(logger, e, {"endpoint": request.url.path})
    if isinstance(e, StorageUnavailable):
        return JSONResponse(status_code=503, content={"detail": "Storage is unavailable. Please try again."})
    if isinstance(e, DatabaseError):
        return JSONResponse(status_code=500, content={"detail": "Failed to save changes. Please try again."})
    return JSONResponse(status_code=500, content={"detail": "An unexpected error occurred"})

# Dependencies

def get_store(request: Request):
    return request.app.state.store

def get_notifier(request: Request):
    return getattr(request.app.state, "notifier", None)

def get_now() -> datetime:
    return datetime.now()

async def require_token(authorization: str = Header(None)):
    """Bearer token check; open when API_TOKEN is not configured"""
    if not settings.api_token:
        return

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header")

    token = authorization.split(" ", 1)[1]
    if not secrets.compare_digest(token, settings.api_token):
        raise HTTPException(status_code=401, detail="Invalid token")

router = APIRouter(dependencies=[Depends(require_token)])

# Helpers

def load_profile(store, profile_id: str) -> Profile:
    profile = store.profiles.get(profile_id)
    if profile is None:
        raise NotFoundError("Profile", profile_id)
    return profile

def to_view(schedule: Schedule, now: datetime, medicines: Dict[str, Medicine]) -> ScheduleView:
    medicine = medicines.get(schedule.medicine_id)
    return ScheduleView(
        **schedule.model_dump(),
        display_status=display_status(schedule, now),
        medicine_name=medicine.name if medicine else None,
        dose=medicine.dose if medicine else None
    )

def medicine_map(store, profile_id: str) -> Dict[str, Medicine]:
    return {m.id: m for m in store.medicines.get_by_profile_id(profile_id)}

def resolve_period(start: Optional[date], end: Optional[date], now: datetime):
    """Whole-day period; defaults to the last month up to today"""
    end_day = end or now.date()
    start_day = start or (end_day - relativedelta(months=1))
    return validate_date_range(
        datetime.combine(start_day, dt_time.min),
        datetime.combine(end_day, dt_time.max)
    )

def adherence_resp(schedules: List[Schedule], now: datetime, start=None, end=None) -> AdherenceResp:
    return AdherenceResp(**calculate_adherence(schedules, now).to_dict(), start=start, end=end)

# Profiles

@router.post("/profiles", response_model=IdResp)
async def create_profile(req: CreateProfileReq, store=Depends(get_store)):
    profile = Profile(
        id=str(uuid.uuid4()),
        name=validate_name(req.name),
        date_of_birth=req.date_of_birth,
        wake_time=validate_clock_time(req.wake_time, "wake_time"),
        sleep_time=validate_clock_time(req.sleep_time, "sleep_time"),
        picture=validate_image_url(req.picture) if req.picture else None
    )
    store.profiles.add(profile)
    logger.info("Profile created", extra={"profile_id": profile.id})
    return IdResp(id=profile.id)

@router.get("/profiles", response_model=List[Profile])
async def list_profiles(store=Depends(get_store)):
    return sorted(store.profiles.get_all(), key=lambda p: p.name.lower())

@router.get("/profiles/{profile_id}", response_model=Profile)
async def get_profile(profile_id: str, store=Depends(get_store)):
    return load_profile(store, profile_id)

@router.put("/profiles/{profile_id}", response_model=Profile)
async def update_profile(profile_id: str, req: UpdateProfileReq, store=Depends(get_store)):
    """Replace a profile's details; existing dose schedules are left as generated"""
    current = load_profile(store, profile_id)
    profile = current.model_copy(update={
        "name": validate_name(req.name),
        "date_of_birth": req.date_of_birth,
        "wake_time": validate_clock_time(req.wake_time, "wake_time"),
        "sleep_time": validate_clock_time(req.sleep_time, "sleep_time"),
        "picture": validate_image_url(req.picture) if req.picture else None
    })
    store.profiles.update(profile)
    logger.info("Profile updated", extra={"profile_id": profile_id})
    return profile

@router.delete("/profiles/{profile_id}")
async def remove_profile(profile_id: str, store=Depends(get_store), notifier=Depends(get_notifier)):
    deleted = delete_profile(store, notifier, profile_id)
    return {"message": "Profile deleted successfully", "medicines_deleted": deleted}

# Medicines

@router.post("/medicines", response_model=MedicineCreatedResp)
async def create_medicine(req: CreateMedicineReq,
                          store=Depends(get_store),
                          notifier=Depends(get_notifier),
                          now: datetime = Depends(get_now)):
    """Validate a dosing rule, expand it into a full course and store both"""
    medicine_id = str(uuid.uuid4())

    try:
        profile = load_profile(store, req.profile_id)

        medicine = Medicine(
            id=medicine_id,
            profile_id=profile.id,
            name=validate_name(req.name),
            dose=validate_dose(req.dose),
            course_days=validate_course_days(req.course_days),
            instructions=req.instructions,
            frequency_type=req.frequency_type,
            frequency_value=validate_frequency(req.frequency_type, req.frequency_value),
            start_date=normalize_instant(req.start_date) if req.start_date else now,
            doctor_name=validate_optional_text(req.doctor_name, 200),
            notes=validate_optional_text(req.notes),
            image_urls=validate_image_urls(req.image_urls),
            created_at=now
        )

        logger.info(
            f"Creating course for profile {profile.id}",
            extra={"profile_id": profile.id, "medicine_id": medicine_id}
        )

        result = create_course(
            store, notifier, profile, medicine, now,
            overflow_policy=validate_overflow_policy(settings.overflow_policy)
        )
        metrics_collector.courses_created += 1

        return MedicineCreatedResp(
            id=medicine_id,
            schedule_count=len(result.schedules),
            reminders_scheduled=result.reminders_scheduled
        )

    except ValidationError as e:
        logger.warning(f"Medicine validation failed: {e.message}", extra={"profile_id": req.profile_id})
        raise HTTPException(status_code=422, detail={"error": e.error_code, "message": e.message, "field": e.field})
    except NotFoundError:
        raise
    except DatabaseError as e:
        log_error(logger, e, {"profile_id": req.profile_id, "medicine_id": medicine_id})
        status = 503 if isinstance(e, StorageUnavailable) else 500
        raise HTTPException(status_code=status, detail="Failed to save medicine. Please try again.")

@router.get("/profiles/{profile_id}/medicines", response_model=List[Medicine])
async def list_medicines(profile_id: str, store=Depends(get_store)):
    load_profile(store, profile_id)
    return sorted(store.medicines.get_by_profile_id(profile_id), key=lambda m: m.start_date)

@router.get("/medicines/{medicine_id}", response_model=Medicine)
async def get_medicine(medicine_id: str, store=Depends(get_store)):
    medicine = store.medicines.get(medicine_id)
    if medicine is None:
        raise NotFoundError("Medicine", medicine_id)
    return medicine

@router.get("/medicines/{medicine_id}/schedules", response_model=List[ScheduleView])
async def list_medicine_schedules(medicine_id: str, store=Depends(get_store), now: datetime = Depends(get_now)):
    medicine = await get_medicine(medicine_id, store)
    medicines = {medicine.id: medicine}
    return [to_view(s, now, medicines) for s in store.schedules.get_by_medicine_id(medicine_id)]

@router.delete("/medicines/{medicine_id}")
async def remove_medicine(medicine_id: str, store=Depends(get_store), notifier=Depends(get_notifier)):
    deleted = delete_medicine(store, notifier, medicine_id)
    return {"message": "Medicine deleted successfully", "schedules_deleted": deleted}

# Doses

@router.get("/profiles/{profile_id}/today", response_model=TodayResp)
async def get_today(profile_id: str, store=Depends(get_store), now: datetime = Depends(get_now)):
    """Today's doses with display status, plus today's adherence"""
    load_profile(store, profile_id)

    day_start = datetime.combine(now.date(), dt_time.min)
    day_end = day_start + timedelta(days=1) - timedelta(microseconds=1)
    schedules = store.schedules.get_by_date_range(profile_id, day_start, day_end)
    medicines = medicine_map(store, profile_id)

    upcoming = [s.scheduled_time for s in schedules if s.status == "pending" and s.scheduled_time >= now]

    return TodayResp(
        date=now.date(),
        profile_id=profile_id,
        schedules=[to_view(s, now, medicines) for s in schedules],
        adherence=adherence_resp(schedules, now, day_start, day_end),
        next_dose_ts=min(upcoming) if upcoming else None
    )

@router.get("/profiles/{profile_id}/history", response_model=HistoryResp)
async def get_history(profile_id: str,
                      start: Optional[date] = None,
                      end: Optional[date] = None,
                      limit: int = Query(200, ge=1, le=1000),
                      offset: int = Query(0, ge=0),
                      store=Depends(get_store),
                      now: datetime = Depends(get_now)):
    """Doses in a date range, newest first"""
    load_profile(store, profile_id)
    period_start, period_end = resolve_period(start, end, now)

    schedules = store.schedules.get_by_date_range(profile_id, period_start, period_end)
    medicines = medicine_map(store, profile_id)

    entries = [to_view(s, now, medicines) for s in reversed(schedules)]
    return HistoryResp(entries=entries[offset:offset + limit], total_count=len(entries))

@router.get("/profiles/{profile_id}/due", response_model=List[ScheduleView])
async def get_due(profile_id: str, store=Depends(get_store), now: datetime = Depends(get_now)):
    """Pending doses whose time has come"""
    load_profile(store, profile_id)
    medicines = medicine_map(store, profile_id)
    due = find_due(store.schedules.get_due(now, profile_id), now)
    return [to_view(s, now, medicines) for s in due]

@router.get("/profiles/{profile_id}/adherence", response_model=AdherenceResp)
async def get_adherence(profile_id: str,
                        start: Optional[date] = None,
                        end: Optional[date] = None,
                        store=Depends(get_store),
                        now: datetime = Depends(get_now)):
    load_profile(store, profile_id)
    period_start, period_end = resolve_period(start, end, now)
    schedules = store.schedules.get_by_date_range(profile_id, period_start, period_end)
    return adherence_resp(schedules, now, period_start, period_end)

@router.get("/profiles/{profile_id}/report", response_model=ReportResp)
async def get_report(profile_id: str,
                     start: Optional[date] = None,
                     end: Optional[date] = None,
                     store=Depends(get_store),
                     now: datetime = Depends(get_now)):
    """Data for a printable dose history report"""
    profile = load_profile(store, profile_id)
    period_start, period_end = resolve_period(start, end, now)

    schedules = store.schedules.get_by_date_range(profile_id, period_start, period_end)
    medicines = store.medicines.get_by_profile_id(profile_id)

    return build_report(profile, medicines, schedules, period_start, period_end, now)

@router.post("/schedules/{schedule_id}/resolve", response_model=ResolveDoseResp)
async def resolve_dose(schedule_id: str,
                       req: ResolveDoseReq,
                       store=Depends(get_store),
                       notifier=Depends(get_notifier),
                       now: datetime = Depends(get_now)):
    """Take or skip a dose; repeating the call leaves the first outcome in place"""
    result = DoseTracker(store, notifier).resolve(schedule_id, req.action, now)
    if result.changed:
        metrics_collector.doses_resolved += 1

    medicine = store.medicines.get(result.schedule.medicine_id)
    medicines = {medicine.id: medicine} if medicine else {}
    return ResolveDoseResp(schedule=to_view(result.schedule, now, medicines), changed=result.changed)

app.include_router(router)

# Health

@app.get("/health")
async def health(store=Depends(get_store), notifier=Depends(get_notifier)):
    """Health check across the store and integrations"""
    result = await health_checker.run_all_checks(store, notifier)
    status_code = 200 if result["status"] == "healthy" else 503
    return JSONResponse(status_code=status_code, content=result)

@app.get("/health/quick")
async def health_quick():
    """Quick health check for load balancer"""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "uptime": metrics_collector.get_metrics()["uptime_human"]
    }

@app.get("/metrics")
async def metrics():
    """Application metrics endpoint"""
    return metrics_collector.get_metrics()
