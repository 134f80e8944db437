from __future__ import annotations

import logging
import os
from datetime import date
from typing import Optional
from urllib.parse import quote

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from starlette.middleware.sessions import SessionMiddleware

from castboard import actors as actor_service
from castboard import availability, casting, queries, reservations, sync
from castboard.auth import get_session_user, login_user, logout_user, require_api_user, require_bearer, require_role
from castboard.calendar_mirror import CalendarMirror
from castboard.config import BASE_DIR, Config
from castboard.db import get_runner, init_db
from castboard.exceptions import AuthError, ExternalServiceError, ServiceError, ValidationError
from castboard.middleware import RoleGateMiddleware
from castboard.models import (
    ActorCreate,
    ActorLink,
    ActorOut,
    ActorUpdate,
    AssignResult,
    BatchResult,
    BookingBatch,
    CalendarProvisionResult,
    CalendarSyncResult,
    CastingBatchRequest,
    CastingChange,
    CleanupResult,
    NotifyRequest,
    NotifyResult,
    OverrideToggle,
    RecordBookingsResult,
    ReservationSyncRequest,
    SyncReservationsResult,
    UnavailableRequest,
    UnavailableResult,
    UserRole,
)
from castboard.schedule import SHOW_TIME_LABELS, build_month_schedule, kst_today, month_bounds


logger = logging.getLogger(__name__)

ADMIN = UserRole.ADMIN.value
ACTOR = UserRole.ACTOR.value


def configure_logging() -> None:
    debug_flag = os.environ.get("SQLSTRATUM_DEBUG", "").lower()
    if debug_flag in {"1", "true", "yes"}:
        logging.basicConfig(level=logging.DEBUG)
        logging.getLogger("sqlstratum").setLevel(logging.DEBUG)
        logging.getLogger("castboard").setLevel(logging.DEBUG)


configure_logging()

app = FastAPI(title="castboard")
# Added before SessionMiddleware so the session wraps the gate.
app.add_middleware(RoleGateMiddleware)
app.add_middleware(SessionMiddleware, secret_key=Config.SECRET_KEY, same_site="lax")

templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))


@app.on_event("startup")
def _startup() -> None:
    init_db()
    app.state.mirror = CalendarMirror.from_config(Config)


@app.on_event("shutdown")
def _shutdown() -> None:
    mirror = getattr(app.state, "mirror", None)
    if mirror is not None:
        mirror.close()


def get_runner_dep():
    runner = get_runner()
    try:
        yield runner
    finally:
        runner.connection.close()


def get_mirror(request: Request) -> CalendarMirror:
    return request.app.state.mirror


def get_crawler_http():
    """HTTP client for the crawler webhook; None lets the call open its own."""
    return None


@app.exception_handler(ServiceError)
async def _service_error(request: Request, exc: ServiceError):
    if isinstance(exc, ExternalServiceError):
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def _request_validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        {"error": "; ".join(err["msg"] for err in exc.errors())},
        status_code=400,
    )


def render(request: Request, template_name: str, **context):
    return templates.TemplateResponse(
        request,
        template_name,
        {
            "current_user": get_session_user(request),
            **context,
        },
    )


def _login_redirect(request: Request) -> RedirectResponse:
    return RedirectResponse(url=f"/login?next={quote(request.url.path)}", status_code=303)


def _resolve_month(year: Optional[int], month: Optional[int]) -> tuple[int, int]:
    today = date.fromisoformat(kst_today())
    year = year or today.year
    month = month or today.month
    if not 1 <= month <= 12 or not 2000 <= year <= 2100:
        raise ValidationError("Invalid year or month", field="month")
    return year, month


def _form_int(value) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except ValueError as e:
        raise ValidationError("Invalid year or month", field="month") from e


def _check_actor_scope(user: dict, actor_id: int) -> None:
    if user["role"] != ADMIN and user.get("actor_id") != actor_id:
        raise AuthError("Forbidden", status_code=403)


# Pages


@app.get("/", response_class=HTMLResponse)
def index(request: Request):
    user = get_session_user(request)
    if user is not None and user["role"] == ADMIN:
        return RedirectResponse(url="/admin", status_code=303)
    return RedirectResponse(url="/actor", status_code=303)


@app.get("/login", response_class=HTMLResponse)
def login_page(request: Request):
    return render(request, "login.html")


@app.post("/login")
async def login_submit(request: Request, runner=Depends(get_runner_dep)):
    form = await request.form()
    username = form.get("username", "").strip()
    pin = form.get("pin", "").strip()
    next_url = form.get("next") or ""
    if not next_url.startswith("/") or next_url.startswith("//"):
        next_url = ""

    user = queries.get_user_login(runner, username, pin)
    if not user:
        return render(request, "login.html", error="Invalid credentials.", username=username)

    login_user(request, int(user["id"]), user["role"], user["display_name"], user["actor_id"])
    if not next_url:
        next_url = "/admin" if user["role"] == ADMIN else "/actor"
    return RedirectResponse(url=next_url, status_code=303)


@app.get("/logout")
def logout(request: Request):
    logout_user(request)
    return RedirectResponse(url="/login", status_code=303)


@app.get("/admin", response_class=HTMLResponse)
def admin_casting(
    request: Request,
    year: Optional[int] = None,
    month: Optional[int] = None,
    runner=Depends(get_runner_dep),
):
    user = require_role(request, ADMIN)
    if not user:
        return _login_redirect(request)
    year, month = _resolve_month(year, month)
    schedule = build_month_schedule(runner, year, month, include_admin=True)
    return render(
        request,
        "admin/casting.html",
        schedule=schedule,
        year=year,
        month=month,
        show_time_labels=SHOW_TIME_LABELS,
    )


@app.get("/admin/actors", response_class=HTMLResponse)
def admin_actors(request: Request, runner=Depends(get_runner_dep)):
    user = require_role(request, ADMIN)
    if not user:
        return _login_redirect(request)
    return render(request, "admin/actors.html", actors=queries.list_actors(runner))


@app.get("/actor", response_class=HTMLResponse)
def actor_schedule(request: Request, runner=Depends(get_runner_dep)):
    user = require_role(request, ACTOR, ADMIN)
    if not user:
        return _login_redirect(request)
    actor_id = user.get("actor_id")
    if not actor_id:
        return render(request, "actor/schedule.html", actor=None, castings=[])

    today = kst_today()
    castings = [c for c in queries.list_actor_castings(runner, actor_id) if c.date >= today]
    return render(
        request,
        "actor/schedule.html",
        actor=queries.get_actor(runner, actor_id),
        castings=castings,
        show_time_labels=SHOW_TIME_LABELS,
    )


@app.get("/actor/unavailable", response_class=HTMLResponse)
def actor_unavailable(
    request: Request,
    year: Optional[int] = None,
    month: Optional[int] = None,
    runner=Depends(get_runner_dep),
):
    user = require_role(request, ACTOR, ADMIN)
    if not user:
        return _login_redirect(request)
    actor_id = user.get("actor_id")
    if not actor_id:
        return render(request, "actor/unavailable.html", actor=None)

    year, month = _resolve_month(year, month)
    schedule = build_month_schedule(runner, year, month)
    return render(
        request,
        "actor/unavailable.html",
        actor=queries.get_actor(runner, actor_id),
        days=schedule.performances,
        selected=set(schedule.unavailable.get(actor_id, [])),
        year=year,
        month=month,
        show_time_labels=SHOW_TIME_LABELS,
    )


@app.post("/actor/unavailable")
async def actor_unavailable_submit(
    request: Request,
    runner=Depends(get_runner_dep),
    mirror: CalendarMirror = Depends(get_mirror),
):
    user = require_role(request, ACTOR, ADMIN)
    if not user or not user.get("actor_id"):
        return _login_redirect(request)

    form = await request.form()
    year, month = _resolve_month(_form_int(form.get("year")), _form_int(form.get("month")))
    start, end = month_bounds(year, month)
    # The form only covers one month; keep the selections of other months.
    keep = [
        row.performance_date_id
        for row in queries.list_actor_unavailable(runner, user["actor_id"])
        if not start <= row.date < end
    ]
    chosen = [int(value) for value in form.getlist("performance_date_id") if str(value).isdigit()]
    availability.set_unavailable(runner, mirror, user["actor_id"], keep + chosen)
    return RedirectResponse(url=f"/actor/unavailable?year={year}&month={month}", status_code=303)


# Schedule & casting API


@app.get("/api/schedule")
def api_schedule(
    request: Request,
    year: Optional[int] = None,
    month: Optional[int] = None,
    runner=Depends(get_runner_dep),
):
    user = require_api_user(request)
    year, month = _resolve_month(year, month)
    is_admin = user["role"] == ADMIN
    schedule = build_month_schedule(runner, year, month, include_admin=is_admin)
    exclude = None if is_admin else {"overridden_actors", "reservations"}
    return schedule.model_dump(by_alias=True, exclude=exclude)


@app.post("/api/casting", response_model=AssignResult)
def api_assign(
    payload: CastingChange,
    request: Request,
    runner=Depends(get_runner_dep),
    mirror: CalendarMirror = Depends(get_mirror),
):
    require_api_user(request, ADMIN)
    return casting.assign(runner, mirror, payload.performance_date_id, payload.actor_id, payload.role_type)


@app.post("/api/casting/batch", response_model=BatchResult)
def api_assign_batch(
    payload: CastingBatchRequest,
    request: Request,
    runner=Depends(get_runner_dep),
    mirror: CalendarMirror = Depends(get_mirror),
):
    require_api_user(request, ADMIN)
    return casting.assign_batch(runner, mirror, payload.changes, payload.memos)


@app.post("/api/casting/notify", response_model=NotifyResult)
def api_notify(
    payload: NotifyRequest,
    request: Request,
    runner=Depends(get_runner_dep),
    mirror: CalendarMirror = Depends(get_mirror),
):
    require_api_user(request, ADMIN)
    return casting.notify_castings(runner, mirror, payload.casting_ids)


@app.get("/api/unavailable")
def api_list_unavailable(
    request: Request,
    actor_id: Optional[int] = Query(default=None, alias="actorId"),
    runner=Depends(get_runner_dep),
):
    user = require_api_user(request)
    if actor_id is None and user["role"] != ADMIN:
        actor_id = user.get("actor_id")
        if not actor_id:
            return []
    if actor_id is None:
        rows = queries.list_all_unavailable(runner)
    else:
        _check_actor_scope(user, actor_id)
        rows = queries.list_actor_unavailable(runner, actor_id)
    return [row.model_dump(by_alias=True) for row in rows]


@app.post("/api/unavailable", response_model=UnavailableResult)
def api_set_unavailable(
    payload: UnavailableRequest,
    request: Request,
    runner=Depends(get_runner_dep),
    mirror: CalendarMirror = Depends(get_mirror),
):
    user = require_api_user(request)
    _check_actor_scope(user, payload.actor_id)
    return availability.set_unavailable(runner, mirror, payload.actor_id, payload.performance_date_ids)


# Crawler-facing endpoints (bearer key, no session)


@app.post("/api/casting/reservations", response_model=RecordBookingsResult)
def api_record_bookings(
    payload: BookingBatch,
    request: Request,
    runner=Depends(get_runner_dep),
    mirror: CalendarMirror = Depends(get_mirror),
):
    require_bearer(request, Config.RESERVATION_API_KEY, "RESERVATION_API_KEY")
    return reservations.record_bookings(runner, mirror, payload.date, payload.bookings)


@app.post("/api/reservations/sync", response_model=SyncReservationsResult)
def api_sync_reservations(
    payload: ReservationSyncRequest,
    request: Request,
    runner=Depends(get_runner_dep),
    mirror: CalendarMirror = Depends(get_mirror),
):
    require_bearer(request, Config.RESERVATION_API_KEY, "RESERVATION_API_KEY")
    return reservations.sync_reservations(
        runner,
        mirror,
        payload.months,
        payload.reservations,
        payload.booking_details,
    )


@app.post("/api/reservations/trigger-sync")
def api_trigger_crawler(request: Request, http=Depends(get_crawler_http)):
    require_api_user(request, ADMIN)
    result = reservations.trigger_crawler_sync(
        Config.CRAWLER_WEBHOOK_URL,
        timeout=Config.CRAWLER_TIMEOUT_SECONDS,
        http=http,
    )
    return {"success": True, "result": result}


@app.get("/api/cron/cleanup-memos", response_model=CleanupResult)
def api_cleanup_memos(
    request: Request,
    runner=Depends(get_runner_dep),
    mirror: CalendarMirror = Depends(get_mirror),
):
    require_bearer(request, Config.CRON_SECRET, "CRON_SECRET")
    return reservations.cleanup_past_memos(runner, mirror)


@app.get("/api/cron/cleanup-future-descriptions", response_model=CleanupResult)
def api_cleanup_future_descriptions(
    request: Request,
    runner=Depends(get_runner_dep),
    mirror: CalendarMirror = Depends(get_mirror),
):
    require_bearer(request, Config.CRON_SECRET, "CRON_SECRET")
    return reservations.cleanup_future_descriptions(runner, mirror)


# Calendar maintenance


@app.post("/api/calendar/sync", response_model=CalendarSyncResult)
def api_calendar_sync(
    request: Request,
    runner=Depends(get_runner_dep),
    mirror: CalendarMirror = Depends(get_mirror),
):
    require_api_user(request, ADMIN)
    return sync.sync_calendar(runner, mirror)


# Actors


@app.get("/api/actors", response_model=list[ActorOut])
def api_list_actors(request: Request, runner=Depends(get_runner_dep)):
    require_api_user(request)
    return queries.list_actors(runner)


@app.post("/api/actors", response_model=ActorOut, status_code=201)
def api_create_actor(payload: ActorCreate, request: Request, runner=Depends(get_runner_dep)):
    require_api_user(request, ADMIN)
    return actor_service.create_actor(runner, payload)


@app.post("/api/actors/calendars", response_model=CalendarProvisionResult)
def api_provision_calendars(
    request: Request,
    runner=Depends(get_runner_dep),
    mirror: CalendarMirror = Depends(get_mirror),
):
    require_api_user(request, ADMIN)
    return sync.provision_actor_calendars(runner, mirror)


@app.put("/api/actors/{actor_id}", response_model=ActorOut)
def api_update_actor(actor_id: int, payload: ActorUpdate, request: Request, runner=Depends(get_runner_dep)):
    require_api_user(request, ADMIN)
    return actor_service.update_actor(runner, actor_id, payload)


@app.delete("/api/actors/{actor_id}")
def api_delete_actor(
    actor_id: int,
    request: Request,
    runner=Depends(get_runner_dep),
    mirror: CalendarMirror = Depends(get_mirror),
):
    require_api_user(request, ADMIN)
    actor_service.delete_actor(runner, mirror, actor_id)
    return {"success": True}


@app.post("/api/actors/{actor_id}/link")
def api_link_actor(actor_id: int, payload: ActorLink, request: Request, runner=Depends(get_runner_dep)):
    require_api_user(request, ADMIN)
    actor_service.link_user(runner, actor_id, payload.user_id)
    return {"success": True}


@app.post("/api/actor-override")
def api_toggle_override(payload: OverrideToggle, request: Request, runner=Depends(get_runner_dep)):
    require_api_user(request, ADMIN)
    overridden = availability.toggle_override(runner, payload.actor_id, payload.year, payload.month)
    return {"overridden": overridden}
