"""
FastAPI application for anonymous stranger matching.
Match, pending, leave, guest session, presence, interests and health endpoints.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from api.auth import Identity, generate_guest_token, get_account, get_guest, get_identity
from api.relay import router as relay_router
from config.settings import Settings, settings as default_settings
from core.entities import MatchRequest, MatchResult, PendingMatch, new_guest_id
from core.exceptions import InvalidMatchRequest, StoreUnavailableError
from core.matchmaking import MatchmakingEngine
from core.notifier import PendingMatchNotifier
from core.presence import PresenceTracker
from core.queue_store import RANDOM_QUEUE, WaitingPoolStore
from core.relay import RoomHub
from core.room_lifecycle import RoomLifecycle
from core.scorer import CompatibilityScorer
from utils.rate_limiter import MessageRateLimiter

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a request handler needs, built once per process."""
    settings: Settings
    store: WaitingPoolStore
    repository: Any
    presence: PresenceTracker
    notifier: PendingMatchNotifier
    scorer: CompatibilityScorer
    lifecycle: RoomLifecycle
    engine: MatchmakingEngine
    hub: RoomHub
    rate_limiter: MessageRateLimiter


def build_services(store: WaitingPoolStore, repository, settings: Optional[Settings] = None) -> Services:
    """
    Wire the matchmaking core around one ephemeral store and one repository.

    Args:
        store: Redis or in-memory waiting pool store
        repository: Persistent store boundary
        settings: Settings; the global instance when omitted

    Returns:
        Services container
    """
    settings = settings or default_settings
    presence = PresenceTracker(store, settings)
    notifier = PendingMatchNotifier(store, settings)
    scorer = CompatibilityScorer(store, settings)
    lifecycle = RoomLifecycle(store, notifier, presence, repository)
    engine = MatchmakingEngine(
        store=store,
        presence=presence,
        notifier=notifier,
        scorer=scorer,
        repository=repository,
        lifecycle=lifecycle,
        settings=settings,
    )
    return Services(
        settings=settings,
        store=store,
        repository=repository,
        presence=presence,
        notifier=notifier,
        scorer=scorer,
        lifecycle=lifecycle,
        engine=engine,
        hub=RoomHub(),
        rate_limiter=MessageRateLimiter(store, settings),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class EnqueueRequest(_CamelModel):
    """Request model for a match request."""
    mode: str = "random"
    gender_filter: Optional[str] = Field(default=None, alias="genderFilter")


class MatchResponse(_CamelModel):
    """Either queued with polling hints, or matched with the room and partner."""
    queued: bool
    room_id: Optional[str] = Field(default=None, alias="roomId")
    partner_display_name: Optional[str] = Field(default=None, alias="partnerDisplayName")
    partner_id: Optional[str] = Field(default=None, alias="partnerId")
    poll_interval_seconds: Optional[int] = Field(default=None, alias="pollIntervalSeconds")
    timeout_seconds: Optional[int] = Field(default=None, alias="timeoutSeconds")


class PendingResponse(_CamelModel):
    room_id: Optional[str] = Field(default=None, alias="roomId")
    partner_display_name: Optional[str] = Field(default=None, alias="partnerDisplayName")
    partner_id: Optional[str] = Field(default=None, alias="partnerId")


class LeaveRequest(_CamelModel):
    room_id: Optional[str] = Field(default=None, alias="roomId")
    action: Optional[str] = None


class OkResponse(BaseModel):
    ok: bool = True


class HeartbeatResponse(BaseModel):
    ok: bool = True
    ttl: int


class PresenceResponse(_CamelModel):
    is_online: bool = Field(alias="isOnline")
    user_id: str = Field(alias="userId")


def _match_response(result: MatchResult, settings: Settings, guest: bool) -> MatchResponse:
    if result.queued:
        timeout = settings.GUEST_WAIT_TIMEOUT_SECONDS if guest else settings.ACCOUNT_WAIT_TIMEOUT_SECONDS
        return MatchResponse(
            queued=True,
            poll_interval_seconds=settings.PENDING_POLL_INTERVAL_SECONDS,
            timeout_seconds=timeout,
        )
    return MatchResponse(
        queued=False,
        room_id=result.room_id,
        partner_display_name=result.partner_display_name,
        partner_id=result.partner_id,
    )


def _pending_response(pending: PendingMatch) -> PendingResponse:
    return PendingResponse(
        room_id=pending.room_id,
        partner_display_name=pending.partner_display_name,
        partner_id=pending.partner_id,
    )


async def _leave_quietly(services: Services, identity_id: str) -> None:
    # Leave always reports success to the client
    try:
        await services.engine.leave(identity_id)
    except Exception as e:
        logger.error(f"Leave cleanup failed for {identity_id}: {e}", exc_info=True)


# ============= Account matching =============

match_router = APIRouter(prefix="/api")


@match_router.post("/match/enqueue", response_model=MatchResponse, response_model_exclude_none=True)
async def enqueue(
    body: Optional[EnqueueRequest] = None,
    identity: Identity = Depends(get_account),
    services: Services = Depends(get_services),
):
    """
    Request a match for an account holder.

    Args:
        body: Mode ('random' or 'interest') and optional gender filter; random mode when omitted
        identity: Authenticated account

    Returns:
        Queued status with polling hints, or the room and partner
    """
    body = body or EnqueueRequest()
    result = await services.engine.request_match(
        MatchRequest(requester_id=identity.identity_id, mode=body.mode, gender_filter=body.gender_filter)
    )
    return _match_response(result, services.settings, guest=False)


@match_router.get("/match/pending", response_model=PendingResponse)
async def pending_match(
    identity: Identity = Depends(get_account),
    services: Services = Depends(get_services),
):
    return _pending_response(await services.engine.pending(identity.identity_id))


@match_router.post("/match/leave", response_model=OkResponse)
async def leave_match(
    identity: Identity = Depends(get_account),
    services: Services = Depends(get_services),
):
    await _leave_quietly(services, identity.identity_id)
    return OkResponse()


@match_router.post("/chat/leave", response_model=OkResponse)
async def beacon_leave(
    request: Request,
    identity: Identity = Depends(get_account),
    services: Services = Depends(get_services),
):
    """Page-unload beacon. Malformed bodies are ignored; the answer is always ok."""
    try:
        body = LeaveRequest.model_validate(await request.json())
    except Exception as e:
        logger.debug(f"Ignoring malformed beacon from {identity.identity_id}: {e}")
        return OkResponse()

    if body.action == "leave_room" and body.room_id:
        logger.info(f"Beacon leave_room received for {identity.identity_id} (room {body.room_id})")
        await _leave_quietly(services, identity.identity_id)
    return OkResponse()


# ============= Guests =============

guest_router = APIRouter(prefix="/api/guest")


@guest_router.post("/session")
async def create_guest_session():
    """Issue a signed guest session."""
    guest_id = new_guest_id()
    token, expires_at = generate_guest_token(guest_id)
    logger.info(f"Created guest session {guest_id}")
    return {
        "success": True,
        "guestId": guest_id,
        "token": token,
        "expiresAt": int(expires_at.timestamp() * 1000),
    }


@guest_router.get("/session")
async def get_guest_session(identity: Identity = Depends(get_guest)):
    return {"success": True, "session": {"guestId": identity.identity_id, "isGuest": True}}


@guest_router.delete("/session", response_model=OkResponse)
async def end_guest_session(
    identity: Identity = Depends(get_guest),
    services: Services = Depends(get_services),
):
    await _leave_quietly(services, identity.identity_id)
    return OkResponse()


@guest_router.post("/match", response_model=MatchResponse, response_model_exclude_none=True)
async def guest_match(
    identity: Identity = Depends(get_guest),
    services: Services = Depends(get_services),
):
    result = await services.engine.request_match(MatchRequest(requester_id=identity.identity_id))
    return _match_response(result, services.settings, guest=True)


@guest_router.get("/match", response_model=PendingResponse)
async def guest_pending(
    identity: Identity = Depends(get_guest),
    services: Services = Depends(get_services),
):
    return _pending_response(await services.engine.pending(identity.identity_id))


@guest_router.post("/leave", response_model=OkResponse)
async def guest_leave(
    identity: Identity = Depends(get_guest),
    services: Services = Depends(get_services),
):
    await _leave_quietly(services, identity.identity_id)
    return OkResponse()


# ============= Presence, interests, health =============

misc_router = APIRouter()


@misc_router.post("/api/presence/heartbeat", response_model=HeartbeatResponse)
async def heartbeat(
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    ttl = await services.presence.refresh(identity.identity_id)
    return HeartbeatResponse(ttl=ttl)


@misc_router.get("/api/presence/check", response_model=PresenceResponse)
async def check_presence(
    user_id: str = Query(alias="userId"),
    identity: Identity = Depends(get_identity),
    services: Services = Depends(get_services),
):
    return PresenceResponse(is_online=await services.presence.is_live(user_id), user_id=user_id)


@misc_router.get("/api/interests", response_model=List[str])
async def list_interests(services: Services = Depends(get_services)):
    return await services.repository.list_interests()


async def _timed_check(check) -> Dict[str, Any]:
    started = time.perf_counter()
    try:
        await check()
        status = "healthy"
        error = None
    except Exception as e:
        status = "unhealthy"
        error = str(e)
    report = {"status": status, "responseTimeMs": round((time.perf_counter() - started) * 1000, 2)}
    if error:
        report["error"] = error
    return report


@misc_router.get("/health")
async def health_check(services: Services = Depends(get_services)):
    """Health check endpoint."""
    checks = {
        "redis": await _timed_check(services.store.ping),
        "database": await _timed_check(services.repository.ping),
    }
    healthy = all(check["status"] == "healthy" for check in checks.values())

    queue_length = None
    if checks["redis"]["status"] == "healthy":
        try:
            queue_length = await services.store.length(RANDOM_QUEUE)
        except StoreUnavailableError:
            queue_length = None

    body = {
        "status": "healthy" if healthy else "unhealthy",
        "services": checks,
        "queues": {"random": queue_length},
    }
    return JSONResponse(body, status_code=200 if healthy else 503)


def create_app(services: Services, lifespan=None) -> FastAPI:
    """
    Build the FastAPI application around a services container.

    Args:
        services: Wired matchmaking core
        lifespan: Optional lifespan context (database setup in production)

    Returns:
        FastAPI app
    """
    app = FastAPI(title="Stranger Matching API", version="1.0.0", lifespan=lifespan)
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=services.settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidMatchRequest)
    async def invalid_request_handler(request: Request, exc: InvalidMatchRequest):
        return JSONResponse({"detail": str(exc)}, status_code=400)

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailableError):
        logger.error(f"Ephemeral store unavailable on {request.url.path}: {exc}")
        return JSONResponse({"detail": "Matchmaking temporarily unavailable"}, status_code=503)

    app.include_router(match_router)
    app.include_router(guest_router)
    app.include_router(misc_router)
    app.include_router(relay_router)
    return app
