import json
import logging
from contextlib import asynccontextmanager
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from storefront import storage
from storefront.config import Settings, get_settings
from storefront.conversations import INCOMING, OUTGOING, list_conversations
from storefront.errors import (
    NotFound,
    StorefrontError,
    Unauthorized,
    UpstreamFailure,
    ValidationError,
)
from storefront.identity import (
    IdentityProvider,
    Session as AuthSession,
    get_identity_provider,
    request_token,
    require_session,
)
from storefront.logging_utils import RequestLoggingMiddleware, log_request_data, setup_logging
from storefront.metrics import (
    get_metrics,
    get_metrics_content_type,
    record_message_list_read,
    record_registration,
    record_whatsapp_message,
)
from storefront.schemas import (
    CheckProviderRequest,
    CheckProviderResponse,
    ConversationResponse,
    ErrorResponse,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    MessagesListResponse,
    ProfileResponse,
    PublicUser,
    RegisterRequest,
    RegisterResponse,
    SendMessageRequest,
    SendMessageResponse,
    SuccessResponse,
    ThemeActivateRequest,
    ThemeCreateRequest,
    ThemeCreateResponse,
    ThemeListResponse,
    ThemeResponse,
    ThemeUpdateRequest,
    WebhookStatusResponse,
)
from storefront.security import PasswordHasherClient
from storefront.storage import Database, MessageLog, get_db
from storefront.themes import ThemeActivationManager
from storefront.utils import verify_hmac_signature
from storefront.whatsapp import WhatsAppClient, clean_number, get_whatsapp_client, parse_incoming_message

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation error"},
    500: {"model": ErrorResponse, "description": "Upstream failure"},
}
AUTH_ERROR_RESPONSES = {
    **ERROR_RESPONSES,
    401: {"model": ErrorResponse, "description": "No valid session"},
}


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_password_hasher(request: Request) -> PasswordHasherClient:
    return request.app.state.hasher


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager owning the external client handles.
    - Startup: open the store (creating tables) and the WhatsApp client
    - Shutdown: close both
    """
    settings: Settings = app.state.settings

    database = Database(settings.DATABASE_URL, schema=settings.DB_SCHEMA)
    database.init_db()
    app.state.database = database
    app.state.hasher = PasswordHasherClient(time_cost=settings.PASSWORD_HASH_TIME_COST)
    app.state.identity = IdentityProvider(
        ttl_seconds=settings.SESSION_TTL_SECONDS,
        secure_cookies=settings.APP_ENV == "prod",
    )
    app.state.whatsapp = WhatsAppClient(
        api_url=settings.WHATSAPP_API_URL,
        phone_number_id=settings.WHATSAPP_PHONE_NUMBER_ID,
        access_token=settings.WHATSAPP_ACCESS_TOKEN,
        timeout=settings.WHATSAPP_TIMEOUT_SECONDS,
    )
    try:
        yield
    finally:
        await app.state.whatsapp.aclose()
        database.dispose()


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    log_request_data(request, error=exc.__class__.__name__)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"Invalid request body: {exc.errors()}")
    log_request_data(request, error="RequestValidationError")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid request body"})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    log_request_data(request, error=exc.__class__.__name__)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    # Setup structured JSON logging
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title="Storefront API",
        description="Registration, profiles, store themes and WhatsApp messaging",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(router)
    return app


# =============================================================================
# Health Check Routes
# =============================================================================

@router.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """Liveness probe - always returns 200 once the app is running."""
    return HealthResponse(status="ok")


@router.get("/health/ready", response_model=HealthResponse)
async def health_ready(request: Request, response: Response) -> HealthResponse:
    """Readiness probe - 503 when the store does not answer."""
    if not request.app.state.database.check_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(status="not_ready", reason="Database not reachable")
    return HealthResponse(status="ready")


# =============================================================================
# Auth Routes
# =============================================================================

@router.post("/api/auth/register", response_model=RegisterResponse, responses=ERROR_RESPONSES)
async def register(
    request: Request,
    body: RegisterRequest,
    db: Session = Depends(get_db),
    hasher: PasswordHasherClient = Depends(get_password_hasher),
    settings: Settings = Depends(get_app_settings),
) -> RegisterResponse:
    """
    Create an account through the register_user procedure.

    The password is validated and hashed here; the procedure owns
    uniqueness and row creation.
    """
    email = (body.email or "").strip()
    if not email or not body.password:
        record_registration("validation_error")
        raise ValidationError("Email and password are required")

    if len(body.password) < settings.PASSWORD_MIN_LENGTH:
        record_registration("validation_error")
        raise ValidationError(f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters")

    password_hash = await run_in_threadpool(hasher.hash, body.password)
    name = body.name or email.split("@")[0]

    try:
        result = storage.register_user(db, email, password_hash, name)
    except SQLAlchemyError as e:
        logger.error(f"Database error during registration: {e}")
        record_registration("error")
        raise UpstreamFailure("An error occurred while creating the account")

    if not result.get("success"):
        record_registration("rejected")
        log_request_data(request, result="rejected")
        raise ValidationError(result.get("error") or "Failed to create account")

    record_registration("created")
    log_request_data(request, result="created", user_id=result["user"]["id"])
    return RegisterResponse(
        success=True,
        message="Account created successfully",
        user=PublicUser(**result["user"]),
    )


@router.post("/api/auth/login", response_model=LoginResponse, responses=AUTH_ERROR_RESPONSES)
async def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    db: Session = Depends(get_db),
    hasher: PasswordHasherClient = Depends(get_password_hasher),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> LoginResponse:
    if not body.email or not body.password:
        raise ValidationError("Email and password are required")

    try:
        user = storage.get_auth_user_by_email(db, body.email)
    except SQLAlchemyError as e:
        logger.error(f"Database error during login: {e}")
        raise UpstreamFailure("Database error")

    if user is None or not await run_in_threadpool(hasher.verify, body.password, user.password_hash):
        raise Unauthorized("Invalid email or password")

    profile = storage.get_user_profile(db, user.id)
    token = identity.issue(db, user.id)
    identity.set_cookie(response, token)
    log_request_data(request, user_id=user.id)

    return LoginResponse(
        success=True,
        token=token,
        user=PublicUser(
            id=user.id,
            email=user.email,
            name=profile.name if profile else None,
            role=profile.role if profile else "customer",
        ),
    )


@router.post("/api/auth/logout", response_model=SuccessResponse)
async def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    identity: IdentityProvider = Depends(get_identity_provider),
) -> SuccessResponse:
    token = request_token(request)
    if token:
        identity.revoke(db, token)
    identity.clear_cookie(response)
    return SuccessResponse()


@router.post("/api/auth/check-provider", response_model=CheckProviderResponse, responses=ERROR_RESPONSES)
async def check_provider(body: CheckProviderRequest, db: Session = Depends(get_db)) -> CheckProviderResponse:
    """Tell the login page whether an email belongs to a password-less (Google) account."""
    if not body.email:
        raise ValidationError("Email is required")

    try:
        user = storage.get_auth_user_by_email(db, body.email)
    except SQLAlchemyError as e:
        logger.error(f"Error checking user: {e}")
        raise UpstreamFailure("Database error")

    if user is None:
        return CheckProviderResponse(is_google_user=False, user_exists=False)
    return CheckProviderResponse(is_google_user=not user.password_hash, user_exists=True)


# =============================================================================
# Profile Route
# =============================================================================

@router.get(
    "/api/user/profile",
    response_model=ProfileResponse,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def get_profile(
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
) -> ProfileResponse:
    try:
        profile = storage.get_user_profile(db, session.user.id)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching profile {session.user.id}: {e}")
        raise NotFound("Profile not found")

    if profile is None:
        raise NotFound("Profile not found")

    return ProfileResponse(profile={
        "id": profile.id,
        "email": profile.email,
        "name": profile.name,
        "role": profile.role,
        "created_at": profile.created_at.isoformat() if profile.created_at else None,
    })


# =============================================================================
# Store Theme Routes
# =============================================================================

@router.get("/api/store-themes", response_model=ThemeListResponse, responses=ERROR_RESPONSES)
async def get_themes(db: Session = Depends(get_db)) -> ThemeListResponse:
    try:
        themes = storage.list_themes(db)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching themes: {e}")
        raise UpstreamFailure("Failed to fetch themes")
    return ThemeListResponse(data=[ThemeResponse.model_validate(t) for t in themes])


@router.post("/api/store-themes", response_model=ThemeCreateResponse, responses=AUTH_ERROR_RESPONSES)
async def add_theme(
    body: ThemeCreateRequest,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
) -> ThemeCreateResponse:
    if not body.name or not body.primary_color or not body.primary_hover_color:
        raise ValidationError("Missing required fields")

    try:
        theme = storage.create_theme(
            db,
            name=body.name,
            primary_color=body.primary_color,
            primary_hover_color=body.primary_hover_color,
            interactive_color=body.interactive_color or "#EF4444",
            button_color=body.button_color or body.primary_color,
            button_hover_color=body.button_hover_color or body.primary_hover_color,
        )
    except SQLAlchemyError as e:
        logger.error(f"Error adding theme: {e}")
        raise UpstreamFailure("Failed to add theme")

    logger.info(f"Theme created: {theme.id} by {session.user.id}")
    return ThemeCreateResponse(data=ThemeResponse.model_validate(theme))


@router.patch("/api/store-themes", response_model=SuccessResponse, responses=AUTH_ERROR_RESPONSES)
async def edit_theme(
    body: ThemeUpdateRequest,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    if not body.id:
        raise ValidationError("Theme ID is required")

    try:
        storage.update_theme(
            db,
            body.id,
            primary_color=body.primary_color,
            primary_hover_color=body.primary_hover_color,
            interactive_color=body.interactive_color,
            button_color=body.button_color,
            button_hover_color=body.button_hover_color,
        )
    except SQLAlchemyError as e:
        logger.error(f"Error updating theme: {e}")
        raise UpstreamFailure("Failed to update theme")
    return SuccessResponse()


@router.delete("/api/store-themes", response_model=SuccessResponse, responses=AUTH_ERROR_RESPONSES)
async def remove_theme(
    theme_id: Annotated[Optional[str], Query(alias="id")] = None,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
) -> SuccessResponse:
    if not theme_id:
        raise ValidationError("Theme ID is required")

    try:
        storage.delete_theme(db, theme_id)
    except SQLAlchemyError as e:
        logger.error(f"Error deleting theme: {e}")
        raise UpstreamFailure("Failed to delete theme")
    return SuccessResponse()


@router.post(
    "/api/store-themes/activate",
    response_model=SuccessResponse,
    responses={**AUTH_ERROR_RESPONSES, 404: {"model": ErrorResponse}},
)
async def activate_theme(
    request: Request,
    body: ThemeActivateRequest,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> SuccessResponse:
    """
    Make one theme the only active theme.

    With resume=true only the activation step runs; callers use it after a
    partial failure left no theme active.
    """
    theme_id = body.id or ""
    log_request_data(request, theme_id=body.id, resume=body.resume)

    manager = ThemeActivationManager(db, require_existing=settings.THEME_ACTIVATION_REQUIRE_EXISTING)
    if body.resume:
        manager.complete_activation(theme_id)
    else:
        manager.activate(theme_id)
    return SuccessResponse()


# =============================================================================
# WhatsApp Routes
# =============================================================================

@router.get("/api/whatsapp/messages", response_model=MessagesListResponse)
async def list_messages(
    request: Request,
    phone: Annotated[Optional[str], Query(description="Only messages from this number")] = None,
    db: Session = Depends(get_db),
) -> MessagesListResponse:
    """
    Message log plus one conversation per sender.

    Store failures are served as an empty, degraded success.
    """
    log = storage.query_messages(db, phone)

    try:
        messages = [MessageResponse.model_validate(m) for m in log.messages]
        conversations = [
            ConversationResponse.model_validate(c) for c in list_conversations(log.messages)
        ]
    except Exception as e:
        logger.exception(f"Failed to build conversations: {e}")
        log = MessageLog.degrade(e.__class__.__name__)
        messages, conversations = [], []

    record_message_list_read(log.degraded)
    log_request_data(request, degraded=log.degraded, reason=log.reason)
    logger.info(f"Messages listed: {len(messages)} messages, {len(conversations)} conversations")

    return MessagesListResponse(messages=messages, conversations=conversations, degraded=log.degraded)


@router.post("/api/whatsapp/send", response_model=SendMessageResponse, responses=ERROR_RESPONSES)
async def send_message(
    request: Request,
    body: SendMessageRequest,
    db: Session = Depends(get_db),
    whatsapp: WhatsAppClient = Depends(get_whatsapp_client),
    settings: Settings = Depends(get_app_settings),
) -> SendMessageResponse:
    """
    Send a text message, then record it as outgoing.

    Recording failures are logged only; the send already happened.
    """
    if not body.to or not body.message:
        raise ValidationError("Missing required fields: to, message")

    number = clean_number(body.to)
    result = await whatsapp.send(number, body.message)

    if not result.success:
        logger.error(f"WhatsApp send failed for {number}: {result.error}")
        record_whatsapp_message(OUTGOING, "failed")
        log_request_data(request, result="send_failed")
        raise UpstreamFailure("Failed to send message")

    recorded, _ = storage.record_message(
        db,
        from_number=number,
        customer_name=settings.WHATSAPP_SENDER_NAME,
        message_text=body.message,
        message_type=OUTGOING,
        message_id=result.message_id,
    )
    if not recorded:
        logger.warning(f"Could not save outgoing message {result.message_id} to database")
        record_whatsapp_message(OUTGOING, "record_failed")
    else:
        record_whatsapp_message(OUTGOING, "sent")

    log_request_data(request, message_id=result.message_id, result="sent")
    return SendMessageResponse(success=True, message_id=result.message_id)


@router.get("/api/whatsapp/webhook", response_class=PlainTextResponse)
async def verify_webhook(
    mode: Annotated[Optional[str], Query(alias="hub.mode")] = None,
    token: Annotated[Optional[str], Query(alias="hub.verify_token")] = None,
    challenge: Annotated[Optional[str], Query(alias="hub.challenge")] = None,
    settings: Settings = Depends(get_app_settings),
):
    """Subscription handshake required by Meta."""
    if mode == "subscribe" and settings.WHATSAPP_VERIFY_TOKEN and token == settings.WHATSAPP_VERIFY_TOKEN:
        logger.info("Webhook verified successfully")
        return PlainTextResponse(challenge or "", status_code=status.HTTP_200_OK)

    logger.warning("Webhook verification failed")
    return JSONResponse({"error": "Verification failed"}, status_code=status.HTTP_403_FORBIDDEN)


@router.post(
    "/api/whatsapp/webhook",
    response_model=WebhookStatusResponse,
    responses={401: {"model": ErrorResponse, "description": "Invalid signature"}},
)
async def receive_webhook(
    request: Request,
    x_hub_signature: Annotated[Optional[str], Header(alias="X-Hub-Signature-256")] = None,
    db: Session = Depends(get_db),
    whatsapp: WhatsAppClient = Depends(get_whatsapp_client),
    settings: Settings = Depends(get_app_settings),
):
    """
    Record inbound text messages.

    Answers 200 for anything correctly signed, even when processing fails,
    so the provider does not redeliver.
    """
    raw_body = await request.body()

    if settings.WHATSAPP_APP_SECRET and not verify_hmac_signature(
        raw_body, x_hub_signature, settings.WHATSAPP_APP_SECRET
    ):
        log_request_data(request, result="invalid_signature")
        return JSONResponse({"error": "invalid signature"}, status_code=status.HTTP_401_UNAUTHORIZED)

    try:
        body = json.loads(raw_body)

        if not isinstance(body, dict) or body.get("object") != "whatsapp_business_account":
            return WebhookStatusResponse(status="ignored")

        for entry in body.get("entry") or []:
            message = parse_incoming_message(entry)
            if message is None:
                continue

            logger.info(f"New message from {message.customer_name} ({message.from_number})")
            recorded, duplicate = storage.record_message(
                db,
                from_number=message.from_number,
                customer_name=message.customer_name,
                message_text=message.text,
                message_type=INCOMING,
                message_id=message.message_id,
                created_at=message.timestamp,
            )
            if not recorded:
                logger.warning(f"Could not save incoming message {message.message_id} to database")
                record_whatsapp_message(INCOMING, "record_failed")
            elif duplicate:
                record_whatsapp_message(INCOMING, "duplicate")
            else:
                record_whatsapp_message(INCOMING, "recorded")
                # Read receipts go out once, for newly recorded messages only
                await whatsapp.mark_as_read(message.message_id)

        return WebhookStatusResponse(status="received")
    except Exception as e:
        logger.exception(f"Webhook error: {e}")
        log_request_data(request, result="error")
        return WebhookStatusResponse(status="error")


# =============================================================================
# Metrics Route
# =============================================================================

@router.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus-style metrics."""
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )


app = create_app()
