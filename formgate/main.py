from __future__ import annotations

from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .chat import ChatProvider, get_chat_provider, history_from_payload
from .config import Settings, load_settings
from .downstream import run_side_effect
from .errors import ClientInputError, FormGateError, RateLimitExceeded
from .governance import GovernanceService, iso_utc
from .mail import MailTransport, OutboundEmail, Sender, deliver_all, get_mailer
from .mail.templates import (
    candidate_messages,
    contact_messages,
    interviewer_messages,
    lead_messages,
    newsletter_messages,
)
from .observability import (
    Timer,
    client_ip_from_headers,
    configure_logging,
    log_event,
    log_exception,
    log_http_request,
    request_id_from_headers,
)
from .otel import record_http_request_metric, setup_otel
from .ratelimit import RateLimitPolicy
from .sanitize import validate_email, validate_name, validate_phone, validate_text_field, validate_url

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}

_INTERNAL_ERROR = {"ok": False, "error": "Internal server error"}


# ---- API models ----
class _Form(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class LeadForm(_Form):
    full_name: str | None = Field(None, alias="fullName")
    email: str | None = None
    phone: str | None = None
    course: str | None = None
    brochure_url: str | None = Field(None, alias="brochureUrl")


class ContactForm(_Form):
    first_name: str | None = Field(None, alias="firstName")
    last_name: str | None = Field(None, alias="lastName")
    email: str | None = None
    phone: str | None = None
    message: str | None = None


class NewsletterForm(_Form):
    email: str | None = None


class CourseInquiryForm(_Form):
    full_name: str | None = Field(None, alias="fullName")
    email: str | None = None
    course: str | None = None
    phone: str | None = None
    brochure_url: str | None = Field(None, alias="brochureUrl")


class InterviewerForm(_Form):
    full_name: str | None = Field(None, alias="fullName")
    email: str | None = None
    phone: str | None = None
    company_name: str | None = Field(None, alias="companyName")
    designation: str | None = None
    experience: str | None = None
    expertise: str | None = None


class CandidateForm(_Form):
    """Document uploads (photo, certificates, CV) are not accepted and are ignored if sent."""

    full_name: str | None = Field(None, alias="fullName")
    email: str | None = None
    phone: str | None = None


class ChatRequest(_Form):
    message: str | None = None
    conversation_history: list[dict[str, Any]] | None = Field(None, alias="conversationHistory")


# ---- request helpers ----
def _governance(request: Request) -> GovernanceService:
    return request.app.state.governance


def _settings(request: Request) -> Settings:
    return request.app.state.settings


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def _read_json(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError as e:
        raise ClientInputError("Invalid JSON body") from e
    if not isinstance(payload, dict):
        raise ClientInputError("Request body must be a JSON object")
    return payload


def _enforce(request: Request, policy: RateLimitPolicy, payload: dict[str, Any] | None = None) -> None:
    gov = _governance(request)
    key = gov.rate_limit_key(
        policy,
        headers=request.headers,
        peer=request.client.host if request.client else None,
        payload=payload,
    )
    request.state.rate_headers = gov.enforce_rate_limit(policy, key, request_id=_request_id(request))


async def _governed_payload(request: Request, policy_name: str) -> dict[str, Any]:
    """Apply the endpoint's rate-limit policy and return the JSON body.

    IP-keyed policies are charged before the body is read; email-keyed policies
    need the body first to derive the key.
    """
    policy = _governance(request).policy(policy_name)
    if policy.key != "email":
        _enforce(request, policy)
        return await _read_json(request)

    try:
        payload = await _read_json(request)
    except ClientInputError:
        _enforce(request, policy)
        raise
    _enforce(request, policy, payload)
    return payload


def _parse(model: type[_Form], payload: dict[str, Any]) -> Any:
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        loc = e.errors()[0].get("loc") or ("body",)
        raise ClientInputError(f"Invalid {loc[0]}") from e


def _require_present(*values: Any, message: str = "Missing required fields") -> None:
    for v in values:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ClientInputError(message)


def _checked(value: str | None, validator: Callable[[Any], str | None], message: str) -> str:
    out = validator(value)
    if out is None:
        raise ClientInputError(message)
    return out


def _optional(value: str | None, validator: Callable[[Any], str | None], message: str) -> str | None:
    if value is None or not value.strip():
        return None
    return _checked(value, validator, message)


def _course_name(value: Any) -> str | None:
    return validate_text_field(value, 1, 200)


async def _deliver(
    request: Request,
    *,
    request_type: str,
    identifier: str,
    build: Callable[[Sender], list[OutboundEmail]],
    response: dict[str, Any],
) -> dict[str, Any]:
    """Config gates, dedup, mail side effect, then remember the response."""
    gov = _governance(request)
    settings = _settings(request)
    rid = _request_id(request)

    sender = Sender(
        email=gov.require_sender_email(),
        brand=settings.brand_name,
        admin_email=gov.require_admin_email(),
    )

    mailer: MailTransport = request.app.state.mailer

    async def send() -> dict[str, Any]:
        messages = build(sender)
        await run_side_effect(
            lambda: deliver_all(mailer, messages),
            operation=f"mail.{request_type}",
            timeout_s=settings.side_effect_timeout_s,
            request_id=rid,
        )
        log_event("mail.sent", request_type=request_type, transport=mailer.name, messages=len(messages), request_id=rid)
        return response

    return await gov.run_once(request_type, identifier, send, request_id=rid)


def _index_html(settings: Settings) -> str:
    links = "".join(
        f'<li><a href="{path}">{path}</a></li>'
        for path in (
            "/api/health",
            "/api/lead",
            "/api/contact",
            "/api/newsletter",
            "/api/course-inquiry",
            "/api/interviewer",
            "/api/candidate",
            "/api/chatbot",
        )
    )
    return (
        '<!DOCTYPE html><html lang="en"><head><meta charset="UTF-8" />'
        f"<title>{settings.brand_name} API</title></head>"
        f"<body><h1>Welcome to {settings.brand_name} API</h1><p>Endpoints:</p><ul>{links}</ul></body></html>"
    )


def create_app(
    settings: Settings | None = None,
    *,
    governance: GovernanceService | None = None,
    mailer: MailTransport | None = None,
    chat: ChatProvider | None = None,
) -> FastAPI:
    """Build the API with explicitly constructed collaborators.

    Anything not passed in is built from `settings`. Tests hand in fakes and a
    fresh `GovernanceService` per app.
    """

    settings = settings or load_settings()
    governance = governance or GovernanceService(settings)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        governance.start()
        try:
            yield
        finally:
            await governance.shutdown()

    app = FastAPI(
        title=f"{settings.brand_name} Forms API",
        version=settings.version,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.governance = governance
    app.state.mailer = mailer or get_mailer(settings)
    app.state.chat = chat or get_chat_provider(settings)

    # JSON logs before anything else so startup problems are parsed too.
    configure_logging()
    setup_otel(app, settings)

    @app.middleware("http")
    async def _request_middleware(request: Request, call_next):
        """Request ID, origin guard, governance headers, structured logs."""

        timer = Timer()
        rid = request_id_from_headers({k.lower(): v for k, v in request.headers.items()})
        request.state.request_id = rid
        request.state.rate_headers = {}

        remote_ip = client_ip_from_headers(request.headers, request.client.host if request.client else None)
        user_agent = request.headers.get("user-agent", "")
        origin = request.headers.get("origin")

        decision = governance.decide_cors(origin, request.method)

        error_type: str | None = None
        if decision.preflight:
            response: Response = Response(status_code=200)
        else:
            try:
                response = await call_next(request)
            except Exception as e:
                # Last-resort boundary: the browser still needs CORS headers to read the 500.
                log_exception("http.unhandled_error", e, request_id=rid, path=request.url.path)
                error_type = type(e).__name__
                response = JSONResponse(status_code=500, content=dict(_INTERNAL_ERROR))

        for k, v in decision.headers.items():
            response.headers[k] = v
        for k, v in (getattr(request.state, "rate_headers", None) or {}).items():
            response.headers.setdefault(k, v)

        response.headers["X-Request-Id"] = rid
        for k, v in _SECURITY_HEADERS.items():
            response.headers.setdefault(k, v)

        if request.url.path.startswith("/api/"):
            response.headers.setdefault("Cache-Control", "no-store")
            response.headers.setdefault("Pragma", "no-cache")

        latency_ms = timer.ms()
        status_code = int(response.status_code)
        if status_code >= 500:
            severity = "ERROR"
        elif status_code >= 400:
            severity = "WARNING"
        else:
            severity = "INFO"
        record_http_request_metric(
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            latency_ms=latency_ms,
        )
        log_http_request(
            request_id=rid,
            method=request.method,
            url=str(request.url),
            path=request.url.path,
            status=status_code,
            latency_ms=latency_ms,
            remote_ip=remote_ip,
            user_agent=user_agent,
            origin=origin,
            limited=status_code == 429,
            error_type=error_type,
            severity=severity,
        )
        return response

    @app.exception_handler(FormGateError)
    async def _formgate_error_handler(request: Request, exc: FormGateError):
        if isinstance(exc, (ClientInputError, RateLimitExceeded)):
            severity = "INFO"
        elif exc.status_code >= 500:
            severity = "ERROR"
        else:
            severity = "WARNING"
        log_event(
            exc.log_event,
            severity=severity,
            status=exc.status_code,
            detail=exc.detail,
            path=request.url.path,
            request_id=_request_id(request),
        )
        return JSONResponse(status_code=exc.status_code, content=exc.body(), headers=exc.headers)

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 405:
            message = "Method not allowed"
        elif exc.status_code == 404:
            message = "Not found"
        else:
            message = str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content={"ok": False, "error": message},
            headers=getattr(exc, "headers", None),
        )

    # ---- Index / health ----
    @app.get("/")
    def index() -> HTMLResponse:
        return HTMLResponse(_index_html(settings))

    @app.get("/api/health")
    def health() -> dict[str, Any]:
        return {"ok": True, "status": "OK", "message": "Backend server is running", "version": settings.version}

    # ---- Forms ----
    @app.post("/api/lead")
    async def lead(request: Request) -> dict[str, Any]:
        form = _parse(LeadForm, await _governed_payload(request, "general"))
        _require_present(form.full_name, form.email, form.phone, form.course)
        email = _checked(form.email, validate_email, "Invalid email address")
        phone = _checked(form.phone, validate_phone, "Invalid phone number")
        full_name = _checked(form.full_name, validate_name, "Invalid name")
        course = _checked(form.course, _course_name, "Invalid course")
        brochure_url = _optional(form.brochure_url, validate_url, "Invalid brochure URL")

        return await _deliver(
            request,
            request_type="lead",
            identifier=f"{email}:{course.lower()}",
            build=lambda sender: lead_messages(
                sender,
                full_name=full_name,
                email=email,
                phone=phone,
                course=course,
                brochure_url=brochure_url,
                source="Brochure Request",
            ),
            response={"ok": True, "emailSent": True, "brochureUrl": brochure_url},
        )

    @app.post("/api/contact")
    async def contact(request: Request) -> dict[str, Any]:
        form = _parse(ContactForm, await _governed_payload(request, "general"))
        _require_present(form.first_name, form.last_name, form.email, form.phone)
        first_name = _checked(form.first_name, validate_name, "Invalid first name")
        last_name = _checked(form.last_name, validate_name, "Invalid last name")
        email = _checked(form.email, validate_email, "Invalid email address")
        phone = _checked(form.phone, validate_phone, "Invalid phone number")
        message = _optional(form.message, validate_text_field, "Message is too long")

        return await _deliver(
            request,
            request_type="contact",
            identifier=email,
            build=lambda sender: contact_messages(
                sender,
                first_name=first_name,
                last_name=last_name,
                email=email,
                phone=phone,
                message=message,
            ),
            response={"ok": True, "emailSent": True},
        )

    @app.post("/api/newsletter")
    async def newsletter(request: Request) -> dict[str, Any]:
        form = _parse(NewsletterForm, await _governed_payload(request, "newsletter"))
        _require_present(form.email, message="Email is required")
        email = _checked(form.email, validate_email, "Invalid email address")

        return await _deliver(
            request,
            request_type="newsletter",
            identifier=email,
            build=lambda sender: newsletter_messages(sender, email=email),
            response={"ok": True, "emailSent": True},
        )

    @app.post("/api/course-inquiry")
    async def course_inquiry(request: Request) -> dict[str, Any]:
        form = _parse(CourseInquiryForm, await _governed_payload(request, "general"))
        _require_present(form.full_name, form.email, form.course, message="Missing fields")
        full_name = _checked(form.full_name, validate_name, "Invalid name")
        email = _checked(form.email, validate_email, "Invalid email address")
        course = _checked(form.course, _course_name, "Invalid course")
        phone = _optional(form.phone, validate_phone, "Invalid phone number")
        brochure_url = _optional(form.brochure_url, validate_url, "Invalid brochure URL")

        return await _deliver(
            request,
            request_type="course-inquiry",
            identifier=f"{email}:{course.lower()}",
            build=lambda sender: lead_messages(
                sender,
                full_name=full_name,
                email=email,
                phone=phone,
                course=course,
                brochure_url=brochure_url,
            ),
            response={"ok": True, "emailSent": True, "brochureUrl": brochure_url},
        )

    @app.post("/api/interviewer")
    async def interviewer(request: Request) -> dict[str, Any]:
        form = _parse(InterviewerForm, await _governed_payload(request, "registration"))
        _require_present(
            form.full_name,
            form.email,
            form.phone,
            form.company_name,
            form.designation,
            message="Missing required fields (fullName, email, phone, companyName, designation)",
        )
        full_name = _checked(form.full_name, validate_name, "Invalid name")
        email = _checked(form.email, validate_email, "Invalid email address")
        phone = _checked(form.phone, validate_phone, "Invalid phone number")
        company_name = _checked(form.company_name, lambda v: validate_text_field(v, 1, 200), "Invalid company name")
        designation = _checked(form.designation, lambda v: validate_text_field(v, 1, 200), "Invalid designation")
        experience = _optional(form.experience, lambda v: validate_text_field(v, 1, 100), "Invalid experience")
        expertise = _optional(form.expertise, lambda v: validate_text_field(v, 1, 1000), "Invalid expertise")

        return await _deliver(
            request,
            request_type="interviewer",
            identifier=email,
            build=lambda sender: interviewer_messages(
                sender,
                full_name=full_name,
                email=email,
                phone=phone,
                company_name=company_name,
                designation=designation,
                experience=experience,
                expertise=expertise,
            ),
            response={"ok": True, "message": "Registration successful! Check your email for confirmation."},
        )

    @app.post("/api/candidate")
    async def candidate(request: Request) -> dict[str, Any]:
        form = _parse(CandidateForm, await _governed_payload(request, "registration"))
        _require_present(form.full_name, form.email, form.phone)
        email = _checked(form.email, validate_email, "Invalid email address")
        phone = _checked(form.phone, validate_phone, "Invalid phone number")
        full_name = _checked(form.full_name, validate_name, "Invalid name")

        return await _deliver(
            request,
            request_type="candidate",
            identifier=email,
            build=lambda sender: candidate_messages(sender, full_name=full_name, email=email, phone=phone),
            response={"ok": True, "message": "Registration submitted successfully"},
        )

    # ---- Chatbot ----
    @app.post("/api/chatbot")
    async def chatbot(request: Request) -> dict[str, Any]:
        form = _parse(ChatRequest, await _governed_payload(request, "chat"))
        _require_present(form.message, message="Message is required")
        limit = settings.max_chat_message_chars
        message = _checked(
            form.message,
            lambda v: validate_text_field(v, 1, limit),
            f"Message must be at most {limit} characters",
        )
        history = history_from_payload(form.conversation_history, settings.chat_max_history)

        provider: ChatProvider = request.app.state.chat
        reply = await run_side_effect(
            lambda: provider.complete(message, history),
            operation="chat.completion",
            timeout_s=settings.side_effect_timeout_s,
            request_id=_request_id(request),
        )
        return {"ok": True, "response": reply.text, "timestamp": iso_utc(governance.clock())}

    return app


app = create_app()
