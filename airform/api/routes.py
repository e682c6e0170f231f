"""
FastAPI routes for the AirForm backend.

Endpoints:
- GET  /auth/login                      — start the Airtable OAuth (PKCE) flow
- GET  /auth/callback                   — finish it and set the session cookie
- GET  /api/me                          — the connected account
- GET  /api/bases                       — bases visible to the account
- GET  /api/bases/{base_id}/tables      — tables with their supported fields
- POST /api/forms                       — save a form (and register a webhook)
- GET  /api/forms                       — the account's forms
- GET  /api/forms/{form_id}             — public form definition
- POST /api/forms/{form_id}/visibility  — evaluate visibility for an answer map
- POST /api/forms/{form_id}/submit      — public submission
- GET  /api/forms/{form_id}/responses   — submitted responses, newest first
- GET  /api/templates                   — bundled form templates
- GET  /api/templates/{name}            — one template with its fields
- POST /webhooks/airtable/{form_id}     — Airtable change notifications
- GET  /api/health                      — health check
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Cookie, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field, ValidationError

from airform.airtable import oauth
from airform.airtable.client import AirtableError
from airform.airtable.oauth import OAuthError
from airform.airtable.schema_source import normalize_table
from airform.core.form_state import MissingRequiredFieldsError
from airform.core.schema import FieldDefinition, FormDefinition
from airform.core.storage import User
from airform.core.submission import SubmissionError
from airform.core.templates import list_templates
from airform.core.visibility import missing_required_fields, visible_fields

logger = logging.getLogger(__name__)

router = APIRouter()
auth_router = APIRouter(prefix="/auth")
webhook_router = APIRouter(prefix="/webhooks")

VERIFIER_COOKIE = "auth_verifier"
STATE_COOKIE = "auth_state"
USER_COOKIE = "userId"
VERIFIER_MAX_AGE_SECONDS = 300

# These will be injected by the app factory
_repository = None
_settings = None
_oauth_client = None
_token_provider = None
_client_factory = None
_response_sink = None


def configure_routes(repository, settings, oauth_client, token_provider, client_factory, response_sink):
    """Inject the stores, settings and Airtable collaborators into the routes module.

    Called by the app factory during startup.
    """
    global _repository, _settings, _oauth_client, _token_provider, _client_factory, _response_sink
    _repository = repository
    _settings = settings
    _oauth_client = oauth_client
    _token_provider = token_provider
    _client_factory = client_factory
    _response_sink = response_sink


def _require_configured() -> None:
    if _repository is None or _settings is None:
        raise HTTPException(status_code=500, detail="Server not properly configured")


def require_user(user_id: str | None = Cookie(default=None, alias=USER_COOKIE)) -> User:
    """Resolve the signed-in user from the session cookie."""
    _require_configured()
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    user = _repository.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def _client_for(user: User):
    try:
        token = await _token_provider.get_access_token(user)
    except OAuthError as e:
        logger.warning("Token refresh failed for user %s: %s", user.id, e.message)
        raise HTTPException(status_code=401, detail="Airtable session expired, please log in again")
    return _client_factory(token)


def _load_form(form_id: str) -> FormDefinition:
    _require_configured()
    form = _repository.get_form(form_id)
    if form is None:
        raise HTTPException(status_code=404, detail="Form not found")
    return form


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json")


# --- Request Models ---


class CreateFormRequest(BaseModel):
    """Request body for POST /api/forms."""

    base_id: str = Field(..., alias="baseId")
    table_id: str = Field(..., alias="tableId")
    title: str = "Untitled form"
    fields: list[FieldDefinition] = Field(default_factory=list)


class AnswersRequest(BaseModel):
    """Request body for the visibility endpoint."""

    answers: dict[str, Any] = Field(default_factory=dict)


# --- Auth ---


@auth_router.get("/login")
async def login():
    """Redirect to Airtable's consent page with a fresh PKCE challenge."""
    _require_configured()
    if not _settings.oauth_configured:
        raise HTTPException(status_code=500, detail="Airtable OAuth is not configured")

    verifier = oauth.generate_code_verifier()
    state = oauth.generate_state()
    url = oauth.build_authorize_url(_settings, oauth.code_challenge(verifier), state)

    response = RedirectResponse(url, status_code=307)
    response.set_cookie(VERIFIER_COOKIE, verifier, httponly=True, max_age=VERIFIER_MAX_AGE_SECONDS)
    response.set_cookie(STATE_COOKIE, state, httponly=True, max_age=VERIFIER_MAX_AGE_SECONDS)
    return response


@auth_router.get("/callback")
async def callback(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
):
    """Exchange the authorization code and remember the connected account."""
    _require_configured()
    if error:
        raise HTTPException(status_code=400, detail=f"Error: {error_description or error}")
    if not code:
        raise HTTPException(status_code=400, detail="No code received.")

    verifier = request.cookies.get(VERIFIER_COOKIE)
    if not verifier:
        raise HTTPException(status_code=400, detail="Session expired.")
    expected_state = request.cookies.get(STATE_COOKIE)
    if not expected_state or state != expected_state:
        raise HTTPException(status_code=400, detail="State mismatch.")

    try:
        tokens = await _oauth_client.exchange_code(code, verifier)
        me = await _client_factory(tokens.access_token).whoami()
    except (OAuthError, AirtableError) as e:
        logger.error("Auth error: %s", e)
        raise HTTPException(status_code=500, detail="Auth failed")

    user = _repository.upsert_user(
        airtable_user_id=me["id"],
        email=me.get("email"),
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_at=tokens.expires_at,
    )
    logger.info("Connected Airtable account %s as user %s", me["id"], user.id)

    response = RedirectResponse(_settings.frontend_url, status_code=307)
    response.delete_cookie(VERIFIER_COOKIE)
    response.delete_cookie(STATE_COOKIE)
    response.set_cookie(USER_COOKIE, user.id, httponly=False, samesite="lax")
    return response


# --- Account and schema source ---


@router.get("/me")
async def me(user: User = Depends(require_user)):
    return {"id": user.id, "email": user.email}


@router.get("/bases")
async def list_bases(user: User = Depends(require_user)):
    """List the bases the connected account can read."""
    client = await _client_for(user)
    try:
        return await client.list_bases()
    except AirtableError as e:
        raise HTTPException(status_code=502, detail=f"Failed to fetch bases: {e.message}")


@router.get("/bases/{base_id}/tables")
async def list_tables(base_id: str, user: User = Depends(require_user)):
    """List a base's tables, keeping only fields the builder supports."""
    client = await _client_for(user)
    try:
        tables = await client.list_tables(base_id)
    except AirtableError as e:
        raise HTTPException(status_code=502, detail=f"Failed to fetch tables: {e.message}")
    return [normalize_table(t) for t in tables]


# --- Forms ---


@router.post("/forms")
async def create_form(request: CreateFormRequest, user: User = Depends(require_user)):
    """Save a form and, when a public URL is configured, register a webhook."""
    try:
        form = FormDefinition(
            owner_id=user.id,
            base_id=request.base_id,
            table_id=request.table_id,
            title=request.title,
            fields=request.fields,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=[err["msg"] for err in e.errors()])

    _repository.create_form(form)
    logger.info("Saved form %s (%d fields) for user %s", form.id, len(form.fields), user.id)

    if _settings.public_base_url:
        webhook_url = f"{_settings.public_base_url}/webhooks/airtable/{form.id}"
        try:
            client = await _client_for(user)
            form.webhook_id = await client.create_webhook(form.base_id, webhook_url)
            _repository.set_webhook_id(form.id, form.webhook_id)
            logger.info("Webhook %s registered for form %s", form.webhook_id, form.id)
        except (AirtableError, HTTPException) as e:
            logger.warning("Webhook registration failed for form %s: %s", form.id, e)

    return _dump(form)


@router.get("/forms")
async def list_forms(user: User = Depends(require_user)):
    return [_dump(f) for f in _repository.list_forms(user.id)]


@router.get("/forms/{form_id}")
async def get_form(form_id: str):
    """Return a form definition for the public renderer."""
    return _dump(_load_form(form_id))


@router.post("/forms/{form_id}/visibility")
async def evaluate_visibility(form_id: str, request: AnswersRequest):
    """Report which fields are visible and which required ones are missing."""
    form = _load_form(form_id)
    missing = missing_required_fields(form.fields, request.answers)
    return {
        "visibleFieldIds": [f.field_id for f in visible_fields(form.fields, request.answers)],
        "missingRequired": [f.label or f.field_id for f in missing],
    }


@router.post("/forms/{form_id}/submit")
async def submit_form(form_id: str, answers: dict[str, Any] = Body(...)):
    """Accept a public submission, mirror it to Airtable and store it."""
    form = _load_form(form_id)
    try:
        response = await _response_sink.submit(form, answers)
    except MissingRequiredFieldsError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except (AirtableError, OAuthError, SubmissionError) as e:
        logger.error("Submission failed for form %s: %s", form_id, e)
        raise HTTPException(status_code=502, detail="Submission failed")
    return {"success": True, "responseId": response.id, "airtableRecordId": response.airtable_record_id}


@router.get("/forms/{form_id}/responses")
async def list_responses(form_id: str, user: User = Depends(require_user)):
    """Return the form's responses, newest first. Owner only."""
    form = _load_form(form_id)
    if form.owner_id != user.id:
        raise HTTPException(status_code=404, detail="Form not found")
    return [_dump(r) for r in _repository.list_responses(form_id)]


# --- Templates ---


@router.get("/templates")
async def get_templates():
    """List bundled form templates."""
    return {
        "templates": [
            {"name": t.name, "title": t.title, "fieldCount": len(t.fields)}
            for t in list_templates()
        ]
    }


@router.get("/templates/{name}")
async def get_template(name: str):
    for t in list_templates():
        if t.name == name:
            return {
                "name": t.name,
                "title": t.title,
                "description": t.description,
                "fields": [_dump(f) for f in t.fields],
            }
    raise HTTPException(status_code=404, detail=f"Template '{name}' not found")


# --- Webhooks ---


@webhook_router.post("/airtable/{form_id}")
async def airtable_webhook(form_id: str, request: Request):
    """Acknowledge an Airtable change notification.

    Airtable pings carry no payload; changes would have to be fetched
    through the webhook payloads endpoint, which this service does not do.
    """
    body = await request.body()
    logger.info("Webhook received for form %s (%d bytes)", form_id, len(body))
    return {"status": "ok"}


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
