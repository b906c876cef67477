"""FastAPI app for the front-end editing service."""

from __future__ import annotations

import os
import re
import sys
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from fastapi.responses import HTMLResponse, JSONResponse

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

import time
import json
import logging

from app.auth import SupabaseAuthMiddleware, auth_disabled
from app.csrf import TOKEN_FIELD, TOKEN_HEADER, CsrfGuard
from app.db import get_db_ms, get_db_stats, reset_db_ms
from app.edit_form import fields_from_form, render_edit_form
from app.site import load_definition, load_site, page_context
from app.stores_db import DbRecordStore
from app.template_render import render_template
from editability import GUEST, Actor, can_edit_field, can_edit_front
from field_support import parse_inline_types
from frontedit.marker_syntax import DEFAULT_ATTR, DEFAULT_TAG
from frontedit.names import is_digits, split_field_list
from record_store import MemoryRecordStore
from region_scanner import process_document
from render_context import EditorConfig, RenderContext
from save_pipeline import STATUS_ERROR, SaveOutcome, SavePipeline


app = FastAPI(title="frontedit")
logger = logging.getLogger("frontedit.http")
logging.basicConfig(level=logging.INFO)

SUPABASE_URL = os.getenv("SUPABASE_URL", "").strip()
SUPABASE_AUD = os.getenv("SUPABASE_JWT_AUD", "").strip() or None
DISABLE_AUTH = auth_disabled()
logger.info("auth_disabled=%s supabase_url=%s supabase_aud=%s", DISABLE_AUTH, SUPABASE_URL, SUPABASE_AUD)

USE_DB = os.getenv("USE_DB", "").strip() == "1"
SITE_FILE = os.getenv("FRONTEDIT_SITE_FILE", "").strip() or None
LANGUAGES = [int(part) for part in os.getenv("FRONTEDIT_LANGUAGES", "").split(",") if is_digits(part.strip())]
DEV_ROLES = [role.strip() for role in os.getenv("FRONTEDIT_DEV_ROLES", "admin").split(",") if role.strip()]
APP_ENV = os.getenv("APP_ENV", os.getenv("ENV", "dev")).strip().lower() or "dev"
IS_DEV = APP_ENV == "dev"
REQ_SLOW_MS = float(os.getenv("FRONTEDIT_REQ_SLOW_MS", "250"))
_CORS_ORIGINS = sorted(
    {
        origin.strip().rstrip("/")
        for origin in os.getenv("FRONTEDIT_CORS_ORIGINS", "").split(",")
        if origin.strip()
    }
)

EDITOR_CONFIG = EditorConfig(
    tag_name=os.getenv("FRONTEDIT_TAG", "").strip() or DEFAULT_TAG,
    attr_name=os.getenv("FRONTEDIT_ATTR", "").strip() or DEFAULT_ATTR,
    edit_url=os.getenv("FRONTEDIT_EDIT_URL", "").strip() or "/edit/modal",
    save_url=os.getenv("FRONTEDIT_SAVE_URL", "").strip() or "/edit/save",
    inline_types=parse_inline_types(os.getenv("FRONTEDIT_INLINE_TYPES")),
)

CONFIG_SCRIPT_ID = "fe-edit-config"
_BODY_CLOSE_RE = re.compile(r"</body\s*>", re.IGNORECASE)


def _build_store(definition: dict | None = None):
    if USE_DB:
        record_store = DbRecordStore(languages=LANGUAGES, inline_types=EDITOR_CONFIG.inline_types)
    else:
        record_store = MemoryRecordStore(languages=LANGUAGES, inline_types=EDITOR_CONFIG.inline_types)
    return load_site(record_store, definition or load_definition(SITE_FILE))


store = _build_store()
csrf = CsrfGuard.from_env()


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    reset_db_ms()
    start = time.perf_counter()
    response = await call_next(request)
    total_ms = (time.perf_counter() - start) * 1000
    auth_ms = getattr(request.state, "auth_ms", 0.0)
    db_ms = get_db_ms()
    route = request.scope.get("route")
    route_name = getattr(route, "name", None) or "unknown"
    logger.info(
        "%s %s %s route=%s total_ms=%.1f auth_ms=%.1f db_ms=%.1f db_q=%s",
        request.method,
        request.url.path,
        response.status_code,
        route_name,
        total_ms,
        auth_ms,
        db_ms,
        get_db_stats().get("queries", 0),
    )
    if total_ms >= REQ_SLOW_MS:
        logger.warning(
            "slow_request method=%s path=%s route=%s total_ms=%.1f status=%s",
            request.method,
            request.url.path,
            route_name,
            total_ms,
            response.status_code,
        )
    if IS_DEV:
        response.headers["X-Req-MS"] = f"{total_ms:.1f}"
        response.headers["X-DB-MS"] = f"{db_ms:.1f}"
        response.headers["X-Route"] = route_name
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s", request.url.path)
    return _error_response("INTERNAL_ERROR", "Unexpected server error", detail={"error": str(exc)}, status=500)


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": True, **payload, "errors": [], "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _resolve_actor(request: Request) -> Actor:
    user = getattr(request.state, "user", None)
    if DISABLE_AUTH and (not user or not user.get("id")):
        return Actor(id="dev-user", roles=list(DEV_ROLES), email="dev@example.com")
    if not user or not user.get("id"):
        return GUEST
    roles = [role for role in user.get("roles") or [] if isinstance(role, str)]
    return Actor(
        id=str(user.get("id")),
        roles=roles or ["guest"],
        superuser="superadmin" in roles,
        email=user.get("email"),
    )


class ActorContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS" or request.url.path in {"/health"}:
            return await call_next(request)
        request.state.actor = _resolve_actor(request)
        return await call_next(request)


app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ORIGINS,
    allow_origin_regex=r"http://localhost:\d+|http://127\.0\.0\.1:\d+",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(ActorContextMiddleware)
if not DISABLE_AUTH:
    if not SUPABASE_URL:
        raise RuntimeError("SUPABASE_URL is required for auth")
    app.add_middleware(SupabaseAuthMiddleware, supabase_url=SUPABASE_URL, audience=SUPABASE_AUD)


def _actor(request: Request) -> Actor:
    return getattr(request.state, "actor", None) or GUEST


def _language_id(value: Any) -> int | None:
    if not store.languages_active:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        candidate = value
    elif isinstance(value, str) and is_digits(value.strip()):
        candidate = int(value.strip())
    else:
        return store.default_language
    return candidate if candidate in store.languages else store.default_language


def _session_id(actor: Actor) -> str:
    return actor.id or "guest"


def _config_script(ctx: RenderContext, token: str) -> str:
    payload = {
        "saveUrl": ctx.config.save_url,
        "editUrl": ctx.config.edit_url,
        "pageId": ctx.page.id,
        "language": ctx.language_id,
        "csrf": {"header": TOKEN_HEADER, "field": TOKEN_FIELD, "token": token},
        "modal": {
            "buttons": ctx.config.modal_buttons,
            "autoclose": ctx.config.modal_autoclose,
            "close": ctx.config.modal_close,
        },
    }
    data = json.dumps(payload, separators=(",", ":")).replace("</", "<\\/")
    return f'<script type="application/json" id="{CONFIG_SCRIPT_ID}">{data}</script>'


def _inject_config(html: str, script: str) -> str:
    matches = list(_BODY_CLOSE_RE.finditer(html))
    if not matches:
        return html + script
    last = matches[-1]
    return html[: last.start()] + script + html[last.start() :]


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.get("/pages/{locator:path}")
async def view_page(request: Request, locator: str, edit: str | None = None, language: str | None = None):
    record = store.get(locator or "/")
    if record is None or record.is_derived:
        return _error_response("PAGE_NOT_FOUND", "Page not found", "locator", status=404)
    template = store.template(record.template) or {}
    language_id = _language_id(language)
    html = render_template(
        template.get("markup"),
        page_context(store, record, language_id),
        strict=False,
        tag=EDITOR_CONFIG.tag_name,
    )
    actor = _actor(request)
    ctx = RenderContext(
        store=store,
        page=record,
        actor=actor,
        config=EDITOR_CONFIG,
        language_id=language_id,
        languages_active=store.languages_active,
    )
    editing_allowed = edit != "0" and can_edit_front(record, actor)
    html = process_document(html, ctx, editing_allowed)
    if ctx.editors:
        html = _inject_config(html, _config_script(ctx, csrf.issue(_session_id(actor))))
    return HTMLResponse(html)


async def _read_save_request(request: Request) -> tuple[dict, Any, Any, Any]:
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        body = await request.json()
        if not isinstance(body, dict):
            body = {}
        fields = body.get("fields") if isinstance(body.get("fields"), dict) else {}
        return fields, body.get("id"), body.get("language"), body.get(TOKEN_FIELD)
    form = await request.form()
    return fields_from_form(form), form.get("id"), form.get("language"), form.get(TOKEN_FIELD)


def _session_page(page_id: Any):
    if page_id is None or page_id == "":
        return None
    return store.get(page_id if isinstance(page_id, int) else str(page_id))


@app.post("/edit/save")
async def save_fields(request: Request) -> JSONResponse:
    actor = _actor(request)
    if actor.is_guest:
        return _error_response("AUTH_REQUIRED", "Authenticated user required", status=401)
    try:
        fields, page_id, language, token = await _read_save_request(request)
    except ValueError as exc:
        logger.info("save_request_invalid error=%s", exc)
        outcome = SaveOutcome(status=STATUS_ERROR, errors=["Invalid request body"])
        return JSONResponse(jsonable_encoder(outcome.to_dict()))
    token = request.headers.get(TOKEN_HEADER) or token

    def _check_csrf() -> None:
        csrf.validate(_session_id(actor), token)

    pipeline = SavePipeline(
        store,
        actor,
        page=_session_page(page_id),
        language_id=_language_id(language),
        languages_active=store.languages_active,
    )
    outcome = pipeline.run(fields, csrf_check=_check_csrf)
    return JSONResponse(jsonable_encoder(outcome.to_dict()))


def _modal_fields(record, names: list[str], actor: Actor) -> list:
    fields = []
    for name in names:
        fd = record.field(name)
        if fd is None or fd in fields:
            continue
        if can_edit_field(store, record, name, actor):
            fields.append(fd)
    return fields


@app.get("/edit/modal")
async def edit_modal(request: Request, record_id: str = Query("", alias="id"), fields: str = "", language: str | None = None):
    actor = _actor(request)
    if actor.is_guest:
        return _error_response("AUTH_REQUIRED", "Authenticated user required", status=401)
    record = store.get(record_id) if record_id else None
    if record is None:
        return _error_response("RECORD_NOT_FOUND", "Record not found", "id", status=404)
    editable = _modal_fields(record, split_field_list(fields), actor)
    if not editable:
        return _error_response("FORBIDDEN", "No editable fields", "fields", status=403)
    html = render_edit_form(
        record,
        editable,
        token=csrf.issue(_session_id(actor)),
        action=str(request.url),
        language_id=_language_id(language),
    )
    return HTMLResponse(html)


@app.post("/edit/modal")
async def submit_modal(request: Request, record_id: str = Query("", alias="id"), fields: str = "", language: str | None = None):
    actor = _actor(request)
    if actor.is_guest:
        return _error_response("AUTH_REQUIRED", "Authenticated user required", status=401)
    form = await request.form()
    record_id = form.get("id") or record_id
    record = store.get(str(record_id)) if record_id else None
    if record is None:
        return _error_response("RECORD_NOT_FOUND", "Record not found", "id", status=404)
    language_id = _language_id(form.get("language") or language)
    token = request.headers.get(TOKEN_HEADER) or form.get(TOKEN_FIELD)

    def _check_csrf() -> None:
        csrf.validate(_session_id(actor), token)

    pipeline = SavePipeline(
        store,
        actor,
        page=record,
        language_id=language_id,
        languages_active=store.languages_active,
        inline_only=False,
    )
    outcome = pipeline.run(fields_from_form(form), csrf_check=_check_csrf)
    fresh = store.get(record.id) or record
    names = split_field_list(fields) or [fd.name for fd in record.fields()]
    html = render_edit_form(
        fresh,
        _modal_fields(fresh, names, actor),
        token=csrf.issue(_session_id(actor)),
        action=str(request.url),
        language_id=language_id,
        outcome=outcome,
    )
    return HTMLResponse(html)


@app.get("/edit/token")
async def edit_token(request: Request) -> JSONResponse:
    actor = _actor(request)
    if actor.is_guest:
        return _error_response("AUTH_REQUIRED", "Authenticated user required", status=401)
    return _ok_response({"token": csrf.issue(_session_id(actor)), "header": TOKEN_HEADER})
