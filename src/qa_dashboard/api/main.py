"""
FastAPI backend for the QA dashboard.
Atlassian login, Jira snapshot and hierarchy endpoints, AI chat and export.
"""
from contextlib import asynccontextmanager, suppress
from datetime import datetime
from typing import Any, Dict, List, Optional
import asyncio
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from qa_dashboard import __version__
from qa_dashboard.agents.chat_assistant import ChatAssistantAgent
from qa_dashboard.clients.jira_client import JiraClient
from qa_dashboard.clients.llm_client import LLMClient
from qa_dashboard.clients.oauth_client import AtlassianOAuthClient
from qa_dashboard.core.config import Settings, configure_logging
from qa_dashboard.core.exceptions import DashboardError, NotFoundError, PermissionDeniedError
from qa_dashboard.core.models import BulkSnapshot, ExportKind, MessageRole, ParsedItem
from qa_dashboard.utils.ai_response_parser import parse_ai_response
from qa_dashboard.utils.export_confirmation import detect_export_confirmation
from qa_dashboard.utils.exporter import ExportPipeline
from qa_dashboard.utils.hierarchy import build_snapshot_hierarchy, compute_stats
from qa_dashboard.utils.issue_normalizer import extract_test_cases_from_story
from qa_dashboard.utils.session_manager import JiraCredentials, SessionManager, conversation_context_key
from qa_dashboard.utils.snapshot_cache import (
    SnapshotCache,
    SnapshotRefresher,
    load_bulk_snapshot,
    resolve_selected_project,
)

logger = logging.getLogger(__name__)

SESSION_COOKIE = "qa_session"
SELECTED_PROJECT_COOKIE = "selectedProjectKey"

settings = Settings.from_env()

session_manager = SessionManager(ttl_hours=settings.session_ttl_hours)
snapshot_cache = SnapshotCache(ttl_seconds=settings.session_ttl_hours * 3600)
oauth_client = AtlassianOAuthClient(
    client_id=settings.client_id,
    client_secret=settings.client_secret,
    redirect_uri=settings.redirect_uri,
    scopes=settings.oauth_scopes,
    timeout=settings.request_timeout,
)
llm_client = LLMClient(
    api_key=settings.openai_api_key,
    model=settings.openai_model,
    timeout=settings.request_timeout,
)


def get_jira_client(creds: JiraCredentials, not_found_message: str = "Not found") -> JiraClient:
    return JiraClient(
        creds.access_token,
        creds.cloud_id,
        timeout=settings.request_timeout,
        read_retries=settings.read_retries,
        page_size=settings.search_page_size,
        not_found_message=not_found_message,
    )


def snapshot_loader(creds: JiraCredentials):
    """Blocking loader for one session's bulk snapshot"""
    def load() -> BulkSnapshot:
        return load_bulk_snapshot(get_jira_client(creds), settings.epic_link_field, settings.max_issues)
    return load


refresher = SnapshotRefresher(
    snapshot_cache,
    session_manager,
    lambda creds: snapshot_loader(creds),
    interval_seconds=settings.auto_refresh_seconds,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    task = asyncio.create_task(refresher.run_forever())
    try:
        yield
    finally:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


# Initialize FastAPI app
app = FastAPI(
    title="QA Dashboard API",
    description="Jira test coverage dashboard with an AI assistant that drafts and exports test cases",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for the frontend dev servers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DashboardError)
async def dashboard_error_handler(request: Request, exc: DashboardError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Request models

class SelectedProjectRequest(BaseModel):
    projectKey: str


class ExportRequest(BaseModel):
    type: ExportKind
    parentKey: str
    items: Optional[List[Dict[str, Any]]] = None
    content: Optional[str] = None


class ChatRequest(BaseModel):
    message: str
    storyKey: Optional[str] = None
    epicKey: Optional[str] = None


# Helpers

def _session_id(request: Request) -> Optional[str]:
    return request.cookies.get(SESSION_COOKIE)


def _set_session_cookie(response, session_id: str) -> None:
    response.set_cookie(
        SESSION_COOKIE,
        session_id,
        max_age=settings.session_ttl_hours * 3600,
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )


def _require_session(request: Request):
    session_id = _session_id(request)
    return session_id, session_manager.require_credentials(session_id)


async def _get_snapshot(session_id: str, creds: JiraCredentials, force: bool = False) -> BulkSnapshot:
    return await asyncio.to_thread(snapshot_cache.get_or_load, session_id, snapshot_loader(creds), force)


def _stored_project(request: Request, session_id: str) -> Optional[str]:
    return session_manager.get_selected_project(session_id) or request.cookies.get(SELECTED_PROJECT_COOKIE)


def _items_from_request(body: ExportRequest) -> List[ParsedItem]:
    if body.content:
        return parse_ai_response(body.content, body.type)

    items = []
    for raw in body.items or []:
        try:
            items.append(ParsedItem(
                title=str(raw.get("title") or ""),
                description=str(raw.get("description") or ""),
                kind=body.type,
                steps=raw.get("steps"),
                expected_result=raw.get("expected_result"),
                acceptance_criteria=raw.get("acceptance_criteria"),
                priority=raw.get("priority"),
            ))
        except ValueError as e:
            logger.info("Dropping export item: %s", e)
    return items


def _export_summary(report) -> str:
    noun = "test case" if report.export_type == ExportKind.TEST_CASE else "user story"
    if not report.success:
        return f"Export to {report.parent_key} failed: none of the {len(report.results)} items could be created."
    lines = [f"Exported {report.successful} of {len(report.results)} {noun} items to {report.parent_key}:"]
    for result in report.results:
        if result.success:
            lines.append(f"- {result.issue_key}: {result.item}")
        else:
            lines.append(f"- Failed: {result.item}")
    return "\n".join(lines)


# Auth

@app.get("/auth/atlassian")
async def begin_login(request: Request):
    """Start the Atlassian OAuth flow."""
    session_id = _session_id(request) or session_manager.new_session_id()
    state = oauth_client.generate_state()
    session_manager.store_oauth_state(session_id, state)

    response = RedirectResponse(oauth_client.authorization_url(state), status_code=302)
    _set_session_cookie(response, session_id)
    return response


@app.get("/auth/callback")
async def oauth_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None
):
    """Complete the OAuth flow and remember the token and Jira site."""
    if error:
        logger.warning("Atlassian returned an OAuth error: %s", error)
        return RedirectResponse(f"{settings.frontend_url}?error={error}", status_code=302)

    session_id = _session_id(request)
    session_manager.consume_oauth_state(session_id, state)
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")

    tokens = await asyncio.to_thread(oauth_client.exchange_code, code)
    resources = await asyncio.to_thread(oauth_client.accessible_resources, tokens["access_token"])
    if not resources:
        raise PermissionDeniedError("No accessible Jira sites for this account")

    site = resources[0]
    session_manager.store_credentials(
        session_id,
        access_token=tokens["access_token"],
        cloud_id=site["id"],
        site_name=site.get("name", ""),
        expires_in=tokens.get("expires_in"),
    )
    snapshot_cache.invalidate(session_id)
    return RedirectResponse(settings.frontend_url, status_code=302)


@app.get("/auth/me")
async def current_user(request: Request):
    _, creds = _require_session(request)
    me = await asyncio.to_thread(get_jira_client(creds).get_myself)
    return {
        "name": me.get("displayName"),
        "email": me.get("emailAddress"),
        "account_id": me.get("accountId"),
        "picture": (me.get("avatarUrls") or {}).get("48x48"),
        "siteName": creds.site_name,
    }


@app.post("/auth/logout")
async def logout(request: Request):
    session_id = _session_id(request)
    session_manager.clear_session(session_id)
    if session_id:
        snapshot_cache.forget(session_id)

    response = JSONResponse({"success": True})
    response.delete_cookie(SESSION_COOKIE)
    response.delete_cookie(SELECTED_PROJECT_COOKIE)
    return response


# Health

@app.get("/")
async def root():
    return {"name": "QA Dashboard API", "version": __version__}


@app.get("/health")
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "ai": llm_client.status_label(),
        "sessions": session_manager.get_stats(),
        "timestamp": datetime.now().isoformat()
    }


# Jira data

@app.get("/api/projects")
async def list_projects(request: Request):
    session_id, creds = _require_session(request)
    snapshot = await _get_snapshot(session_id, creds)
    return {
        "success": True,
        "cloudId": creds.cloud_id,
        "siteName": creds.site_name,
        "totalProjects": len(snapshot.projects),
        "projects": [p.to_dict() for p in snapshot.projects],
        "selectedProjectKey": resolve_selected_project(snapshot.projects, _stored_project(request, session_id)),
    }


@app.get("/api/bulk-data")
async def bulk_data(request: Request, refresh: bool = False):
    """Full normalized snapshot; refresh=true forces a reload from Jira."""
    session_id, creds = _require_session(request)
    snapshot = await _get_snapshot(session_id, creds, force=refresh)
    return snapshot.to_dict()


@app.get("/api/hierarchy/{project_key}")
async def project_hierarchy(project_key: str, request: Request):
    session_id, creds = _require_session(request)
    snapshot = await _get_snapshot(session_id, creds)
    if project_key not in {p.key for p in snapshot.projects}:
        raise NotFoundError(f"Project {project_key} not found")
    return build_snapshot_hierarchy(snapshot, project_key).to_dict()


@app.get("/api/testcases/{story_key}")
async def story_test_cases(story_key: str, request: Request):
    _, creds = _require_session(request)
    story = await asyncio.to_thread(get_jira_client(creds).get_story_test_cases, story_key)
    test_cases = extract_test_cases_from_story(story)
    return {
        "storyKey": story_key,
        "testCases": [tc.to_dict() for tc in test_cases],
        "stats": compute_stats(test_cases).to_dict(),
    }


@app.get("/api/selected-project")
async def get_selected_project(request: Request):
    session_id, creds = _require_session(request)
    snapshot = await _get_snapshot(session_id, creds)
    return {"projectKey": resolve_selected_project(snapshot.projects, _stored_project(request, session_id))}


@app.put("/api/selected-project")
async def put_selected_project(body: SelectedProjectRequest, request: Request):
    session_id, creds = _require_session(request)
    snapshot = await _get_snapshot(session_id, creds)
    if body.projectKey not in {p.key for p in snapshot.projects}:
        raise NotFoundError(f"Project {body.projectKey} not found")

    session_manager.set_selected_project(session_id, body.projectKey)
    response = JSONResponse({"projectKey": body.projectKey})
    response.set_cookie(SELECTED_PROJECT_COOKIE, body.projectKey, max_age=365 * 24 * 3600, samesite="lax")
    return response


# Export and chat

async def _run_export(session_id: str, creds: JiraCredentials, kind: ExportKind, parent_key: str, items):
    pipeline = ExportPipeline(
        get_jira_client(creds),
        epic_link_field=settings.epic_link_field,
        test_case_issue_type=settings.test_case_issue_type,
    )
    report = await asyncio.to_thread(pipeline.export, kind, parent_key, items)
    if report.success:
        snapshot_cache.invalidate(session_id)
    return report


@app.post("/api/export-items")
async def export_items(body: ExportRequest, request: Request):
    """Create Jira issues from AI drafts (parsed items or raw assistant text)."""
    session_id, creds = _require_session(request)
    items = _items_from_request(body)
    report = await _run_export(session_id, creds, body.type, body.parentKey, items)
    return report.to_dict()


def _chat_context(session_id: str, story_key: Optional[str], epic_key: Optional[str]) -> Dict[str, Any]:
    """Story/epic details from the cached snapshot, if there is one"""
    context: Dict[str, Any] = {}
    snapshot = snapshot_cache.get(session_id)
    if story_key:
        node = build_snapshot_hierarchy(snapshot).find_story(story_key) if snapshot else None
        context["story"] = node.to_dict() if node else {"key": story_key}
    if epic_key:
        epic = next((e for e in snapshot.epics if e.key == epic_key), None) if snapshot else None
        context["epic"] = epic.to_dict() if epic else {"key": epic_key}
    return context


@app.post("/api/chat")
async def chat(body: ChatRequest, request: Request):
    session_id, creds = _require_session(request)
    if not body.message.strip():
        raise HTTPException(status_code=400, detail="Message is required")

    context_key = conversation_context_key(body.storyKey, body.epicKey)
    prior = session_manager.get_conversation(session_id, context_key)
    session_manager.append_message(session_id, context_key, MessageRole.USER, body.message)

    resolved = session_manager.resolved_export_offers(session_id, context_key)
    decision = detect_export_confirmation(body.message, prior, resolved)
    if decision.should_export:
        parent_key = body.storyKey if decision.export_type == ExportKind.TEST_CASE else body.epicKey
        export = None
        if not parent_key:
            target = "story" if decision.export_type == ExportKind.TEST_CASE else "epic"
            content = f"Select a {target} first so I know where to export these items."
        else:
            items = parse_ai_response(decision.content, decision.export_type)
            if not items:
                session_manager.resolve_export_offer(session_id, context_key, decision.message_id)
                content = "No valid items found to export"
            else:
                report = await _run_export(session_id, creds, decision.export_type, parent_key, items)
                # A fully failed export stays pending so the user can retry with another "yes"
                if report.success:
                    session_manager.resolve_export_offer(session_id, context_key, decision.message_id)
                export = report.to_dict()
                content = _export_summary(report)
        reply = session_manager.append_message(session_id, context_key, MessageRole.BOT, content)
        return {"content": reply.content, "messageId": reply.id, "contextKey": context_key, "export": export}

    agent = ChatAssistantAgent(llm_client)
    agent_context = _chat_context(session_id, body.storyKey, body.epicKey)
    agent_context["conversation"] = session_manager.get_conversation(session_id, context_key)
    content, error = await asyncio.to_thread(agent.run, agent_context)
    if error:
        raise DashboardError("Failed to get AI response", code="llm_failure", details=error, status_code=502)

    reply = session_manager.append_message(session_id, context_key, MessageRole.BOT, content)
    return {"content": reply.content, "messageId": reply.id, "contextKey": context_key, "export": None}


@app.get("/api/chat/{context_key}")
async def get_conversation(context_key: str, request: Request):
    session_id, _ = _require_session(request)
    messages = session_manager.get_conversation(session_id, context_key)
    return {"contextKey": context_key, "messages": [m.to_dict() for m in messages]}


if __name__ == "__main__":
    import uvicorn
    # Set API_HOST=0.0.0.0 to listen on all interfaces
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
