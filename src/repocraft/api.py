import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.exceptions import RequestValidationError
from fastapi.requests import Request
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from repocraft import auth, config, core, database, github, llm, models, publish, usage, users
from repocraft.database import User, get_db

logger = logging.getLogger(__name__)

STREAMING_KIND_VALUES = {kind.value for kind in models.STREAMING_KINDS}

STATUS_REASONS = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    422: "validation_error",
    429: "rate_limited",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    await database.init_db()
    yield
    await database.close_db()


app = FastAPI(title="RepoCraft", lifespan=lifespan)
app.add_middleware(
    SessionMiddleware,
    secret_key=config.get_config().session_secret,
    max_age=config.get_config().session_max_age,
    same_site="lax",
)
app.include_router(auth.router)


def _error_response(request: Request, status_code: int, reason: str, message: str, **extra) -> Response:
    # Streaming endpoints answer with a plain status line, JSON elsewhere.
    if request.path_params.get("kind") in STREAMING_KIND_VALUES:
        return PlainTextResponse(f"{status_code} {reason}: {message}", status_code=status_code)
    body = models.ErrorResponse(reason=reason, message=message).model_dump()
    return JSONResponse(status_code=status_code, content={**body, **extra})


@app.exception_handler(github.GitHubError)
async def github_error_handler(request: Request, exc: github.GitHubError) -> Response:
    logger.error(f"GitHub error: {exc}")
    reason = STATUS_REASONS.get(exc.status_code, "upstream_error")
    return _error_response(request, exc.status_code, reason, exc.message)


@app.exception_handler(llm.LLMConfigError)
async def llm_config_error_handler(request: Request, exc: llm.LLMConfigError) -> Response:
    logger.error(f"LLM misconfigured: {exc}")
    return _error_response(request, 500, "llm_misconfigured", str(exc))


@app.exception_handler(llm.LLMError)
async def llm_error_handler(request: Request, exc: llm.LLMError) -> Response:
    logger.error(f"LLM error: {exc}")
    return _error_response(request, 500, "llm_error", f"Failed to generate content: {exc}")


@app.exception_handler(auth.AuthRequiredError)
async def auth_error_handler(request: Request, exc: auth.AuthRequiredError) -> Response:
    return _error_response(request, 401, "unauthorized", exc.message)


@app.exception_handler(auth.UserNotFoundError)
async def user_not_found_handler(request: Request, exc: auth.UserNotFoundError) -> Response:
    return _error_response(request, 404, "user_not_found", "User not found")


@app.exception_handler(usage.UsageLimitError)
async def usage_limit_handler(request: Request, exc: usage.UsageLimitError) -> Response:
    return _error_response(request, 429, "rate_limited", str(exc), remaining=exc.remaining)


@app.exception_handler(publish.PublishError)
async def publish_error_handler(request: Request, exc: publish.PublishError) -> Response:
    logger.error(str(exc))
    return _error_response(request, 500, "publish_failed", str(exc))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    reason = STATUS_REASONS.get(exc.status_code, "error")
    return _error_response(request, exc.status_code, reason, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> Response:
    messages = "; ".join(
        f"{'.'.join(str(loc) for loc in e['loc'])}: {e['msg']}" for e in exc.errors()
    )
    return _error_response(request, 422, "validation_error", messages)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> Response:
    logger.exception("Unhandled error")
    return _error_response(request, 500, "internal_error", "Internal server error")


@app.get("/")
async def root():
    return {
        "service": "RepoCraft",
        "usage": "Sign in at /auth/login, then browse /api/repos and POST /api/generate/{kind}",
        "docs": "/docs",
    }


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/me", response_model=models.UserProfile)
async def me(user: User = Depends(auth.current_user)) -> models.UserProfile:
    return users.to_profile(user)


@app.get("/api/repos", response_model=models.RepoListResponse)
async def list_repos(
    page: int = Query(1, ge=1),
    q: str | None = None,
    session: auth.SessionUser = Depends(auth.require_session),
) -> models.RepoListResponse:
    return await core.list_repos(session.access_token, session.login, page, q)


@app.get("/api/repos/{name}/details", response_model=models.RepoDetails)
async def repo_details(
    name: str,
    owner: str | None = None,
    session: auth.SessionUser = Depends(auth.require_session),
) -> models.RepoDetails:
    if not owner:
        raise HTTPException(status_code=400, detail="Missing owner")
    return await core.get_repo_details(session.access_token, owner, name)


@app.post("/api/repos/{name}/update-readme", response_model=models.PublishResult)
async def update_readme(
    name: str,
    payload: models.UpdateReadmeRequest,
    session: auth.SessionUser = Depends(auth.require_session),
) -> models.PublishResult:
    if not payload.owner or not payload.readme:
        raise HTTPException(status_code=400, detail="Missing owner or readme")
    return await publish.publish_readme(payload.owner, name, payload.readme, session.access_token)


@app.post(
    "/api/generate/{kind}",
    response_model=models.GenerateResponse,
    responses={200: {"content": {"text/plain": {}}}},
)
async def generate(
    kind: models.GenerationKind,
    payload: models.GenerationRequest,
    response: Response,
    user: User = Depends(auth.current_user),
    db: AsyncSession = Depends(get_db),
):
    llm.ensure_configured()
    headers = {}
    # Users with their own API key are not metered.
    if not user.api_key:
        decision = await usage.check_and_consume(db, str(user.id))
        if not decision.allowed:
            raise usage.UsageLimitError(decision.remaining)
        headers["X-Usage-Remaining"] = str(decision.remaining)

    if kind in models.STREAMING_KINDS:
        chunks = await core.stream_content(kind, payload)
        return StreamingResponse(chunks, media_type="text/plain; charset=utf-8", headers=headers)

    content = await core.generate_content(kind, payload)
    response.headers.update(headers)
    return models.GenerateResponse(content=content)


@app.get("/api/usage", response_model=models.UsageResponse)
async def get_usage(
    user: User = Depends(auth.current_user),
    db: AsyncSession = Depends(get_db),
) -> models.UsageResponse:
    return await usage.get_usage(db, str(user.id))
