import asyncio
import base64
import json
import logging
from urllib.parse import quote

import httpx

from repocraft import config
from repocraft.models import FileTreeEntry

logger = logging.getLogger(__name__)

RAW_ACCEPT = "application/vnd.github.raw+json"
TRUNCATION_MARKER = "\n... [file truncated]"


class GitHubError(Exception):
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _api(path: str) -> str:
    return config.get_config().github.github_api_base.rstrip("/") + path


def _contents_path(owner: str, repo: str, path: str) -> str:
    return f"/repos/{owner}/{repo}/contents/{quote(path, safe='/')}"


def _make_headers(token: str | None, accept: str = "application/vnd.github+json") -> dict[str, str]:
    headers = {"Accept": accept, "X-GitHub-Api-Version": "2022-11-28"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


async def _request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    token: str | None,
    accept: str = "application/vnd.github+json",
    **kwargs,
) -> httpx.Response:
    try:
        return await client.request(method, url, headers=_make_headers(token, accept), **kwargs)
    except httpx.HTTPError as exc:
        raise GitHubError(f"Failed to connect to GitHub: {exc}") from exc


def _upstream_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text[:200]
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return resp.text[:200]


def _handle_error(resp: httpx.Response, context: str) -> None:
    if resp.status_code == 401:
        raise GitHubError("GitHub token is invalid or expired", status_code=401)
    if resp.status_code == 404:
        raise GitHubError(f"{context}: not found (or private)", status_code=404)
    if resp.status_code == 403:
        if "rate limit" in resp.text.lower():
            raise GitHubError("GitHub API rate limit exceeded", status_code=429)
        raise GitHubError(f"{context}: access denied ({_upstream_message(resp)})", status_code=403)
    if resp.status_code >= 400:
        raise GitHubError(f"GitHub API error ({resp.status_code}): {_upstream_message(resp)}")


def truncate(content: str, max_chars: int, marker: str = TRUNCATION_MARKER) -> str:
    if len(content) <= max_chars:
        return content
    return content[:max_chars] + marker


# -- read API ---------------------------------------------------------------


async def fetch_repo(client: httpx.AsyncClient, owner: str, repo: str, token: str | None) -> dict:
    resp = await _request(client, "GET", _api(f"/repos/{owner}/{repo}"), token)
    _handle_error(resp, "Repository")
    return resp.json()


async def fetch_repo_tree(
    client: httpx.AsyncClient,
    owner: str,
    repo: str,
    token: str | None,
    ref: str = "HEAD",
) -> list[FileTreeEntry]:
    resp = await _request(
        client, "GET", _api(f"/repos/{owner}/{repo}/git/trees/{ref}"), token, params={"recursive": "1"}
    )
    _handle_error(resp, "Repository tree")
    data = resp.json()
    if data.get("truncated"):
        logger.warning(f"Tree listing for {owner}/{repo} was truncated by GitHub")
    return [FileTreeEntry.model_validate(e) for e in data.get("tree", []) if "path" in e]


async def fetch_readme(client: httpx.AsyncClient, owner: str, repo: str, token: str | None) -> str:
    resp = await _request(client, "GET", _api(f"/repos/{owner}/{repo}/readme"), token, accept=RAW_ACCEPT)
    _handle_error(resp, "README")
    return resp.text


async def fetch_package_json(client: httpx.AsyncClient, owner: str, repo: str, token: str | None) -> dict | None:
    resp = await _request(client, "GET", _api(_contents_path(owner, repo, "package.json")), token)
    _handle_error(resp, "package.json")
    data = resp.json()
    if data.get("encoding") != "base64" or "content" not in data:
        return None
    try:
        parsed = json.loads(base64.b64decode(data["content"]).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as exc:
        logger.warning(f"Ignoring unparseable package.json in {owner}/{repo}: {exc}")
        return None
    return parsed if isinstance(parsed, dict) else None


async def fetch_raw_file(
    client: httpx.AsyncClient,
    owner: str,
    repo: str,
    path: str,
    token: str | None,
    timeout: float | None = None,
) -> str:
    kwargs = {"timeout": timeout} if timeout is not None else {}
    resp = await _request(
        client, "GET", _api(_contents_path(owner, repo, path)), token, accept=RAW_ACCEPT, **kwargs
    )
    _handle_error(resp, f"File '{path}'")
    return resp.text


async def fetch_key_files(
    client: httpx.AsyncClient,
    owner: str,
    repo: str,
    paths: list[str],
    token: str | None,
    batch_size: int = 5,
    timeout: float = 5.0,
    max_chars: int = 3_000,
) -> dict[str, str]:
    """Fetch raw contents for ``paths`` in sequential batches.

    Requests inside a batch run concurrently and every one of them settles
    before the next batch starts. A file that times out or errors is left
    out of the result; it never aborts the batch. ``timeout`` bounds each
    request as a whole, not just the individual socket operations.
    """

    async def _fetch_one(path: str) -> tuple[str, str | None]:
        try:
            content = await asyncio.wait_for(
                fetch_raw_file(client, owner, repo, path, token, timeout=timeout), timeout
            )
        except asyncio.TimeoutError:
            logger.warning(f"Failed to fetch {path}: timed out after {timeout}s")
            return path, None
        except GitHubError as exc:
            logger.warning(f"Failed to fetch {path}: {exc.message}")
            return path, None
        return path, truncate(content, max_chars)

    contents: dict[str, str] = {}
    failed = 0
    for start in range(0, len(paths), batch_size):
        batch = paths[start:start + batch_size]
        results = await asyncio.gather(*[_fetch_one(p) for p in batch])
        for path, content in results:
            # Empty files carry no context and count as misses.
            if not content:
                failed += 1
            else:
                contents[path] = content

    logger.info(f"Fetched {len(contents)}/{len(paths)} key files ({failed} failed)")
    return contents


async def list_user_repos(
    client: httpx.AsyncClient, token: str, page: int, per_page: int
) -> list[dict]:
    resp = await _request(
        client,
        "GET",
        _api("/user/repos"),
        token,
        params={"sort": "updated", "direction": "desc", "per_page": per_page, "page": page},
    )
    _handle_error(resp, "Repositories")
    return resp.json()


async def search_user_repos(
    client: httpx.AsyncClient, token: str, login: str, query: str, page: int, per_page: int
) -> list[dict]:
    resp = await _request(
        client,
        "GET",
        _api("/search/repositories"),
        token,
        params={
            "q": f"{query} in:name user:{login} fork:true",
            "sort": "updated",
            "per_page": per_page,
            "page": page,
        },
    )
    _handle_error(resp, "Repository search")
    return resp.json().get("items", [])


# -- OAuth ------------------------------------------------------------------


def authorize_url(state: str, redirect_uri: str) -> str:
    cfg = config.get_config().github
    params = httpx.QueryParams(
        client_id=cfg.github_client_id or "",
        redirect_uri=redirect_uri,
        scope="repo read:user user:email",
        state=state,
    )
    return f"{cfg.github_oauth_base.rstrip('/')}/login/oauth/authorize?{params}"


async def exchange_code(client: httpx.AsyncClient, code: str, redirect_uri: str) -> str:
    cfg = config.get_config().github
    if not cfg.github_client_id or not cfg.github_client_secret:
        raise GitHubError("GitHub OAuth is not configured")
    try:
        resp = await client.post(
            f"{cfg.github_oauth_base.rstrip('/')}/login/oauth/access_token",
            data={
                "client_id": cfg.github_client_id,
                "client_secret": cfg.github_client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
            },
            headers={"Accept": "application/json"},
        )
    except httpx.HTTPError as exc:
        raise GitHubError(f"Failed to connect to GitHub: {exc}") from exc
    _handle_error(resp, "OAuth token exchange")
    data = resp.json()
    token = data.get("access_token")
    if not token:
        raise GitHubError(f"OAuth token exchange failed: {data.get('error', 'no token')}", status_code=401)
    return token


async def fetch_authenticated_user(client: httpx.AsyncClient, token: str) -> dict:
    resp = await _request(client, "GET", _api("/user"), token)
    _handle_error(resp, "User")
    return resp.json()


# -- write API --------------------------------------------------------------


async def fetch_branch_sha(client: httpx.AsyncClient, owner: str, repo: str, branch: str, token: str) -> str:
    resp = await _request(client, "GET", _api(f"/repos/{owner}/{repo}/branches/{quote(branch, safe='')}"), token)
    _handle_error(resp, f"Branch '{branch}'")
    return resp.json()["commit"]["sha"]


async def create_branch(
    client: httpx.AsyncClient, owner: str, repo: str, branch: str, sha: str, token: str
) -> bool:
    """Create ``branch`` at ``sha``; returns False when it already exists."""
    resp = await _request(
        client,
        "POST",
        _api(f"/repos/{owner}/{repo}/git/refs"),
        token,
        json={"ref": f"refs/heads/{branch}", "sha": sha},
    )
    if resp.status_code == 422:
        return False
    _handle_error(resp, f"Branch '{branch}'")
    return True


async def fetch_file_sha(
    client: httpx.AsyncClient, owner: str, repo: str, path: str, ref: str, token: str
) -> str | None:
    resp = await _request(client, "GET", _api(_contents_path(owner, repo, path)), token, params={"ref": ref})
    if resp.status_code == 404:
        return None
    _handle_error(resp, f"File '{path}'")
    data = resp.json()
    if isinstance(data, list):
        return None
    return data.get("sha")


async def put_file(
    client: httpx.AsyncClient,
    owner: str,
    repo: str,
    path: str,
    content: str,
    message: str,
    branch: str,
    sha: str | None,
    token: str,
) -> dict:
    body = {
        "message": message,
        "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        "branch": branch,
    }
    if sha:
        body["sha"] = sha
    resp = await _request(client, "PUT", _api(_contents_path(owner, repo, path)), token, json=body)
    _handle_error(resp, f"File '{path}'")
    return resp.json()


async def find_open_pull_request(
    client: httpx.AsyncClient, owner: str, repo: str, head: str, base: str, token: str
) -> dict | None:
    resp = await _request(
        client,
        "GET",
        _api(f"/repos/{owner}/{repo}/pulls"),
        token,
        params={"head": f"{owner}:{head}", "base": base, "state": "open"},
    )
    _handle_error(resp, "Pull requests")
    pulls = resp.json()
    return pulls[0] if pulls else None


async def create_pull_request(
    client: httpx.AsyncClient,
    owner: str,
    repo: str,
    head: str,
    base: str,
    title: str,
    body: str,
    token: str,
) -> dict:
    resp = await _request(
        client,
        "POST",
        _api(f"/repos/{owner}/{repo}/pulls"),
        token,
        json={"title": title, "head": head, "base": base, "body": body},
    )
    if resp.status_code == 422 and "already exists" in resp.text:
        existing = await find_open_pull_request(client, owner, repo, head, base, token)
        if existing:
            return existing
    _handle_error(resp, "Pull request")
    return resp.json()
