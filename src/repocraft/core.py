import asyncio
import logging
from collections.abc import AsyncIterator
from typing import TypeVar

import httpx

from repocraft import config, context, github, llm, prompts
from repocraft.models import (
    GenerationKind,
    GenerationRequest,
    RepoDetails,
    RepoInfo,
    RepoListResponse,
    RepoSummary,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _settled(result: T | BaseException, what: str, default: T) -> T:
    if isinstance(result, github.GitHubError):
        logger.info(f"{what} unavailable, using default: {result.message}")
        return default
    if isinstance(result, BaseException):
        raise result
    return result


async def get_repo_details(token: str, owner: str, repo: str) -> RepoDetails:
    cfg = config.get_config()
    ctx_cfg = cfg.context
    logger.info(f"Loading details for {owner}/{repo}")

    async with httpx.AsyncClient(timeout=cfg.github.github_timeout) as client:
        info, tree, readme, pkg_json = await asyncio.gather(
            github.fetch_repo(client, owner, repo, token),
            github.fetch_repo_tree(client, owner, repo, token),
            github.fetch_readme(client, owner, repo, token),
            github.fetch_package_json(client, owner, repo, token),
            return_exceptions=True,
        )
        if isinstance(info, BaseException):
            raise info
        tree = _settled(tree, "Tree", [])
        readme = _settled(readme, "README", None)
        pkg_json = _settled(pkg_json, "package.json", None)

        key_files = context.reduce_tree(tree)
        key_file_contents = await github.fetch_key_files(
            client,
            owner,
            repo,
            key_files,
            token,
            batch_size=ctx_cfg.fetch_batch_size,
            timeout=ctx_cfg.fetch_timeout,
            max_chars=ctx_cfg.max_file_chars,
        )

    return RepoDetails(
        repo=RepoInfo.model_validate(info),
        readme=readme,
        pkg_json=pkg_json,
        key_files=key_files,
        key_file_contents=key_file_contents,
        project_language=context.detect_language(context.included_paths(tree)),
        tree_summary=context.summarize_tree(tree, ctx_cfg.tree_summary_entries),
    )


def _summarize_repo(data: dict) -> RepoSummary:
    return RepoSummary(
        id=data["id"],
        name=data["name"],
        full_name=data["full_name"],
        description=data.get("description"),
        language=data.get("language"),
        updated_at=data.get("updated_at"),
        owner=(data.get("owner") or {}).get("login"),
        html_url=data["html_url"],
    )


async def list_repos(token: str, login: str | None, page: int, query: str | None = None) -> RepoListResponse:
    cfg = config.get_config().github
    per_page = cfg.repos_per_page
    async with httpx.AsyncClient(timeout=cfg.github_timeout) as client:
        if query and login:
            data = await github.search_user_repos(client, token, login, query, page, per_page)
        else:
            data = await github.list_user_repos(client, token, page, per_page)

    return RepoListResponse(
        repos=[_summarize_repo(r) for r in data],
        page=page,
        has_more=len(data) == per_page,
    )


async def generate_content(kind: GenerationKind, request: GenerationRequest) -> str:
    prompt = prompts.build_prompt(kind, request)
    logger.info(f"Generating {kind.value} for {request.repo_name}: prompt is {len(prompt)} chars")
    return await llm.complete(prompt)


async def stream_content(kind: GenerationKind, request: GenerationRequest) -> AsyncIterator[str]:
    prompt = prompts.build_prompt(kind, request)
    logger.info(f"Streaming {kind.value} for {request.repo_name}: prompt is {len(prompt)} chars")
    return await llm.open_stream(prompt)
