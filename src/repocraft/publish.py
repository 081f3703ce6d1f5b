import logging

import httpx

from repocraft import config, github
from repocraft.models import PublishResult

logger = logging.getLogger(__name__)

README_PATH = "README.md"
COMMIT_MESSAGE = "docs: update README via RepoCraft"
PR_TITLE = "Update README via RepoCraft"
PR_BODY = "This README was generated by RepoCraft. Please review and merge if it looks good."


class PublishError(Exception):
    pass


async def _open_pull_request(
    client: httpx.AsyncClient, owner: str, repo: str, readme: str, token: str, branch: str
) -> str:
    repo_info = await github.fetch_repo(client, owner, repo, token)
    base_branch = repo_info["default_branch"]
    base_sha = await github.fetch_branch_sha(client, owner, repo, base_branch, token)

    created = await github.create_branch(client, owner, repo, branch, base_sha, token)
    if not created:
        logger.info(f"Branch {branch} already exists in {owner}/{repo}, reusing it")

    # The update must carry the blob sha of the file on the target branch.
    current_sha = await github.fetch_file_sha(client, owner, repo, README_PATH, branch, token)
    await github.put_file(client, owner, repo, README_PATH, readme, COMMIT_MESSAGE, branch, current_sha, token)

    pr = await github.create_pull_request(client, owner, repo, branch, base_branch, PR_TITLE, PR_BODY, token)
    return pr["html_url"]


async def _commit_to_default_branch(
    client: httpx.AsyncClient, owner: str, repo: str, readme: str, token: str
) -> str:
    repo_info = await github.fetch_repo(client, owner, repo, token)
    base_branch = repo_info["default_branch"]
    current_sha = await github.fetch_file_sha(client, owner, repo, README_PATH, base_branch, token)
    result = await github.put_file(
        client, owner, repo, README_PATH, readme, COMMIT_MESSAGE, base_branch, current_sha, token
    )
    return result["commit"]["html_url"]


async def publish_readme(owner: str, repo: str, readme: str, token: str) -> PublishResult:
    cfg = config.get_config().github
    logger.info(f"Publishing README to {owner}/{repo} (mode={cfg.publish_mode})")
    async with httpx.AsyncClient(timeout=cfg.github_timeout) as client:
        try:
            if cfg.publish_mode == "commit":
                url = await _commit_to_default_branch(client, owner, repo, readme, token)
            else:
                url = await _open_pull_request(client, owner, repo, readme, token, cfg.readme_branch)
        except github.GitHubError as exc:
            raise PublishError(f"README publish failed: {exc.message}") from exc
        except KeyError as exc:
            raise PublishError(f"README publish failed: unexpected GitHub response (missing {exc})") from exc

    logger.info(f"Published README to {owner}/{repo}: {url}")
    return PublishResult(mode=cfg.publish_mode, url=url)
