from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerationKind(str, Enum):
    README = "readme"
    PORTFOLIO = "portfolio"
    RESUME = "resume"
    SOCIAL = "social"


STREAMING_KINDS = {GenerationKind.README, GenerationKind.SOCIAL}


class FileTreeEntry(BaseModel):
    """Read-only view of one node from the recursive tree listing."""

    model_config = ConfigDict(frozen=True, extra="ignore")
    path: str
    type: str
    sha: str = ""


class RepoInfo(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")
    name: str
    full_name: str | None = None
    description: str | None = None
    html_url: str | None = None
    homepage: str | None = None
    language: str | None = None
    default_branch: str | None = None


class RepoSummary(CamelModel):
    id: int
    name: str
    full_name: str
    description: str | None = None
    language: str | None = None
    updated_at: str | None = None
    owner: str | None = None
    html_url: str


class RepoListResponse(CamelModel):
    repos: list[RepoSummary]
    page: int
    has_more: bool


class RepoDetails(CamelModel):
    repo: RepoInfo | None = None
    readme: str | None = None
    pkg_json: dict[str, Any] | None = None
    key_files: list[str] = []
    key_file_contents: dict[str, str] = {}
    project_language: str | None = None
    tree_summary: str = ""


class GenerationRequest(CamelModel):
    repo_name: str
    description: str | None = None
    tree_summary: str | None = None
    pkg_json: dict[str, Any] | None = None
    readme: str | None = None
    repo_url: str | None = None
    live_url: str | None = None
    key_file_contents: dict[str, str] | None = None
    project_language: str | None = None


class GenerateResponse(BaseModel):
    content: str


class UpdateReadmeRequest(BaseModel):
    owner: str | None = None
    readme: str | None = None


class PublishResult(BaseModel):
    mode: Literal["pr", "commit"]
    url: str


class UsageResponse(BaseModel):
    used: int
    remaining: int
    limit: int


class UsageDecision(BaseModel):
    allowed: bool
    remaining: int


class UserProfile(CamelModel):
    provider_id: str
    email: str | None = None
    name: str | None = None
    avatar: str | None = None
    llm_provider: str
    has_api_key: bool


class ErrorResponse(BaseModel):
    status: Literal["error"] = "error"
    reason: str
    message: str
