import re
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    groq_api_key: str | None = None
    groq_base_url: str = "https://api.groq.com/openai/v1"
    model_name: str = "llama-3.3-70b-versatile"
    request_timeout: float = 120.0


class GitHubConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    github_client_id: str | None = None
    github_client_secret: str | None = None
    github_api_base: str = "https://api.github.com"
    github_oauth_base: str = "https://github.com"
    github_timeout: float = 30.0
    repos_per_page: int = 12
    publish_mode: Literal["pr", "commit"] = "pr"
    readme_branch: str = "repocraft-readme-update"


class ContextConfig(BaseSettings):
    max_key_files: int = 40
    config_cap: int = 10
    entry_point_cap: int = 10
    source_cap: int = 15
    other_cap: int = 5
    fetch_batch_size: int = 5
    fetch_timeout: float = 5.0  # seconds per key file
    max_file_chars: int = 3_000  # chars kept per fetched file
    prompt_file_chars: int = 2_000  # chars per file rendered into a prompt
    readme_excerpt_chars: int = 500
    tree_summary_entries: int = 60


class UsageConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    daily_limit: int = 10


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    llm: LLMConfig = Field(default_factory=LLMConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    usage: UsageConfig = Field(default_factory=UsageConfig)
    database_url: str = "sqlite+aiosqlite:///./repocraft.db"
    session_secret: str
    session_max_age: int = 14 * 24 * 3600


@lru_cache
def get_config() -> Config:
    return Config()


# Build output, dependencies, VCS metadata, secrets, tests, minified bundles.
IGNORE_PATTERNS = [
    re.compile(r"(^|/)node_modules/"),
    re.compile(r"(^|/)(bower_components|vendor|\.venv|venv|__pycache__)/"),
    re.compile(r"(^|/)(dist|build|out|target|coverage|\.next|\.nuxt|\.turbo|\.cache)/"),
    re.compile(r"(^|/)\.(git|svn|hg)/"),
    re.compile(r"(^|/)\.env$"),
    re.compile(r"(^|/)\.env\.[^/]*local$"),
    re.compile(r"(^|/)(id_rsa|id_ed25519|credentials|secrets?)(\.[^/]*)?$", re.IGNORECASE),
    re.compile(r"\.(test|spec)\.[cm]?[jt]sx?$"),
    re.compile(r"(^|/)(__tests__|__mocks__|tests?|spec)/"),
    re.compile(r"(^|/)test_[^/]*\.py$"),
    re.compile(r"_test\.(go|py)$"),
    re.compile(r"\.min\.(js|css)$"),
    re.compile(r"\.map$"),
]

ALLOWED_EXTENSIONS = {
    # source
    "py", "js", "jsx", "mjs", "cjs", "ts", "tsx", "go", "rs", "java", "kt", "kts",
    "scala", "rb", "php", "cs", "fs", "c", "h", "cpp", "cc", "hpp", "swift", "m",
    "dart", "ex", "exs", "erl", "hs", "clj", "lua", "r", "jl", "sh", "bash", "zsh",
    "ps1", "vue", "svelte", "astro", "sql", "graphql", "gql", "proto", "sol",
    # config
    "json", "yaml", "yml", "toml", "ini", "cfg", "conf", "xml", "gradle", "properties",
    # markup
    "md", "mdx", "rst", "txt", "html", "css", "scss", "sass", "less",
    # infra-as-code
    "tf", "tfvars", "hcl", "nix", "bicep",
}

DENIED_EXTENSIONS = {
    "png", "jpg", "jpeg", "gif", "bmp", "ico", "svg", "webp", "tiff",
    "woff", "woff2", "ttf", "otf", "eot",
    "mp3", "mp4", "mov", "avi", "wav", "flac", "ogg",
    "zip", "tar", "gz", "tgz", "bz2", "xz", "7z", "rar", "jar", "war", "whl", "egg",
    "exe", "dll", "so", "dylib", "bin", "o", "obj", "a", "class", "pyc", "pyo",
    "pem", "key", "p12", "pfx", "crt", "cer", "jks", "keystore", "gpg",
    "db", "sqlite", "sqlite3", "pdf", "lockb", "map", "snap",
}

ALWAYS_INCLUDE_FILENAMES = {"Dockerfile", "Makefile", "Gemfile"}

PRIORITY_CONFIG_PATTERNS = [
    re.compile(r"(^|/)package\.json$"),
    re.compile(r"(^|/)(pyproject\.toml|setup\.py|setup\.cfg|requirements[^/]*\.txt|Pipfile|environment\.ya?ml)$"),
    re.compile(r"(^|/)(Cargo\.toml|go\.mod|pom\.xml|build\.gradle(\.kts)?|settings\.gradle(\.kts)?)$"),
    re.compile(r"(^|/)(composer\.json|Gemfile|mix\.exs|pubspec\.yaml|[^/]+\.csproj|deno\.json)$"),
    re.compile(r"(^|/)(package-lock\.json|yarn\.lock|pnpm-lock\.yaml|poetry\.lock|Pipfile\.lock|Cargo\.lock|Gemfile\.lock|composer\.lock|go\.sum)$"),
    re.compile(r"(^|/)tsconfig(\.[^/]+)?\.json$"),
    re.compile(r"(^|/)(vite|next|nuxt|svelte|astro|webpack|rollup|babel|jest|vitest|tailwind)\.config\.[cm]?[jt]s$"),
    re.compile(r"^\.github/workflows/[^/]+\.ya?ml$"),
    re.compile(r"^\.gitlab-ci\.ya?ml$"),
    re.compile(r"(^|/)Dockerfile(\.[^/]+)?$"),
    re.compile(r"(^|/)(docker-)?compose(\.[^/]+)?\.ya?ml$"),
    re.compile(r"^readme(\.(md|rst|txt))?$", re.IGNORECASE),
    re.compile(r"(^|/)\.env\.example$"),
]

ENTRY_POINT_PATTERNS = [
    re.compile(r"^(src/)?(main|index|app|App|server|cli)\.[cm]?[jt]sx?$"),
    re.compile(r"^(src/)?(pages|app)/(index|page|layout|_app)\.[jt]sx?$"),
    re.compile(r"^(src/)?([\w-]+/)?(__main__|main|app|manage|wsgi|asgi|cli)\.py$"),
    re.compile(r"^(cmd/[\w-]+/)?main\.go$"),
    re.compile(r"^src/(main|lib)\.rs$"),
    re.compile(r"^src/main/(java|kotlin)/.+/(Main|Application|[\w]+Application)\.(java|kt)$"),
    re.compile(r"^(lib/)?main\.dart$"),
    re.compile(r"^(src/)?(Program|Startup)\.cs$"),
    re.compile(r"^(public/)?index\.php$"),
    re.compile(r"^(app|main)\.rb$"),
]

SOURCE_DIR_PATTERNS = [
    re.compile(r"^(src|lib|app|pkg|internal|cmd|server|api|core)/"),
    re.compile(r"(^|/)(components|pages|routes|hooks|services|utils|store|context|controllers|models|views|handlers|middleware)/"),
]

# First match wins; ordering is the tie-break.
LANGUAGE_LADDER = [
    (re.compile(r"(^|/)package\.json$"), "JavaScript/TypeScript"),
    (re.compile(r"\.tsx?$"), "TypeScript"),
    (re.compile(r"\.[cm]?jsx?$"), "JavaScript"),
    (re.compile(r"\.py$"), "Python"),
    (re.compile(r"\.go$"), "Go"),
    (re.compile(r"\.rs$"), "Rust"),
    (re.compile(r"\.java$"), "Java"),
    (re.compile(r"\.kts?$"), "Kotlin"),
    (re.compile(r"\.rb$"), "Ruby"),
    (re.compile(r"\.php$"), "PHP"),
    (re.compile(r"\.cs$"), "C#"),
    (re.compile(r"\.(cpp|cc|hpp)$"), "C++"),
    (re.compile(r"\.[ch]$"), "C"),
    (re.compile(r"\.swift$"), "Swift"),
    (re.compile(r"\.dart$"), "Dart"),
    (re.compile(r"\.scala$"), "Scala"),
    (re.compile(r"\.exs?$"), "Elixir"),
]
