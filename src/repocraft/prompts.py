from typing import Any

from repocraft import config
from repocraft.models import GenerationKind, GenerationRequest

SYSTEM_PROMPT = """\
You are RepoCraft, an expert technical writer that turns GitHub repositories \
into clean docs, portfolio entries, resume bullets, and LinkedIn posts.\
"""

NO_KEY_FILES = "No key files available"
PROMPT_TRUNCATION_MARKER = "\n... [truncated]"

GROUNDING_RULES = """\
- ONLY describe features and functionality visible in the provided source code
- If you cannot confirm something from the code, do NOT include it
- Be specific and technical: name algorithms, patterns, modules and files you can see
- Use terminology appropriate for the language(s) the project is written in\
"""


def format_key_files(key_file_contents: dict[str, str] | None, max_chars: int | None = None) -> str:
    if not key_file_contents:
        return NO_KEY_FILES
    if max_chars is None:
        max_chars = config.get_config().context.prompt_file_chars

    blocks = []
    for path, content in key_file_contents.items():
        if len(content) > max_chars:
            content = content[:max_chars] + PROMPT_TRUNCATION_MARKER
        blocks.append(f"\n=== {path} ===\n{content}")
    return "\n".join(blocks)


def _manifest_section(pkg_json: dict[str, Any] | None, key: str) -> dict[str, Any]:
    if not isinstance(pkg_json, dict):
        return {}
    section = pkg_json.get(key)
    return section if isinstance(section, dict) else {}


def dependency_names(pkg_json: dict[str, Any] | None, dev: bool = False) -> list[str]:
    return list(_manifest_section(pkg_json, "devDependencies" if dev else "dependencies"))


def format_scripts(pkg_json: dict[str, Any] | None) -> str:
    scripts = _manifest_section(pkg_json, "scripts")
    if not scripts:
        return "N/A"
    return "\n".join(f"  - `npm run {name}`: {cmd}" for name, cmd in scripts.items())


def readme_excerpt(readme: str | None, max_chars: int | None = None) -> str:
    if not readme:
        return "None"
    if max_chars is None:
        max_chars = config.get_config().context.readme_excerpt_chars
    return readme[:max_chars]


def build_readme_prompt(c: GenerationRequest) -> str:
    deps = ", ".join(dependency_names(c.pkg_json)) or "Not detected"
    dev_deps = ", ".join(dependency_names(c.pkg_json, dev=True))
    language = c.project_language or "Not detected"

    return f"""\
You are an expert technical writer analyzing a real GitHub repository to generate accurate documentation.

CRITICAL: You MUST analyze the provided source code and extract actual features, functionality, and architecture. Do NOT make up features.

## Repository Context

Project name: {c.repo_name}
Programming Language(s): {language}
Repository: {c.repo_url or "N/A"}
Description: {c.description or "N/A"}
Live Deployment: {c.live_url or "No live deployment found"}

## Source Code Files

{format_key_files(c.key_file_contents)}

## Dependencies

### Production Dependencies:
{deps}

### Development Dependencies:
{dev_deps}

## Build & Run Scripts:
{format_scripts(c.pkg_json)}

## Existing Documentation:
{readme_excerpt(c.readme)}

## Your Task

Generate a **professional, accurate README.md** by analyzing the provided source code:

1. **Title & Overview**: a clear title and a 2-3 sentence overview of what this project DOES
2. **Features**: only features you can CONFIRM from the code (components, algorithms, endpoints, data models, integrations)
3. **Tech Stack**: technologies ACTUALLY USED (imports, config, dependencies)
4. **Installation**: realistic steps based on the project structure and build system
5. **Usage**: examples based on the actual entry points and available commands
6. **Architecture**: module organization and data flow, if the code structure suggests it
7. **Contributing & License**: standard sections

The project is written in: {c.project_language or "Mixed languages"}. Use the matching package manager \
(npm, pip, cargo, gradle, ...) and build commands.

## Critical Rules
{GROUNDING_RULES}
- Include specific file/component names where relevant

Output ONLY valid Markdown for README.md, nothing else. No explanations, no code fences around the document.\
"""


def build_portfolio_prompt(c: GenerationRequest) -> str:
    return f"""\
You are creating a portfolio card based on analyzing ACTUAL SOURCE CODE from a GitHub repository.

CRITICAL: Only describe features and tech YOU CAN CONFIRM from the provided code.

## Project Information
Project name: {c.repo_name}
Programming Language(s): {c.project_language or "Not detected"}
Description: {c.description or "N/A"}
Repository URL: {c.repo_url or "N/A"}
Live URL (if deployed): {c.live_url or "Not set"}

## Source Code to Analyze
{format_key_files(c.key_file_contents)}

## Your Task

Create a portfolio card as a single JSON object with exactly these fields:
- "title": string, the project name or a title reflecting what it actually does
- "shortDescription": string, 1-2 sentences on the project's purpose, specific to this code
- "features": list of 3-5 strings, actual features visible in the code
- "techStack": list of strings, technologies confirmed from imports, dependencies and config
- "githubUrl": string, the repository URL provided above
- "liveUrl": string or null, the deployment URL if provided, otherwise null

## Rules
{GROUNDING_RULES}

Return ONLY the JSON object (valid JSON). No markdown fences, no explanations.\
"""


def build_resume_prompt(c: GenerationRequest) -> str:
    tech = ", ".join(dependency_names(c.pkg_json)) or "Unknown"

    return f"""\
You are creating resume bullet points for a software engineer based on analyzing ACTUAL SOURCE CODE.

CRITICAL: Extract REAL technical accomplishments from the code, not generic descriptions.

## Project Information
Project name: {c.repo_name}
Programming Language(s): {c.project_language or "Not detected"}
Description: {c.description or "N/A"}
Tech stack: {tech}
Live Deployment: {c.live_url or "Not set"}

## Source Code to Analyze
{format_key_files(c.key_file_contents)}

## Your Task

Generate resume content as a single JSON object with exactly these fields:
- "summary": string, one line capturing the project's purpose, specific to this codebase
- "bullets": list of 3-4 strings, each starting with an action verb (Designed, Implemented, Built, \
Optimized, Engineered) and naming concrete algorithms, patterns, components or architectural decisions

Include metrics ONLY if they are visible in the code.

## Rules
{GROUNDING_RULES}

Return ONLY the JSON object, no additional text.\
"""


def build_social_prompt(c: GenerationRequest) -> str:
    tech = ", ".join(dependency_names(c.pkg_json)) or "N/A"

    return f"""\
You are writing a LinkedIn post about a real software project, targeting developers and tech recruiters.

CRITICAL: Base the post on ACTUAL SOURCE CODE and REAL features, not generic marketing language.

## Project Details
Project name: {c.repo_name}
Programming Language(s): {c.project_language or "Not detected"}
Description: {c.description or "N/A"}
Repository: {c.repo_url or "N/A"}
Live Deployment: {c.live_url or "Not set"}
Tech: {tech}

## Source Code
{format_key_files(c.key_file_contents)}

## Your Task

Write an authentic LinkedIn post of 2-4 short paragraphs that:
1. Opens with what the project ACTUALLY DOES, referencing the language and tech
2. Highlights 1-2 interesting technical decisions visible in the code
3. Explains why those choices matter (performance, reliability, developer experience)
4. Mentions the live deployment if a URL is provided
5. Ends with a call to action

## Style
- Technical but accessible, no corporate speak or hype
- Use between 4 and 8 emojis in total, placed beside technical highlights
- Optionally end with 2-4 relevant hashtags

## Rules
{GROUNDING_RULES}

Return ONLY the post as plain text (no markdown), nothing else.\
"""


PROMPT_BUILDERS = {
    GenerationKind.README: build_readme_prompt,
    GenerationKind.PORTFOLIO: build_portfolio_prompt,
    GenerationKind.RESUME: build_resume_prompt,
    GenerationKind.SOCIAL: build_social_prompt,
}


def build_prompt(kind: GenerationKind, context: GenerationRequest) -> str:
    return PROMPT_BUILDERS[kind](context)
