import logging
from enum import Enum
from pathlib import PurePosixPath

from repocraft import config
from repocraft.models import FileTreeEntry

logger = logging.getLogger(__name__)


class Tier(str, Enum):
    CONFIG = "config"
    ENTRY_POINT = "entry-point"
    SOURCE = "source"
    OTHER = "other"


TIER_ORDER = (Tier.CONFIG, Tier.ENTRY_POINT, Tier.SOURCE, Tier.OTHER)


def _extension(filename: str) -> str:
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


def is_ignored(path: str) -> bool:
    return any(p.search(path) for p in config.IGNORE_PATTERNS)


def is_included(path: str) -> bool:
    if is_ignored(path):
        return False

    if any(p.search(path) for p in config.PRIORITY_CONFIG_PATTERNS):
        return True

    filename = PurePosixPath(path).name
    if filename in config.ALWAYS_INCLUDE_FILENAMES:
        return True

    ext = _extension(filename)
    if ext in config.DENIED_EXTENSIONS:
        return False
    return ext in config.ALLOWED_EXTENSIONS


def classify(path: str) -> Tier | None:
    """Return the priority tier for ``path``, or None when it is excluded.

    Ignore patterns are checked first and always win, even over priority
    config patterns.
    """
    if not is_included(path):
        return None
    if any(p.search(path) for p in config.PRIORITY_CONFIG_PATTERNS):
        return Tier.CONFIG
    if any(p.search(path) for p in config.ENTRY_POINT_PATTERNS):
        return Tier.ENTRY_POINT
    if any(p.search(path) for p in config.SOURCE_DIR_PATTERNS):
        return Tier.SOURCE
    return Tier.OTHER


def default_tier_caps() -> dict[Tier, int]:
    cfg = config.get_config().context
    return {
        Tier.CONFIG: cfg.config_cap,
        Tier.ENTRY_POINT: cfg.entry_point_cap,
        Tier.SOURCE: cfg.source_cap,
        Tier.OTHER: cfg.other_cap,
    }


def included_paths(entries: list[FileTreeEntry]) -> list[str]:
    return [e.path for e in entries if e.type == "blob" and classify(e.path) is not None]


def reduce_tree(
    entries: list[FileTreeEntry],
    caps: dict[Tier, int] | None = None,
    limit: int | None = None,
) -> list[str]:
    if caps is None:
        caps = default_tier_caps()
    if limit is None:
        limit = config.get_config().context.max_key_files

    buckets: dict[Tier, list[str]] = {tier: [] for tier in TIER_ORDER}
    seen: set[str] = set()
    for entry in entries:
        if entry.type != "blob" or entry.path in seen:
            continue
        tier = classify(entry.path)
        if tier is None:
            continue
        seen.add(entry.path)
        buckets[tier].append(entry.path)

    selection: list[str] = []
    for tier in TIER_ORDER:
        selection.extend(buckets[tier][: caps[tier]])

    selection = selection[:limit]
    tier_counts = ", ".join(f"{t.value}={len(buckets[t])}" for t in TIER_ORDER)
    logger.info(f"Tree: {len(entries)} entries, {len(seen)} included ({tier_counts}), {len(selection)} selected")
    return selection


def detect_language(paths: list[str]) -> str | None:
    # Ladder order decides, not how many files match.
    for signal, label in config.LANGUAGE_LADDER:
        if any(signal.search(p) for p in paths):
            return label
    return None


def summarize_tree(entries: list[FileTreeEntry], max_entries: int) -> str:
    return "\n".join(e.path for e in entries[:max_entries])
