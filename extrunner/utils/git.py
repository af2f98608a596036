"""
Links into git forges, used by the build summary.
"""
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse


@dataclass
class GitRepository:
    type: str
    owner: str
    repo: str


def parse_repository(repository: str) -> Optional[GitRepository]:
    parsed = urlparse(repository)

    if parsed.hostname == "github.com":
        path = parsed.path.strip("/")
        if path.endswith(".git"):
            path = path[:-len(".git")]
        parts = path.split("/")
        if len(parts) < 2:
            return None
        return GitRepository(type="github", owner=parts[0], repo=parts[1])

    # TODO: gitlab/codeberg link formats
    return None


def get_commit_link(repository: str, commit: str) -> Optional[str]:
    parsed = parse_repository(repository)
    if parsed is None:
        return None
    return f"https://github.com/{parsed.owner}/{parsed.repo}/commit/{commit}"


def get_commit_tree(repository: str, commit: str) -> Optional[str]:
    parsed = parse_repository(repository)
    if parsed is None:
        return None
    return f"https://github.com/{parsed.owner}/{parsed.repo}/tree/{commit}"


def get_commit_diff(repository: str, old_commit: str, new_commit: str) -> Optional[str]:
    parsed = parse_repository(repository)
    if parsed is None:
        return None
    return f"https://github.com/{parsed.owner}/{parsed.repo}/compare/{old_commit}...{new_commit}"


def maybe_wrap_link(text: str, link: Optional[str] = None) -> str:
    if link is not None:
        return f"[{text}]({link})"
    return text
