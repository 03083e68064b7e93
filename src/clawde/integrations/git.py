"""Git subprocess wrappers for commit history and diffs."""

import asyncio
import logging
import re
import subprocess
from pathlib import Path

from clawde.models import CommitInfo, DiffFile, DiffHunk, DiffLine, Event

logger = logging.getLogger(__name__)

LOG_FORMAT = "%H%x09%h%x09%s%x09%an%x09%ae%x09%aI"
DEFAULT_LOG_LIMIT = 50


class GitError(Exception):
    """Raised when a git command fails."""


def run_git(args: list[str], cwd: str | Path | None = None, timeout: float = 10.0) -> str:
    """Run a git command and return stdout. Raises GitError on failure."""
    cmd = ["git"] + args
    try:
        result = subprocess.run(
            cmd,
            cwd=cwd,
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout,
        )
        return result.stdout.strip()
    except subprocess.CalledProcessError as e:
        raise GitError(f"git {' '.join(args)} failed: {e.stderr.strip()}") from e
    except subprocess.TimeoutExpired as e:
        raise GitError(f"git {' '.join(args)} timed out after {timeout}s") from e
    except FileNotFoundError as e:
        raise GitError("git is not installed") from e


def parse_log(output: str) -> list[CommitInfo]:
    """Parse tab-delimited `git log` output. Malformed lines are skipped."""
    commits = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.split("\t")
        if len(parts) < 6:
            logger.debug("Skipping malformed log line: %r", line)
            continue
        # Subjects may contain tabs; the trailing fields are fixed.
        sha, short_sha = parts[0], parts[1]
        author, email, timestamp = parts[-3], parts[-2], parts[-1]
        message = "\t".join(parts[2:-3])
        commits.append(
            CommitInfo(
                sha=sha,
                short_sha=short_sha,
                message=message,
                author=author,
                email=email,
                timestamp=timestamp,
            )
        )
    return commits


_DIFF_HEADER = re.compile(r"a/(.+?)\s+b/(.+)")


def parse_diff(raw: str) -> list[DiffFile]:
    """Parse unified diff output into files, hunks and lines."""
    files = []
    blocks = [b for b in re.split(r"^diff --git ", raw, flags=re.MULTILINE) if b.strip()]

    for block in blocks:
        lines = block.split("\n")
        header = _DIFF_HEADER.search(lines[0])
        if not header:
            continue

        diff_file = DiffFile(path=header.group(2))
        hunk: DiffHunk | None = None
        for line in lines[1:]:
            if line.startswith("@@"):
                hunk = DiffHunk(header=line)
                diff_file.hunks.append(hunk)
            elif hunk is None:
                continue
            elif line.startswith("+") and not line.startswith("+++"):
                diff_file.additions += 1
                hunk.lines.append(DiffLine(type="add", content=line[1:]))
            elif line.startswith("-") and not line.startswith("---"):
                diff_file.deletions += 1
                hunk.lines.append(DiffLine(type="remove", content=line[1:]))
            elif line.startswith(" "):
                hunk.lines.append(DiffLine(type="context", content=line[1:]))

        files.append(diff_file)

    return files


def commits_to_events(commits: list[CommitInfo], author_map: dict[str, str]) -> list[Event]:
    """Map commits to 'commit' events, correlating authors with agents."""
    events = []
    for commit in commits:
        short = commit.sha[:7]
        agent_id = author_map.get(commit.author) or author_map.get(commit.author.casefold())
        events.append(
            Event(
                id=f"git-{short}",
                type="commit",
                payload={
                    "sha": short,
                    "message": commit.message,
                    "author": commit.author,
                    "files_changed": commit.files_changed,
                },
                timestamp=commit.timestamp,
                agent_id=agent_id,
            )
        )
    return events


class GitAdapter:
    """Reads history on demand; holds no cache, so there is nothing to refresh."""

    def __init__(self, log_limit: int = DEFAULT_LOG_LIMIT, timeout: float = 10.0):
        self.root: str | None = None
        self.log_limit = log_limit
        self.timeout = timeout

    async def init(self, root: str | Path) -> None:
        self.root = str(root)

    async def refresh(self) -> None:
        return None

    async def get_commits(self, limit: int | None = None) -> list[CommitInfo]:
        if self.root is None:
            return []
        n = limit or self.log_limit
        try:
            output = await asyncio.to_thread(
                run_git, ["log", f"--format={LOG_FORMAT}", "-n", str(n)], self.root, self.timeout
            )
        except GitError as e:
            logger.info("No git history available: %s", e)
            return []
        return parse_log(output)

    async def get_commit_events(self, author_map: dict[str, str]) -> list[Event]:
        return commits_to_events(await self.get_commits(), author_map)

    async def get_diff(self, ref: str | None = None) -> list[DiffFile]:
        if self.root is None or (ref and ref.startswith("-")):
            return []
        try:
            raw = await asyncio.to_thread(
                run_git, ["diff", ref or "HEAD~1..HEAD", "--unified=3"], self.root, self.timeout
            )
        except GitError as e:
            logger.info("Diff unavailable: %s", e)
            return []
        return parse_diff(raw)
