"""OpenSpec adapter: reads openspec/changes/*/ into Changes and Artifacts."""

import asyncio
import logging
import re
from datetime import datetime, timezone
from pathlib import Path

from clawde.models import ARTIFACT_TYPES, Artifact, Change, ChangeStatus

logger = logging.getLogger(__name__)

CHANGES_SUBPATH = ("openspec", "changes")

_HEADING = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_TASK_ID = re.compile(r"^###\s+(T\d+)", re.MULTILINE)


def candidate_paths(artifact_type: str) -> list[str]:
    return [f"{artifact_type}.md", f"{artifact_type}/index.md", f"{artifact_type}/README.md"]


def extract_title(markdown: str) -> str:
    match = _HEADING.search(markdown)
    return match.group(1).strip() if match else ""


def extract_description(markdown: str) -> str:
    """First line that is not a heading, table row or bullet."""
    for line in markdown.splitlines():
        stripped = line.strip()
        if stripped and not stripped.startswith(("#", "|", "-")):
            return stripped[:200]
    return ""


def extract_task_ids(markdown: str) -> list[str]:
    return _TASK_ID.findall(markdown)


def infer_change_status(artifacts: list[Artifact]) -> ChangeStatus:
    types = {a.type for a in artifacts}
    if "tasks" in types or "specs" in types:
        return "implementing"
    return "active"


def mark_stale(artifacts: list[Artifact]) -> None:
    """Flag a tasks artifact older than its proposal.

    Heuristic only: a newer proposal suggests the plan was not regenerated.
    """
    proposal = next((a for a in artifacts if a.type == "proposal"), None)
    tasks = next((a for a in artifacts if a.type == "tasks"), None)
    if proposal and tasks and proposal.last_updated and tasks.last_updated:
        tasks.stale = proposal.last_updated > tasks.last_updated


def read_change(change_dir: Path) -> Change:
    change_id = change_dir.name
    artifacts: list[Artifact] = []
    latest: datetime | None = None

    for artifact_type in ARTIFACT_TYPES:
        for candidate in candidate_paths(artifact_type):
            path = change_dir / candidate
            if not path.is_file():
                continue
            stat = path.stat()
            content = path.read_text(encoding="utf-8", errors="replace")
            modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            if latest is None or modified > latest:
                latest = modified
            artifacts.append(
                Artifact(
                    id=f"{change_id}-{artifact_type}",
                    type=artifact_type,
                    path=str(path),
                    title=extract_title(content) or f"{artifact_type} ({change_id})",
                    change_id=change_id,
                    content=content,
                    last_updated=modified,
                )
            )
            break

    mark_stale(artifacts)

    proposal = next((a for a in artifacts if a.type == "proposal"), None)
    tasks = next((a for a in artifacts if a.type == "tasks"), None)

    if proposal:
        name = proposal.title
        description = extract_description(proposal.content) or f"Change: {change_id}"
    else:
        name = change_id.replace("-", " ").title()
        description = f"Change: {change_id}"

    if latest is None:
        latest = datetime.fromtimestamp(change_dir.stat().st_mtime, tz=timezone.utc)

    return Change(
        id=change_id,
        name=name,
        description=description,
        status=infer_change_status(artifacts),
        artifacts=artifacts,
        task_ids=extract_task_ids(tasks.content) if tasks else [],
        created_at=latest,
        updated_at=latest,
    )


class OpenSpecAdapter:
    """Caches the changes found under openspec/changes/."""

    def __init__(self):
        self.root: str | None = None
        self._changes: list[Change] = []

    async def init(self, root: str | Path) -> None:
        self.root = str(root)
        await self.refresh()

    async def refresh(self) -> None:
        if self.root is None:
            self._changes = []
            return
        try:
            changes = await asyncio.to_thread(self._read)
        except OSError as e:
            logger.warning("Could not read OpenSpec changes: %s", e)
            changes = []
        self._changes = changes

    def _read(self) -> list[Change]:
        changes_dir = Path(self.root, *CHANGES_SUBPATH)
        if not changes_dir.is_dir():
            return []
        dirs = sorted(p for p in changes_dir.iterdir() if p.is_dir())
        return [read_change(d) for d in dirs]

    def get_changes(self) -> list[Change]:
        return list(self._changes)

    def get_change(self, change_id: str) -> Change | None:
        return next((c for c in self._changes if c.id == change_id), None)

    def get_artifacts(self, change_id: str) -> list[Artifact]:
        change = self.get_change(change_id)
        return list(change.artifacts) if change else []

    def get_artifact(self, change_id: str, artifact_type: str) -> Artifact | None:
        return next((a for a in self.get_artifacts(change_id) if a.type == artifact_type), None)
