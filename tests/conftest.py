"""Shared fixtures: a fake `bd` executable and a real git repository."""

import json
import os
import stat
import subprocess
from pathlib import Path

import pytest

FAKE_BD = """#!/bin/sh
echo "$*" >> "$FAKE_BD_DIR/calls.log"
case "$1" in
  list)
    cat "$FAKE_BD_DIR/list.json"
    ;;
  dep)
    if [ "$2" = "list" ]; then
      if [ -f "$FAKE_BD_DIR/deps-$3.json" ]; then
        cat "$FAKE_BD_DIR/deps-$3.json"
      else
        echo "dep list failed" >&2
        exit 1
      fi
    else
      echo "added"
    fi
    ;;
  update)
    if [ "$2" = "MISSING-1" ]; then
      echo "Error: issue MISSING-1 not found" >&2
      exit 1
    fi
    echo '{"updated": true}'
    ;;
  create)
    case "$2" in
      *FAIL*)
        echo "create failed" >&2
        exit 1
        ;;
    esac
    n=$(cat "$FAKE_BD_DIR/counter" 2>/dev/null || echo 0)
    n=$((n + 1))
    echo "$n" > "$FAKE_BD_DIR/counter"
    echo "{\\"id\\": \\"bd-$n\\"}"
    ;;
  *)
    echo "unknown command" >&2
    exit 2
    ;;
esac
"""

GIT_ENV = {
    "GIT_AUTHOR_EMAIL": "dev@example.com",
    "GIT_COMMITTER_NAME": "Dev",
    "GIT_COMMITTER_EMAIL": "dev@example.com",
}


class FakeBd:
    def __init__(self, data_dir: Path):
        self.dir = data_dir
        self.set_issues([])

    def set_issues(self, issues: list[dict]) -> None:
        (self.dir / "list.json").write_text(json.dumps(issues))

    def set_deps(self, issue_id: str, deps: list[dict]) -> None:
        (self.dir / f"deps-{issue_id}.json").write_text(json.dumps(deps))

    def calls(self) -> list[str]:
        log = self.dir / "calls.log"
        return log.read_text().splitlines() if log.exists() else []


@pytest.fixture
def fake_bd(tmp_path, monkeypatch):
    """Put a scripted `bd` on PATH. Configure it through the returned FakeBd."""
    bin_dir = tmp_path / "fake-bin"
    data_dir = tmp_path / "fake-bd"
    bin_dir.mkdir()
    data_dir.mkdir()

    script = bin_dir / "bd"
    script.write_text(FAKE_BD)
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    monkeypatch.setenv("FAKE_BD_DIR", str(data_dir))
    return FakeBd(data_dir)


def git_commit(repo: Path, filename: str, content: str, message: str, author: str) -> None:
    (repo / filename).write_text(content)
    env = {**os.environ, **GIT_ENV, "GIT_AUTHOR_NAME": author}
    subprocess.run(["git", "add", "."], cwd=repo, capture_output=True, check=True)
    subprocess.run(
        ["git", "-c", "commit.gpgsign=false", "commit", "-m", message],
        cwd=repo,
        capture_output=True,
        check=True,
        env=env,
    )


@pytest.fixture
def git_repo(tmp_path):
    """A repository with two commits: one by Claude, then one by Alice."""
    repo = tmp_path / "repo"
    repo.mkdir()
    subprocess.run(["git", "init"], cwd=repo, capture_output=True, check=True)
    git_commit(repo, "README.md", "# Demo\n", "Initial commit", "Claude")
    git_commit(repo, "README.md", "# Demo\n\nMore docs.\n", "Expand readme", "Alice")
    return repo
