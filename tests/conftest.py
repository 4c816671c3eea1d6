from __future__ import annotations

import os
import subprocess
from pathlib import Path

import pytest

ALICE = ("Alice", "alice@example.com")
BOB = ("Bob", "bob@example.com")


def _run(cmd: list[str], *, cwd: Path, env: dict[str, str] | None = None) -> str:
    proc = subprocess.run(cmd, cwd=str(cwd), env=env, check=True, capture_output=True, text=True)
    return proc.stdout.strip()


class GitRepo:
    """Throwaway repository with fixed identities and dates."""

    def __init__(self, path: Path, *, bare: bool = False) -> None:
        self.path = path
        self.env = os.environ.copy()
        self.env["GIT_CONFIG_GLOBAL"] = os.devnull
        self.env["GIT_CONFIG_NOSYSTEM"] = "1"
        path.mkdir(parents=True, exist_ok=True)
        self.git("-c", "init.defaultBranch=main", "init", "-q")
        self.git("config", "user.name", "Test User")
        self.git("config", "user.email", "test@example.com")
        self.git("config", "commit.gpgsign", "false")

    def git(self, *args: str, env: dict[str, str] | None = None) -> str:
        return _run(["git", *args], cwd=self.path, env=env or self.env)

    def write(self, rel: str, text: str) -> None:
        p = self.path / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")

    def write_bytes(self, rel: str, data: bytes) -> None:
        p = self.path / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)

    def commit(
        self,
        message: str,
        *,
        date_iso: str,
        author: tuple[str, str] = ("Test User", "test@example.com"),
        cleanup: str = "default",
    ) -> str:
        env = dict(self.env)
        env["GIT_AUTHOR_NAME"], env["GIT_AUTHOR_EMAIL"] = author
        env["GIT_COMMITTER_NAME"], env["GIT_COMMITTER_EMAIL"] = author
        env["GIT_AUTHOR_DATE"] = date_iso
        env["GIT_COMMITTER_DATE"] = date_iso
        self.git("add", "-A", env=env)
        self.git("commit", "-q", "--no-verify", f"--cleanup={cleanup}", "-m", message, env=env)
        return self.git("rev-parse", "HEAD")

    def delete_object(self, sha: str) -> None:
        obj = self.path / ".git" / "objects" / sha[:2] / sha[2:]
        obj.chmod(0o644)
        obj.unlink()


def lines(prefix: str, n: int) -> str:
    return "".join(f"{prefix}{i}\n" for i in range(n))


@pytest.fixture
def git_repo(tmp_path: Path) -> GitRepo:
    return GitRepo(tmp_path / "repo")


@pytest.fixture
def scenario_repo(git_repo: GitRepo) -> tuple[GitRepo, list[str]]:
    """
    Three commits by two authors, oldest first:
      Bob    2025-01-01  +5/-0   (b.txt)
      Alice  2025-01-02  +10/-2  (a.txt added, two lines dropped from b.txt)
      Alice  2025-01-03  +3/-1   (one line of a.txt changed, two appended)
    """
    r = git_repo
    r.write("b.txt", lines("b", 5))
    sha1 = r.commit("add b", date_iso="2025-01-01T10:00:00Z", author=BOB)

    r.write("b.txt", lines("b", 3))
    r.write("a.txt", lines("a", 10))
    sha2 = r.commit("add a\n\nlonger body\nsecond line", date_iso="2025-01-02T10:00:00Z", author=ALICE)

    r.write("a.txt", "A0\n" + "".join(f"a{i}\n" for i in range(1, 12)))
    sha3 = r.commit("tweak a", date_iso="2025-01-03T10:00:00Z", author=ALICE)
    return r, [sha1, sha2, sha3]
