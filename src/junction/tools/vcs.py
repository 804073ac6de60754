"""Git helpers for preparing and committing migration branches."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Sequence


class GitError(RuntimeError):
    """Raised when a git command fails or the repository cannot be used."""


def _run(root: Path, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
    process = subprocess.run(
        ["git", *args],
        cwd=root,
        capture_output=True,
        text=False,
        check=False,
    )
    stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
    stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
    return subprocess.CompletedProcess(process.args, process.returncode, stdout, stderr)


class GitRepository:
    """Lightweight wrapper around ``git`` commands run in a work tree."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        if not self.is_repo(self.root):
            raise GitError(f"Not a git repository: {self.root}")

    @staticmethod
    def is_repo(path: Path | str) -> bool:
        """Return ``True`` when ``path`` sits inside a git work tree."""
        candidate = Path(path)
        if not candidate.is_dir():
            return False
        try:
            result = _run(candidate, ["rev-parse", "--is-inside-work-tree"])
        except FileNotFoundError:
            return False
        return result.returncode == 0 and result.stdout.strip() == "true"

    def git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        """Execute ``git`` with ``args`` relative to the repository root."""
        result = _run(self.root, args)
        if check and result.returncode != 0:
            message = result.stderr.strip() or result.stdout.strip() or "unknown git error"
            raise GitError(f"git {' '.join(args)} failed: {message}")
        return result

    def current_branch(self) -> str | None:
        """Return the current branch name or ``None`` when detached."""
        result = self.git("rev-parse", "--abbrev-ref", "HEAD", check=False)
        if result.returncode != 0:
            return None
        branch = result.stdout.strip()
        if not branch or branch == "HEAD":
            return None
        return branch

    def status_entries(self) -> List[tuple[str, Path]]:
        """Return porcelain status entries as ``(status, path)`` pairs."""
        result = self.git("status", "--porcelain")
        entries: List[tuple[str, Path]] = []
        for line in result.stdout.splitlines():
            if not line:
                continue
            status = line[:2]
            raw_path = line[3:]
            if status[0] in {"R", "C"} and " -> " in raw_path:
                raw_path = raw_path.split(" -> ", 1)[1]
            entries.append((status.strip() or status, Path(raw_path.strip())))
        return entries

    def is_clean(self) -> bool:
        return not self.status_entries()

    def ensure_clean(self) -> None:
        """Raise :class:`GitError` if the working tree has pending changes."""
        if not self.is_clean():
            raise GitError("Working tree not clean. Commit or stash changes first.")

    def checkout_new_branch(self, branch: str) -> None:
        self.git("checkout", "-b", branch)

    def checkout(self, branch: str) -> None:
        self.git("checkout", branch)

    def tag(self, name: str, message: str | None = None) -> None:
        """Create a lightweight tag, or an annotated one when ``message`` is given."""
        if message:
            self.git("tag", "-a", name, "-m", message)
        else:
            self.git("tag", name)

    def commit_all(self, message: str, *, allow_empty: bool = False) -> str | None:
        """Add all changes to the index and create a commit.

        Returns the new commit SHA, or ``None`` when there was nothing to
        commit and ``allow_empty`` is ``False``.
        """
        self.git("add", "--all")
        commit_args: List[str] = ["commit", "-m", message]
        if allow_empty:
            commit_args.append("--allow-empty")
        commit = self.git(*commit_args, check=False)
        if commit.returncode != 0:
            output = commit.stderr.strip() or commit.stdout.strip() or ""
            if "nothing to commit" in output.lower():
                return None
            raise GitError(f"git commit failed: {output}")
        return self.git("rev-parse", "HEAD").stdout.strip()


__all__ = ["GitError", "GitRepository"]
