from __future__ import annotations


class HarvestError(RuntimeError):
    pass


class RepositoryAccessError(HarvestError):
    """The repository handle is not a git work tree, or the starting ref does not resolve."""


class CorruptHistoryError(HarvestError):
    """A recorded parent is missing from the object database (or `git log` failed)."""


class MalformedCommitError(HarvestError):
    def __init__(self, commit_id: str, reason: str) -> None:
        super().__init__(f"malformed commit {commit_id or '(no id)'}: {reason}")
        self.commit_id = commit_id
        self.reason = reason


class BranchDeleteError(HarvestError):
    pass
