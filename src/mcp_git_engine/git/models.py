"""Pydantic models for git operation options and results"""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


class GitInit(BaseModel):
    path: Optional[str] = None
    initial_branch: Optional[str] = None
    bare: bool = False


class GitClone(BaseModel):
    remote_url: str
    local_path: str
    branch: Optional[str] = None
    depth: Optional[int] = Field(default=None, gt=0)
    bare: bool = False
    mirror: bool = False
    recurse_submodules: bool = False


class GitClean(BaseModel):
    force: bool = False
    dry_run: bool = False
    directories: bool = False
    ignored: bool = False


class GitStatus(BaseModel):
    include_untracked: bool = True
    ignore_submodules: bool = False


class GitAdd(BaseModel):
    paths: List[str] = Field(default_factory=list)
    all: bool = False
    update: bool = False
    force: bool = False


class CommitAuthor(BaseModel):
    name: str
    email: str


class GitCommit(BaseModel):
    message: str
    author: Optional[CommitAuthor] = None
    amend: bool = False
    allow_empty: bool = False
    sign: Optional[bool] = None
    no_verify: bool = False
    files_to_stage: List[str] = Field(default_factory=list)
    force_unsigned_on_failure: bool = False


class GitLog(BaseModel):
    max_count: Optional[int] = Field(default=None, gt=0)
    skip: Optional[int] = Field(default=None, ge=0)
    since: Optional[str] = None
    until: Optional[str] = None
    author: Optional[str] = None
    grep: Optional[str] = None
    branch: Optional[str] = None
    path: Optional[str] = None


class GitShow(BaseModel):
    object: str = "HEAD"
    stat: bool = False
    file_path: Optional[str] = None


class GitDiff(BaseModel):
    commit1: Optional[str] = None
    commit2: Optional[str] = None
    staged: bool = False
    path: Optional[str] = None
    unified: Optional[int] = Field(default=None, ge=0)
    stat_only: bool = False


class GitBranch(BaseModel):
    mode: Literal["list", "create", "delete", "rename"] = "list"
    branch_name: Optional[str] = None
    new_branch_name: Optional[str] = None
    start_point: Optional[str] = None
    force: bool = False
    remote: bool = False


class GitCheckout(BaseModel):
    target: str
    create_branch: bool = False
    force: bool = False
    paths: List[str] = Field(default_factory=list)


class GitMerge(BaseModel):
    branch: Optional[str] = None
    strategy: Optional[str] = None
    no_fast_forward: bool = False
    squash: bool = False
    message: Optional[str] = None
    abort: bool = False
    sign: Optional[bool] = None
    force_unsigned_on_failure: bool = False


class GitRebase(BaseModel):
    mode: Literal["start", "continue", "abort", "skip"] = "start"
    upstream: Optional[str] = None
    branch: Optional[str] = None
    onto: Optional[str] = None
    interactive: bool = False
    preserve_merges: bool = False


class GitCherryPick(BaseModel):
    commits: List[str] = Field(default_factory=list)
    no_commit: bool = False
    continue_operation: bool = False
    abort: bool = False
    mainline: Optional[int] = Field(default=None, gt=0)
    strategy: Optional[str] = None
    signoff: bool = False


class GitRemote(BaseModel):
    mode: Literal["list", "add", "remove", "rename", "get-url", "set-url"] = "list"
    name: Optional[str] = None
    url: Optional[str] = None
    new_name: Optional[str] = None
    push: bool = False


class GitFetch(BaseModel):
    remote: str = "origin"
    prune: bool = False
    tags: bool = False
    depth: Optional[int] = Field(default=None, gt=0)


class GitPush(BaseModel):
    remote: str = "origin"
    branch: Optional[str] = None
    remote_branch: Optional[str] = None
    force: bool = False
    force_with_lease: bool = False
    set_upstream: bool = False
    tags: bool = False
    dry_run: bool = False
    delete: bool = False


class GitPull(BaseModel):
    remote: str = "origin"
    branch: Optional[str] = None
    rebase: bool = False
    fast_forward_only: bool = False


class GitTag(BaseModel):
    mode: Literal["list", "create", "delete"] = "list"
    tag_name: Optional[str] = None
    commit: Optional[str] = None
    message: Optional[str] = None
    annotated: bool = False
    force: bool = False
    sign: Optional[bool] = None


class GitStash(BaseModel):
    mode: Literal["list", "push", "pop", "apply", "drop", "clear"] = "list"
    message: Optional[str] = None
    stash_ref: Optional[str] = None
    include_untracked: bool = False
    keep_index: bool = False


class GitWorktree(BaseModel):
    mode: Literal["list", "add", "remove", "move", "prune"] = "list"
    path: Optional[str] = None
    new_path: Optional[str] = None
    commitish: Optional[str] = None
    branch: Optional[str] = None
    force: bool = False
    detach: bool = False
    dry_run: bool = False


class GitReset(BaseModel):
    mode: Literal["soft", "mixed", "hard", "merge", "keep"] = "mixed"
    commit: Optional[str] = None
    paths: List[str] = Field(default_factory=list)


class GitBlame(BaseModel):
    file: str
    start_line: Optional[int] = Field(default=None, gt=0)
    end_line: Optional[int] = Field(default=None, gt=0)
    ignore_whitespace: bool = False


class GitReflog(BaseModel):
    ref: str = "HEAD"
    max_count: Optional[int] = Field(default=None, gt=0)


# ---------------------------------------------------------------------------
# Parsed records
# ---------------------------------------------------------------------------


class ChangeSet(BaseModel):
    added: List[str] = Field(default_factory=list)
    modified: List[str] = Field(default_factory=list)
    deleted: List[str] = Field(default_factory=list)
    renamed: List[str] = Field(default_factory=list)
    copied: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.deleted or self.renamed or self.copied)


class GitCommitInfo(BaseModel):
    hash: str
    author_name: str
    author_email: str
    date: str
    subject: str
    short_hash: Optional[str] = None
    parents: List[str] = Field(default_factory=list)
    body: Optional[str] = None


class GitBranchInfo(BaseModel):
    name: str
    commit_hash: str = ""
    current: bool = False
    upstream: Optional[str] = None
    ahead: int = 0
    behind: int = 0


class DiffFileStat(BaseModel):
    path: str
    additions: int = 0
    deletions: int = 0
    binary: bool = False


class GitDiffStat(BaseModel):
    files: List[DiffFileStat] = Field(default_factory=list)
    total_additions: int = 0
    total_deletions: int = 0


class GitRemoteEntry(BaseModel):
    name: str
    url: str
    type: Literal["fetch", "push"]


class GitRemoteInfo(BaseModel):
    name: str
    fetch_url: Optional[str] = None
    push_url: Optional[str] = None


class GitTagInfo(BaseModel):
    name: str
    commit: Optional[str] = None
    message: Optional[str] = None
    timestamp: Optional[int] = None


class GitStashInfo(BaseModel):
    ref: str
    index: int
    branch: Optional[str] = None
    description: str = ""
    timestamp: Optional[int] = None


class GitWorktreeInfo(BaseModel):
    path: str
    head: Optional[str] = None
    branch: Optional[str] = None
    bare: bool = False
    detached: bool = False
    locked: bool = False
    prunable: bool = False


class BlameLine(BaseModel):
    line_number: int
    commit_hash: str
    author: str
    timestamp: int = 0
    content: str


class ReflogEntry(BaseModel):
    hash: str
    ref_name: str
    action: str
    message: str
    timestamp: int = 0


class RefUpdates(BaseModel):
    updated: List[str] = Field(default_factory=list)
    new: List[str] = Field(default_factory=list)
    deleted: List[str] = Field(default_factory=list)
    rejected: List[str] = Field(default_factory=list)


class CleanSummary(BaseModel):
    files: List[str] = Field(default_factory=list)
    directories: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class GitInitResult(BaseModel):
    success: bool = True
    path: str
    initial_branch: Optional[str] = None
    bare: bool = False


class GitCloneResult(BaseModel):
    success: bool = True
    local_path: str
    remote_url: str
    branch: Optional[str] = None


class GitCleanResult(BaseModel):
    success: bool = True
    files_removed: List[str] = Field(default_factory=list)
    directories_removed: List[str] = Field(default_factory=list)
    dry_run: bool = False


class GitStatusResult(BaseModel):
    current_branch: Optional[str] = None
    staged_changes: ChangeSet = Field(default_factory=ChangeSet)
    unstaged_changes: ChangeSet = Field(default_factory=ChangeSet)
    untracked_files: List[str] = Field(default_factory=list)
    conflicted_files: List[str] = Field(default_factory=list)
    is_clean: bool = True


class GitAddResult(BaseModel):
    success: bool = True
    staged_files: List[str] = Field(default_factory=list)


class GitCommitResult(BaseModel):
    success: bool = True
    commit_hash: str
    message: str
    author: str = ""
    timestamp: int = 0
    files_changed: List[str] = Field(default_factory=list)
    signed: bool = False


class GitLogResult(BaseModel):
    commits: List[GitCommitInfo] = Field(default_factory=list)
    total_count: int = 0


class GitShowResult(BaseModel):
    object: str
    type: Literal["commit", "tree", "blob", "tag"] = "commit"
    content: str = ""


class GitDiffResult(BaseModel):
    diff: str = ""
    files_changed: int = 0
    insertions: int = 0
    deletions: int = 0
    binary: bool = False
    files: List[DiffFileStat] = Field(default_factory=list)


class GitBranchResult(BaseModel):
    mode: str
    branches: Optional[List[GitBranchInfo]] = None
    created: Optional[str] = None
    deleted: Optional[str] = None
    renamed: Optional[dict] = None


class GitCheckoutResult(BaseModel):
    success: bool = True
    target: str
    branch_created: bool = False
    files_modified: List[str] = Field(default_factory=list)


class GitMergeResult(BaseModel):
    success: bool = True
    strategy: str = "merge"
    fast_forward: bool = False
    conflicts: bool = False
    conflicted_files: List[str] = Field(default_factory=list)
    merged_files: List[str] = Field(default_factory=list)
    message: str = ""


class GitRebaseResult(BaseModel):
    success: bool = True
    conflicts: bool = False
    conflicted_files: List[str] = Field(default_factory=list)
    rebased_commits: int = 0
    current_commit: Optional[str] = None


class GitCherryPickResult(BaseModel):
    success: bool = True
    picked_commits: List[str] = Field(default_factory=list)
    conflicts: bool = False
    conflicted_files: List[str] = Field(default_factory=list)


class GitRemoteResult(BaseModel):
    mode: str
    remotes: Optional[List[GitRemoteInfo]] = None
    added: Optional[GitRemoteInfo] = None
    removed: Optional[str] = None
    renamed: Optional[dict] = None


class GitFetchResult(BaseModel):
    success: bool = True
    remote: str
    fetched_refs: List[str] = Field(default_factory=list)
    pruned_refs: List[str] = Field(default_factory=list)


class GitPushResult(BaseModel):
    success: bool = True
    remote: str
    branch: Optional[str] = None
    upstream_set: bool = False
    pushed_refs: List[str] = Field(default_factory=list)
    rejected_refs: List[str] = Field(default_factory=list)


class GitPullResult(BaseModel):
    success: bool = True
    remote: str
    branch: Optional[str] = None
    strategy: Literal["merge", "rebase", "fast-forward"] = "merge"
    conflicts: bool = False
    conflicted_files: List[str] = Field(default_factory=list)
    files_changed: List[str] = Field(default_factory=list)


class GitTagResult(BaseModel):
    mode: str
    tags: Optional[List[GitTagInfo]] = None
    created: Optional[str] = None
    deleted: Optional[str] = None


class GitStashResult(BaseModel):
    mode: str
    stashes: Optional[List[GitStashInfo]] = None
    created: Optional[str] = None
    applied: Optional[str] = None
    dropped: Optional[str] = None
    conflicts: bool = False


class GitWorktreeResult(BaseModel):
    mode: str
    worktrees: Optional[List[GitWorktreeInfo]] = None
    added: Optional[GitWorktreeInfo] = None
    removed: Optional[str] = None
    moved: Optional[dict] = None
    pruned: Optional[List[str]] = None


class GitResetResult(BaseModel):
    success: bool = True
    mode: str
    commit: str = ""
    files_reset: List[str] = Field(default_factory=list)


class GitBlameResult(BaseModel):
    success: bool = True
    file: str
    lines: List[BlameLine] = Field(default_factory=list)
    total_lines: int = 0


class GitReflogResult(BaseModel):
    success: bool = True
    ref: str
    entries: List[ReflogEntry] = Field(default_factory=list)
    total_entries: int = 0
