"""Reduced-capability provider backed by dulwich, for hosts without a git binary.

Dulwich calls are synchronous, so each operation runs in the default executor.
A timeout stops waiting for the worker but cannot interrupt it; the worker
finishes in the background.
"""

import asyncio
import functools
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import dulwich
from dulwich import porcelain
from dulwich.errors import NotGitRepository
from dulwich.objects import Commit, Tag
from dulwich.objectspec import parse_commit
from pydantic import BaseModel

from ..constants import ProviderLimits
from ..error_handling import (
    ConflictError,
    GitOperationError,
    NotFoundError,
    OperationCancelledError,
    OperationTimeoutError,
    ValidationError,
)
from ..git.arguments import validate_branch_name
from ..git.context import OperationContext
from ..git.error_mapper import map_git_error
from ..git.models import (
    ChangeSet,
    GitAdd,
    GitAddResult,
    GitBranch,
    GitBranchInfo,
    GitBranchResult,
    GitCheckout,
    GitCheckoutResult,
    GitCommit,
    GitCommitInfo,
    GitCommitResult,
    GitInit,
    GitInitResult,
    GitLog,
    GitLogResult,
    GitReset,
    GitResetResult,
    GitStatus,
    GitStatusResult,
    GitTag,
    GitTagInfo,
    GitTagResult,
)
from .base import BaseGitProvider, Capabilities

logger = logging.getLogger(__name__)

_HEADS = b"refs/heads"
_REMOTES = b"refs/remotes"
_TAGS = b"refs/tags"
_SYMREF = b"ref: "


def _text(value) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _current_branch(repo) -> Optional[str]:
    head = repo.refs.read_ref(b"HEAD")
    prefix = _SYMREF + _HEADS + b"/"
    if head and head.startswith(prefix):
        return _text(head[len(prefix):])
    return None


def _commit_info(commit: Commit) -> GitCommitInfo:
    author = _text(commit.author)
    name, _, email = author.partition(" <")
    tz = timezone(timedelta(seconds=commit.author_timezone))
    subject, _, body = _text(commit.message).partition("\n")
    sha = _text(commit.id)
    return GitCommitInfo(
        hash=sha,
        author_name=name,
        author_email=email.rstrip(">"),
        date=datetime.fromtimestamp(commit.author_time, tz).isoformat(),
        subject=subject.strip(),
        short_hash=sha[:7],
        parents=[_text(p) for p in commit.parents],
        body=body.strip() or None,
    )


def _changed_paths(repo, commit: Commit) -> List[str]:
    parent_tree = repo[commit.parents[0]].tree if commit.parents else None
    paths = []
    for (old_path, new_path), _, _ in repo.object_store.tree_changes(parent_tree, commit.tree):
        paths.append(_text(new_path or old_path))
    return paths


class EmbeddedGitProvider(BaseGitProvider):
    """Provider for the core local workflow, implemented on ``dulwich.porcelain``."""

    name = "embedded"
    version = ".".join(str(part) for part in dulwich.__version__)
    capabilities = Capabilities(
        clone=False,
        merge=False,
        rebase=False,
        remote=False,
        fetch=False,
        push=False,
        pull=False,
        stash=False,
        worktree=False,
        blame=False,
        reflog=False,
        sign_commits=False,
        ssh_auth=False,
        http_auth=False,
        max_repo_size_mb=ProviderLimits.EMBEDDED_MAX_REPO_SIZE_MB,
    )

    _HANDLERS: Dict[str, str] = {
        "init": "_init",
        "status": "_status",
        "add": "_add",
        "commit": "_commit",
        "log": "_log",
        "branch": "_branch",
        "checkout": "_checkout",
        "tag": "_tag",
        "reset": "_reset",
    }

    async def health_check(self, context: OperationContext) -> bool:
        healthy = bool(getattr(dulwich, "__version__", None))
        logger.debug(
            f"dulwich {self.version} health check: {healthy}",
            extra=context.log_extra("health_check", provider=self.name),
        )
        return healthy

    async def _perform(
        self, operation: str, options: BaseModel, context: OperationContext
    ) -> BaseModel:
        handler_name = self._HANDLERS.get(operation)
        if handler_name is None:
            raise self.unsupported(operation)
        if context.cancellation is not None and context.cancellation.cancelled:
            raise OperationCancelledError(
                f"git {operation} cancelled before start: {context.cancellation.reason or 'no reason given'}",
                operation=operation,
                trace=context.trace,
            )

        handler: Callable = getattr(self, handler_name)
        call = functools.partial(handler, options, context.working_directory)
        timeout_ms = self.config.timeout_ms if context.timeout_ms is None else context.timeout_ms
        if timeout_ms <= 0:
            raise ValidationError(
                f"Timeout must be positive, got {timeout_ms}ms", operation=operation, trace=context.trace
            )
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(loop.run_in_executor(None, call), timeout_ms / 1000)
        except asyncio.TimeoutError:
            raise OperationTimeoutError(
                f"git {operation} timed out after {timeout_ms}ms",
                operation=operation,
                trace=context.trace,
            ) from None
        except GitOperationError as e:
            raise map_git_error(e, operation, trace=context.trace)
        except NotGitRepository as e:
            raise NotFoundError(
                f"not a git repository: {context.working_directory}",
                operation=operation,
                trace=context.trace,
            ) from e
        except KeyError as e:
            raise NotFoundError(
                f"git {operation} failed: reference not found: {_text(e.args[0]) if e.args else e}",
                operation=operation,
                trace=context.trace,
            ) from e
        except Exception as e:
            raise map_git_error(e, operation, trace=context.trace) from e

    # Handlers run in a worker thread

    def _init(self, options: GitInit, path: str) -> GitInitResult:
        target = os.path.normpath(os.path.join(path, options.path or ""))
        os.makedirs(target, exist_ok=True)
        marker = "HEAD" if options.bare else ".git"
        if os.path.exists(os.path.join(target, marker)):
            repo = porcelain.open_repo(target)
        else:
            repo = porcelain.init(target, bare=options.bare)
        try:
            if options.initial_branch:
                branch = validate_branch_name(options.initial_branch)
                repo.refs.set_symbolic_ref(b"HEAD", _HEADS + b"/" + branch.encode())
            return GitInitResult(
                path=target, initial_branch=_current_branch(repo), bare=options.bare
            )
        finally:
            repo.close()

    def _status(self, options: GitStatus, path: str) -> GitStatusResult:
        untracked_mode = "all" if options.include_untracked else "no"
        status = porcelain.status(path, untracked_files=untracked_mode)
        staged = ChangeSet(
            added=sorted(_text(p) for p in status.staged.get("add", [])),
            modified=sorted(_text(p) for p in status.staged.get("modify", [])),
            deleted=sorted(_text(p) for p in status.staged.get("delete", [])),
        )
        unstaged = ChangeSet()
        for entry in sorted(_text(p) for p in status.unstaged):
            if os.path.lexists(os.path.join(path, entry)):
                unstaged.modified.append(entry)
            else:
                unstaged.deleted.append(entry)
        untracked = sorted(_text(p) for p in status.untracked)

        with porcelain.open_repo_closing(path) as repo:
            current = _current_branch(repo)
        return GitStatusResult(
            current_branch=current,
            staged_changes=staged,
            unstaged_changes=unstaged,
            untracked_files=untracked,
            is_clean=staged.is_empty() and unstaged.is_empty() and not untracked,
        )

    def _staged_paths(self, path: str) -> List[str]:
        staged = porcelain.status(path, untracked_files="no").staged
        return sorted(_text(p) for paths in staged.values() for p in paths)

    def _add(self, options: GitAdd, path: str) -> GitAddResult:
        if options.force:
            raise self.unsupported("add", "force-adding ignored files")
        status = porcelain.status(path, untracked_files="all")
        deleted = {
            _text(p) for p in status.unstaged if not os.path.lexists(os.path.join(path, _text(p)))
        }

        if options.all or options.update:
            candidates = [_text(p) for p in status.unstaged]
            if options.all:
                candidates.extend(_text(p) for p in status.untracked)
        elif options.paths:
            candidates = list(options.paths)
        else:
            raise ValidationError("add requires paths, all or update", operation="add")

        to_add, to_remove = [], []
        for candidate in candidates:
            full = os.path.join(path, candidate)
            if os.path.lexists(full):
                to_add.append(full)
            elif candidate in deleted:
                to_remove.append(full)
            else:
                raise NotFoundError(
                    f"pathspec '{candidate}' did not match any files", operation="add"
                )

        if to_add:
            porcelain.add(path, paths=to_add)
        if to_remove:
            porcelain.remove(path, paths=to_remove, cached=True)
        return GitAddResult(staged_files=self._staged_paths(path))

    def _commit(self, options: GitCommit, path: str) -> GitCommitResult:
        if options.amend:
            raise self.unsupported("commit", "amending commits")
        sign = options.sign if options.sign is not None else (self.config.sign_commits or None)
        if sign:
            if not options.force_unsigned_on_failure:
                raise self.unsupported("commit", "commit signing")
            logger.warning("Commit signing is not available in the embedded provider, committing unsigned")

        if options.files_to_stage:
            self._add(GitAdd(paths=options.files_to_stage), path)
        if not options.allow_empty and not self._staged_paths(path):
            raise ValidationError(
                "git commit failed: nothing to commit, working tree clean", operation="commit"
            )

        author = None
        if options.author:
            author = f"{options.author.name} <{options.author.email}>".encode()
        sha = porcelain.commit(
            path,
            message=options.message.encode(),
            author=author,
            committer=author,
            no_verify=options.no_verify,
        )

        with porcelain.open_repo_closing(path) as repo:
            commit = repo[sha]
            files = _changed_paths(repo, commit)
        return GitCommitResult(
            commit_hash=_text(sha),
            message=options.message,
            author=_text(commit.author),
            timestamp=commit.author_time,
            files_changed=files,
            signed=False,
        )

    def _log(self, options: GitLog, path: str) -> GitLogResult:
        if options.since or options.until:
            raise self.unsupported("log", "date filtering")

        with porcelain.open_repo_closing(path) as repo:
            if options.branch:
                include = [parse_commit(repo, options.branch).id]
            else:
                include = [repo.head()]
            walker_args = {"include": include}
            if options.path:
                walker_args["paths"] = [options.path.encode()]

            commits: List[GitCommitInfo] = []
            skipped = 0
            for entry in repo.get_walker(**walker_args):
                commit = entry.commit
                if options.author and options.author.lower() not in _text(commit.author).lower():
                    continue
                if options.grep and options.grep not in _text(commit.message):
                    continue
                if options.skip and skipped < options.skip:
                    skipped += 1
                    continue
                commits.append(_commit_info(commit))
                if options.max_count and len(commits) >= options.max_count:
                    break
        return GitLogResult(commits=commits, total_count=len(commits))

    def _branch(self, options: GitBranch, path: str) -> GitBranchResult:
        with porcelain.open_repo_closing(path) as repo:
            current = _current_branch(repo)
            if options.mode == "list":
                namespace = _REMOTES if options.remote else _HEADS
                branches = []
                for name, sha in sorted(repo.refs.as_dict(namespace).items()):
                    if name.endswith(b"/HEAD"):
                        continue
                    branch = _text(name)
                    branches.append(
                        GitBranchInfo(
                            name=branch,
                            commit_hash=_text(sha),
                            current=not options.remote and branch == current,
                        )
                    )
                return GitBranchResult(mode="list", branches=branches)

            name = validate_branch_name(options.branch_name)
            ref = _HEADS + b"/" + name.encode()
            if options.mode == "create":
                if ref in repo.refs and not options.force:
                    raise ConflictError(
                        f"a branch named '{name}' already exists", operation="branch"
                    )
                porcelain.branch_create(
                    repo, name, objectish=options.start_point, force=options.force
                )
                return GitBranchResult(mode="create", created=name)

            if options.mode == "delete":
                if options.remote:
                    raise self.unsupported("branch", "deleting remote-tracking branches")
                if ref not in repo.refs:
                    raise NotFoundError(f"branch '{name}' not found", operation="branch")
                if name == current:
                    raise ValidationError(
                        f"Cannot delete branch '{name}' checked out at '{path}'",
                        operation="branch",
                    )
                porcelain.branch_delete(repo, name)
                return GitBranchResult(mode="delete", deleted=name)

        raise self.unsupported("branch", "renaming branches")

    def _checkout(self, options: GitCheckout, path: str) -> GitCheckoutResult:
        if options.paths:
            raise self.unsupported("checkout", "restoring individual paths")
        with porcelain.open_repo_closing(path) as repo:
            if options.create_branch:
                name = validate_branch_name(options.target)
                if _HEADS + b"/" + name.encode() in repo.refs:
                    raise ConflictError(
                        f"a branch named '{name}' already exists", operation="checkout"
                    )
                porcelain.branch_create(repo, name)
            porcelain.checkout(repo, options.target, force=options.force)
        return GitCheckoutResult(target=options.target, branch_created=options.create_branch)

    def _tag(self, options: GitTag, path: str) -> GitTagResult:
        with porcelain.open_repo_closing(path) as repo:
            if options.mode == "list":
                tags = [self._tag_info(repo, name, sha) for name, sha in repo.refs.as_dict(_TAGS).items()]
                tags.sort(key=lambda t: t.timestamp or 0, reverse=True)
                return GitTagResult(mode="list", tags=tags)

            if not options.tag_name:
                raise ValidationError(f"'tag_name' is required for tag {options.mode}", operation="tag")
            name = options.tag_name
            ref = _TAGS + b"/" + name.encode()

            if options.mode == "delete":
                if ref not in repo.refs:
                    raise NotFoundError(f"tag '{name}' not found", operation="tag")
                porcelain.tag_delete(repo, name.encode())
                return GitTagResult(mode="delete", deleted=name)

            if options.sign:
                raise self.unsupported("tag", "signed tags")
            if ref in repo.refs and not options.force:
                raise ConflictError(f"tag '{name}' already exists", operation="tag")
            annotated = options.annotated or bool(options.message)
            porcelain.tag_create(
                repo,
                name.encode(),
                message=(options.message or name).encode() if annotated else None,
                annotated=annotated,
                objectish=options.commit or "HEAD",
            )
        return GitTagResult(mode="create", created=name)

    @staticmethod
    def _tag_info(repo, name: bytes, sha: bytes) -> GitTagInfo:
        obj = repo[sha]
        if isinstance(obj, Tag):
            _, target = obj.object
            subject = _text(obj.message).strip().split("\n", 1)[0]
            return GitTagInfo(
                name=_text(name), commit=_text(target), message=subject or None, timestamp=obj.tag_time
            )
        subject = _text(obj.message).strip().split("\n", 1)[0] if isinstance(obj, Commit) else ""
        timestamp = obj.commit_time if isinstance(obj, Commit) else None
        return GitTagInfo(name=_text(name), commit=_text(sha), message=subject or None, timestamp=timestamp)

    def _reset(self, options: GitReset, path: str) -> GitResetResult:
        if options.paths:
            raise self.unsupported("reset", "resetting individual paths")
        if options.mode not in ("soft", "mixed", "hard"):
            raise self.unsupported("reset", f"{options.mode} mode")
        porcelain.reset(path, options.mode, options.commit or "HEAD")
        with porcelain.open_repo_closing(path) as repo:
            head = _text(repo.head())
        return GitResetResult(mode=options.mode, commit=head)
