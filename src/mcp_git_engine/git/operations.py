"""Git operations for the MCP Git engine.

One coroutine per logical verb. Each takes ``(options, context)``, builds an
argument vector, runs git through the process adapter, maps failures through
the error mapper and parses the output into a result model. None of them keep
state between calls.
"""

import logging
import os
from typing import Dict, List, Optional, Sequence, Tuple

from ..configuration import EngineConfig
from ..constants import GitOutputDelimiters
from ..error_handling import (
    ConflictError,
    GitOperationError,
    InternalError,
    NotFoundError,
    SigningError,
)
from . import arguments
from .context import OperationContext
from .environment import build_git_env
from .error_mapper import map_git_error
from .models import (
    GitAdd,
    GitAddResult,
    GitBlame,
    GitBlameResult,
    GitBranch,
    GitBranchResult,
    GitCheckout,
    GitCheckoutResult,
    GitCherryPick,
    GitCherryPickResult,
    GitClean,
    GitCleanResult,
    GitClone,
    GitCloneResult,
    GitCommit,
    GitCommitResult,
    GitDiff,
    GitDiffResult,
    GitFetch,
    GitFetchResult,
    GitInit,
    GitInitResult,
    GitLog,
    GitLogResult,
    GitMerge,
    GitMergeResult,
    GitPull,
    GitPullResult,
    GitPush,
    GitPushResult,
    GitRebase,
    GitRebaseResult,
    GitReflog,
    GitReflogResult,
    GitRemote,
    GitRemoteInfo,
    GitRemoteResult,
    GitReset,
    GitResetResult,
    GitShow,
    GitShowResult,
    GitStash,
    GitStashResult,
    GitStatus,
    GitStatusResult,
    GitTag,
    GitTagResult,
    GitWorktree,
    GitWorktreeInfo,
    GitWorktreeResult,
)
from .parsers import (
    group_remotes,
    parse_blame_porcelain,
    parse_branch_refs,
    parse_clean_output,
    parse_conflict_files,
    parse_diff_stat,
    parse_log,
    parse_name_list,
    parse_path_changes,
    parse_porcelain_records,
    parse_prune_output,
    parse_ref_updates,
    parse_reflog,
    parse_remotes,
    parse_stash_list,
    parse_status,
    parse_tag_refs,
    parse_worktree_list,
)
from .process import GitProcessError, ProcessOutput, get_spawn_strategy, run_git

logger = logging.getLogger(__name__)

# Lets --continue finish without opening an editor for the commit message
NON_INTERACTIVE_EDITOR = {"GIT_EDITOR": "true"}

_DEFAULT_CONFIG = EngineConfig()


async def _git(
    context: OperationContext,
    operation: str,
    args: Sequence[str],
    config: Optional[EngineConfig] = None,
    env_overrides: Optional[Dict[str, str]] = None,
    cwd: Optional[str] = None,
) -> ProcessOutput:
    """Run one git command for ``operation`` and map any failure."""
    config = config or _DEFAULT_CONFIG
    try:
        return await run_git(
            args,
            cwd=cwd or context.working_directory,
            env=build_git_env(env_overrides),
            timeout_ms=config.timeout_ms if context.timeout_ms is None else context.timeout_ms,
            cancel=context.cancellation,
            strict=config.strict_flags,
            executable=config.git_binary,
            strategy=get_spawn_strategy(config.spawn_strategy),
        )
    except GitProcessError as e:
        raise map_git_error(e, operation, args, context.trace) from e


def _resolve(context: OperationContext, path: Optional[str]) -> str:
    if not path:
        return context.working_directory
    return os.path.normpath(os.path.join(context.working_directory, path))


def _conflicted_paths(error: ConflictError) -> List[str]:
    return parse_conflict_files(error.stdout) or parse_conflict_files(error.stderr)


def _resolve_sign(requested: Optional[bool], config: Optional[EngineConfig]) -> Optional[bool]:
    if requested is not None:
        return requested
    # Leave git's own commit.gpgsign in charge unless signing is configured here
    return True if (config or _DEFAULT_CONFIG).sign_commits else None


async def _commit_summary(
    context: OperationContext, config: Optional[EngineConfig], ref: str = "HEAD"
) -> Tuple[str, str, int, List[str]]:
    output = await _git(
        context,
        "commit",
        ["show", "--no-color", "--name-only", f"--format={arguments.COMMIT_SUMMARY_FORMAT}", ref],
        config,
    )
    header, _, names = output.stdout.partition(GitOutputDelimiters.RECORD)
    records = parse_porcelain_records(header + GitOutputDelimiters.RECORD)
    fields = (records[0] if records else []) + ["", "", ""]
    return fields[0], fields[1], int(fields[2] or 0), parse_name_list(names)


async def rev_parse(
    context: OperationContext, ref: str = "HEAD", config: Optional[EngineConfig] = None
) -> str:
    output = await _git(context, "rev-parse", ["rev-parse", "--verify", "--quiet", ref], config)
    return output.stdout.strip()


async def get_current_branch(
    context: OperationContext, config: Optional[EngineConfig] = None
) -> Optional[str]:
    """Current branch name, or None when HEAD is detached or unborn."""
    try:
        output = await _git(
            context, "branch", ["symbolic-ref", "--short", "--quiet", "HEAD"], config
        )
    except GitOperationError as e:
        # --quiet exits 1 without output when HEAD is detached
        if e.exit_code == 1 and not e.stderr.strip():
            return None
        raise
    return output.stdout.strip() or None


async def is_git_repository(
    context: OperationContext, config: Optional[EngineConfig] = None
) -> bool:
    """True when the context's working directory is inside a work tree."""
    try:
        output = await _git(
            context, "status", ["rev-parse", "--is-inside-work-tree"], config
        )
    except (NotFoundError, InternalError) as e:
        logger.debug(f"{context.working_directory} is not a git work tree: {e}")
        return False
    return output.stdout.strip() == "true"


async def is_working_directory_clean(
    context: OperationContext, config: Optional[EngineConfig] = None
) -> bool:
    return (await git_status(GitStatus(), context, config=config)).is_clean


async def git_init(
    options: GitInit, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitInitResult:
    target = _resolve(context, options.path)
    os.makedirs(target, exist_ok=True)
    target_context = context.with_directory(target)
    await _git(target_context, "init", arguments.build_init_args(options, target), config)

    branch = options.initial_branch or await get_current_branch(target_context, config)
    logger.info(f"Initialized {'bare ' if options.bare else ''}repository at {target}")
    return GitInitResult(path=target, initial_branch=branch, bare=options.bare)


async def git_clone(
    options: GitClone, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitCloneResult:
    local_path = _resolve(context, options.local_path)
    parent = os.path.dirname(local_path)
    os.makedirs(parent, exist_ok=True)
    cloned = options.model_copy(update={"local_path": local_path})
    await _git(context, "clone", arguments.build_clone_args(cloned), config, cwd=parent)
    return GitCloneResult(
        local_path=local_path, remote_url=options.remote_url, branch=options.branch
    )


async def git_clean(
    options: GitClean, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitCleanResult:
    output = await _git(context, "clean", arguments.build_clean_args(options), config)
    summary = parse_clean_output(output.stdout)
    return GitCleanResult(
        files_removed=summary.files,
        directories_removed=summary.directories,
        dry_run=options.dry_run,
    )


async def git_status(
    options: GitStatus, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitStatusResult:
    output = await _git(context, "status", arguments.build_status_args(options), config)
    return parse_status(output.stdout)


async def git_add(
    options: GitAdd, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitAddResult:
    await _git(context, "add", arguments.build_add_args(options), config)
    staged = await _git(context, "add", ["diff", "--cached", "--name-only"], config)
    return GitAddResult(staged_files=parse_name_list(staged.stdout))


async def git_commit(
    options: GitCommit, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitCommitResult:
    """Create a commit, optionally staging files first.

    When signing was requested and fails, and ``force_unsigned_on_failure``
    is set, the commit is retried once without signing.
    """
    if options.files_to_stage:
        await git_add(GitAdd(paths=options.files_to_stage), context, config=config)

    sign = _resolve_sign(options.sign, config)
    request = options.model_copy(update={"sign": sign})
    try:
        await _git(context, "commit", arguments.build_commit_args(request), config)
        signed = bool(sign)
    except SigningError:
        if not (sign and options.force_unsigned_on_failure):
            raise
        logger.warning(
            "Commit signing failed, retrying unsigned",
            extra=context.log_extra("commit"),
        )
        unsigned = request.model_copy(update={"sign": False})
        await _git(context, "commit", arguments.build_commit_args(unsigned), config)
        signed = False

    commit_hash, author, timestamp, files = await _commit_summary(context, config)
    return GitCommitResult(
        commit_hash=commit_hash,
        message=options.message,
        author=author,
        timestamp=timestamp,
        files_changed=files,
        signed=signed,
    )


async def git_log(
    options: GitLog, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitLogResult:
    output = await _git(context, "log", arguments.build_log_args(options), config)
    commits = parse_log(output.stdout)
    return GitLogResult(commits=commits, total_count=len(commits))


async def git_show(
    options: GitShow, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitShowResult:
    args = arguments.build_show_args(options)
    target = args[-1]
    kind = await _git(context, "show", ["cat-file", "-t", target], config)
    output = await _git(context, "show", args, config)
    object_type = kind.stdout.strip()
    if object_type not in ("commit", "tree", "blob", "tag"):
        object_type = "commit"
    return GitShowResult(object=target, type=object_type, content=output.stdout)


async def git_diff(
    options: GitDiff, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitDiffResult:
    diff_text = ""
    if not options.stat_only:
        diff_text = (await _git(context, "diff", arguments.build_diff_args(options), config)).stdout
    stat_output = await _git(context, "diff", arguments.build_diff_args(options, stat=True), config)
    stat = parse_diff_stat(stat_output.stdout)
    return GitDiffResult(
        diff=diff_text,
        files_changed=len(stat.files),
        insertions=stat.total_additions,
        deletions=stat.total_deletions,
        binary=any(f.binary for f in stat.files),
        files=stat.files,
    )


async def git_branch(
    options: GitBranch, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitBranchResult:
    output = await _git(context, "branch", arguments.build_branch_args(options), config)
    if options.mode == "list":
        return GitBranchResult(mode="list", branches=parse_branch_refs(output.stdout))
    if options.mode == "create":
        return GitBranchResult(mode="create", created=options.branch_name)
    if options.mode == "delete":
        return GitBranchResult(mode="delete", deleted=options.branch_name)
    return GitBranchResult(
        mode="rename",
        renamed={"from": options.branch_name, "to": options.new_branch_name},
    )


async def git_checkout(
    options: GitCheckout, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitCheckoutResult:
    output = await _git(context, "checkout", arguments.build_checkout_args(options), config)
    modified = parse_path_changes(output.stdout) or parse_path_changes(output.stderr)
    return GitCheckoutResult(
        target=options.target,
        branch_created=options.create_branch,
        files_modified=modified or list(options.paths),
    )


async def git_merge(
    options: GitMerge, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitMergeResult:
    if options.abort:
        await _git(context, "merge", arguments.build_merge_args(options), config)
        return GitMergeResult(strategy="abort", message="Merge aborted")

    sign = _resolve_sign(options.sign, config)
    request = options.model_copy(update={"sign": sign})
    try:
        try:
            output = await _git(context, "merge", arguments.build_merge_args(request), config)
        except SigningError:
            if not (sign and options.force_unsigned_on_failure):
                raise
            logger.warning("Merge commit signing failed, retrying unsigned")
            unsigned = request.model_copy(update={"sign": False})
            output = await _git(context, "merge", arguments.build_merge_args(unsigned), config)
    except ConflictError as e:
        conflicted = _conflicted_paths(e)
        if not conflicted:
            raise
        return GitMergeResult(
            success=False,
            strategy=options.strategy or "merge",
            conflicts=True,
            conflicted_files=conflicted,
            message=e.message,
        )

    fast_forward = "Fast-forward" in output.stdout
    strategy = options.strategy or ("fast-forward" if fast_forward else "merge")
    if options.squash:
        strategy = "squash"
    return GitMergeResult(
        strategy=strategy,
        fast_forward=fast_forward,
        merged_files=[f.path for f in parse_diff_stat(output.stdout).files],
        message=(output.stdout.strip().splitlines() or [""])[0],
    )


async def git_rebase(
    options: GitRebase, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitRebaseResult:
    args = arguments.build_rebase_args(options)
    env = NON_INTERACTIVE_EDITOR if options.mode == "continue" else None
    try:
        await _git(context, "rebase", args, config, env_overrides=env)
    except ConflictError as e:
        conflicted = _conflicted_paths(e)
        if not conflicted:
            raise
        return GitRebaseResult(success=False, conflicts=True, conflicted_files=conflicted)

    rebased = 0
    if options.mode == "start" and options.upstream:
        count = await _git(
            context, "rebase", ["rev-list", "--count", f"{options.upstream}..HEAD"], config
        )
        rebased = int(count.stdout.strip() or 0)
    return GitRebaseResult(rebased_commits=rebased, current_commit=await rev_parse(context, config=config))


async def git_cherry_pick(
    options: GitCherryPick, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitCherryPickResult:
    args = arguments.build_cherry_pick_args(options)
    env = NON_INTERACTIVE_EDITOR if options.continue_operation else None
    try:
        await _git(context, "cherry-pick", args, config, env_overrides=env)
    except ConflictError as e:
        conflicted = _conflicted_paths(e)
        if not conflicted:
            raise
        return GitCherryPickResult(success=False, conflicts=True, conflicted_files=conflicted)
    picked = [] if (options.abort or options.continue_operation) else list(options.commits)
    return GitCherryPickResult(picked_commits=picked)


async def git_remote(
    options: GitRemote, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitRemoteResult:
    output = await _git(context, "remote", arguments.build_remote_args(options), config)
    mode = options.mode
    if mode == "list":
        return GitRemoteResult(mode=mode, remotes=group_remotes(parse_remotes(output.stdout)))
    if mode == "add":
        return GitRemoteResult(
            mode=mode,
            added=GitRemoteInfo(name=options.name, fetch_url=options.url, push_url=options.url),
        )
    if mode == "remove":
        return GitRemoteResult(mode=mode, removed=options.name)
    if mode == "rename":
        return GitRemoteResult(mode=mode, renamed={"from": options.name, "to": options.new_name})

    url = output.stdout.strip() if mode == "get-url" else options.url
    info = GitRemoteInfo(name=options.name)
    if options.push:
        info.push_url = url
    else:
        info.fetch_url = url
    return GitRemoteResult(mode=mode, remotes=[info])


async def git_fetch(
    options: GitFetch, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitFetchResult:
    output = await _git(context, "fetch", arguments.build_fetch_args(options), config)
    updates = parse_ref_updates(output.stderr)
    return GitFetchResult(
        remote=options.remote,
        fetched_refs=updates.new + updates.updated,
        pruned_refs=updates.deleted,
    )


async def git_push(
    options: GitPush, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitPushResult:
    output = await _git(context, "push", arguments.build_push_args(options), config)
    updates = parse_ref_updates(output.stderr)
    return GitPushResult(
        remote=options.remote,
        branch=options.branch,
        upstream_set=options.set_upstream,
        pushed_refs=updates.new + updates.updated + updates.deleted,
        rejected_refs=updates.rejected,
    )


async def git_pull(
    options: GitPull, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitPullResult:
    if options.rebase:
        strategy = "rebase"
    elif options.fast_forward_only:
        strategy = "fast-forward"
    else:
        strategy = "merge"

    try:
        output = await _git(context, "pull", arguments.build_pull_args(options), config)
    except ConflictError as e:
        conflicted = _conflicted_paths(e)
        if not conflicted:
            raise
        return GitPullResult(
            success=False,
            remote=options.remote,
            branch=options.branch,
            strategy=strategy,
            conflicts=True,
            conflicted_files=conflicted,
        )

    if strategy == "merge" and "Fast-forward" in output.stdout:
        strategy = "fast-forward"
    return GitPullResult(
        remote=options.remote,
        branch=options.branch,
        strategy=strategy,
        files_changed=[f.path for f in parse_diff_stat(output.stdout).files],
    )


async def git_tag(
    options: GitTag, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitTagResult:
    if options.mode == "list":
        output = await _git(context, "tag", arguments.build_tag_args(options), config)
        return GitTagResult(mode="list", tags=parse_tag_refs(output.stdout))
    if options.mode == "delete":
        await _git(context, "tag", arguments.build_tag_args(options), config)
        return GitTagResult(mode="delete", deleted=options.tag_name)

    sign = options.sign
    if sign is None and options.annotated and (config or _DEFAULT_CONFIG).sign_commits:
        sign = True
    request = options.model_copy(update={"sign": sign})
    try:
        await _git(context, "tag", arguments.build_tag_args(request), config)
    except SigningError:
        # Only signing implied by configuration falls back
        if not sign or options.sign:
            raise
        logger.warning(f"Signing tag {options.tag_name} failed, creating an unsigned annotated tag")
        unsigned = request.model_copy(update={"sign": False, "annotated": True})
        await _git(context, "tag", arguments.build_tag_args(unsigned), config)
    return GitTagResult(mode="create", created=options.tag_name)


async def git_stash(
    options: GitStash, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitStashResult:
    mode = options.mode
    args = arguments.build_stash_args(options)
    if mode in ("pop", "apply"):
        try:
            await _git(context, "stash", args, config)
        except ConflictError as e:
            conflicted = _conflicted_paths(e)
            if not conflicted:
                raise
            return GitStashResult(mode=mode, conflicts=True, applied=options.stash_ref or "stash@{0}")
        return GitStashResult(mode=mode, applied=options.stash_ref or "stash@{0}")

    output = await _git(context, "stash", args, config)
    if mode == "list":
        return GitStashResult(mode=mode, stashes=parse_stash_list(output.stdout))
    if mode == "push":
        created = None
        if "No local changes to save" not in output.stdout + output.stderr:
            created = "stash@{0}"
        return GitStashResult(mode=mode, created=created)
    if mode == "drop":
        return GitStashResult(mode=mode, dropped=options.stash_ref or "stash@{0}")
    return GitStashResult(mode=mode, stashes=[])


async def git_worktree(
    options: GitWorktree, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitWorktreeResult:
    mode = options.mode
    request = options
    if options.path:
        request = request.model_copy(update={"path": _resolve(context, options.path)})
    if options.new_path:
        request = request.model_copy(update={"new_path": _resolve(context, options.new_path)})

    output = await _git(context, "worktree", arguments.build_worktree_args(request), config)
    if mode == "list":
        return GitWorktreeResult(mode=mode, worktrees=parse_worktree_list(output.stdout))
    if mode == "add":
        return GitWorktreeResult(
            mode=mode,
            added=GitWorktreeInfo(
                path=request.path,
                branch=options.branch,
                detached=options.detach,
            ),
        )
    if mode == "remove":
        return GitWorktreeResult(mode=mode, removed=request.path)
    if mode == "move":
        return GitWorktreeResult(mode=mode, moved={"from": request.path, "to": request.new_path})
    # Newer git reports pruned entries on stderr
    pruned = parse_prune_output(output.stdout) or parse_prune_output(output.stderr)
    return GitWorktreeResult(mode=mode, pruned=pruned)


async def git_reset(
    options: GitReset, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitResetResult:
    output = await _git(context, "reset", arguments.build_reset_args(options), config)
    files = list(options.paths) or parse_path_changes(output.stdout)
    return GitResetResult(
        mode=options.mode,
        commit=await rev_parse(context, config=config),
        files_reset=files,
    )


async def git_blame(
    options: GitBlame, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitBlameResult:
    output = await _git(context, "blame", arguments.build_blame_args(options), config)
    lines = parse_blame_porcelain(output.stdout)
    return GitBlameResult(file=options.file, lines=lines, total_lines=len(lines))


async def git_reflog(
    options: GitReflog, context: OperationContext, *, config: Optional[EngineConfig] = None
) -> GitReflogResult:
    output = await _git(context, "reflog", arguments.build_reflog_args(options), config)
    entries = parse_reflog(output.stdout)
    return GitReflogResult(ref=options.ref, entries=entries, total_entries=len(entries))


async def git_version(
    context: OperationContext, config: Optional[EngineConfig] = None
) -> str:
    output = await _git(context, "version", ["version"], config)
    return output.stdout.strip()
