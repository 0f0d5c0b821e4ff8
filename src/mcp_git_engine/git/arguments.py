"""Argument vector construction and validation for git invocations.

Every builder returns a list of discrete tokens that is handed to the process
adapter as-is; nothing here ever produces a shell string. Option values are
attached with ``--flag=value`` where git accepts it. Refs, remotes and other
caller-supplied positionals are rejected when they begin with ``-``, since git
would parse them as options. Paths always follow a ``--`` separator.
"""

import logging
import re
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel

from ..constants import SAFE_GIT_OPTIONS
from ..error_handling import ValidationError
from . import models

logger = logging.getLogger(__name__)

# Pretty formats use %x1f/%x1e; for-each-ref formats use %1f.
LOG_FORMAT = "%H%x1f%an%x1f%ae%x1f%aI%x1f%s%x1f%h%x1f%P%x1f%b%x1e"
REFLOG_FORMAT = "%H%x1f%gd%x1f%gs%x1f%ct%x1e"
STASH_FORMAT = "%gd%x1f%ct%x1f%gs%x1e"
COMMIT_SUMMARY_FORMAT = "%H%x1f%an <%ae>%x1f%at%x1e"
BRANCH_REF_FORMAT = (
    "%(refname)%1f%(objectname)%1f%(upstream:short)%1f%(upstream:track)%1f%(HEAD)"
)
TAG_REF_FORMAT = (
    "%(refname:short)%1f%(objectname)%1f%(*objectname)%1f"
    "%(contents:subject)%1f%(creatordate:unix)"
)

_SHORT_FLAG = re.compile(r"^-[a-zA-Z]$")
_BRANCH_NAME_RULES = [
    (re.compile(r"^[.-]"), "cannot start with '.' or '-'"),
    (re.compile(r"\.\."), "cannot contain '..'"),
    (re.compile(r"//"), "cannot contain '//'"),
    (re.compile(r"@\{"), "cannot contain '@{'"),
    (re.compile(r"[\x00-\x1f\x7f]"), "cannot contain control characters"),
    (re.compile(r"[ ~^:?*\[\\]"), "cannot contain spaces or any of ~^:?*[\\"),
    (re.compile(r"\.lock$"), "cannot end with '.lock'"),
    (re.compile(r"[/.]$"), "cannot end with '/' or '.'"),
]


def build_git_command(command: str, *args: str) -> List[str]:
    """Build a git argument vector from a subcommand and its arguments."""
    return [command, *args]


def validate_git_args(args: Sequence[str], strict: bool = False) -> None:
    """
    Validate an argument vector before it is spawned.

    A token containing a null byte is always rejected. Long options whose name
    (the part before any ``=value``) is not in ``SAFE_GIT_OPTIONS`` are logged
    as warnings, or rejected when ``strict`` is set. Tokens after a ``--``
    separator are positional and are only checked for null bytes.

    Raises:
        ValidationError: if any token is unsafe under the active policy
    """
    positional = False
    for arg in args:
        if "\x00" in arg:
            raise ValidationError(
                "Null byte detected in git argument",
                operation=args[0] if args else "",
                args=[a.replace("\x00", "\\0") for a in args],
            )
        if positional:
            continue
        if arg == "--":
            positional = True
            continue
        if not arg.startswith("-"):
            continue

        flag_name = arg.split("=", 1)[0]
        if _SHORT_FLAG.match(flag_name) or flag_name in SAFE_GIT_OPTIONS:
            continue

        if strict:
            raise ValidationError(
                f"Unknown or potentially unsafe git flag: {arg}",
                operation=args[0] if args else "",
                args=list(args),
            )
        logger.warning(f"Unrecognized git flag passed through: {arg}")


def validate_branch_name(name: Optional[str]) -> str:
    """Apply git's ref-name rules to a branch name.

    Raises:
        ValidationError: if the name is empty or violates a rule
    """
    if not name or not name.strip():
        raise ValidationError("Branch name cannot be empty", operation="branch")
    for pattern, reason in _BRANCH_NAME_RULES:
        if pattern.search(name):
            raise ValidationError(
                f"Invalid branch name '{name}': {reason}", operation="branch"
            )
    return name


def _require(value, field: str, operation: str):
    if value is None or value == "" or value == []:
        raise ValidationError(f"'{field}' is required for {operation}", operation=operation)
    return value


def _positional(value: str, field: str, operation: str) -> str:
    if value.startswith("-"):
        raise ValidationError(
            f"'{field}' cannot start with '-': {value}", operation=operation
        )
    return value


def _paths(paths: Iterable[str]) -> List[str]:
    paths = [p for p in paths if p]
    return ["--", *paths] if paths else []


def _sign_flag(sign: Optional[bool]) -> List[str]:
    if sign is None:
        return []
    return ["-S"] if sign else ["--no-gpg-sign"]


def build_init_args(options: models.GitInit, path: Optional[str] = None) -> List[str]:
    args = ["init"]
    if options.bare:
        args.append("--bare")
    if options.initial_branch:
        args.append(f"--initial-branch={validate_branch_name(options.initial_branch)}")
    target = path or options.path
    if target:
        args.append(target)
    return args


def build_clone_args(options: models.GitClone) -> List[str]:
    args = ["clone"]
    if options.branch:
        args.append(f"--branch={options.branch}")
    if options.depth:
        args.append(f"--depth={options.depth}")
    if options.bare:
        args.append("--bare")
    if options.mirror:
        args.append("--mirror")
    if options.recurse_submodules:
        args.append("--recurse-submodules")
    args.extend(["--", options.remote_url, options.local_path])
    return args


def build_clean_args(options: models.GitClean) -> List[str]:
    if not options.force and not options.dry_run:
        raise ValidationError(
            "clean requires either force or dry_run", operation="clean"
        )
    args = ["clean"]
    if options.dry_run:
        args.append("-n")
    elif options.force:
        args.append("-f")
    if options.directories:
        args.append("-d")
    if options.ignored:
        args.append("-x")
    return args


def build_status_args(options: models.GitStatus) -> List[str]:
    args = ["status", "--porcelain=v2", "-b"]
    if not options.include_untracked:
        args.append("--untracked-files=no")
    if options.ignore_submodules:
        args.append("--ignore-submodules")
    return args


def build_add_args(options: models.GitAdd) -> List[str]:
    args = ["add"]
    if options.all:
        args.append("--all")
    elif options.update:
        args.append("--update")
    elif not options.paths:
        raise ValidationError("add requires paths, all or update", operation="add")
    if options.force:
        args.append("--force")
    args.extend(_paths(options.paths))
    return args


def build_commit_args(options: models.GitCommit) -> List[str]:
    args = ["commit", f"--message={_require(options.message, 'message', 'commit')}"]
    if options.author:
        args.append(f"--author={options.author.name} <{options.author.email}>")
    if options.amend:
        args.append("--amend")
    if options.allow_empty:
        args.append("--allow-empty")
    if options.no_verify:
        args.append("--no-verify")
    args.extend(_sign_flag(options.sign))
    return args


def build_log_args(options: models.GitLog) -> List[str]:
    args = ["log", f"--format={LOG_FORMAT}"]
    if options.max_count:
        args.append(f"--max-count={options.max_count}")
    if options.skip:
        args.append(f"--skip={options.skip}")
    if options.since:
        args.append(f"--since={options.since}")
    if options.until:
        args.append(f"--until={options.until}")
    if options.author:
        args.append(f"--author={options.author}")
    if options.grep:
        args.append(f"--grep={options.grep}")
    if options.branch:
        args.append(_positional(options.branch, "branch", "log"))
    if options.path:
        args.extend(["--", options.path])
    return args


def build_show_args(options: models.GitShow) -> List[str]:
    args = ["show", "--no-color"]
    if options.stat:
        args.append("--stat")
    target = _positional(options.object, "object", "show")
    if options.file_path:
        target = f"{target}:{options.file_path}"
    args.append(target)
    return args


def build_diff_args(options: models.GitDiff, stat: bool = False) -> List[str]:
    args = ["diff", "--no-color"]
    if stat:
        args.append("--stat")
    if options.staged:
        args.append("--cached")
    if options.unified is not None:
        args.append(f"--unified={options.unified}")
    if options.commit1:
        args.append(_positional(options.commit1, "commit1", "diff"))
    if options.commit2:
        args.append(_positional(options.commit2, "commit2", "diff"))
    if options.path:
        args.extend(["--", options.path])
    return args


def build_branch_args(options: models.GitBranch) -> List[str]:
    if options.mode == "list":
        namespace = "refs/remotes" if options.remote else "refs/heads"
        return ["for-each-ref", f"--format={BRANCH_REF_FORMAT}", namespace]

    name = validate_branch_name(options.branch_name)
    if options.mode == "create":
        args = ["branch"]
        if options.force:
            args.append("--force")
        args.append(name)
        if options.start_point:
            args.append(_positional(options.start_point, "start_point", "branch"))
        return args
    if options.mode == "delete":
        args = ["branch", "-D" if options.force else "-d"]
        if options.remote:
            args.append("--remote")
        return [*args, name]
    new_name = validate_branch_name(options.new_branch_name)
    return ["branch", "-M" if options.force else "-m", name, new_name]


def build_checkout_args(options: models.GitCheckout) -> List[str]:
    args = ["checkout"]
    if options.force:
        args.append("--force")
    if options.create_branch:
        args.extend(["-b", validate_branch_name(options.target)])
    else:
        args.append(_positional(options.target, "target", "checkout"))
    args.extend(_paths(options.paths))
    return args


def build_merge_args(options: models.GitMerge) -> List[str]:
    if options.abort:
        return ["merge", "--abort"]
    branch = _positional(_require(options.branch, "branch", "merge"), "branch", "merge")
    args = ["merge"]
    if options.no_fast_forward:
        args.append("--no-ff")
    if options.squash:
        args.append("--squash")
    if options.strategy:
        args.append(f"--strategy={options.strategy}")
    if options.message:
        args.append(f"--message={options.message}")
    else:
        args.append("--no-edit")
    args.extend(_sign_flag(options.sign))
    args.append(branch)
    return args


def build_rebase_args(options: models.GitRebase) -> List[str]:
    if options.interactive:
        raise ValidationError(
            "Interactive rebase is not supported without a terminal", operation="rebase"
        )
    if options.mode != "start":
        return ["rebase", f"--{options.mode}"]
    args = ["rebase"]
    if options.preserve_merges:
        args.append("--rebase-merges")
    if options.onto:
        args.append(f"--onto={options.onto}")
    upstream = _require(options.upstream, "upstream", "rebase")
    args.append(_positional(upstream, "upstream", "rebase"))
    if options.branch:
        args.append(_positional(options.branch, "branch", "rebase"))
    return args


def build_cherry_pick_args(options: models.GitCherryPick) -> List[str]:
    if options.abort:
        return ["cherry-pick", "--abort"]
    if options.continue_operation:
        return ["cherry-pick", "--continue"]
    commits = _require(options.commits, "commits", "cherry-pick")
    args = ["cherry-pick"]
    if options.no_commit:
        args.append("--no-commit")
    if options.mainline:
        args.extend(["-m", str(options.mainline)])
    if options.strategy:
        args.append(f"--strategy={options.strategy}")
    if options.signoff:
        args.append("--signoff")
    args.extend(_positional(commit, "commits", "cherry-pick") for commit in commits)
    return args


def build_remote_args(options: models.GitRemote) -> List[str]:
    mode = options.mode
    if mode == "list":
        return ["remote", "-v"]
    name = _positional(_require(options.name, "name", f"remote {mode}"), "name", "remote")
    if mode == "add":
        url = _require(options.url, "url", "remote add")
        return ["remote", "add", name, _positional(url, "url", "remote")]
    if mode == "remove":
        return ["remote", "remove", name]
    if mode == "rename":
        new_name = _require(options.new_name, "new_name", "remote rename")
        return ["remote", "rename", name, _positional(new_name, "new_name", "remote")]
    push = ["--push"] if options.push else []
    if mode == "get-url":
        return ["remote", "get-url", *push, name]
    url = _require(options.url, "url", "remote set-url")
    return ["remote", "set-url", *push, name, _positional(url, "url", "remote")]


def build_fetch_args(options: models.GitFetch) -> List[str]:
    args = ["fetch"]
    if options.prune:
        args.append("--prune")
    if options.tags:
        args.append("--tags")
    if options.depth:
        args.append(f"--depth={options.depth}")
    args.append(_positional(options.remote, "remote", "fetch"))
    return args


def build_push_args(options: models.GitPush) -> List[str]:
    args = ["push"]
    remote = _positional(options.remote, "remote", "push")
    if options.delete:
        target = _require(options.remote_branch or options.branch, "branch", "push --delete")
        return [*args, "--delete", remote, _positional(target, "branch", "push")]
    if options.force_with_lease:
        args.append("--force-with-lease")
    elif options.force:
        args.append("--force")
    if options.set_upstream:
        args.append("--set-upstream")
    if options.tags:
        args.append("--tags")
    if options.dry_run:
        args.append("--dry-run")
    args.append(remote)
    if options.branch:
        refspec = _positional(options.branch, "branch", "push")
        if options.remote_branch:
            refspec = f"{options.branch}:{options.remote_branch}"
        args.append(refspec)
    return args


def build_pull_args(options: models.GitPull) -> List[str]:
    args = ["pull"]
    if options.rebase:
        args.append("--rebase")
    elif options.fast_forward_only:
        args.append("--ff-only")
    else:
        args.extend(["--no-rebase", "--no-edit"])
    args.append(_positional(options.remote, "remote", "pull"))
    if options.branch:
        args.append(_positional(options.branch, "branch", "pull"))
    return args


def build_tag_args(options: models.GitTag) -> List[str]:
    if options.mode == "list":
        return ["for-each-ref", f"--format={TAG_REF_FORMAT}", "--sort=-creatordate", "refs/tags"]
    name = _positional(_require(options.tag_name, "tag_name", f"tag {options.mode}"), "tag_name", "tag")
    if options.mode == "delete":
        return ["tag", "-d", name]
    args = ["tag"]
    if options.sign:
        args.append("-s")
    elif options.annotated or options.message:
        args.append("-a")
    if options.force:
        args.append("-f")
    if options.sign or options.annotated or options.message:
        args.append(f"--message={options.message or name}")
    args.append(name)
    if options.commit:
        args.append(_positional(options.commit, "commit", "tag"))
    return args


def build_stash_args(options: models.GitStash) -> List[str]:
    mode = options.mode
    if mode == "list":
        return ["stash", "list", f"--format={STASH_FORMAT}"]
    if mode == "clear":
        return ["stash", "clear"]
    if mode == "push":
        args = ["stash", "push"]
        if options.include_untracked:
            args.append("--include-untracked")
        if options.keep_index:
            args.append("--keep-index")
        if options.message:
            args.append(f"--message={options.message}")
        return args
    args = ["stash", mode]
    if options.stash_ref:
        args.append(_positional(options.stash_ref, "stash_ref", "stash"))
    return args


def build_worktree_args(options: models.GitWorktree) -> List[str]:
    mode = options.mode
    if mode == "list":
        return ["worktree", "list", "--porcelain"]
    if mode == "prune":
        args = ["worktree", "prune", "--verbose"]
        if options.dry_run:
            args.append("--dry-run")
        return args
    path = _require(options.path, "path", f"worktree {mode}")
    if mode == "add":
        args = ["worktree", "add"]
        if options.force:
            args.append("--force")
        if options.detach:
            args.append("--detach")
        if options.branch:
            args.extend(["-b", validate_branch_name(options.branch)])
        args.append(path)
        if options.commitish:
            args.append(_positional(options.commitish, "commitish", "worktree"))
        return args
    if mode == "remove":
        args = ["worktree", "remove"]
        if options.force:
            args.append("--force")
        return [*args, path]
    return ["worktree", "move", path, _require(options.new_path, "new_path", "worktree move")]


def build_reset_args(options: models.GitReset) -> List[str]:
    if options.paths:
        if options.mode != "mixed":
            raise ValidationError(
                f"Cannot do a {options.mode} reset with paths", operation="reset"
            )
        commit = _positional(options.commit or "HEAD", "commit", "reset")
        return ["reset", commit, *_paths(options.paths)]
    args = ["reset", f"--{options.mode}"]
    if options.commit:
        args.append(_positional(options.commit, "commit", "reset"))
    return args


def build_blame_args(options: models.GitBlame) -> List[str]:
    args = ["blame", "--porcelain"]
    if options.ignore_whitespace:
        args.append("-w")
    if options.start_line:
        end = options.end_line or options.start_line
        if end < options.start_line:
            raise ValidationError("end_line must not precede start_line", operation="blame")
        args.extend(["-L", f"{options.start_line},{end}"])
    elif options.end_line:
        args.extend(["-L", f"1,{options.end_line}"])
    args.extend(["--", options.file])
    return args


def build_reflog_args(options: models.GitReflog) -> List[str]:
    args = ["reflog", "show", f"--format={REFLOG_FORMAT}"]
    if options.max_count:
        args.append(f"--max-count={options.max_count}")
    args.append(_positional(options.ref, "ref", "reflog"))
    return args


_BUILDERS: Dict[str, Callable[..., List[str]]] = {
    "init": build_init_args,
    "clone": build_clone_args,
    "clean": build_clean_args,
    "status": build_status_args,
    "add": build_add_args,
    "commit": build_commit_args,
    "log": build_log_args,
    "show": build_show_args,
    "diff": build_diff_args,
    "branch": build_branch_args,
    "checkout": build_checkout_args,
    "merge": build_merge_args,
    "rebase": build_rebase_args,
    "cherry-pick": build_cherry_pick_args,
    "remote": build_remote_args,
    "fetch": build_fetch_args,
    "push": build_push_args,
    "pull": build_pull_args,
    "tag": build_tag_args,
    "stash": build_stash_args,
    "worktree": build_worktree_args,
    "reset": build_reset_args,
    "blame": build_blame_args,
    "reflog": build_reflog_args,
}


def build(operation: str, options: BaseModel) -> List[str]:
    """Build the argument vector for a logical operation.

    Raises:
        ValidationError: for unknown operations or missing required options
    """
    builder = _BUILDERS.get(operation)
    if builder is None:
        raise ValidationError(f"Unknown git operation: {operation}", operation=operation)
    return builder(options)
