"""Tests for argument vector construction and validation."""

import logging

import pytest

from mcp_git_engine.error_handling import ValidationError
from mcp_git_engine.git import models
from mcp_git_engine.git.arguments import (
    BRANCH_REF_FORMAT,
    LOG_FORMAT,
    build,
    build_add_args,
    build_blame_args,
    build_branch_args,
    build_checkout_args,
    build_clean_args,
    build_clone_args,
    build_commit_args,
    build_diff_args,
    build_git_command,
    build_init_args,
    build_log_args,
    build_merge_args,
    build_pull_args,
    build_push_args,
    build_rebase_args,
    build_remote_args,
    build_reset_args,
    build_stash_args,
    build_status_args,
    build_tag_args,
    build_worktree_args,
    validate_branch_name,
    validate_git_args,
)


class TestValidateGitArgs:
    """Test the pre-spawn argument policy."""

    def test_null_byte_always_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_git_args(["log", "--grep=a\x00b"])
        assert "Null byte" in exc_info.value.message

    def test_null_byte_rejected_after_separator(self):
        with pytest.raises(ValidationError):
            validate_git_args(["add", "--", "file\x00.txt"])

    def test_null_byte_rejected_even_when_not_strict(self):
        with pytest.raises(ValidationError):
            validate_git_args(["status", "\x00"], strict=False)

    def test_safe_flags_pass_strict(self):
        validate_git_args(["status", "--porcelain=v2", "-b", "--untracked-files=no"], strict=True)

    def test_unknown_flag_warns_by_default(self, caplog):
        with caplog.at_level(logging.WARNING, logger="mcp_git_engine.git.arguments"):
            validate_git_args(["log", "--exec"])
        assert "--exec" in caplog.text

    def test_unknown_flag_rejected_when_strict(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_git_args(["log", "--exec"], strict=True)
        assert exc_info.value.git_args == ["log", "--exec"]

    def test_attached_values_are_accepted(self):
        validate_git_args(["commit", "--message=--not-a-flag"], strict=True)

    def test_unknown_flag_with_attached_value_rejected_when_strict(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_git_args(["fetch", "--upload-pack=touch pwned"], strict=True)
        assert "--upload-pack=touch pwned" in exc_info.value.message

    def test_unknown_flag_with_attached_value_warns_by_default(self, caplog):
        with caplog.at_level(logging.WARNING, logger="mcp_git_engine.git.arguments"):
            validate_git_args(["fetch", "--upload-pack=touch pwned"])
        assert "--upload-pack" in caplog.text

    @pytest.mark.parametrize(
        "operation,options",
        [
            ("init", models.GitInit(initial_branch="main", bare=True)),
            ("clone", models.GitClone(remote_url="/srv/r.git", local_path="/tmp/r", branch="main", depth=1)),
            ("status", models.GitStatus(include_untracked=False, ignore_submodules=True)),
            ("commit", models.GitCommit(message="m", author={"name": "A", "email": "a@example.com"})),
            ("log", models.GitLog(max_count=3, skip=1, since="2024-01-01", until="now", author="a", grep="x")),
            ("show", models.GitShow(stat=True)),
            ("diff", models.GitDiff(unified=1, staged=True)),
            ("branch", models.GitBranch()),
            ("merge", models.GitMerge(branch="f", strategy="ort", message="m", no_fast_forward=True)),
            ("rebase", models.GitRebase(upstream="main", onto="dev", preserve_merges=True)),
            ("cherry-pick", models.GitCherryPick(commits=["abc"], strategy="ort", mainline=1)),
            ("fetch", models.GitFetch(prune=True, tags=True, depth=2)),
            ("push", models.GitPush(branch="main", set_upstream=True, force_with_lease=True)),
            ("tag", models.GitTag()),
            ("tag", models.GitTag(mode="create", tag_name="v1", message="m", force=True)),
            ("stash", models.GitStash()),
            ("stash", models.GitStash(mode="push", message="wip", keep_index=True)),
            ("reflog", models.GitReflog(max_count=5)),
            ("reset", models.GitReset(mode="keep")),
        ],
    )
    def test_builder_output_passes_strict(self, operation, options):
        validate_git_args(build(operation, options), strict=True)

    def test_tokens_after_separator_are_not_flag_checked(self):
        validate_git_args(["add", "--", "--weird-file-name"], strict=True)


class TestValidateBranchName:
    """Test git ref-name rules for branch names."""

    @pytest.mark.parametrize("name", ["main", "feature/login", "release-1.2", "fix_123"])
    def test_valid_names(self, name):
        assert validate_branch_name(name) == name

    @pytest.mark.parametrize(
        "name",
        [
            "",
            "   ",
            "-dash",
            ".hidden",
            "a..b",
            "a//b",
            "a@{b",
            "with space",
            "tilde~1",
            "caret^",
            "colon:",
            "question?",
            "star*",
            "bracket[",
            "back\\slash",
            "branch.lock",
            "trailing/",
            "trailing.",
            "ctrl\x01",
        ],
    )
    def test_invalid_names(self, name):
        with pytest.raises(ValidationError):
            validate_branch_name(name)

    def test_none_rejected(self):
        with pytest.raises(ValidationError):
            validate_branch_name(None)


class TestBuilders:
    """Test per-operation argument builders."""

    def test_init(self):
        options = models.GitInit(initial_branch="main", bare=True)
        assert build_init_args(options, "/tmp/repo") == [
            "init", "--bare", "--initial-branch=main", "/tmp/repo"
        ]

    def test_clone_puts_url_after_separator(self):
        options = models.GitClone(remote_url="https://example.com/r.git", local_path="/tmp/r", depth=1)
        assert build_clone_args(options) == [
            "clone", "--depth=1", "--", "https://example.com/r.git", "/tmp/r"
        ]

    def test_clean_requires_force_or_dry_run(self):
        with pytest.raises(ValidationError):
            build_clean_args(models.GitClean())
        assert build_clean_args(models.GitClean(dry_run=True, directories=True)) == ["clean", "-n", "-d"]
        assert build_clean_args(models.GitClean(force=True, ignored=True)) == ["clean", "-f", "-x"]

    def test_status(self):
        assert build_status_args(models.GitStatus()) == ["status", "--porcelain=v2", "-b"]
        assert "--untracked-files=no" in build_status_args(models.GitStatus(include_untracked=False))

    def test_add(self):
        assert build_add_args(models.GitAdd(paths=["a.txt", "b.txt"])) == ["add", "--", "a.txt", "b.txt"]
        assert build_add_args(models.GitAdd(all=True)) == ["add", "--all"]
        with pytest.raises(ValidationError):
            build_add_args(models.GitAdd())

    def test_commit_message_is_attached(self):
        args = build_commit_args(models.GitCommit(message="-rf"))
        assert args == ["commit", "--message=-rf"]

    def test_commit_sign_flags(self):
        assert build_commit_args(models.GitCommit(message="m", sign=True))[-1] == "-S"
        assert build_commit_args(models.GitCommit(message="m", sign=False))[-1] == "--no-gpg-sign"
        assert build_commit_args(models.GitCommit(message="m")) == ["commit", "--message=m"]

    def test_commit_author(self):
        options = models.GitCommit(message="m", author={"name": "Ann", "email": "ann@example.com"})
        assert "--author=Ann <ann@example.com>" in build_commit_args(options)

    def test_commit_requires_message(self):
        with pytest.raises(ValidationError):
            build_commit_args(models.GitCommit(message=""))

    def test_log(self):
        options = models.GitLog(max_count=5, author="ann", branch="dev", path="src")
        assert build_log_args(options) == [
            "log", f"--format={LOG_FORMAT}", "--max-count=5", "--author=ann", "dev", "--", "src"
        ]

    def test_diff(self):
        options = models.GitDiff(staged=True, unified=0, path="a.txt")
        assert build_diff_args(options, stat=True) == [
            "diff", "--no-color", "--stat", "--cached", "--unified=0", "--", "a.txt"
        ]

    def test_branch_list_uses_for_each_ref(self):
        assert build_branch_args(models.GitBranch()) == [
            "for-each-ref", f"--format={BRANCH_REF_FORMAT}", "refs/heads"
        ]
        assert build_branch_args(models.GitBranch(remote=True))[-1] == "refs/remotes"

    def test_branch_create_validates_name(self):
        with pytest.raises(ValidationError):
            build_branch_args(models.GitBranch(mode="create", branch_name="bad name"))
        assert build_branch_args(
            models.GitBranch(mode="create", branch_name="topic", start_point="main")
        ) == ["branch", "topic", "main"]

    def test_branch_delete_and_rename(self):
        assert build_branch_args(models.GitBranch(mode="delete", branch_name="x")) == ["branch", "-d", "x"]
        assert build_branch_args(
            models.GitBranch(mode="delete", branch_name="x", force=True)
        ) == ["branch", "-D", "x"]
        assert build_branch_args(
            models.GitBranch(mode="rename", branch_name="old", new_branch_name="new")
        ) == ["branch", "-m", "old", "new"]

    def test_checkout(self):
        assert build_checkout_args(models.GitCheckout(target="dev", create_branch=True)) == [
            "checkout", "-b", "dev"
        ]
        assert build_checkout_args(models.GitCheckout(target="HEAD", paths=["a.txt"])) == [
            "checkout", "HEAD", "--", "a.txt"
        ]

    def test_merge(self):
        assert build_merge_args(models.GitMerge(abort=True)) == ["merge", "--abort"]
        assert build_merge_args(models.GitMerge(branch="feature", no_fast_forward=True)) == [
            "merge", "--no-ff", "--no-edit", "feature"
        ]
        with pytest.raises(ValidationError):
            build_merge_args(models.GitMerge())

    def test_rebase(self):
        assert build_rebase_args(models.GitRebase(upstream="main")) == ["rebase", "main"]
        assert build_rebase_args(models.GitRebase(mode="continue")) == ["rebase", "--continue"]
        with pytest.raises(ValidationError):
            build_rebase_args(models.GitRebase(upstream="main", interactive=True))

    def test_remote(self):
        assert build_remote_args(models.GitRemote()) == ["remote", "-v"]
        assert build_remote_args(
            models.GitRemote(mode="add", name="origin", url="/srv/repo.git")
        ) == ["remote", "add", "origin", "/srv/repo.git"]
        with pytest.raises(ValidationError):
            build_remote_args(models.GitRemote(mode="add", name="origin"))

    def test_push(self):
        options = models.GitPush(branch="main", remote_branch="release", set_upstream=True)
        assert build_push_args(options) == ["push", "--set-upstream", "origin", "main:release"]
        assert build_push_args(models.GitPush(delete=True, branch="old")) == [
            "push", "--delete", "origin", "old"
        ]

    def test_pull_defaults_to_merge(self):
        assert build_pull_args(models.GitPull()) == ["pull", "--no-rebase", "--no-edit", "origin"]
        assert build_pull_args(models.GitPull(rebase=True, branch="main")) == [
            "pull", "--rebase", "origin", "main"
        ]

    def test_tag(self):
        assert build_tag_args(models.GitTag(mode="create", tag_name="v1")) == ["tag", "v1"]
        assert build_tag_args(
            models.GitTag(mode="create", tag_name="v1", message="Release", commit="abc")
        ) == ["tag", "-a", "--message=Release", "v1", "abc"]
        assert build_tag_args(models.GitTag(mode="delete", tag_name="v1")) == ["tag", "-d", "v1"]

    def test_stash(self):
        assert build_stash_args(models.GitStash(mode="push", message="wip", include_untracked=True)) == [
            "stash", "push", "--include-untracked", "--message=wip"
        ]
        assert build_stash_args(models.GitStash(mode="pop", stash_ref="stash@{1}")) == [
            "stash", "pop", "stash@{1}"
        ]

    def test_worktree(self):
        assert build_worktree_args(models.GitWorktree()) == ["worktree", "list", "--porcelain"]
        assert build_worktree_args(
            models.GitWorktree(mode="add", path="/tmp/wt", branch="wt-branch")
        ) == ["worktree", "add", "-b", "wt-branch", "/tmp/wt"]
        with pytest.raises(ValidationError):
            build_worktree_args(models.GitWorktree(mode="move", path="/tmp/wt"))

    def test_reset(self):
        assert build_reset_args(models.GitReset(mode="hard", commit="HEAD~1")) == [
            "reset", "--hard", "HEAD~1"
        ]
        assert build_reset_args(models.GitReset(paths=["a.txt"])) == ["reset", "HEAD", "--", "a.txt"]
        with pytest.raises(ValidationError):
            build_reset_args(models.GitReset(mode="hard", paths=["a.txt"]))

    def test_blame_line_range(self):
        assert build_blame_args(models.GitBlame(file="a.txt", start_line=2, end_line=4)) == [
            "blame", "--porcelain", "-L", "2,4", "--", "a.txt"
        ]
        with pytest.raises(ValidationError):
            build_blame_args(models.GitBlame(file="a.txt", start_line=4, end_line=2))

    def test_build_dispatch(self):
        assert build("status", models.GitStatus()) == build_status_args(models.GitStatus())
        with pytest.raises(ValidationError):
            build("frobnicate", models.GitStatus())

    def test_build_git_command(self):
        assert build_git_command("log", "--oneline", "-n", "1") == ["log", "--oneline", "-n", "1"]
        assert build_git_command("status") == ["status"]

    def test_builders_never_produce_shell_strings(self):
        args = build_commit_args(models.GitCommit(message="a; rm -rf / && echo $(whoami)"))
        assert args[1] == "--message=a; rm -rf / && echo $(whoami)"
        assert all(isinstance(token, str) for token in args)


class TestOptionLikePositionals:
    """Test that caller values git would parse as options never reach it."""

    @pytest.mark.parametrize(
        "operation,options",
        [
            ("fetch", models.GitFetch(remote="--upload-pack=touch pwned")),
            ("pull", models.GitPull(remote="--upload-pack=x")),
            ("pull", models.GitPull(branch="--rebase")),
            ("push", models.GitPush(remote="--receive-pack=x")),
            ("push", models.GitPush(branch="--all")),
            ("push", models.GitPush(delete=True, branch="--mirror")),
            ("merge", models.GitMerge(branch="--no-verify")),
            ("checkout", models.GitCheckout(target="--orphan=x")),
            ("log", models.GitLog(branch="--output=/tmp/x")),
            ("diff", models.GitDiff(commit1="--output=/tmp/x")),
            ("diff", models.GitDiff(commit1="HEAD", commit2="--ext-diff")),
            ("show", models.GitShow(object="--output=/tmp/x")),
            ("rebase", models.GitRebase(upstream="--exec=sh")),
            ("rebase", models.GitRebase(upstream="main", branch="--root")),
            ("cherry-pick", models.GitCherryPick(commits=["abc", "--gpg-sign=x"])),
            ("reset", models.GitReset(commit="--hard")),
            ("reset", models.GitReset(commit="-q", paths=["a.txt"])),
            ("reflog", models.GitReflog(ref="--all")),
            ("stash", models.GitStash(mode="apply", stash_ref="--index")),
            ("tag", models.GitTag(mode="create", tag_name="--contains")),
            ("tag", models.GitTag(mode="create", tag_name="v1", commit="--points-at=x")),
            ("tag", models.GitTag(mode="delete", tag_name="-l")),
            ("branch", models.GitBranch(mode="create", branch_name="topic", start_point="--track")),
            ("worktree", models.GitWorktree(mode="add", path="/tmp/wt", commitish="--lock")),
            ("remote", models.GitRemote(mode="add", name="--mirror=fetch", url="/srv/r.git")),
            ("remote", models.GitRemote(mode="add", name="up", url="--tags")),
            ("remote", models.GitRemote(mode="rename", name="up", new_name="--progress")),
            ("remote", models.GitRemote(mode="set-url", name="up", url="--add")),
        ],
    )
    def test_dash_prefixed_values_rejected(self, operation, options):
        with pytest.raises(ValidationError) as exc_info:
            build(operation, options)
        assert "cannot start with '-'" in exc_info.value.message

    def test_dash_inside_value_is_fine(self):
        assert build_push_args(models.GitPush(branch="feature-x", remote_branch="release-1")) == [
            "push", "origin", "feature-x:release-1"
        ]
        assert build("reflog", models.GitReflog(ref="topic-a"))[-1] == "topic-a"

    def test_paths_after_separator_may_start_with_dash(self):
        assert build_add_args(models.GitAdd(paths=["-notes.txt"])) == ["add", "--", "-notes.txt"]
