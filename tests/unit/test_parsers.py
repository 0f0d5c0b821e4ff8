"""Tests for the git output parsers."""

from mcp_git_engine.git.parsers import (
    group_remotes,
    parse_blame_porcelain,
    parse_branch_list_legacy,
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
    parse_tags,
    parse_worktree_list,
)

F = "\x1f"
R = "\x1e"
SHA_A = "a" * 40
SHA_B = "b" * 40


class TestParseStatus:
    """Test porcelain v2 status parsing."""

    def test_branch_header_only_is_clean(self):
        result = parse_status("# branch.oid abc\n# branch.head main\n")

        assert result.current_branch == "main"
        assert result.is_clean is True
        assert result.untracked_files == []
        assert result.conflicted_files == []

    def test_worktree_modification_is_unstaged(self):
        line = f"1 .M N... 100644 100644 100644 {SHA_A} {SHA_A} path/a.txt"
        result = parse_status(f"# branch.head main\n{line}\n")

        assert result.unstaged_changes.modified == ["path/a.txt"]
        assert result.staged_changes.is_empty()
        assert result.is_clean is False

    def test_index_modification_is_staged(self):
        line = f"1 M. N... 100644 100644 100644 {SHA_A} {SHA_B} src/app.py"
        result = parse_status(line)

        assert result.staged_changes.modified == ["src/app.py"]
        assert result.unstaged_changes.is_empty()

    def test_both_columns_populate_both_sets(self):
        line = f"1 AM N... 000000 100644 100644 {'0' * 40} {SHA_B} new.txt"
        result = parse_status(line)

        assert result.staged_changes.added == ["new.txt"]
        assert result.unstaged_changes.modified == ["new.txt"]

    def test_path_with_spaces_is_kept_whole(self):
        line = f"1 .M N... 100644 100644 100644 {SHA_A} {SHA_A} docs/my file.md"
        result = parse_status(line)

        assert result.unstaged_changes.modified == ["docs/my file.md"]

    def test_rename_entry(self):
        line = f"2 R. N... 100644 100644 100644 {SHA_A} {SHA_A} R100 new_name.txt\told_name.txt"
        result = parse_status(line)

        assert result.staged_changes.renamed == ["old_name.txt -> new_name.txt"]

    def test_untracked_and_conflicted(self):
        output = "\n".join(
            [
                "# branch.head feature",
                f"u UU N... 100644 100644 100644 100644 {SHA_A} {SHA_A} {SHA_A} conflict.txt",
                "? notes.txt",
                "! build/",
            ]
        )
        result = parse_status(output)

        assert result.current_branch == "feature"
        assert result.conflicted_files == ["conflict.txt"]
        assert result.untracked_files == ["notes.txt"]
        assert result.is_clean is False

    def test_detached_head_has_no_branch(self):
        assert parse_status("# branch.head (detached)\n").current_branch is None

    def test_ignored_entries_keep_tree_clean(self):
        result = parse_status("# branch.head main\n! ignored.log\n")
        assert result.is_clean is True

    def test_empty_output(self):
        result = parse_status("")
        assert result.current_branch is None
        assert result.is_clean is True


class TestParseLog:
    """Test delimited log record parsing."""

    def test_two_records_in_order_and_short_record_dropped(self):
        output = (
            f"{SHA_A}{F}Alice{F}alice@example.com{F}2024-01-02T10:00:00+00:00{F}Second{R}\n"
            f"{SHA_B}{F}Bob{F}bob@example.com{F}2024-01-01T10:00:00+00:00{F}First{R}\n"
            f"{'c' * 40}{F}Carol{F}carol@example.com{F}2024-01-01{R}\n"
        )
        commits = parse_log(output)

        assert [c.hash for c in commits] == [SHA_A, SHA_B]
        assert commits[0].author_name == "Alice"
        assert commits[0].author_email == "alice@example.com"
        assert commits[1].subject == "First"

    def test_extended_fields(self):
        output = (
            f"{SHA_A}{F}Alice{F}a@x{F}2024-01-02T10:00:00+00:00{F}Subject{F}aaaaaaa{F}"
            f"{SHA_B} {'c' * 40}{F}Body line one\nBody line two\n{R}\n"
        )
        (commit,) = parse_log(output)

        assert commit.short_hash == "aaaaaaa"
        assert commit.parents == [SHA_B, "c" * 40]
        assert commit.body == "Body line one\nBody line two"

    def test_tab_in_subject_survives(self):
        output = f"{SHA_A}{F}Alice{F}a@x{F}2024-01-02{F}fix:\tthing{R}"
        assert parse_log(output)[0].subject == "fix:\tthing"

    def test_empty_body_becomes_none(self):
        output = f"{SHA_A}{F}A{F}a@x{F}d{F}s{F}aaaaaaa{F}{F}{R}"
        commit = parse_log(output)[0]
        assert commit.body is None
        assert commit.parents == []

    def test_empty_output(self):
        assert parse_log("") == []


class TestParseDiffStat:
    """Test diff --stat parsing."""

    def test_symbol_counts(self):
        stat = parse_diff_stat(" a.txt | 3 ++-\n")

        assert len(stat.files) == 1
        assert stat.files[0].path == "a.txt"
        assert stat.files[0].additions == 2
        assert stat.files[0].deletions == 1

    def test_summary_overrides_totals(self):
        output = " a.txt | 3 ++-\n 1 file changed, 10 insertions(+), 4 deletions(-)\n"
        stat = parse_diff_stat(output)

        assert stat.total_additions == 10
        assert stat.total_deletions == 4

    def test_summary_with_only_insertions(self):
        stat = parse_diff_stat(" new.txt | 2 ++\n 1 file changed, 2 insertions(+)\n")
        assert stat.total_additions == 2
        assert stat.total_deletions == 0

    def test_binary_file(self):
        stat = parse_diff_stat(" image.png | Bin 0 -> 1024 bytes\n")
        assert stat.files[0].path == "image.png"
        assert stat.files[0].binary is True

    def test_totals_accumulate_without_summary(self):
        stat = parse_diff_stat(" a | 2 ++\n b | 1 -\n")
        assert stat.total_additions == 2
        assert stat.total_deletions == 1

    def test_empty_output(self):
        stat = parse_diff_stat("")
        assert stat.files == []
        assert stat.total_additions == 0


class TestParseBranches:
    """Test branch listing parsers."""

    def test_for_each_ref_listing(self):
        output = (
            f"refs/heads/main{F}{SHA_A}{F}origin/main{F}[ahead 2, behind 1]{F}*\n"
            f"refs/heads/feature{F}{SHA_B}{F}{F}{F} \n"
        )
        main, feature = parse_branch_refs(output)

        assert main.name == "main"
        assert main.current is True
        assert main.upstream == "origin/main"
        assert (main.ahead, main.behind) == (2, 1)
        assert feature.current is False
        assert feature.upstream is None
        assert (feature.ahead, feature.behind) == (0, 0)

    def test_remote_head_symref_skipped(self):
        output = (
            f"refs/remotes/origin/HEAD{F}{SHA_A}{F}{F}{F}\n"
            f"refs/remotes/origin/main{F}{SHA_A}{F}{F}{F}\n"
        )
        branches = parse_branch_refs(output)
        assert [b.name for b in branches] == ["origin/main"]

    def test_legacy_verbose_listing(self):
        output = (
            f"* main    {SHA_A} [origin/main: ahead 1] Latest\n"
            f"  topic   {SHA_B} Work in progress\n"
        )
        main, topic = parse_branch_list_legacy(output)

        assert main.current is True
        assert main.upstream == "origin/main"
        assert main.ahead == 1
        assert topic.commit_hash == SHA_B
        assert topic.upstream is None


class TestParseRemotesAndTags:
    """Test remote and tag listings."""

    def test_remotes_grouped_by_name(self):
        output = (
            "origin\thttps://example.com/repo.git (fetch)\n"
            "origin\thttps://example.com/repo.git (push)\n"
            "backup\t/srv/backup.git (fetch)\n"
        )
        entries = parse_remotes(output)
        assert len(entries) == 3

        grouped = group_remotes(entries)
        assert [r.name for r in grouped] == ["origin", "backup"]
        assert grouped[0].push_url == "https://example.com/repo.git"
        assert grouped[1].push_url is None

    def test_tag_refs_peel_annotated_tags(self):
        output = (
            f"v2.0{F}{'d' * 40}{F}{SHA_A}{F}Release 2.0{F}1700000100\n"
            f"v1.0{F}{SHA_B}{F}{F}Initial commit{F}1700000000\n"
        )
        v2, v1 = parse_tag_refs(output)

        assert v2.commit == SHA_A
        assert v2.message == "Release 2.0"
        assert v2.timestamp == 1700000100
        assert v1.commit == SHA_B

    def test_plain_tag_listing(self):
        assert parse_tags("v1.0\n\n  v1.1 \n") == ["v1.0", "v1.1"]
        assert parse_tags("") == []


class TestParseSupplementedShapes:
    """Test stash, worktree, blame, reflog and clean parsers."""

    def test_stash_list(self):
        output = (
            f"stash@{{0}}{F}1700000000{F}On main: save work{R}\n"
            f"stash@{{1}}{F}1690000000{F}WIP on feature: abc123 Commit msg{R}\n"
        )
        first, second = parse_stash_list(output)

        assert first.index == 0
        assert first.branch == "main"
        assert first.description == "save work"
        assert second.index == 1
        assert second.branch == "feature"

    def test_worktree_list(self):
        output = (
            "worktree /repo\nHEAD " + SHA_A + "\nbranch refs/heads/main\n\n"
            "worktree /repo-wt\nHEAD " + SHA_B + "\ndetached\nlocked\n"
        )
        main, extra = parse_worktree_list(output)

        assert main.path == "/repo"
        assert main.branch == "main"
        assert extra.detached is True
        assert extra.locked is True
        assert extra.branch is None

    def test_blame_reuses_metadata_for_repeated_commits(self):
        output = "\n".join(
            [
                f"{SHA_A} 1 1 2",
                "author Alice",
                "author-time 1700000000",
                "filename a.txt",
                "\tfirst line",
                f"{SHA_A} 2 2",
                "filename a.txt",
                "\tsecond line",
            ]
        )
        first, second = parse_blame_porcelain(output)

        assert first.line_number == 1
        assert first.content == "first line"
        assert second.author == "Alice"
        assert second.timestamp == 1700000000

    def test_reflog(self):
        output = (
            f"{SHA_A}{F}HEAD@{{0}}{F}commit: Add feature{F}1700000000{R}\n"
            f"{SHA_B}{F}HEAD@{{1}}{F}checkout: moving from main to dev{F}1690000000{R}\n"
        )
        first, second = parse_reflog(output)

        assert first.action == "commit"
        assert first.message == "Add feature"
        assert second.ref_name == "HEAD@{1}"
        assert second.timestamp == 1690000000

    def test_clean_output(self):
        summary = parse_clean_output("Would remove build/\nWould remove tmp.txt\n")
        assert summary.directories == ["build/"]
        assert summary.files == ["tmp.txt"]


class TestParseCommandOutput:
    """Test parsers for human-oriented command output."""

    def test_conflict_files(self):
        output = (
            "Auto-merging README.md\n"
            "CONFLICT (content): Merge conflict in README.md\n"
            "CONFLICT (modify/delete): lib.py deleted in HEAD and modified in feature.\n"
            "Automatic merge failed; fix conflicts and then commit the result.\n"
        )
        assert parse_conflict_files(output) == ["README.md", "lib.py"]

    def test_fetch_ref_updates(self):
        output = (
            "From /tmp/origin\n"
            "   1a2b3c4..5d6e7f8  main       -> origin/main\n"
            " * [new branch]      feature    -> origin/feature\n"
            " - [deleted]         (none)     -> origin/old\n"
            " = [up to date]      stable     -> origin/stable\n"
        )
        updates = parse_ref_updates(output)

        assert updates.updated == ["origin/main"]
        assert updates.new == ["origin/feature"]
        assert updates.deleted == ["origin/old"]
        assert updates.rejected == []

    def test_push_rejection(self):
        output = (
            "To /tmp/origin\n"
            " ! [rejected]        main -> main (fetch first)\n"
        )
        assert parse_ref_updates(output).rejected == ["main"]

    def test_name_list_and_path_changes(self):
        assert parse_name_list("a.txt\n\nb.txt\n") == ["a.txt", "b.txt"]
        assert parse_path_changes("Unstaged changes after reset:\nM\tsrc/app.py\n") == ["src/app.py"]

    def test_prune_output(self):
        assert parse_prune_output("Removing worktrees/old: gitdir file points to non-existent location\n") == ["old"]

    def test_porcelain_records_keep_empty_fields(self):
        assert parse_porcelain_records(f"a{F}{F}c{R}\n") == [["a", "", "c"]]
