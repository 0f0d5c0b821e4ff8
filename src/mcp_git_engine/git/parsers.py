"""Parsers for git's machine-readable output.

There is one parser per output shape rather than per operation; several
operations share a shape (log and reflog records, for-each-ref listings).
Every parser is total: empty or malformed input produces an empty or
default-valued result and never raises, because no output is a legitimate
success for many commands.
"""

import logging
import re
from typing import Dict, List, Optional

from ..constants import GitOutputDelimiters
from .models import (
    BlameLine,
    ChangeSet,
    CleanSummary,
    DiffFileStat,
    GitBranchInfo,
    GitCommitInfo,
    GitDiffStat,
    GitRemoteEntry,
    GitRemoteInfo,
    GitStashInfo,
    GitStatusResult,
    GitTagInfo,
    GitWorktreeInfo,
    RefUpdates,
    ReflogEntry,
)

logger = logging.getLogger(__name__)

FIELD = GitOutputDelimiters.FIELD
RECORD = GitOutputDelimiters.RECORD

# Index/worktree status letters mapped to ChangeSet buckets
STATUS_CODES = {
    "A": "added",
    "M": "modified",
    "D": "deleted",
    "R": "renamed",
    "C": "copied",
}

_AHEAD = re.compile(r"ahead (\d+)")
_BEHIND = re.compile(r"behind (\d+)")
_DIFF_STAT_LINE = re.compile(r"^\s*(.+?)\s*\|\s*(\d+)\s*([+-]*)\s*$")
_DIFF_STAT_BINARY = re.compile(r"^\s*(.+?)\s*\|\s*Bin\b")
_DIFF_SUMMARY = re.compile(r"^\s*(\d+) files? changed")
_DIFF_INSERTIONS = re.compile(r"(\d+) insertions?\(\+\)")
_DIFF_DELETIONS = re.compile(r"(\d+) deletions?\(-\)")
_REMOTE_LINE = re.compile(r"^(\S+)\s+(\S+)\s+\((fetch|push)\)\s*$")
_CONFLICT_PATH = re.compile(r"^CONFLICT \([^)]*\): (?:Merge conflict in )?(\S+)")
_STASH_REF = re.compile(r"^stash@\{(\d+)\}$")
_STASH_SUBJECT = re.compile(r"^(?:WIP on|On) ([^:]+):\s*(.*)$")
_REF_UPDATE = re.compile(
    r"^\s*(?P<flag>[ +\-*!=t])?\s*(?P<summary>\[[^\]]+\]|[0-9a-f]+\.\.\.?[0-9a-f]+)\s+"
    r"(?P<src>\S+)(?:\s+->\s+(?P<dst>\S+))?"
)
_BLAME_HEADER = re.compile(r"^([0-9a-f]{40,64}) (\d+) (\d+)(?: (\d+))?$")


def _to_int(value: Optional[str], default: int = 0) -> int:
    try:
        return int(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        return default


def _lines(output: Optional[str]) -> List[str]:
    # str.splitlines() also breaks on \x1c-\x1e, which would cut delimited fields
    return (output or "").replace("\r\n", "\n").split("\n")


def parse_porcelain_records(
    output: str, delimiter: str = FIELD, record_delimiter: str = RECORD
) -> List[List[str]]:
    """Split delimited ``--format`` output into a list of field lists."""
    records = []
    for record in (output or "").split(record_delimiter):
        # Only newlines are trimmed: str.strip() treats \x1f as whitespace
        record = record.strip("\r\n")
        if record.strip():
            records.append(record.split(delimiter))
    return records


def parse_status(output: str) -> GitStatusResult:
    """Parse ``git status --porcelain=v2 -b``.

    ``1`` entries carry an XY code: X is the index (staged) state and Y the
    worktree (unstaged) state, each mapped through ``STATUS_CODES``. ``2``
    entries are renames/copies whose tab-separated tail holds the new path
    then the original path.
    """
    result = GitStatusResult()
    dirty = False
    staged = {bucket: [] for bucket in STATUS_CODES.values()}
    unstaged = {bucket: [] for bucket in STATUS_CODES.values()}

    for line in _lines(output):
        if not line.strip():
            continue
        if line.startswith("#"):
            parts = line.split(" ", 2)
            if len(parts) == 3 and parts[1] == "branch.head":
                head = parts[2].strip()
                result.current_branch = None if head == "(detached)" else head
            continue

        tag = line[0]
        if tag == "1":
            # 1 <XY> <sub> <mH> <mI> <mW> <hH> <hI> <path>
            parts = line.split(" ", 8)
            if len(parts) < 3 or len(parts[1]) != 2:
                continue
            dirty = True
            path = parts[-1]
            x, y = parts[1][0], parts[1][1]
            if x in STATUS_CODES:
                staged[STATUS_CODES[x]].append(path)
            if y in STATUS_CODES:
                unstaged[STATUS_CODES[y]].append(path)
        elif tag == "2":
            # 2 <XY> <sub> <mH> <mI> <mW> <hH> <hI> <X><score> <path><TAB><origPath>
            head, _, orig_path = line.partition("\t")
            parts = head.split(" ", 9)
            if len(parts) < 3 or len(parts[1]) != 2:
                continue
            dirty = True
            new_path = parts[-1]
            bucket = "copied" if parts[1][0] == "C" else "renamed"
            staged[bucket].append(f"{orig_path or new_path} -> {new_path}")
            if parts[1][1] in STATUS_CODES:
                unstaged[STATUS_CODES[parts[1][1]]].append(new_path)
        elif tag == "u":
            # u <XY> <sub> <m1> <m2> <m3> <mW> <h1> <h2> <h3> <path>
            parts = line.split(" ", 10)
            if len(parts) < 3:
                continue
            dirty = True
            result.conflicted_files.append(parts[-1])
        elif tag == "?":
            dirty = True
            result.untracked_files.append(line[2:])
        # "!" (ignored) entries never affect cleanliness

    result.staged_changes = ChangeSet(**staged)
    result.unstaged_changes = ChangeSet(**unstaged)
    has_changes = (
        not result.staged_changes.is_empty()
        or not result.unstaged_changes.is_empty()
        or bool(result.untracked_files)
        or bool(result.conflicted_files)
    )
    result.is_clean = not dirty and not has_changes
    return result


def parse_log(output: str) -> List[GitCommitInfo]:
    """Parse log records of at least five fields.

    Fields are hash, author name, author email, date and subject, optionally
    followed by short hash, parents and body. Records with fewer than five
    fields are dropped.
    """
    commits = []
    for fields in parse_porcelain_records(output):
        if len(fields) < 5:
            logger.debug(f"Dropping malformed log record with {len(fields)} fields")
            continue
        commits.append(
            GitCommitInfo(
                hash=fields[0],
                author_name=fields[1],
                author_email=fields[2],
                date=fields[3],
                subject=fields[4],
                short_hash=fields[5] if len(fields) > 5 and fields[5] else None,
                parents=fields[6].split() if len(fields) > 6 else [],
                body=fields[7].strip() or None if len(fields) > 7 else None,
            )
        )
    return commits


def parse_diff_stat(output: str) -> GitDiffStat:
    """Parse ``git diff --stat``.

    Additions and deletions are counted from the run of ``+``/``-`` symbols,
    not the numeric column. A summary line, when present, is authoritative and
    replaces the accumulated totals.
    """
    stat = GitDiffStat()
    for line in _lines(output):
        summary = _DIFF_SUMMARY.match(line)
        if summary:
            insertions = _DIFF_INSERTIONS.search(line)
            deletions = _DIFF_DELETIONS.search(line)
            stat.total_additions = _to_int(insertions.group(1)) if insertions else 0
            stat.total_deletions = _to_int(deletions.group(1)) if deletions else 0
            continue

        binary = _DIFF_STAT_BINARY.match(line)
        if binary:
            stat.files.append(DiffFileStat(path=binary.group(1).strip(), binary=True))
            continue

        match = _DIFF_STAT_LINE.match(line)
        if match:
            symbols = match.group(3)
            additions = symbols.count("+")
            deletions = symbols.count("-")
            stat.files.append(
                DiffFileStat(path=match.group(1).strip(), additions=additions, deletions=deletions)
            )
            stat.total_additions += additions
            stat.total_deletions += deletions
    return stat


def _tracking_counts(track: str) -> Dict[str, int]:
    ahead = _AHEAD.search(track or "")
    behind = _BEHIND.search(track or "")
    return {
        "ahead": _to_int(ahead.group(1)) if ahead else 0,
        "behind": _to_int(behind.group(1)) if behind else 0,
    }


def parse_branch_refs(output: str) -> List[GitBranchInfo]:
    """Parse ``git for-each-ref`` output produced with ``BRANCH_REF_FORMAT``."""
    branches = []
    for line in _lines(output):
        if not line.strip():
            continue
        fields = line.split(FIELD) + [""] * 5
        refname, commit_hash, upstream, track, head = fields[:5]
        if not refname:
            continue
        if refname.startswith("refs/remotes/"):
            name = refname[len("refs/remotes/"):]
            if name.endswith("/HEAD"):
                continue
        elif refname.startswith("refs/heads/"):
            name = refname[len("refs/heads/"):]
        else:
            name = refname
        branches.append(
            GitBranchInfo(
                name=name,
                commit_hash=commit_hash,
                current=head.strip() == "*",
                upstream=upstream or None,
                **_tracking_counts(track),
            )
        )
    return branches


def parse_branch_list_legacy(output: str) -> List[GitBranchInfo]:
    """Parse ``git branch -v --no-abbrev``.

    Kept for callers that still feed human-formatted listings; new code uses
    :func:`parse_branch_refs`.
    """
    branches = []
    for line in _lines(output):
        if not line.strip():
            continue
        current = line.startswith("*")
        body = line[2:].strip()
        parts = body.split()
        if not parts:
            continue
        upstream = None
        counts = {"ahead": 0, "behind": 0}
        tracking = re.search(r"\[(.+?)\]", body)
        if tracking:
            remote_branch, _, status = tracking.group(1).partition(":")
            upstream = remote_branch.strip() or None
            counts = _tracking_counts(status)
        branches.append(
            GitBranchInfo(
                name=parts[0],
                commit_hash=parts[1] if len(parts) > 1 else "",
                current=current,
                upstream=upstream,
                **counts,
            )
        )
    return branches


def parse_remotes(output: str) -> List[GitRemoteEntry]:
    """Parse ``git remote -v``; one entry per ``name url (fetch|push)`` line."""
    entries = []
    for line in _lines(output):
        match = _REMOTE_LINE.match(line.strip())
        if match:
            entries.append(
                GitRemoteEntry(name=match.group(1), url=match.group(2), type=match.group(3))
            )
    return entries


def group_remotes(entries: List[GitRemoteEntry]) -> List[GitRemoteInfo]:
    remotes: Dict[str, GitRemoteInfo] = {}
    for entry in entries:
        remote = remotes.setdefault(entry.name, GitRemoteInfo(name=entry.name))
        if entry.type == "fetch":
            remote.fetch_url = entry.url
        else:
            remote.push_url = entry.url
    return list(remotes.values())


def parse_tags(output: str) -> List[str]:
    """Parse ``git tag -l``: one tag name per non-empty line."""
    return [line.strip() for line in _lines(output) if line.strip()]


def parse_tag_refs(output: str) -> List[GitTagInfo]:
    """Parse ``git for-each-ref refs/tags`` output produced with ``TAG_REF_FORMAT``.

    For annotated tags the peeled object is the tagged commit.
    """
    tags = []
    for line in _lines(output):
        if not line.strip():
            continue
        fields = line.split(FIELD) + [""] * 5
        name, objectname, peeled, subject, created = fields[:5]
        if not name:
            continue
        tags.append(
            GitTagInfo(
                name=name,
                commit=peeled or objectname or None,
                message=subject or None,
                timestamp=_to_int(created) or None,
            )
        )
    return tags


def parse_stash_list(output: str) -> List[GitStashInfo]:
    """Parse ``git stash list`` records produced with ``STASH_FORMAT``."""
    stashes = []
    for fields in parse_porcelain_records(output):
        if len(fields) < 3:
            continue
        ref, timestamp, subject = fields[0], fields[1], fields[2]
        ref_match = _STASH_REF.match(ref)
        branch = None
        description = subject
        subject_match = _STASH_SUBJECT.match(subject)
        if subject_match:
            branch, description = subject_match.group(1), subject_match.group(2)
        stashes.append(
            GitStashInfo(
                ref=ref,
                index=_to_int(ref_match.group(1)) if ref_match else len(stashes),
                branch=branch,
                description=description,
                timestamp=_to_int(timestamp) or None,
            )
        )
    return stashes


def parse_worktree_list(output: str) -> List[GitWorktreeInfo]:
    """Parse ``git worktree list --porcelain``: blank-line separated blocks."""
    worktrees = []
    current: Optional[Dict] = None
    for line in _lines(output) + [""]:
        if not line.strip():
            if current is not None:
                worktrees.append(GitWorktreeInfo(**current))
                current = None
            continue
        key, _, value = line.partition(" ")
        if key == "worktree":
            if current is not None:
                worktrees.append(GitWorktreeInfo(**current))
            current = {"path": value}
        elif current is None:
            continue
        elif key == "HEAD":
            current["head"] = value
        elif key == "branch":
            current["branch"] = value[len("refs/heads/"):] if value.startswith("refs/heads/") else value
        elif key in ("bare", "detached", "locked", "prunable"):
            current[key] = True
    return worktrees


def parse_blame_porcelain(output: str) -> List[BlameLine]:
    """Parse ``git blame --porcelain``.

    Commit metadata (author, author-time) appears only the first time a
    commit is seen, so it is remembered per hash for later groups.
    """
    lines = []
    authors: Dict[str, str] = {}
    times: Dict[str, int] = {}
    commit_hash = None
    line_number = 0
    for raw in _lines(output):
        if raw.startswith("\t"):
            if commit_hash is not None:
                lines.append(
                    BlameLine(
                        line_number=line_number,
                        commit_hash=commit_hash,
                        author=authors.get(commit_hash, ""),
                        timestamp=times.get(commit_hash, 0),
                        content=raw[1:],
                    )
                )
            continue
        header = _BLAME_HEADER.match(raw)
        if header:
            commit_hash = header.group(1)
            line_number = _to_int(header.group(3))
            continue
        if commit_hash is None:
            continue
        key, _, value = raw.partition(" ")
        if key == "author":
            authors[commit_hash] = value
        elif key == "author-time":
            times[commit_hash] = _to_int(value)
    return lines


def parse_reflog(output: str) -> List[ReflogEntry]:
    """Parse reflog records produced with ``REFLOG_FORMAT``."""
    entries = []
    for fields in parse_porcelain_records(output):
        if len(fields) < 4:
            continue
        action, _, message = fields[2].partition(": ")
        entries.append(
            ReflogEntry(
                hash=fields[0],
                ref_name=fields[1],
                action=action.strip(),
                message=message.strip() if message else action.strip(),
                timestamp=_to_int(fields[3]),
            )
        )
    return entries


def parse_clean_output(output: str) -> CleanSummary:
    """Parse ``git clean`` output (``Removing x`` / ``Would remove x``)."""
    summary = CleanSummary()
    for line in _lines(output):
        line = line.strip()
        for prefix in ("Would remove ", "Removing "):
            if line.startswith(prefix):
                path = line[len(prefix):]
                if path.endswith("/"):
                    summary.directories.append(path)
                else:
                    summary.files.append(path)
                break
    return summary


def parse_conflict_files(output: str) -> List[str]:
    """Collect paths from ``CONFLICT (...): ...`` lines of merge-like commands."""
    files = []
    for line in _lines(output):
        match = _CONFLICT_PATH.match(line.strip())
        if match and match.group(1) not in files:
            files.append(match.group(1))
    return files


def parse_ref_updates(output: str) -> RefUpdates:
    """Parse the ref-update table fetch and push print on stderr."""
    updates = RefUpdates()
    for line in _lines(output):
        match = _REF_UPDATE.match(line)
        if not match:
            continue
        summary = match.group("summary")
        flag = match.group("flag") or ""
        src = match.group("src")
        dst = match.group("dst") or src
        if flag == "=" or summary == "[up to date]":
            continue
        if summary == "[deleted]" or flag == "-":
            updates.deleted.append(dst)
        elif summary in ("[rejected]", "[remote rejected]") or flag == "!":
            updates.rejected.append(dst)
        elif summary in ("[new branch]", "[new tag]", "[new ref]") or flag == "*":
            updates.new.append(dst)
        else:
            updates.updated.append(dst)
    return updates


def parse_name_list(output: str) -> List[str]:
    """One path per non-empty line, as printed by ``--name-only``."""
    return [line.strip() for line in _lines(output) if line.strip()]


def parse_path_changes(output: str) -> List[str]:
    """Paths from ``M\\tpath`` style lines printed by checkout and reset."""
    paths = []
    for line in _lines(output):
        status, sep, path = line.partition("\t")
        if sep and status.strip() in ("M", "A", "D", "U", "T") and path.strip():
            paths.append(path.strip())
    return paths


def parse_prune_output(output: str) -> List[str]:
    """Worktree names from ``git worktree prune --verbose`` output."""
    pruned = []
    for line in _lines(output):
        line = line.strip()
        if line.startswith("Removing "):
            name = line[len("Removing "):].split(":", 1)[0]
            if name.startswith("worktrees/"):
                name = name[len("worktrees/"):]
            pruned.append(name)
    return pruned
