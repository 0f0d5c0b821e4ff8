"""End-to-end tool calls through the router wired by ``build_router``."""

import json

import git
import pytest

from mcp_git_engine.configuration import EngineConfig
from mcp_git_engine.server import build_router


def _payload(contents):
    return json.loads(contents[0].text)


@pytest.fixture
def router(mock_git_repo):
    return build_router(EngineConfig(), repository=mock_git_repo, provider_kind="cli")


class TestToolCalls:
    """Test tool calls against a real repository."""

    @pytest.mark.asyncio
    async def test_status_uses_default_repository(self, router):
        payload = _payload(await router.route_tool_call("git_status", {}))

        assert payload["current_branch"] == "main"
        assert payload["is_clean"] is True

    @pytest.mark.asyncio
    async def test_commit_and_log(self, router, mock_git_repo):
        (mock_git_repo / "notes.txt").write_text("notes\n")

        commit = _payload(
            await router.route_tool_call(
                "git_commit", {"message": "Add notes", "files_to_stage": ["notes.txt"]}
            )
        )
        log = _payload(await router.route_tool_call("git_log", {"max_count": 1}))

        assert commit["commit_hash"] == git.Repo(mock_git_repo).head.commit.hexsha
        assert commit["files_changed"] == ["notes.txt"]
        assert log["commits"][0]["subject"] == "Add notes"

    @pytest.mark.asyncio
    async def test_failure_payload(self, router):
        payload = _payload(
            await router.route_tool_call(
                "git_checkout", {"target": "no-such-branch"}, trace={"request_id": "abc"}
            )
        )

        assert payload["error"] == "not_found"
        assert payload["operation"] == "checkout"
        assert payload["args"][0] == "checkout"
        assert payload["trace"] == {"request_id": "abc"}
        assert "did not match" in payload["stderr"]

    @pytest.mark.asyncio
    async def test_merge_conflict_is_a_result(self, git_repo_factory, temp_dir):
        path = git_repo_factory.create_conflicting_branches(temp_dir / "conflict")
        router = build_router(EngineConfig(), repository=path, provider_kind="cli")

        payload = _payload(await router.route_tool_call("git_merge", {"branch": "feature"}))

        assert payload["success"] is False
        assert payload["conflicts"] is True
        assert payload["conflicted_files"] == ["README.md"]

    @pytest.mark.asyncio
    async def test_sessions_are_independent(self, router, multi_branch_repo, mock_git_repo):
        await router.route_tool_call(
            "git_set_working_dir", {"path": str(multi_branch_repo)}, session_id="other"
        )

        other = _payload(await router.route_tool_call("git_branch", {}, session_id="other"))
        default = _payload(await router.route_tool_call("git_branch", {}))

        assert {b["name"] for b in other["branches"]} == {"main", "feature-1", "feature-2", "bugfix"}
        assert [b["name"] for b in default["branches"]] == ["main"]

    @pytest.mark.asyncio
    async def test_set_working_dir_rejects_plain_directory(self, router, temp_dir):
        plain = temp_dir / "plain"
        plain.mkdir()

        payload = _payload(
            await router.route_tool_call("git_set_working_dir", {"path": str(plain)}, session_id="s")
        )

        assert payload["error"] == "not_found"
        assert router.sessions.get("s") is None

    @pytest.mark.asyncio
    async def test_health_check(self, router):
        payload = _payload(await router.route_tool_call("git_health_check", {}))

        assert payload["provider"] == "cli"
        assert payload["healthy"] is True
        assert payload["capabilities"]["push"] is True


class TestBaseDirectory:
    """Test confinement of working directories to a base directory."""

    @pytest.mark.asyncio
    async def test_path_outside_base_rejected(self, temp_dir, mock_git_repo):
        base = temp_dir / "allowed"
        base.mkdir()
        router = build_router(EngineConfig(base_directory=base), provider_kind="cli")

        payload = _payload(
            await router.route_tool_call("git_status", {"repo_path": str(mock_git_repo)})
        )

        assert payload["error"] == "validation"
        assert "outside the allowed base directory" in payload["message"]

    @pytest.fixture
    def confined(self, temp_dir, mock_git_repo):
        base = temp_dir / "allowed"
        base.mkdir()
        git.Repo.clone_from(str(mock_git_repo), str(base / "repo"))
        return base

    @pytest.mark.asyncio
    async def test_init_path_escaping_base_rejected(self, confined, temp_dir):
        router = build_router(EngineConfig(base_directory=confined), provider_kind="cli")

        payload = _payload(
            await router.route_tool_call(
                "git_init", {"repo_path": str(confined), "path": "../outside"}
            )
        )

        assert payload["error"] == "validation"
        assert "outside the allowed base directory" in payload["message"]
        assert not (temp_dir / "outside").exists()

    @pytest.mark.asyncio
    async def test_init_relative_path_inside_base(self, confined):
        router = build_router(EngineConfig(base_directory=confined), provider_kind="cli")

        payload = _payload(
            await router.route_tool_call("git_init", {"repo_path": str(confined), "path": "fresh"})
        )

        assert payload["path"] == str((confined / "fresh").resolve())
        assert (confined / "fresh" / ".git").is_dir()

    @pytest.mark.asyncio
    async def test_clone_destination_outside_base_rejected(self, confined, temp_dir, mock_git_repo):
        router = build_router(EngineConfig(base_directory=confined), provider_kind="cli")

        payload = _payload(
            await router.route_tool_call(
                "git_clone",
                {
                    "repo_path": str(confined),
                    "remote_url": str(mock_git_repo),
                    "local_path": str(temp_dir / "stolen"),
                },
            )
        )

        assert payload["error"] == "validation"
        assert not (temp_dir / "stolen").exists()

    @pytest.mark.asyncio
    async def test_worktree_path_outside_base_rejected(self, confined, temp_dir):
        router = build_router(EngineConfig(base_directory=confined), provider_kind="cli")

        payload = _payload(
            await router.route_tool_call(
                "git_worktree",
                {"repo_path": str(confined / "repo"), "mode": "add", "path": "../../wt"},
            )
        )

        assert payload["error"] == "validation"
        assert not (temp_dir / "wt").exists()
