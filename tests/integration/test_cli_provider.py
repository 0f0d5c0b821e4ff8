"""Integration tests for the git-binary provider."""

import git
import pytest

from mcp_git_engine.configuration import EngineConfig
from mcp_git_engine.error_handling import NotFoundError, ValidationError
from mcp_git_engine.git import models
from mcp_git_engine.git.context import OperationContext
from mcp_git_engine.providers import CliGitProvider, MINIMAL_OPERATIONS
from mcp_git_engine.providers.base import CAPABILITY_FOR_OPERATION
from mcp_git_engine.providers.cli import OPERATIONS


@pytest.fixture
def provider():
    return CliGitProvider(EngineConfig())


class TestHealthCheck:
    """Test the provider health check."""

    @pytest.mark.asyncio
    async def test_healthy_twice(self, provider, repo_context):
        assert await provider.health_check(repo_context) is True
        # Probing must not change anything in the repository
        assert await provider.health_check(repo_context) is True
        status = await provider.status(models.GitStatus(), repo_context)
        assert status.is_clean is True

    @pytest.mark.asyncio
    async def test_missing_working_directory_still_checks_version(self, provider, temp_dir):
        context = OperationContext(working_directory=str(temp_dir / "missing"))
        assert await provider.health_check(context) is True

    @pytest.mark.asyncio
    async def test_missing_binary_is_unhealthy(self, repo_context):
        provider = CliGitProvider(EngineConfig(git_binary="/nonexistent/bin/git"))
        assert await provider.health_check(repo_context) is False


class TestDispatch:
    """Test that verbs reach the matching git operation."""

    def test_every_verb_has_an_operation(self):
        assert set(OPERATIONS) == set(MINIMAL_OPERATIONS) | set(CAPABILITY_FOR_OPERATION)

    @pytest.mark.asyncio
    async def test_unknown_operation(self, provider, repo_context):
        with pytest.raises(ValidationError):
            await provider._perform("frobnicate", models.GitStatus(), repo_context)

    @pytest.mark.asyncio
    async def test_commit_workflow(self, provider, mock_git_repo, repo_context):
        (mock_git_repo / "feature.txt").write_text("feature\n")

        await provider.add(models.GitAdd(paths=["feature.txt"]), repo_context)
        result = await provider.commit(models.GitCommit(message="Add feature"), repo_context)
        history = await provider.log(models.GitLog(max_count=1), repo_context)

        assert history.commits[0].hash == result.commit_hash
        assert history.commits[0].subject == "Add feature"
        assert git.Repo(mock_git_repo).head.commit.hexsha == result.commit_hash

    @pytest.mark.asyncio
    async def test_gated_verbs_are_served(self, provider, multi_branch_repo):
        context = OperationContext(working_directory=str(multi_branch_repo))

        stashes = await provider.stash(models.GitStash(), context)
        merged = await provider.merge(models.GitMerge(branch="feature-1"), context)

        assert stashes.stashes == []
        assert merged.success is True

    @pytest.mark.asyncio
    async def test_errors_come_back_classified(self, provider, repo_context):
        with pytest.raises(NotFoundError) as exc_info:
            await provider.checkout(models.GitCheckout(target="no-such-branch"), repo_context)

        assert exc_info.value.operation == "checkout"
        assert exc_info.value.trace == {"request_id": "test"}
