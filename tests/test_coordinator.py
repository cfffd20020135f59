"""
Tests for the multi-repository coordinator
"""
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from issuescope.background import BackgroundTaskQueue
from issuescope.coordinator import MultiRepositorySearch
from issuescope.exceptions import RepositoryNotConfiguredError
from issuescope.models import (
    Comment,
    IssueTemplate,
    MultiRepoSearchOptions,
    MultiRepoSearchResult,
    RepositoryConfig,
    SearchOptions,
    SyncOptions,
    utcnow,
)
from conftest import FakeGitHubClient, make_issue

WIDGETS = "acme/widgets"
GADGETS = "acme/gadgets"
ARCHIVE = "acme/archive"


def stale():
    # old enough that recency adds nothing
    return utcnow() - timedelta(days=400)


@pytest.fixture
def clients():
    return {}


@pytest.fixture
def trace_queue():
    return BackgroundTaskQueue("test-traces")


@pytest_asyncio.fixture
async def coordinator(store, clients, trace_queue):
    def client_factory(config):
        return clients.setdefault(config.full_name, FakeGitHubClient())

    coordinator = MultiRepositorySearch(
        store,
        repositories=[
            RepositoryConfig(owner="acme", name="gadgets", priority=5),
            RepositoryConfig(owner="acme", name="widgets", priority=10),
            RepositoryConfig(owner="acme", name="archive", priority=1, enabled=False),
        ],
        client_factory=client_factory,
        trace_queue=trace_queue,
    )
    yield coordinator
    await trace_queue.close()


class TestRegistry:
    @pytest.mark.asyncio
    async def test_repositories_sorted_by_priority(self, coordinator):
        assert [c.full_name for c in coordinator.get_repositories()] == [WIDGETS, GADGETS, ARCHIVE]

    @pytest.mark.asyncio
    async def test_add_repository_replaces_by_full_name(self, coordinator):
        result = coordinator.add_repository(RepositoryConfig(owner="acme", name="gadgets", priority=20))
        assert result.success
        assert coordinator.get_repositories()[0].full_name == GADGETS
        assert len(coordinator.get_repositories()) == 3

    @pytest.mark.asyncio
    async def test_add_repository_rejects_bad_identifier(self, coordinator):
        result = coordinator.add_repository(RepositoryConfig(owner="not valid", name="x"))
        assert not result.success
        assert "Invalid" in result.error

    def test_seeds_from_settings_when_not_given(self, store):
        coordinator = MultiRepositorySearch(store, client_factory=lambda config: FakeGitHubClient())
        names = [c.full_name for c in coordinator.get_repositories()]
        assert names[0] == "microsoft/TypeScript"
        assert "facebook/react" in names


class TestSearchRepository:
    @pytest.mark.asyncio
    async def test_unknown_repository_raises(self, coordinator):
        with pytest.raises(RepositoryNotConfiguredError):
            await coordinator.search_repository("nobody/nothing", "crash")

    @pytest.mark.asyncio
    async def test_disabled_repository_raises(self, coordinator):
        with pytest.raises(RepositoryNotConfiguredError):
            await coordinator.search_repository(ARCHIVE, "crash")

    @pytest.mark.asyncio
    async def test_searches_only_that_repository(self, coordinator, store):
        await store.upsert_issue(make_issue(issue_id=1, title="crash", repository=WIDGETS))
        await store.upsert_issue(make_issue(issue_id=2, title="crash", repository=GADGETS))
        results = await coordinator.search_repository(WIDGETS, "crash")
        assert [issue.id for issue in results] == [1]


class TestSearchAcrossRepositories:
    @pytest.mark.asyncio
    async def test_merges_results_from_enabled_repositories(self, coordinator, store):
        await store.upsert_issue(make_issue(issue_id=1, title="webpack crash", repository=WIDGETS))
        await store.upsert_issue(make_issue(issue_id=2, title="webpack crash", repository=GADGETS))
        await store.upsert_issue(make_issue(issue_id=3, title="webpack crash", repository=ARCHIVE))

        results = await coordinator.search_across_repositories(
            MultiRepoSearchOptions(query="webpack crash", min_relevance=0.3)
        )
        assert sorted(r.repository for r in results) == [GADGETS, WIDGETS]
        assert all(r.match_type == "title" for r in results)
        assert all(r.title == "webpack crash" for r in results)

    @pytest.mark.asyncio
    async def test_near_equal_scores_ordered_by_priority(self, coordinator, store):
        # 0.25 in widgets (priority 10) vs 0.3 in gadgets (priority 5)
        await store.upsert_issue(make_issue(issue_id=1, title="webpack crashes", state="closed",
                                            updated_at=stale(), repository=WIDGETS))
        await store.upsert_issue(make_issue(issue_id=2, title="webpack crash", state="closed",
                                            updated_at=stale(), repository=GADGETS))

        results = await coordinator.search_across_repositories(
            MultiRepoSearchOptions(query="webpack crash", min_relevance=0.2)
        )
        assert [r.repository for r in results] == [WIDGETS, GADGETS]
        assert results[0].relevance_score == pytest.approx(0.25)
        assert results[1].relevance_score == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_clearly_better_score_beats_priority(self, coordinator, store):
        await store.upsert_issue(make_issue(issue_id=1, title="webpack crashes", state="closed",
                                            updated_at=stale(), repository=WIDGETS))
        await store.upsert_issue(make_issue(issue_id=2, title="webpack crash", repository=GADGETS))

        results = await coordinator.search_across_repositories(
            MultiRepoSearchOptions(query="webpack crash", min_relevance=0.2)
        )
        assert [r.repository for r in results] == [GADGETS, WIDGETS]

    @pytest.mark.asyncio
    async def test_results_below_min_relevance_dropped(self, coordinator, store):
        await store.upsert_issue(make_issue(issue_id=1, title="webpack crashes", state="closed",
                                            updated_at=stale(), repository=WIDGETS))
        results = await coordinator.search_across_repositories(
            MultiRepoSearchOptions(query="webpack crash", min_relevance=0.3)
        )
        assert results == []

    @pytest.mark.asyncio
    async def test_failing_repository_contributes_nothing(self, coordinator, store, trace_queue):
        await store.upsert_issue(make_issue(issue_id=1, title="webpack crash", repository=WIDGETS))
        await store.upsert_issue(make_issue(issue_id=2, title="webpack crash", repository=GADGETS))
        coordinator._services[GADGETS].search.search = AsyncMock(side_effect=RuntimeError("disk on fire"))

        results = await coordinator.search_across_repositories(MultiRepoSearchOptions(query="webpack crash"))
        assert [r.repository for r in results] == [WIDGETS]

        await trace_queue.drain()
        traces = await store.list_traces()
        assert traces[0].failed_repositories == [GADGETS]
        assert traces[0].result_count == 1

    @pytest.mark.asyncio
    async def test_explicit_repository_list(self, coordinator, store):
        await store.upsert_issue(make_issue(issue_id=1, title="webpack crash", repository=WIDGETS))
        await store.upsert_issue(make_issue(issue_id=2, title="webpack crash", repository=GADGETS))
        results = await coordinator.search_across_repositories(
            MultiRepoSearchOptions(query="webpack crash", repositories=[GADGETS])
        )
        assert [r.repository for r in results] == [GADGETS]

    @pytest.mark.asyncio
    async def test_limit_applies_to_merged_list(self, coordinator, store):
        for issue_id in range(1, 5):
            repository = WIDGETS if issue_id % 2 else GADGETS
            await store.upsert_issue(make_issue(issue_id=issue_id, title="webpack crash", repository=repository))
        results = await coordinator.search_across_repositories(
            MultiRepoSearchOptions(query="webpack crash", limit=3)
        )
        assert len(results) == 3

    @pytest.mark.asyncio
    async def test_single_repository_cache_does_not_cap_fan_out(self, coordinator, store):
        for issue_id in range(1, 6):
            await store.upsert_issue(make_issue(issue_id=issue_id, number=issue_id, title="webpack crash",
                                                repository=WIDGETS))
        narrow = await coordinator.search_repository(WIDGETS, "webpack crash", SearchOptions(limit=1))
        assert len(narrow) == 1

        results = await coordinator.search_across_repositories(
            MultiRepoSearchOptions(query="webpack crash", repositories=[WIDGETS], limit=5)
        )
        assert len(results) == 5

    @pytest.mark.asyncio
    async def test_repeated_repository_names_are_searched_once(self, coordinator, store, trace_queue):
        await store.upsert_issue(make_issue(issue_id=1, title="webpack crash", repository=WIDGETS))
        results = await coordinator.search_across_repositories(
            MultiRepoSearchOptions(query="webpack crash", repositories=[WIDGETS, WIDGETS])
        )
        assert [r.issue.id for r in results] == [1]

        await trace_queue.drain()
        assert (await store.list_traces())[0].repositories == [WIDGETS]

    @pytest.mark.asyncio
    async def test_equal_priority_falls_back_to_score(self, coordinator):
        def result(issue_id, score):
            issue = make_issue(issue_id=issue_id, title="webpack", repository=WIDGETS)
            return MultiRepoSearchResult(title=issue.title, issue=issue, repository=WIDGETS,
                                         relevance_score=score, match_type="title", matched_text="webpack")

        merged = coordinator.merge_results([result(1, 0.3), result(2, 0.35), result(3, 0.32)], limit=10)
        assert [r.issue.id for r in merged] == [2, 3, 1]

    @pytest.mark.asyncio
    async def test_stored_comments_scored_when_requested(self, coordinator, store):
        await store.upsert_issue(make_issue(issue_id=1, number=1, title="Bundler trouble", body="uses webpack",
                                            state="closed", updated_at=stale(), repository=WIDGETS))
        await store.upsert_comment(Comment(id=1, issue_number=1, repository=WIDGETS,
                                           body="webpack problem persists", created_at=utcnow()))

        options = MultiRepoSearchOptions(query="persists webpack", min_relevance=0.1, repositories=[WIDGETS])
        without = await coordinator.search_across_repositories(options)
        assert without[0].match_type == "body"
        assert without[0].relevance_score == pytest.approx(0.15 * 0.7)

        with_comments = await coordinator.search_across_repositories(
            options.model_copy(update={"include_comments": True})
        )
        assert with_comments[0].match_type == "comments"
        assert with_comments[0].relevance_score == pytest.approx(0.3 * 0.5)
        assert with_comments[0].matched_text == "webpack problem persists"

    @pytest.mark.asyncio
    async def test_no_targets_returns_empty(self, coordinator):
        results = await coordinator.search_across_repositories(
            MultiRepoSearchOptions(query="anything", repositories=[])
        )
        assert results == []


class TestMessageSearch:
    @pytest.mark.asyncio
    async def test_no_keywords_means_no_search(self, coordinator, trace_queue):
        assert await coordinator.search_by_message_content("thanks, that worked!") == []
        assert trace_queue.stats["submitted"] == 0

    @pytest.mark.asyncio
    async def test_keywords_drive_search(self, coordinator, store):
        await store.upsert_issue(
            make_issue(issue_id=1, title="Webpack build error", repository=WIDGETS, updated_at=utcnow())
        )
        results = await coordinator.search_by_message_content("My webpack build has an error")
        assert [r.issue.id for r in results] == [1]
        assert results[0].relevance_score >= 0.4

    @pytest.mark.asyncio
    async def test_extract_keywords_delegates(self, coordinator):
        assert coordinator.extract_technical_keywords("a react bug") == ["react", "bug"]


class TestSyncAndMaintenance:
    @pytest.mark.asyncio
    async def test_sync_unconfigured_repository_is_typed_failure(self, coordinator):
        result = await coordinator.sync_repository("nobody/nothing")
        assert not result.success
        assert "not configured" in result.error

    @pytest.mark.asyncio
    async def test_sync_and_status(self, coordinator, clients, store):
        clients[WIDGETS].pages[1] = [make_issue(issue_id=1, title="Synced", repository=None)]
        result = await coordinator.sync_repository(WIDGETS, SyncOptions(page=1))
        assert result.success
        assert result.data == {"synced": 1, "total": 1}

        status = await coordinator.get_sync_status(WIDGETS)
        assert status.data["total_issues"] == 1
        assert (await store.get_issue(1)).repository == WIDGETS

    @pytest.mark.asyncio
    async def test_clear_cache_for_one_repository(self, coordinator, store):
        await store.upsert_issue(make_issue(issue_id=1, repository=WIDGETS))
        await store.upsert_issue(make_issue(issue_id=2, repository=GADGETS))
        await coordinator.clear_cache(WIDGETS)
        assert await store.count_issues(WIDGETS) == 0
        assert await store.count_issues(GADGETS) == 1

    @pytest.mark.asyncio
    async def test_create_issue_with_template_adds_context(self, coordinator, clients):
        result = await coordinator.create_issue_with_template(WIDGETS, IssueTemplate(
            title="Crash", body="Steps to reproduce", labels=["bug"], message_context="user said it crashes",
        ))
        assert result.success
        body = clients[WIDGETS].created[0]["body"]
        assert body.startswith("## Context from Chat\n\nuser said it crashes")
        assert "Steps to reproduce" in body

    @pytest.mark.asyncio
    async def test_create_issue_without_context_keeps_body(self, coordinator, clients):
        await coordinator.create_issue_with_template(WIDGETS, IssueTemplate(title="Crash", body="Plain"))
        assert clients[WIDGETS].created[0]["body"] == "Plain"

    @pytest.mark.asyncio
    async def test_create_issue_in_unconfigured_repository(self, coordinator):
        result = await coordinator.create_issue_with_template("nobody/nothing", IssueTemplate(title="x", body="y"))
        assert not result.success

    @pytest.mark.asyncio
    async def test_discussions_and_connection(self, coordinator):
        discussions = await coordinator.fetch_discussions(WIDGETS)
        assert discussions.data[0]["title"] == "Roadmap"
        assert (await coordinator.test_connection(WIDGETS)).success
        assert not (await coordinator.test_connection(ARCHIVE)).success

    @pytest.mark.asyncio
    async def test_cache_stats_per_enabled_repository(self, coordinator):
        assert set(coordinator.get_cache_stats()) == {WIDGETS, GADGETS}
