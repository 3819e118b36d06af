"""Tests for trailing-year summaries."""

import sys
sys.path.insert(0, "scripts")

from aggregator import activity_score, aggregate_projects, summarize_project
from metrics import ProjectActivity


def make_project(name, merged_per_quarter):
    project = ProjectActivity(name=name)
    for month, merged in zip(["01", "04", "07", "10"], merged_per_quarter):
        project.agility[f"2014-{month}-01"].pull_requests_merged_count = merged
    project.agility["2015-01-01"].pull_requests_merged_count = 100
    return project


class TestSummarizeProject:
    """Test single project summary."""

    def test_last_year_skips_latest_quarter(self):
        summary = summarize_project(make_project("demo", [1, 1, 1, 1]))
        assert summary["last_year"]["pull_requests_merged_count"] == 4
        assert summary["activity_score"] == 12

    def test_bounds_and_rows(self):
        project = make_project("demo", [1, 0, 0, 0])
        project.community["2015-04-01"].contributors_count = 2
        summary = summarize_project(project)

        assert summary["start_date"] == "2014-01-01"
        assert summary["end_date"] == "2015-04-01"
        assert len(summary["quarters"]) == 6
        assert summary["quarters"][-1]["contributors_count"] == 2
        assert "issues_opened_count" not in summary["quarters"][-1]
        assert summary["quarters"][0]["pull_requests_merged_count"] == 1

    def test_empty_project(self):
        summary = summarize_project(ProjectActivity(name="empty"))
        assert summary["start_date"] is None
        assert summary["quarters"] == []
        assert summary["activity_score"] == 0


class TestAggregateProjects:
    """Test ranking across projects."""

    def test_activity_score_calculation(self):
        """Activity score: merged*3 + opened*2 + closed + new."""
        agility = {
            "issues_opened_count": 1,
            "issues_closed_count": 1,
            "pull_requests_opened_count": 1,
            "pull_requests_merged_count": 1,
        }
        assert activity_score(agility) == 7

    def test_ranking(self):
        result = aggregate_projects([
            make_project("low", [1, 0, 0, 0]),
            make_project("high", [5, 5, 5, 5]),
            ProjectActivity(name="idle"),
        ])
        assert [p["name"] for p in result["top_projects"]] == ["high", "low"]
        assert [p["name"] for p in result["projects"]] == ["high", "idle", "low"]
        assert result["quarters_total"] == 10
