"""Trailing-year summaries of collected project activity."""

from metrics import ProjectActivity


def activity_score(agility: dict) -> int:
    return (
        agility["pull_requests_merged_count"] * 3
        + agility["pull_requests_opened_count"] * 2
        + agility["issues_closed_count"]
        + agility["issues_opened_count"]
    )


def summarize_project(project: ProjectActivity, offset: int = 1) -> dict:
    """Summarize one project: time bounds, last year metrics, and per-quarter rows."""
    bounds = project.prepare_time_bounds()
    agility = project.agility.last_year_as_hash(offset)
    community = project.community.last_year_as_hash(offset)

    rows = {}
    for store in (project.agility, project.community):
        store.each_sorted(
            lambda start, quarter: rows.setdefault(start, {"start": start}).update(quarter.to_mapping())
        )

    return {
        "name": project.name,
        "start_date": bounds[0].isoformat() if bounds else None,
        "end_date": bounds[1].isoformat() if bounds else None,
        "last_year": {**agility, **community},
        "activity_score": activity_score(agility),
        "quarters": [rows[start] for start in sorted(rows)],
    }


def aggregate_projects(projects: list[ProjectActivity], offset: int = 1) -> dict:
    """Aggregate summaries of all projects and rank them by last year activity."""
    summaries = [summarize_project(p, offset) for p in projects]

    ranked = sorted(summaries, key=lambda s: s["activity_score"], reverse=True)
    top_projects = [
        {"name": s["name"], "activity_score": s["activity_score"]}
        for s in ranked[:10]
        if s["activity_score"] > 0
    ]

    return {
        "projects": sorted(summaries, key=lambda s: s["name"]),
        "top_projects": top_projects,
        "quarters_total": sum(len(s["quarters"]) for s in summaries),
    }
