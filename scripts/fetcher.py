"""GitHub API interactions for filling quarterly project activity."""

import logging
import os
import time
from collections import defaultdict
from datetime import datetime, timezone
from concurrent.futures import ThreadPoolExecutor, as_completed

import requests

from metrics import ProjectActivity
from quarters import date_to_start

log = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"

# Defaults (can be overridden via config)
DEFAULT_TIMEOUT = 30
DEFAULT_MAX_RETRIES = 3
DEFAULT_RATE_LIMIT_DELAY = 0.1
PER_PAGE = 100


def get_headers():
    token = os.environ.get("GITHUB_TOKEN")
    if not token:
        raise ValueError("GITHUB_TOKEN environment variable required")
    return {
        "Authorization": f"Bearer {token}",
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }


def api_settings(config: dict = None) -> tuple:
    """Return (timeout, max_retries, rate_limit_delay) from the api config section."""
    api_cfg = (config or {}).get("api", {})
    return (
        api_cfg.get("request_timeout", DEFAULT_TIMEOUT),
        api_cfg.get("max_retries", DEFAULT_MAX_RETRIES),
        api_cfg.get("rate_limit_delay", DEFAULT_RATE_LIMIT_DELAY),
    )


def handle_rate_limit(response, max_retries=DEFAULT_MAX_RETRIES):
    """Check rate limit headers and wait if necessary. Returns True if should retry."""
    remaining = response.headers.get("X-RateLimit-Remaining")
    reset_time = response.headers.get("X-RateLimit-Reset")

    if remaining is not None and int(remaining) == 0:
        if reset_time:
            wait_seconds = int(reset_time) - int(time.time()) + 1
            if wait_seconds > 0 and wait_seconds < 300:  # Max 5 min wait
                log.warning(f"Rate limit hit, waiting {wait_seconds}s")
                time.sleep(wait_seconds)
                return True
        log.error("Rate limit exceeded, no reset time available")
    return False


def request_with_retry(method, url, max_retries=DEFAULT_MAX_RETRIES, timeout=DEFAULT_TIMEOUT, **kwargs):
    """Make HTTP request with exponential backoff retry."""
    last_error = None
    for attempt in range(max_retries):
        try:
            if method == "get":
                resp = requests.get(url, timeout=timeout, **kwargs)
            else:
                resp = requests.post(url, timeout=timeout, **kwargs)

            if resp.status_code == 403 and handle_rate_limit(resp, max_retries):
                continue

            return resp
        except requests.exceptions.Timeout as e:
            last_error = e
            log.warning(f"Request timeout (attempt {attempt + 1}/{max_retries}): {url}")
        except requests.exceptions.RequestException as e:
            last_error = e
            log.warning(f"Request error (attempt {attempt + 1}/{max_retries}): {e}")

        # Exponential backoff: 1s, 2s, 4s
        if attempt < max_retries - 1:
            delay = 2 ** attempt
            log.debug(f"Retrying in {delay}s...")
            time.sleep(delay)

    raise last_error or requests.exceptions.RequestException(f"Failed after {max_retries} retries")


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(timezone.utc)


def fetch_repo_issues(org: str, repo: str, since: int, config: dict = None) -> list[dict]:
    """Fetch issues updated since the given timestamp, pull requests excluded."""
    headers = get_headers()
    timeout, max_retries, rate_delay = api_settings(config)
    since_iso = datetime.fromtimestamp(since, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    issues = []
    url = f"{GITHUB_API}/repos/{org}/{repo}/issues"
    params = {
        "since": since_iso,
        "state": "all",
        "per_page": PER_PAGE,
        "sort": "updated",
        "direction": "desc",
    }

    page = 1
    while True:
        params["page"] = page
        resp = request_with_retry(
            "get", url, max_retries=max_retries, timeout=timeout,
            headers=headers, params=params
        )
        if resp.status_code == 404:
            return []
        resp.raise_for_status()
        items = resp.json()

        if not items:
            break

        # Skip PRs (they appear in issues endpoint too)
        issues.extend(item for item in items if "pull_request" not in item)

        page += 1
        time.sleep(rate_delay)

        if len(items) < PER_PAGE:
            break

    return issues


def fetch_repo_prs(org: str, repo: str, since: int, config: dict = None) -> list[dict]:
    """Fetch pull requests created since the given timestamp."""
    headers = get_headers()
    timeout, max_retries, rate_delay = api_settings(config)

    prs = []
    url = f"{GITHUB_API}/repos/{org}/{repo}/pulls"
    params = {
        "state": "all",
        "per_page": PER_PAGE,
        "sort": "created",
        "direction": "desc",
    }

    page = 1
    while True:
        params["page"] = page
        resp = request_with_retry(
            "get", url, max_retries=max_retries, timeout=timeout,
            headers=headers, params=params
        )
        if resp.status_code == 404:
            return []
        resp.raise_for_status()
        items = resp.json()

        if not items:
            break

        for item in items:
            # Sorted by created desc, everything after is older
            if parse_timestamp(item["created_at"]).timestamp() < since:
                return prs
            prs.append(item)

        page += 1
        time.sleep(rate_delay)

        if len(items) < PER_PAGE:
            break

    return prs


def author_of(item: dict):
    return item["user"]["login"] if item.get("user") else None


def process_quarters_stats(project: ProjectActivity, org: str, repo: str, config: dict = None, now=None):
    """Bucket a repository's issues and pull requests into the project's quarters."""
    windows = []
    project.agility.with_quarters_intervals(lambda start, finish: windows.append((start, finish)), now=now)
    since, until = windows[0][0], windows[-1][1]

    def in_range(value):
        return value and since <= parse_timestamp(value).timestamp() <= until

    issues = fetch_repo_issues(org, repo, since, config)
    prs = fetch_repo_prs(org, repo, since, config)
    log.info(f"{org}/{repo}: {len(issues)} issues, {len(prs)} pull requests")

    authors = defaultdict(set)
    processing_days = defaultdict(list)

    for issue in issues:
        created_at, closed_at = issue["created_at"], issue.get("closed_at")
        if in_range(created_at):
            project.agility[parse_timestamp(created_at)].issues_opened_count += 1
            if author_of(issue):
                authors[date_to_start(parse_timestamp(created_at))].add(author_of(issue))
        if in_range(closed_at):
            closed = parse_timestamp(closed_at)
            project.agility[closed].issues_closed_count += 1
            days = (closed - parse_timestamp(created_at)).total_seconds() / 86400
            processing_days[date_to_start(closed)].append(days)

    for pr in prs:
        created_at, merged_at = pr["created_at"], pr.get("merged_at")
        if in_range(created_at):
            project.agility[parse_timestamp(created_at)].pull_requests_opened_count += 1
            if author_of(pr):
                authors[date_to_start(parse_timestamp(created_at))].add(author_of(pr))
        if in_range(merged_at):
            project.agility[parse_timestamp(merged_at)].pull_requests_merged_count += 1

    for key, days in processing_days.items():
        project.agility[key].issues_processed_in_avg = round(sum(days) / len(days), 2)
    for key, logins in authors.items():
        project.community[key].contributors_count = len(logins)

    total = project.agility_total
    total.issues_opened_count = sum(1 for issue in issues if in_range(issue["created_at"]))
    total.issues_closed_count = sum(1 for issue in issues if in_range(issue.get("closed_at")))
    total.pull_requests_opened_count = sum(1 for pr in prs if in_range(pr["created_at"]))
    total.pull_requests_merged_count = sum(1 for pr in prs if in_range(pr.get("merged_at")))
    all_days = [d for days in processing_days.values() for d in days]
    total.issues_processed_in_avg = round(sum(all_days) / len(all_days), 2) if all_days else 0.0
    project.community_total.contributors_count = len(set().union(*authors.values()))


def fetch_all_projects(projects: list[dict], config: dict = None, now=None) -> list[ProjectActivity]:
    """Fetch GitHub activity for all configured projects in parallel."""
    cfg = config or {}
    max_workers = cfg.get("api", {}).get("max_workers", 3)

    def fetch_project(entry):
        org, repo = entry["github"].split("/", 1)
        project = ProjectActivity(name=entry["name"])
        process_quarters_stats(project, org, repo, config, now=now)
        return project

    results = []
    failed_projects = []

    # One store per project, each filled by a single worker
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(fetch_project, p): p["name"] for p in projects}

        for future in as_completed(futures):
            name = futures[future]
            try:
                results.append(future.result())
                log.info(f"Fetched: {name}")
            except Exception as e:
                log.error(f"Error fetching {name}: {e}")
                failed_projects.append(name)

    if failed_projects:
        log.warning(f"Failed to fetch {len(failed_projects)} projects: {', '.join(failed_projects)}")

    return results
