"""StackExchange API interactions for community question statistics."""

import logging
import os
from datetime import datetime, timezone

from fetcher import api_settings, request_with_retry
from metrics import ProjectActivity

log = logging.getLogger(__name__)

STACKEXCHANGE_API = "https://api.stackexchange.com/2.2/"
TOTAL_YEARS = 10


def base_request_options(tag: str) -> dict:
    options = {"tagged": tag, "filter": "total", "site": "stackoverflow"}
    key = os.environ.get("STACKEXCHANGE_KEY")
    if key:
        options["key"] = key
    return options


def questions_count_request(api_method: str, tag: str, from_: int, to: int, config: dict = None) -> int:
    timeout, max_retries, _ = api_settings(config)
    params = {"fromdate": int(from_), "todate": int(to), **base_request_options(tag)}
    resp = request_with_retry(
        "get", STACKEXCHANGE_API + api_method,
        max_retries=max_retries, timeout=timeout, params=params
    )
    resp.raise_for_status()
    return resp.json()["total"]


def questions_count(tag: str, from_: int, to: int, config: dict = None) -> int:
    return questions_count_request("questions", tag, from_, to, config)


def no_answers_questions_count(tag: str, from_: int, to: int, config: dict = None) -> int:
    return questions_count_request("questions/no-answers", tag, from_, to, config)


def answered_questions_percent(total_questions_count: int, no_answers_questions_count: int):
    """Share of answered questions in percent, None when there are no questions."""
    if total_questions_count == 0:
        return None

    answered_questions_count = total_questions_count - no_answers_questions_count
    return round(answered_questions_count * 100 / total_questions_count, 2)


def total_count_time_boundaries(now: datetime = None) -> tuple[int, int]:
    if now is None:
        now = datetime.now(timezone.utc)
    beginning_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    try:
        ten_years_ago = now.replace(year=now.year - TOTAL_YEARS)
    except ValueError:
        # Feb 29
        ten_years_ago = now.replace(year=now.year - TOTAL_YEARS, day=28)
    return int(ten_years_ago.timestamp()), int(beginning_of_day.timestamp())


def process_quarters_stats(project: ProjectActivity, tag: str, config: dict = None, now: datetime = None):
    """Fill question counts for every quarter window of the community store.

    Known quarters are extended to the current one and gap-filled first, so
    every window covers exactly one quarter.
    """
    community = project.community
    if len(community):
        community[now if now is not None else datetime.now(timezone.utc)]
        community.fullfill()

    def process_window(start, finish):
        total = questions_count(tag, start, finish, config)
        percent = answered_questions_percent(total, no_answers_questions_count(tag, start, finish, config))

        quarter = project.community[start]
        quarter.stack_overflow_questions_count = total
        quarter.stack_overflow_answered_questions_percent = percent or 0.0

    project.community.with_quarters_intervals(process_window, now=now)


def process_total_stats(project: ProjectActivity, tag: str, config: dict = None, now: datetime = None):
    from_, to = total_count_time_boundaries(now)
    total = questions_count(tag, from_, to, config)
    percent = answered_questions_percent(total, no_answers_questions_count(tag, from_, to, config))

    project.community_total.stack_overflow_questions_count = total
    project.community_total.stack_overflow_answered_questions_percent = percent or 0.0


def process(project: ProjectActivity, tag: str = None, config: dict = None, now: datetime = None):
    tag = tag or project.name
    log.info(f"Fetching StackOverflow questions tagged {tag}")
    process_quarters_stats(project, tag, config, now)
    process_total_stats(project, tag, config, now)
