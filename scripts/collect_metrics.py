#!/usr/bin/env python3
"""Main entry point for collecting quarterly project activity metrics."""

import argparse
import json
import logging
import sys
from pathlib import Path

import yaml

import stack_overflow
from aggregator import aggregate_projects
from fetcher import fetch_all_projects

# Resolve paths relative to repo root
REPO_ROOT = Path(__file__).parent.parent
DEFAULT_CONFIG = REPO_ROOT / "config.yml"

log = logging.getLogger(__name__)

REQUIRED_CONFIG_KEYS = ["projects", "output_dir"]


def setup_logging(verbose: bool = False):
    """Configure logging for all modules."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def load_config(config_path: Path) -> dict:
    """Load and validate config file."""
    with open(config_path) as f:
        config = yaml.safe_load(f) or {}

    missing = [k for k in REQUIRED_CONFIG_KEYS if k not in config]
    if missing:
        raise ValueError(f"Missing required config keys: {', '.join(missing)}")

    for project in config["projects"]:
        if "name" not in project or "github" not in project:
            raise ValueError(f"Project entries need 'name' and 'github': {project}")
        if "/" not in project["github"]:
            raise ValueError(f"Expected 'org/repo' for github, got {project['github']!r}")
        project.setdefault("stack_overflow_tag", project["name"])

    # Set defaults for optional sections
    config.setdefault("api", {})
    config.setdefault("quarters", {})
    config["quarters"].setdefault("last_year_offset", 1)

    return config


def select_projects(config: dict, names: list[str] = None) -> list[dict]:
    if not names:
        return config["projects"]
    wanted = set(names)
    unknown = wanted - {p["name"] for p in config["projects"]}
    if unknown:
        raise ValueError(f"Unknown projects: {', '.join(sorted(unknown))}")
    return [p for p in config["projects"] if p["name"] in wanted]


def get_output_path(name: str, config: dict) -> Path:
    return REPO_ROOT / config["output_dir"] / f"{name}.json"


def main():
    parser = argparse.ArgumentParser(description="Collect quarterly project activity metrics")
    parser.add_argument(
        "--config",
        default=str(DEFAULT_CONFIG),
        help="Config file path",
    )
    parser.add_argument(
        "--project",
        action="append",
        help="Only collect this project (repeatable)",
    )
    parser.add_argument(
        "--offset",
        type=int,
        help="Quarters skipped at the end of the last year window (default: from config)",
    )
    parser.add_argument(
        "--no-stack-overflow",
        action="store_true",
        help="Skip StackOverflow question statistics",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print output to stdout instead of files",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    args = parser.parse_args()

    setup_logging(args.verbose)

    config_path = Path(args.config)
    try:
        config = load_config(config_path)
        entries = select_projects(config, args.project)
    except (FileNotFoundError, ValueError) as e:
        log.error(f"Config error: {e}")
        sys.exit(1)

    offset = args.offset if args.offset is not None else config["quarters"]["last_year_offset"]

    log.info(f"Fetching GitHub activity for {len(entries)} projects...")
    projects = fetch_all_projects(entries, config)

    if not args.no_stack_overflow:
        tags = {p["name"]: p["stack_overflow_tag"] for p in entries}
        for project in projects:
            stack_overflow.process(project, tags[project.name], config)

    log.info("Aggregating metrics...")
    summary = aggregate_projects(projects, offset)
    for item in summary["projects"]:
        log.info(f"{item['name']}: {item['start_date']} to {item['end_date']}, "
                 f"last year {item['last_year']}")

    for project in projects:
        document = json.dumps(project.to_mapping(), indent=2)
        if args.dry_run:
            print("\n" + "=" * 60)
            print(document)
        else:
            output_path = get_output_path(project.name, config)
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(document)
            log.info(f"Output written to: {output_path}")


if __name__ == "__main__":
    main()
