"""
Duplicate detection CLI.

Commands:
- scan FILE: find duplicate pairs within a JSON list of papers
- check: two-tier check of a draft against the project registry
- import FILE: load projects from a JSON list into the registry
"""

import argparse
import json
import os
import sqlite3
import sys
from pathlib import Path
from typing import Any, List

from dotenv import load_dotenv

from fyp_portal.dedup.embedder import EmbeddingService
from fyp_portal.dedup.errors import DedupError
from fyp_portal.dedup.models import Document, ScanProgress
from fyp_portal.dedup.policy import DedupPolicy
from fyp_portal.dedup.scan import fetch_corpus, find_duplicates, two_tier_check
from fyp_portal.infra.logging_config import setup_logging
from fyp_portal.registry.project_registry import ProjectRegistry


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fyp-dedup", description="Project duplicate detection CLI"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=os.getenv("LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)"
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Write daily log files to this directory"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    scan_parser = subparsers.add_parser("scan", help="Find duplicates within a JSON file of papers")
    scan_parser.add_argument("file", type=str, help="JSON list of {title, abstract, authors}")
    scan_parser.add_argument(
        "--threshold",
        type=float,
        default=None,
        help="Cosine threshold (default: policy batch threshold, 0.85)"
    )

    check_parser = subparsers.add_parser("check", help="Check a draft against the registry")
    check_parser.add_argument("--title", type=str, required=True, help="Draft title")
    check_parser.add_argument("--abstract", type=str, default="", help="Draft abstract")
    check_parser.add_argument(
        "--exclude-id",
        type=str,
        default=None,
        help="Stored project to leave out (when re-checking it)"
    )
    check_parser.add_argument("--db", type=str, default=None, help="Registry database path")

    import_parser = subparsers.add_parser("import", help="Load projects into the registry")
    import_parser.add_argument("file", type=str, help="JSON list of {id, title, abstract, year, student_name}")
    import_parser.add_argument("--db", type=str, default=None, help="Registry database path")

    return parser


def load_records(path: str) -> List[dict]:
    """Read a JSON list (or {"documents": [...]}) of records."""
    data: Any = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("documents", [])
    if not isinstance(data, list):
        raise ValueError(f"Expected a JSON list in {path}")
    return data


def print_progress(completed: int, total: int) -> None:
    progress = ScanProgress(completed, total)
    end = "\n" if completed >= total else ""
    sys.stderr.write(f"\rProcessing papers... {progress.percent:5.1f}%{end}")
    sys.stderr.flush()


def run_scan(args, policy: DedupPolicy) -> int:
    documents = [Document.from_dict(r) for r in load_records(args.file)]
    threshold = policy.batch_threshold if args.threshold is None else args.threshold

    matches = find_duplicates(
        documents, EmbeddingService(), threshold=threshold, on_progress=print_progress
    )

    print(json.dumps(
        {
            "total_documents": len(documents),
            "duplicates": [m.to_dict() for m in matches],
        },
        ensure_ascii=False,
        indent=2,
    ))
    return 0


def run_check(args, policy: DedupPolicy) -> int:
    registry = ProjectRegistry(db_path=args.db)
    try:
        corpus = fetch_corpus(
            registry, exclude_id=args.exclude_id, degrade=policy.degrade_on_fetch_failure
        )
        result = two_tier_check(
            args.title, args.abstract, corpus, EmbeddingService(), policy
        )
    finally:
        registry.close()

    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0


def run_import(args, logger) -> int:
    registry = ProjectRegistry(db_path=args.db)
    imported = 0
    try:
        for record in load_records(args.file):
            registry.add_project(
                title=record["title"],
                abstract=record.get("abstract"),
                year=record.get("year"),
                student_name=record.get("student_name"),
                project_id=record.get("id"),
            )
            imported += 1
    finally:
        registry.close()

    logger.info(f"[CLI] Imported {imported} project(s)")
    print(json.dumps({"imported": imported}))
    return 0


def main(argv=None) -> int:
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    logger = setup_logging(args.log_level, log_dir=args.log_dir)
    policy = DedupPolicy.from_env()

    try:
        if args.command == "scan":
            return run_scan(args, policy)
        if args.command == "check":
            return run_check(args, policy)
        return run_import(args, logger)
    except DedupError as e:
        logger.error(f"[CLI] {e}")
        return 1
    except (OSError, ValueError, KeyError, sqlite3.Error) as e:
        logger.error(f"[CLI] Invalid input: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
