#!/usr/bin/env python3
"""Command line tools for building and inspecting subject data files."""

from __future__ import annotations

import argparse
import dataclasses
import difflib
import json
import logging
from pathlib import Path

from subject_core.api import SubjectsClient, scrape
from subject_core.codec import to_text
from subject_core.combine import Combiner
from subject_core.config import API_TOKEN_ENV, ApiConfig, PipelineConfig, load_config
from subject_core.exceptions import ConfigValidationError, SubjectPipelineError
from subject_core.logging_config import LogContext, add_logging_args, configure_logging
from subject_core.markup import lint_subject
from subject_core.secrets import SecretStr
from subject_core.similarity import DEFAULT_SCORE_THRESHOLD, SimilarityIndex, SimilaritySource
from subject_core.store import DirectoryStore, SubjectReader, iter_subjects, open_reader
from subject_core.utils import ensure_dir

logger = logging.getLogger(__name__)

DIFF_CONTEXT_LINES = 3


def _combine_config(args: argparse.Namespace) -> PipelineConfig:
    config = load_config(Path(args.config)) if args.config else None
    if config is None:
        if not args.input or not args.output:
            raise ConfigValidationError("combine needs INPUT and OUTPUT paths (or --config)")
        config = PipelineConfig(input_path=Path(args.input), output_path=Path(args.output))

    changes: dict = {}
    if args.input:
        changes["input_path"] = Path(args.input)
    if args.output:
        changes["output_path"] = Path(args.output)
    if args.overrides:
        changes["overrides_path"] = Path(args.overrides)
    if args.similar or args.similar_scored:
        changes["similarity_sources"] = tuple(
            [SimilaritySource(Path(p)) for p in args.similar]
            + [SimilaritySource(Path(p), scored=True) for p in args.similar_scored]
        )
    if args.score_threshold is not None:
        changes["similarity_threshold"] = args.score_threshold
    if args.no_sort_amalgamations:
        changes["sort_amalgamations"] = False
    return dataclasses.replace(config, **changes)


def cmd_combine(args: argparse.Namespace) -> int:
    config = _combine_config(args)
    summary = Combiner(config).run()
    print(f"Combined {summary.written} subjects into {config.output_path}")
    return 0


def cmd_extract(args: argparse.Namespace) -> int:
    reader = open_reader(Path(args.input))
    try:
        store = DirectoryStore(ensure_dir(Path(args.output)))
        extracted = 0
        for subject_id in range(reader.count()):
            if not reader.has(subject_id):
                continue
            store.write_bytes(subject_id, reader.read_bytes(subject_id))
            extracted += 1
    finally:
        reader.close()
    logger.info("Extracted %d subjects to %s", extracted, args.output)
    return 0


def _text_or_empty(reader: SubjectReader, subject_id: int) -> str:
    try:
        return to_text(reader.read(subject_id))
    except SubjectPipelineError:
        return ""


def cmd_diff(args: argparse.Namespace) -> int:
    a = open_reader(Path(args.a))
    try:
        b = open_reader(Path(args.b))
        try:
            for subject_id in range(min(a.count(), b.count())):
                diff = "".join(
                    difflib.unified_diff(
                        _text_or_empty(a, subject_id).splitlines(keepends=True),
                        _text_or_empty(b, subject_id).splitlines(keepends=True),
                        fromfile=f"{subject_id} {args.a}",
                        tofile=f"{subject_id} {args.b}",
                        n=DIFF_CONTEXT_LINES,
                    )
                )
                if diff:
                    print(diff)
        finally:
            b.close()
    finally:
        a.close()
    return 0


def cmd_dump(args: argparse.Namespace) -> int:
    reader = open_reader(Path(args.path))
    try:
        if args.id is not None:
            print(to_text(reader.read(args.id)))
            return 0
        for subject_id, subject in iter_subjects(reader):
            if args.all:
                print(to_text(subject))
            else:
                print(f"{subject_id}. {subject.slug}")
    finally:
        reader.close()
    return 0


def cmd_lint_markup(args: argparse.Namespace) -> int:
    reader = open_reader(Path(args.path))
    found = 0
    try:
        for _, subject in iter_subjects(reader):
            for problem in lint_subject(subject):
                print(problem.render())
                found += 1
    finally:
        reader.close()
    if found:
        logger.warning("Found %d markup problems", found)
        return 1
    return 0


def cmd_scrape(args: argparse.Namespace) -> int:
    base = load_config(Path(args.config)).api if args.config else ApiConfig.from_dict(None)
    changes: dict = {}
    if args.api_token:
        changes["token"] = SecretStr(args.api_token)
    if args.request_interval is not None:
        changes["request_interval"] = args.request_interval
    api_config = dataclasses.replace(base, **changes)
    store = DirectoryStore(Path(args.output))
    with SubjectsClient(api_config) as client:
        summary = scrape(client, store, skip_existing=not args.refetch)
    print(f"Wrote {summary.written} subjects to {args.output}")
    return 0


def cmd_similar_kanji(args: argparse.Namespace) -> int:
    index = SimilarityIndex()
    for path in args.sources:
        index.add_unscored_file(Path(path))
    for path in args.scored:
        index.add_scored_file(Path(path), threshold=args.score_threshold)
    index.sort()
    print(json.dumps(index.to_compact(), ensure_ascii=False, sort_keys=True, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="subjects", description="Subject data pipeline tools.")
    add_logging_args(parser)
    sub = parser.add_subparsers(dest="command", required=True)

    combine = sub.add_parser("combine", help="Combine a directory of subjects into one data file.")
    combine.add_argument("input", nargs="?", help="Input store (directory or data file).")
    combine.add_argument("output", nargs="?", help="Output data file.")
    combine.add_argument("--config", help="YAML pipeline config.")
    combine.add_argument("--overrides", help="YAML file of subject overrides.")
    combine.add_argument(
        "--similar", action="append", default=[], help="Unscored similar kanji JSON (repeatable)."
    )
    combine.add_argument(
        "--similar-scored", action="append", default=[], help="Scored similar kanji JSON (repeatable)."
    )
    combine.add_argument("--score-threshold", type=float, default=None)
    combine.add_argument(
        "--no-sort-amalgamations",
        action="store_true",
        help="Keep amalgamation IDs in their scraped order.",
    )
    combine.set_defaults(func=cmd_combine)

    extract = sub.add_parser("extract", help="Unpack a data file into a directory of subjects.")
    extract.add_argument("input")
    extract.add_argument("output")
    extract.set_defaults(func=cmd_extract)

    diff = sub.add_parser("diff", help="Show a unified diff of two stores.")
    diff.add_argument("a")
    diff.add_argument("b")
    diff.set_defaults(func=cmd_diff)

    dump = sub.add_parser("dump", help="List subjects, or print one or all of them.")
    dump.add_argument("path")
    dump.add_argument("id", nargs="?", type=int)
    dump.add_argument("--all", action="store_true", help="Print every subject instead of listing IDs.")
    dump.set_defaults(func=cmd_dump)

    lint = sub.add_parser("lint-markup", help="Check mnemonic markup for unbalanced tags.")
    lint.add_argument("path")
    lint.set_defaults(func=cmd_lint_markup)

    scrape_parser = sub.add_parser("scrape", help="Download subjects from the API into a directory.")
    scrape_parser.add_argument("output")
    scrape_parser.add_argument("--api-token", help=f"API token (default: ${API_TOKEN_ENV}).")
    scrape_parser.add_argument("--request-interval", type=float, default=None, help="Seconds between requests.")
    scrape_parser.add_argument("--config", help="YAML pipeline config.")
    scrape_parser.add_argument("--refetch", action="store_true", help="Fetch subjects already present.")
    scrape_parser.set_defaults(func=cmd_scrape)

    similar = sub.add_parser("similar-kanji", help="Print the merged similar kanji table.")
    similar.add_argument("sources", nargs="*", help="Unscored similar kanji JSON files, in order.")
    similar.add_argument("--scored", action="append", default=[], help="Scored similar kanji JSON.")
    similar.add_argument("--score-threshold", type=float, default=DEFAULT_SCORE_THRESHOLD)
    similar.set_defaults(func=cmd_similar_kanji)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(level=args.log_level, fmt=args.log_format)
    try:
        return args.func(args)
    except SubjectPipelineError as exc:
        with LogContext(error_code=exc.code, **exc.context):
            logger.error("%s failed: %s", args.command, exc.message)
        return 1
    except OSError as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
