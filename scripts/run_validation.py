#!/usr/bin/env python3
"""Measure post classifier accuracy on a file of labeled captions."""

import argparse
import json
import sys
from pathlib import Path

from post_classifier.config import settings
from post_classifier.models.schemas import ValidationCase
from post_classifier.service.batch import validate_classifier
from post_classifier.service.classifier import PostClassifier
from post_classifier.utils.loader import DictionaryLoadError, load_keyword_dictionary

DEFAULT_CASES = Path(settings.get_absolute_keywords_path()).parent / "validation_cases.json"


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "cases",
        nargs="?",
        type=Path,
        default=DEFAULT_CASES,
        help="JSON list of {caption, expected_tags} objects",
    )
    parser.add_argument(
        "--dictionary",
        type=Path,
        default=settings.get_absolute_keywords_path(),
        help="Keyword dictionary file to evaluate",
    )
    parser.add_argument(
        "--min-f1",
        type=float,
        default=None,
        help="Exit with status 1 when the average F1 is below this value",
    )
    parser.add_argument("--verbose", action="store_true", help="Print every case")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        dictionary = load_keyword_dictionary(args.dictionary)
    except DictionaryLoadError as e:
        print(f"Cannot load dictionary: {e}", file=sys.stderr)
        return 2

    raw_cases = json.loads(args.cases.read_text(encoding="utf-8"))
    cases = [ValidationCase.model_validate(item) for item in raw_cases]
    report = validate_classifier(PostClassifier(dictionary), cases)

    for case in report.cases:
        if args.verbose or case.f1 < 1.0:
            marker = "ok  " if case.f1 == 1.0 else "MISS"
            print(f"[{marker}] {case.caption[:70]}")
            print(f"        expected={case.expected_tags} predicted={case.predicted_tags} f1={case.f1:.2f}")

    print(f"\nCases: {len(report.cases)}")
    print(f"Average precision: {report.average_precision:.3f}")
    print(f"Average recall:    {report.average_recall:.3f}")
    print(f"Average F1:        {report.average_f1:.3f}")
    print(f"Exact match rate:  {report.exact_match_rate:.3f}")

    if args.min_f1 is not None and report.average_f1 < args.min_f1:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
