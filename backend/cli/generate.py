#!/usr/bin/env python
"""Run the generation pipelines from the command line.

Usage
-----
    # From backend/
    python -m cli.generate "Binary Search Trees"           # readable summary
    python -m cli.generate "Binary Search Trees" --json    # full JSON result
    python -m cli.generate --syllabus syllabus.txt --past past_questions.txt

The topic pipeline always exits 0; empty sections mean the topic was too
ambiguous or a stage failed (see the log).  The syllabus pipeline exits 1
when the final question set cannot be produced.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from studygen.services.llm_service.errors import GenerationError          # noqa: E402
from studygen.services.quiz.pipeline import generate_quiz_questions       # noqa: E402
from studygen.services.syllabus.generator import generate_syllabus_questions  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(message)s",
)
logger = logging.getLogger("cli.generate")


def _print_topic_result(result, as_json: bool) -> None:
    if as_json:
        print(json.dumps(result.to_response(), indent=2, ensure_ascii=False))
        return

    if not result.information:
        print("No information could be generated. Try a more specific topic.")
        return

    print("\n=== Information ===\n")
    print(result.information)
    print("\n=== Flowchart ===\n")
    print(result.flowchart or "(not applicable)")
    print(f"\n=== Quiz ({len(result.quiz)} questions) ===")
    for n, q in enumerate(result.quiz, start=1):
        kind = "coding" if q.is_coding_question else q.difficulty
        print(f"\n{n}. [{kind}] {q.question}")
        for label, text in q.options.model_dump().items():
            print(f"   {label}) {text}")
        print(f"   Answer: {q.correct_answer}. {q.explanation}")


def _read(path: str | None) -> str:
    if not path:
        return ""
    return Path(path).read_text(encoding="utf-8")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Generate study material for a topic, or exam questions for a syllabus.",
    )
    parser.add_argument("topic", nargs="?", default=None, help="Topic to generate material for.")
    parser.add_argument("--json", action="store_true", default=False, help="Print the raw JSON result.")
    parser.add_argument("--syllabus", default=None, help="Path to a syllabus text file.")
    parser.add_argument("--past", default=None, help="Path to a past exam questions text file.")
    args = parser.parse_args(argv)

    if args.syllabus:
        try:
            questions = asyncio.run(
                generate_syllabus_questions(_read(args.syllabus), _read(args.past))
            )
        except (GenerationError, ValueError) as exc:
            logger.error("Syllabus question generation failed: %s", exc)
            return 1
        print(json.dumps([q.model_dump(by_alias=True) for q in questions], indent=2, ensure_ascii=False))
        return 0

    if not args.topic or not args.topic.strip():
        parser.error("a topic or --syllabus is required")

    result = asyncio.run(generate_quiz_questions(args.topic))
    _print_topic_result(result, args.json)
    return 0


if __name__ == "__main__":
    sys.exit(main())
