"""Command line inspection of EPUB files.

    novelshelf-inspect book.epub            # chapter summary
    novelshelf-inspect book.epub --json     # full parsed book as JSON
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from novelshelf.core.epub import EpubParser, ExtractorConfig, FatalImportError
from novelshelf.utils.text import normalize_for_display


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="novelshelf-inspect",
        description="Parse an EPUB and show the chapters an import would create"
    )
    parser.add_argument("path", type=Path, help="EPUB file to parse")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the parsed book as JSON"
    )
    parser.add_argument(
        "--text",
        action="store_true",
        help="Extract plain text instead of body markup"
    )
    parser.add_argument(
        "--keep-all-spine",
        action="store_true",
        help="Number every spine entry, including nav and cover pages"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        data = args.path.read_bytes()
    except OSError as e:
        print(f"Cannot read {args.path}: {e}", file=sys.stderr)
        return 1

    config = ExtractorConfig(
        content_format="text" if args.text else "html",
        skip_non_chapter_spine=not args.keep_all_spine,
    )

    try:
        book = asyncio.run(EpubParser(config).parse(data, args.path.name))
    except FatalImportError as e:
        print(f"Import failed ({e.kind}): {e.message}", file=sys.stderr)
        return 2

    if args.json:
        result = book.to_dict()
        result["issues"] = [issue.to_dict() for issue in book.issues]
        print(json.dumps(result, ensure_ascii=False, indent=2))
        return 0

    print("=" * 60)
    print(book.title)
    if book.author:
        print(f"by {book.author}")
    print("=" * 60)
    print(f"Cover: {'yes' if book.cover_data_uri else 'no'}")
    print(f"Chapters: {len(book.chapters)}")
    for chapter in book.chapters:
        preview = normalize_for_display(chapter.content, 60)
        print(f"  {chapter.number:>4}  {chapter.title}  | {preview}")

    if book.issues:
        print(f"\n{len(book.issues)} issue(s):")
        for issue in book.issues:
            print(f"  [{issue.kind}] {issue.message}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
