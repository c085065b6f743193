from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Union

from app.modules.decks.client import build_generation_client
from app.modules.decks.errors import PipelineError
from app.modules.decks.models import GeneratedDeck
from app.modules.decks.pipeline import DeckPipeline


def _load_source(args: argparse.Namespace) -> Union[str, bytes]:
    if args.source and args.file:
        raise SystemExit("Provide either --source or --file, not both")
    if args.file:
        path = Path(args.file)
        if args.kind in ("pdf", "docx"):
            return path.read_bytes()
        return path.read_text(encoding="utf-8")
    if args.source:
        return args.source
    raise SystemExit("--source or --file is required")


async def _generate(args: argparse.Namespace) -> GeneratedDeck:
    pipeline = DeckPipeline(build_generation_client())
    request = pipeline.parse_request(
        {
            "source_kind": args.kind,
            "source_content": _load_source(args),
            "deck_title": args.title,
            "options": {
                "card_count": args.cards,
                "cloze_style": args.style,
                "instruction": args.instruction,
            },
        }
    )
    # Local runs are not metered
    return await pipeline.build_deck(request)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="deckgen", description="Cloze flashcard deck generator CLI"
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    g = sub.add_parser("generate", help="Generate a deck from a text, file or URL")
    g.add_argument(
        "--kind",
        "-k",
        required=True,
        help="Source kind: text | pdf | docx | url",
    )
    g.add_argument("--source", "-s", help="Inline text or a URL")
    g.add_argument("--file", "-f", help="Path to a text, PDF or DOCX file")
    g.add_argument("--cards", type=int, default=None, help="Number of cards")
    g.add_argument("--style", default=None, help="Cloze style: single | multi | qa")
    g.add_argument("--instruction", default=None, help="Extra guidance for the model")
    g.add_argument("--title", default=None, help="Deck title")

    args = parser.parse_args(argv)
    if args.cmd == "generate":
        try:
            deck = asyncio.run(_generate(args))
        except (PipelineError, RuntimeError) as e:
            print(f"Generation failed: {e}", file=sys.stderr)
            return 1
        print(json.dumps(deck.to_payload(), indent=2, ensure_ascii=False))
        return 0

    parser.print_help()
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
