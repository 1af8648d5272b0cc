#!/usr/bin/env python3
"""
Bilingual Quote Importer

Imports English/Japanese dialogue from game data into stable, tokenized
quote records:
- Kancolle voice lines scraped from the wiki (rate limited per host)
- Tab-separated exports and decoded CatSystem2 scenes from local files
- Word keys for search via Porter2 stemming (English) and SudachiPy lemmas
  (Japanese)
"""

import asyncio
import sys

import config
import decode_quote_id
from config import CstParserOptions, load_job_options
from errors import ImporterError
from models import Language, Source
from pipeline import ImportPipeline
from rate_limit import create_http_client
from storage import JsonQuoteStore
from word_extractors import get_tokenizer


def print_usage():
    print("Usage:")
    print("  python main.py import <source> [--config=import.json] [--workers=N] [--output=DIR] [--dump-cst]")
    print("  python main.py words <en|ja> <text>")
    print("  python main.py decode <id> [<id> ...]")
    print("  python main.py sources")
    print("\nExamples:")
    print("  python main.py import Kancolle")
    print("  python main.py import SenrenBanka --config=jobs.json --workers=8")
    print("  python main.py words ja 練度が上がれば、お見せできます。")


async def run_import(source: Source, args):
    config_path = None
    workers = None
    output_dir = None
    dump_cst = "--dump-cst" in args

    for arg in args:
        if arg.startswith("--config="):
            config_path = arg.split("=", 1)[1]
        elif arg.startswith("--workers="):
            try:
                workers = int(arg.split("=", 1)[1])
            except ValueError:
                print("✗ Invalid --workers value, must be an integer")
                return 1
        elif arg.startswith("--output="):
            output_dir = arg.split("=", 1)[1]

    options = load_job_options(source, config_path)
    if dump_cst:
        if not isinstance(options, CstParserOptions):
            print("⚠ --dump-cst only applies to CatSystem2 sources")
        else:
            options = options.model_copy(update={"dump_cst": True})

    store = JsonQuoteStore(output_dir or config.OUTPUT_DIR)

    if options.parser == "kancolle":
        async with create_http_client() as client:
            pipeline = ImportPipeline(options, store, client=client, max_workers=workers)
            report = await pipeline.run()
    else:
        pipeline = ImportPipeline(options, store, max_workers=workers)
        report = await pipeline.run()

    if report.incomplete:
        print(f"\n⚠ {len(report.incomplete)} records never got every required language:")
        for record in report.incomplete[:10]:
            present = ", ".join(l.value for l in record.present_languages)
            missing = ", ".join(l.value for l in record.missing_languages)
            print(f"  {record.key}: has {present}, missing {missing}")
    return 0


def show_words(language: str, text: str):
    tokenizer = get_tokenizer(Language.parse(language))
    words = tokenizer.extract_words(text)
    print(f"Tokens: {len(words)}")
    for (start, end), word in zip(tokenizer.tokenize(text), words):
        print(f"  [{start}:{end}] {word.surface} → {word.normalized}")


async def main():
    if len(sys.argv) < 2:
        print_usage()
        return 1

    command = sys.argv[1]

    try:
        if command == "import":
            if len(sys.argv) < 3:
                print("Usage: python main.py import <source> [options]")
                return 1
            source = Source.parse(sys.argv[2])
            return await run_import(source, sys.argv[3:])

        elif command == "words":
            if len(sys.argv) < 4:
                print("Usage: python main.py words <en|ja> <text>")
                return 1
            show_words(sys.argv[2], " ".join(sys.argv[3:]))
            return 0

        elif command == "decode":
            return decode_quote_id.main(sys.argv[2:])

        elif command == "sources":
            for source in Source:
                print(f"{int(source):>3}  {source.name:<20} {source.title}")
            return 0

        else:
            print(f"✗ Unknown command: {command}")
            print_usage()
            return 1

    except ImporterError as e:
        print(f"✗ {e}")
        return 1
    except ValueError as e:
        print(f"✗ {e}")
        return 1


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\n✗ Import cancelled, nothing was saved")
        sys.exit(130)
