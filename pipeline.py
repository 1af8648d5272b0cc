"""Staged import: discovery -> fetch/parse workers -> merge -> finalize.

Stages talk through channels and finish by closing their output once their
input is drained. Only the work channel is bounded.
"""

import asyncio
import fnmatch
import time
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

import httpx
from tqdm import tqdm

import config
from audio import AudioImporter
from channels import Channel
from config import JobOptions, KancolleOptions, ParserOptions
from errors import OffsetRecoveryError, ParseError, WikiRedirectError
from kancolle import KancolleParser, Ship, ShipPage, parse_ship_list
from merger import MergePolicy, TranslationMerger
from models import ImportReport, Language, Quote, RawTranslation, SkippedRecord, Translation
from parsers import CstParser, get_parser
from text_utils import contains_kanji_or_hiragana
from wiki import WikiClient
from word_extractors import BaseTokenizer, get_tokenizer

WorkItem = Union[Tuple[Language, str], Ship]


def enumerate_dialogue_files(options: ParserOptions) -> Iterator[Tuple[Language, str]]:
    """Dialogue files per language matching the configured globs, relative to
    the base directory. Patterns starting with "!" exclude."""
    base_dir = Path(options.base_directory)

    for language, globs in options.dialogue_files.items():
        includes = [g for g in globs if not g.startswith("!")]
        excludes = [g[1:].lower() for g in globs if g.startswith("!")]
        matched = set()
        for pattern in includes:
            for path in base_dir.glob(pattern):
                if not path.is_file():
                    continue
                relative = path.relative_to(base_dir).as_posix().lower()
                if any(fnmatch.fnmatch(relative, exclude) for exclude in excludes):
                    continue
                matched.add(path)
        for path in sorted(matched):
            yield language, str(path)


class ImportPipeline:
    def __init__(
        self,
        options: JobOptions,
        store,
        client: Optional[httpx.AsyncClient] = None,
        tokenizers: Optional[Dict[Language, BaseTokenizer]] = None,
        max_workers: int = None,
        queue_size: int = None,
    ):
        self.options = options
        self.source = options.source
        self.store = store
        self.max_workers = max_workers or config.MAX_CONCURRENT_WORKERS
        self.queue_size = queue_size or config.WORK_QUEUE_SIZE

        self.is_kancolle = isinstance(options, KancolleOptions)
        self.wiki = WikiClient(client) if client is not None else None
        if self.is_kancolle and self.wiki is None:
            raise ValueError("The Kancolle import needs an HTTP client")

        self.parser = KancolleParser(options) if self.is_kancolle else get_parser(options)
        self.merger = TranslationMerger(
            {self.source: MergePolicy(options.required_languages, options.voice_lines)}
        )
        self.tokenizers = tokenizers or {
            Language.English: get_tokenizer(Language.English),
            Language.Japanese: get_tokenizer(Language.Japanese),
        }
        download_audio = self.is_kancolle and options.download_audio
        self.audio = AudioImporter(store, options, self.wiki if download_audio else None)

        self.report = ImportReport(self.source)
        self.quotes: List[Quote] = []

    # Stage 1
    async def discover(self, work: Channel):
        try:
            if self.is_kancolle:
                html = await self.wiki.get_html(self.options.ship_list_page)
                ships = parse_ship_list(html, self.options.ship_list_page)
                print(f"✓ Found {len(ships)} ships")
                for ship in ships:
                    await work.send(ship)
            else:
                print(f"Base directory is {Path(self.options.base_directory).absolute()}")
                items = list(enumerate_dialogue_files(self.options))
                if isinstance(self.parser, CstParser):
                    paths = [path for _, path in items]
                    index = await asyncio.to_thread(self.parser.index_audio, paths)
                    print(f"✓ Indexed {len(index)} voiced audio files in {len(paths)} scenes")
                for item in items:
                    await work.send(item)
        finally:
            await work.close()

    # Stage 2
    async def load(self, item: WorkItem) -> List[RawTranslation]:
        if isinstance(item, Ship):
            tree = await self.wiki.get_parse_tree(item.english_name)
            page = ShipPage(item, tree)
            return await asyncio.to_thread(lambda: list(self.parser.parse(page)))

        language, path = item
        return await asyncio.to_thread(lambda: list(self.parser.parse(path, language)))

    def replace_speaker_name(self, raw: RawTranslation) -> RawTranslation:
        name = self.options.speaker_name_map.get(raw.language, {}).get(raw.speaker_name)
        if name is None:
            return raw
        return raw.model_copy(update={"speaker_name": name})

    async def fetch_and_parse(self, work: Channel, merge: Channel):
        async def worker():
            async for item in work:
                label = item.english_name if isinstance(item, Ship) else item[1]
                try:
                    translations = await self.load(item)
                except (ParseError, WikiRedirectError, httpx.HTTPError) as e:
                    tqdm.write(f"  ✗ {label}: {e}")
                    self.report.failed_files.append(label)
                    continue

                self.report.files += 1
                tqdm.write(f"  ✓ {label}: {len(translations)} translations")
                for raw in translations:
                    await merge.send(self.replace_speaker_name(raw))

        try:
            await asyncio.gather(*(worker() for _ in range(self.max_workers)))
        finally:
            await merge.close()

    # Stage 3
    async def merge(self, merge: Channel, finalized: Channel):
        try:
            async for raw in merge:
                record = self.merger.add(self.source, raw)
                if record is not None:
                    await finalized.send(record)
        finally:
            await finalized.close()
        self.report.incomplete = self.merger.incomplete()

    # Stage 4
    def validate(self, quote: Quote) -> Optional[str]:
        required = self.options.required_languages
        english, japanese = quote.english.text, quote.japanese.text

        if Language.English in required and not english.strip():
            return "English translation is empty"
        if Language.Japanese in required:
            if not japanese.strip():
                return "Japanese translation is empty"
            if not contains_kanji_or_hiragana(japanese):
                return "Japanese text contains neither kanji nor hiragana"
        if Language.English in required:
            word_count = self.tokenizers[Language.English].get_word_count(english)
            if word_count < config.MIN_ENGLISH_WORDS:
                return "English word count is below threshold"
            if word_count > config.MAX_ENGLISH_WORDS:
                return "English word count exceeds threshold"
        return None

    async def complete_translation(self, language: Language, translation: Translation) -> Translation:
        if not translation.text:
            return translation
        words = self.tokenizers[language].extract_words(translation.text)
        keys = list(dict.fromkeys(w.normalized for w in words))
        audio_file = await self.audio.import_audio(language, translation.audio_file_path)
        return translation.model_copy(
            update={"word_count": len(words), "words": tuple(keys), "audio_file": audio_file}
        )

    async def finalize(self, finalized: Channel):
        with tqdm(desc="  Finalizing", unit="quote") as progress:
            async for quote in finalized:
                progress.update(1)
                reason = self.validate(quote)
                if reason is None:
                    try:
                        quote = quote.model_copy(
                            update={
                                "english": await self.complete_translation(Language.English, quote.english),
                                "japanese": await self.complete_translation(Language.Japanese, quote.japanese),
                            }
                        )
                    except OffsetRecoveryError as e:
                        reason = f"Could not tokenize: {e}"

                if reason is not None:
                    tqdm.write(f"  ⚠ Skipping {quote.id}: {reason}")
                    self.report.skipped.append(SkippedRecord(quote.id, reason))
                    continue
                self.quotes.append(quote)

    def remove_duplicates(self, quotes: List[Quote]) -> List[Quote]:
        """Keeps one quote per English/Japanese text pair, preferring one with
        a speaker and then the lowest id."""
        best: Dict[Tuple[str, str], Quote] = {}
        for quote in sorted(quotes, key=lambda q: q.id):
            text_pair = (quote.english.text, quote.japanese.text)
            current = best.get(text_pair)
            if current is None or (not current.english.speaker_name and quote.english.speaker_name):
                best[text_pair] = quote
        kept = {q.id for q in best.values()}
        for quote in quotes:
            if quote.id not in kept:
                self.report.skipped.append(SkippedRecord(quote.id, "Duplicate text"))
        return sorted(best.values(), key=lambda q: q.id)

    async def run(self) -> ImportReport:
        print("\n" + "=" * 60)
        print(f"Importing {self.source.title}")
        print("=" * 60)
        start_time = time.time()

        work: Channel = Channel(capacity=self.queue_size)
        merge: Channel = Channel()
        finalized: Channel = Channel()

        tasks = [
            asyncio.create_task(self.discover(work)),
            asyncio.create_task(self.fetch_and_parse(work, merge)),
            asyncio.create_task(self.merge(merge, finalized)),
            asyncio.create_task(self.finalize(finalized)),
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            # Nothing partial is written: pending keys and finished quotes are dropped
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self.merger.discard()
            self.quotes = []
            raise

        quotes = self.remove_duplicates(self.quotes)
        self.report.quotes = len(quotes)
        self.store.save_quotes(self.source, quotes)
        report_path = self.store.save_report(self.report)

        print(f"\n✓ Imported {len(quotes)} quotes in {time.time() - start_time:.2f}s")
        print(f"  Files parsed: {self.report.files}")
        print(f"  Failed files: {len(self.report.failed_files)}")
        print(f"  Skipped: {len(self.report.skipped)}")
        print(f"  Incomplete: {len(self.report.incomplete)}")
        print(f"  Report: {report_path}")
        return self.report
