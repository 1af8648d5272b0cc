import hashlib
import json
import threading
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol

import config
from audio import get_extension
from models import AudioFile, ImportReport, IncompleteRecord, Quote, Source


class QuoteStore(Protocol):
    def save_quotes(self, source: Source, quotes: Iterable[Quote]): ...

    def save_audio_file(
        self, data: bytes, original_name: Optional[str] = None, last_modified: Optional[datetime] = None
    ) -> AudioFile: ...


def get_hash(data: bytes) -> str:
    hash_sha256 = hashlib.sha256()
    hash_sha256.update(data)
    return hash_sha256.hexdigest()


class JsonQuoteStore:
    """Writes finished records under the output directory:

    <source>.jsonl          one quote per line
    audio/<hash>.<ext>      audio blobs, deduplicated by content
    audio_files.json        audio metadata keyed by hash
    <source>.report.json    skipped, failed and incomplete records of the run
    """

    def __init__(self, output_dir: str = None):
        self.output_dir = Path(output_dir or config.OUTPUT_DIR)
        self.audio_dir = self.output_dir / "audio"
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.audio_dir.mkdir(exist_ok=True)
        self.audio_files: Dict[str, AudioFile] = {}
        self._lock = threading.Lock()
        self._load_audio_files()

    @property
    def audio_index_path(self) -> Path:
        return self.output_dir / "audio_files.json"

    def _load_audio_files(self):
        if self.audio_index_path.exists():
            with open(self.audio_index_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self.audio_files = {h: AudioFile.model_validate(a) for h, a in data.items()}
            print(f"✓ Loaded {len(self.audio_files)} audio files")

    def quotes_path(self, source: Source) -> Path:
        return self.output_dir / f"{source.name}.jsonl"

    def save_quotes(self, source: Source, quotes: Iterable[Quote]) -> int:
        """Replaces the source's quotes with the given ones."""
        path = self.quotes_path(source)
        tmp_path = path.with_suffix(".jsonl.tmp")
        count = 0
        with open(tmp_path, "w", encoding="utf-8") as f:
            for quote in sorted(quotes, key=lambda q: q.id):
                f.write(quote.model_dump_json() + "\n")
                count += 1
        tmp_path.replace(path)
        self.save_audio_index()
        print(f"✓ Saved {count} quotes to {path}")
        return count

    def load_quotes(self, source: Source) -> List[dict]:
        path = self.quotes_path(source)
        if not path.exists():
            return []
        with open(path, "r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]

    def save_audio_file(
        self,
        data: bytes,
        original_name: Optional[str] = None,
        last_modified: Optional[datetime] = None,
    ) -> AudioFile:
        extension = get_extension(data)
        file_hash = get_hash(data)

        with self._lock:
            existing = self.audio_files.get(file_hash)
            if existing is not None:
                return existing

            blob_path = self.audio_dir / f"{file_hash}.{extension}"
            if not blob_path.exists():
                blob_path.write_bytes(data)

            audio_file = AudioFile(
                hash=file_hash,
                extension=extension,
                original_name=original_name,
                original_last_modified=last_modified,
            )
            self.audio_files[file_hash] = audio_file
            return audio_file

    def save_audio_index(self):
        with self._lock:
            data = {h: a.model_dump(mode="json") for h, a in self.audio_files.items()}
        with open(self.audio_index_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

    def save_report(self, report: ImportReport) -> Path:
        path = self.output_dir / f"{report.source.name}.report.json"
        data = {
            "source": report.source.name,
            "files": report.files,
            "quotes": report.quotes,
            "failed_files": report.failed_files,
            "skipped": [asdict(s) for s in report.skipped],
            "incomplete": [_incomplete_to_dict(r) for r in report.incomplete],
        }
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        return path


def _incomplete_to_dict(record: IncompleteRecord) -> dict:
    return {
        "source": record.source.name,
        "key": record.key,
        "present": [l.value for l in record.present_languages],
        "missing": [l.value for l in record.missing_languages],
    }
