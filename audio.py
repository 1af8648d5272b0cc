import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from tqdm import tqdm

from errors import UnsupportedAudioFormatError
from models import Language

MPEG1_LAYER3_HEADER = b"\xff\xfb"
ID3_HEADER = b"ID3"
OGG_HEADER = b"OggS"
VORBIS_STREAM_HEADER = b"\x01vorbis"
OPUS_STREAM_HEADER = b"OpusHead"
OGG_STREAM_OFFSET = 28

AUDIO_FILE_EXTENSIONS = ("opus", "ogg", "mp3")


def get_extension(data: bytes) -> str:
    """Lowercase extension of a supported audio file, sniffed from its header."""
    if not data:
        raise UnsupportedAudioFormatError("File is zero bytes.")

    if data.startswith(MPEG1_LAYER3_HEADER) or data.startswith(ID3_HEADER):
        return "mp3"

    if data.startswith(OGG_HEADER):
        stream_header = data[OGG_STREAM_OFFSET:]
        if stream_header.startswith(VORBIS_STREAM_HEADER):
            return "ogg"
        if stream_header.startswith(OPUS_STREAM_HEADER):
            return "opus"
        raise UnsupportedAudioFormatError("File contains an unsupported Ogg stream.")

    raise UnsupportedAudioFormatError("File contains an unsupported audio format.")


def candidate_paths(audio_file_path: str) -> List[str]:
    """The path as given, then with each known extension appended."""
    return [audio_file_path] + [f"{audio_file_path}.{ext}" for ext in AUDIO_FILE_EXTENSIONS]


class AudioImporter:
    """Finds the audio for a translation and stores it content-addressed.

    Files come from the language's audio directory on disk, or from the wiki
    when a WikiClient is given. Returns the stored file's hash, or None when
    the audio cannot be found or is not a supported format.
    """

    def __init__(self, store, options=None, wiki=None):
        self.store = store
        self.options = options
        self.wiki = wiki
        self._imported: Dict[str, Optional[str]] = {}

    def find_file(self, language: Language, audio_file_path: str) -> Optional[Path]:
        base_dir = Path(self.options.base_directory)
        audio_dir = self.options.audio_directories.get(language)
        if audio_dir is None:
            return None
        for candidate in candidate_paths(audio_file_path.replace("\\", "/")):
            path = base_dir / audio_dir / candidate
            if path.is_file():
                return path
        return None

    async def import_audio(self, language: Language, audio_file_path: Optional[str]) -> Optional[str]:
        if audio_file_path is None:
            return None

        cache_key = f"{language.value}:{audio_file_path}"
        if cache_key in self._imported:
            return self._imported[cache_key]

        if self.wiki is not None:
            data = await self.wiki.download_file(audio_file_path)
            if data is None:
                tqdm.write(f"    ⚠ Audio file {audio_file_path} does not exist on the wiki")
                self._imported[cache_key] = None
                return None
            name, last_modified = audio_file_path, None
        else:
            path = self.find_file(language, audio_file_path)
            if path is None:
                tqdm.write(
                    f"    ✗ Audio file {audio_file_path} ({language.value}) not found "
                    f"(tried {', '.join(candidate_paths(audio_file_path))})"
                )
                self._imported[cache_key] = None
                return None
            data = await asyncio.to_thread(path.read_bytes)
            name = path.name
            last_modified = datetime.fromtimestamp(path.stat().st_mtime, timezone.utc)

        try:
            audio_file = self.store.save_audio_file(data, name, last_modified)
        except UnsupportedAudioFormatError as e:
            tqdm.write(f"    ⚠ Audio file {audio_file_path} is invalid: {e}")
            audio_file = None

        file_hash = audio_file.hash if audio_file is not None else None
        self._imported[cache_key] = file_hash
        return file_hash
