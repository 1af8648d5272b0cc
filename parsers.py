"""Dialogue file parsers.

Every parser turns one dialogue file into a lazy stream of RawTranslation
records. Pairing the languages up is the merger's job; the only look across
files is the CatSystem2 audio index built before parsing starts.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, NamedTuple, Optional

import pydantic

from config import CstParserOptions, ParserOptions, TsvParserOptions
from errors import ParseError, ValidationError
from models import Language, RawTranslation

SceneNode = Dict[str, Any]
SceneDecoder = Callable[[str], List[SceneNode]]

# U+FF20 FULLWIDTH COMMERCIAL AT separates the display name from voice info
SPEAKER_SEPARATOR = "＠"


class BaseParser(ABC):
    def __init__(self, options: ParserOptions):
        self.options = options

    @abstractmethod
    def parse(self, path: str, language: Language) -> Iterator[RawTranslation]:
        pass


def build_translation(path, line: Optional[int], **fields) -> RawTranslation:
    try:
        return RawTranslation(**fields)
    except pydantic.ValidationError as e:
        raise ParseError(path, line, str(e.errors()[0]["msg"])) from e


class TsvParser(BaseParser):
    """Tab-separated rows mapped positionally onto the configured columns."""

    options: TsvParserOptions

    def _column(self, row: List[str], column: str) -> Optional[str]:
        if column not in self.options.columns:
            return None
        return row[self.options.columns.index(column)]

    def parse(self, path: str, language: Language) -> Iterator[RawTranslation]:
        columns = self.options.columns
        if language == Language.Multilingual and "language" not in columns:
            raise ValidationError(
                "A multilingual TSV needs a language column to tell the rows apart"
            )

        with open(path, "r", encoding="utf-8") as f:
            for line_number, line in enumerate(f, 1):
                row = line.rstrip("\r\n").split("\t")
                if len(row) < len(columns):
                    raise ParseError(
                        path,
                        line_number,
                        f"expected {len(columns)} columns, found {len(row)}",
                    )

                try:
                    key = int(self._column(row, "key"))
                except ValueError:
                    raise ParseError(
                        path, line_number, f"key {self._column(row, 'key')!r} is not an integer"
                    ) from None

                row_language = language
                if "language" in columns and language == Language.Multilingual:
                    try:
                        row_language = Language.parse(self._column(row, "language"))
                    except ValueError:
                        raise ParseError(
                            path,
                            line_number,
                            f"unknown language {self._column(row, 'language')!r}",
                        ) from None

                yield build_translation(
                    path,
                    line_number,
                    key=key,
                    language=row_language,
                    text=self._column(row, "text"),
                    audio_file_path=self._column(row, "audio_file_path") or None,
                    speaker_name=self._column(row, "speaker_name") or "",
                    context=self._column(row, "context") or "",
                    notes=self._column(row, "notes") or "",
                )


class AudioKeyIndex:
    """Maps audio file names to stable integer keys.

    A key is the position of the name in the sorted set of every voiced audio
    name of the job, so both language files of a scene agree on it, distinct
    names never share one, and an unchanged game always gets the same keys.
    """

    def __init__(self, names: Iterable[str] = ()):
        unique = sorted({name.lower() for name in names})
        self._keys: Dict[str, int] = {name: index for index, name in enumerate(unique)}

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._keys

    def __len__(self) -> int:
        return len(self._keys)

    def get_key(self, name: str) -> int:
        return self._keys[name.lower()]


class SceneLine(NamedTuple):
    position: int
    audio: str
    text: str
    speaker: str


def load_scene_dump(path: str) -> List[SceneNode]:
    """Reads the JSON node list written by the external scene decoder for
    ``path`` (``<path>.json``, or ``path`` itself if it is the dump)."""
    dump_path = Path(path)
    if dump_path.suffix.lower() != ".json":
        dump_path = Path(f"{path}.json")
    try:
        with open(dump_path, "r", encoding="utf-8") as f:
            nodes = json.load(f)
    except FileNotFoundError:
        raise ParseError(path, reason=f"decoded scene {dump_path} not found") from None
    except json.JSONDecodeError as e:
        raise ParseError(path, e.lineno, f"decoded scene is not valid JSON: {e.msg}") from e
    if not isinstance(nodes, list):
        raise ParseError(path, reason="decoded scene is not a list of nodes")
    return nodes


def dump_cst(path: str, nodes: List[SceneNode]) -> Path:
    """Writes the scene tree as indented JSON beside the source file."""
    dump_path = Path(f"{path}.dump.json")
    with open(dump_path, "w", encoding="utf-8") as f:
        json.dump(nodes, f, indent=2, ensure_ascii=False)
    return dump_path


class CstParser(BaseParser):
    """Walks a decoded CatSystem2 scene and emits its voiced lines.

    Sound commands collect audio, name nodes set the speaker, message nodes
    add text and input/page nodes end the current line. A line is kept only
    when exactly one audio file was played for it.

    Keys come from ``key_index``. The pipeline builds it over every scene of
    the job with ``index_audio``; a parser used on a lone scene indexes just
    that scene.
    """

    options: CstParserOptions

    def __init__(
        self,
        options: CstParserOptions,
        decoder: Optional[SceneDecoder] = None,
        key_index: Optional[AudioKeyIndex] = None,
    ):
        super().__init__(options)
        self.decoder = decoder or load_scene_dump
        self.key_index = key_index

    def iter_lines(self, path: str, nodes: List[SceneNode], warn: bool = True) -> Iterator[SceneLine]:
        types = self.options.node_types
        audio_files: List[str] = []
        texts: List[str] = []
        speaker = ""

        for position, node in enumerate(nodes):
            node_type = node.get("type")

            if node_type == types.sound and str(node.get("sound_type", "Pcm")).lower() == "pcm":
                audio_files.append(node["sound"])
            elif node_type == types.name and node.get("name"):
                speaker = node["name"].split(SPEAKER_SEPARATOR)[0].replace("_", " ")
            elif node_type == types.message:
                texts.append(node.get("message", ""))
            elif node_type in (types.input, types.page):
                if len(audio_files) > 1:
                    if warn:
                        print(f"    ⚠ {path}: skipping line with multiple audio files {audio_files}")
                elif (
                    len(audio_files) == 1
                    and texts
                    and audio_files[0] not in self.options.excluded_lines_by_audio_file
                ):
                    yield SceneLine(position, audio_files[0], "".join(texts), speaker)

                audio_files = []
                texts = []
                speaker = ""

        if texts:
            raise ParseError(
                path,
                reason=f"scene ended with dialogue not terminated by an input: {''.join(texts)!r}",
            )

    def index_audio(self, paths: Iterable[str]) -> AudioKeyIndex:
        """Decodes every scene once and keys the job's voiced lines by their
        sorted audio names."""
        names: List[str] = []
        for path in paths:
            try:
                names.extend(line.audio for line in self.iter_lines(path, self.decoder(path), warn=False))
            except ParseError:
                # The file fails again, and is reported, when it is parsed
                continue
        self.key_index = AudioKeyIndex(names)
        return self.key_index

    def parse(self, path: str, language: Language) -> Iterator[RawTranslation]:
        nodes = self.decoder(path)

        if self.options.dump_cst:
            dump_cst(path, nodes)

        key_index = self.key_index
        if key_index is None:
            key_index = AudioKeyIndex(line.audio for line in self.iter_lines(path, nodes, warn=False))

        has_audio = language in self.options.audio_directories
        for line in self.iter_lines(path, nodes):
            if line.audio not in key_index:
                raise ParseError(path, line.position, f"audio file {line.audio!r} was not indexed")
            yield build_translation(
                path,
                line.position,
                key=key_index.get_key(line.audio),
                language=language,
                text=line.text,
                audio_file_path=line.audio if has_audio else None,
                speaker_name=line.speaker,
            )


PARSERS = {
    "tsv": TsvParser,
    "cst": CstParser,
}


def get_parser(options: ParserOptions) -> BaseParser:
    parser_class = PARSERS.get(options.parser.lower())
    if parser_class is None:
        raise ValidationError(f"No file parser named {options.parser!r}")
    return parser_class(options)
