import hashlib
import json
import threading
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from models import (
    IncompleteRecord,
    Language,
    Quote,
    RawTranslation,
    Source,
    Translation,
    VoiceLine,
)
from quote_id import QuoteIdRegistry, decode_key, from_key
from text_utils import format_english_text, format_japanese_text

DEFAULT_LANGUAGES = frozenset({Language.English, Language.Japanese})

PendingKey = Tuple[Source, int]
Record = Union[Quote, VoiceLine]


class MergePolicy:
    """Which languages complete a record for one source, and whether the
    finished record is a voice line ordered by its line index."""

    def __init__(
        self,
        required_languages: Iterable[Language] = DEFAULT_LANGUAGES,
        voice_lines: bool = False,
    ):
        self.required_languages: Set[Language] = set(required_languages)
        if not self.required_languages:
            raise ValueError("a merge policy needs at least one language")
        if Language.Multilingual in self.required_languages:
            raise ValueError("multilingual cannot be a required language")
        self.voice_lines = voice_lines


def fingerprint(translations: Dict[Language, RawTranslation]) -> str:
    content = {
        language.value: raw.model_dump(mode="json")
        for language, raw in sorted(translations.items(), key=lambda item: item[0].value)
    }
    encoded = json.dumps(content, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def to_translation(raw: Optional[RawTranslation]) -> Translation:
    if raw is None:
        return Translation(text="")
    if raw.language == Language.English:
        text = format_english_text(raw.text)
    else:
        text = format_japanese_text(raw.text)
    return Translation(
        speaker_name=raw.speaker_name,
        context=raw.context,
        text=text,
        notes=raw.notes,
        audio_file_path=raw.audio_file_path,
    )


class TranslationMerger:
    """Joins per-language translations that share a (source, key).

    ``add`` inserts and checks for completion in one step under a lock, so a
    record is released at most once no matter how the languages arrive.
    """

    def __init__(
        self,
        policies: Optional[Dict[Source, MergePolicy]] = None,
        registry: Optional[QuoteIdRegistry] = None,
    ):
        self.policies = dict(policies or {})
        self.registry = registry or QuoteIdRegistry()
        self._pending: Dict[PendingKey, Dict[Language, RawTranslation]] = {}
        # Translations of every key already released, for checking replays
        self._completed: Dict[PendingKey, Dict[Language, RawTranslation]] = {}
        self._lock = threading.Lock()

    def get_policy(self, source: Source) -> MergePolicy:
        return self.policies.setdefault(source, MergePolicy())

    def add(self, source: Source, raw: RawTranslation) -> Optional[Record]:
        """Returns the finished record once every required language for this
        key has been seen, otherwise None.

        A key is released at most once. Later translations for it are checked
        against what was released: identical content is ignored and anything
        else raises IdentityCollisionError.
        """
        policy = self.get_policy(source)
        quote_id = from_key(source, raw.key)
        pending_key = (source, raw.key)

        with self._lock:
            completed = self._completed.get(pending_key)
            if completed is not None:
                if raw.language not in policy.required_languages:
                    return None
                replayed = dict(completed)
                replayed[raw.language] = raw
            else:
                translations = self._pending.setdefault(pending_key, {})
                translations[raw.language] = raw
                if not policy.required_languages.issubset(translations):
                    return None
                del self._pending[pending_key]
                self._completed[pending_key] = translations

        if completed is not None:
            self.registry.register(quote_id, fingerprint(replayed))
            return None

        if not self.registry.register(quote_id, fingerprint(translations)):
            return None

        return self._finalize(source, quote_id, translations, policy)

    def _finalize(
        self,
        source: Source,
        quote_id: int,
        translations: Dict[Language, RawTranslation],
        policy: MergePolicy,
    ) -> Record:
        english = to_translation(translations.get(Language.English))
        japanese = to_translation(translations.get(Language.Japanese))

        if policy.voice_lines:
            fields = decode_key(source, quote_id & ((1 << 48) - 1))
            return VoiceLine(
                id=quote_id,
                source=source,
                english=english,
                japanese=japanese,
                sort_order=fields.get("index", 0),
            )
        return Quote(id=quote_id, source=source, english=english, japanese=japanese)

    def incomplete(self) -> List[IncompleteRecord]:
        with self._lock:
            pending = sorted(self._pending.items(), key=lambda item: item[0])

        records = []
        for (source, key), translations in pending:
            required = self.get_policy(source).required_languages
            present = tuple(sorted(translations, key=lambda l: l.value))
            missing = tuple(sorted(required - set(translations), key=lambda l: l.value))
            records.append(IncompleteRecord(source, key, present, missing))
        return records

    def discard(self):
        with self._lock:
            self._pending.clear()
            self._completed.clear()

    def __len__(self) -> int:
        return len(self._pending)
