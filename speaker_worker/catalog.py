"""
Voice catalog: which voices exist for which language, and who speaks them.
"""

import logging
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import CatalogBootstrapError
from .interfaces.text_to_speech import TextToSpeechInterface

logger = logging.getLogger(__name__)


class VoiceCatalog:
    """
    Immutable mapping of language code to its ordered voice names.

    The first voice of a language is the fallback default when no default
    voice is configured for it. Each language also records the name of the
    provider that synthesizes it.
    """

    def __init__(
        self,
        languages: Mapping[str, Iterable[str]],
        providers: Optional[Mapping[str, str]] = None,
    ):
        self._languages = MappingProxyType(
            {language: tuple(voices) for language, voices in languages.items()}
        )
        self._providers = MappingProxyType(dict(providers or {}))

    def __contains__(self, language: str) -> bool:
        return language in self._languages

    def __len__(self) -> int:
        return len(self._languages)

    def languages(self) -> List[str]:
        return sorted(self._languages)

    def has_language(self, language: Optional[str]) -> bool:
        return language is not None and language in self._languages

    def voices_for(self, language: str) -> Tuple[str, ...]:
        return self._languages.get(language, ())

    def supports(self, language: Optional[str], voice: Optional[str]) -> bool:
        return voice is not None and voice in self.voices_for(language)

    def first_voice(self, language: str) -> Optional[str]:
        voices = self.voices_for(language)
        return voices[0] if voices else None

    def provider_for(self, language: str) -> Optional[str]:
        return self._providers.get(language)

    def as_dict(self) -> Dict[str, List[str]]:
        return {language: list(self._languages[language]) for language in self.languages()}


def build_catalog(providers: Iterable[TextToSpeechInterface]) -> VoiceCatalog:
    """
    Build the catalog from every enabled provider.

    Providers are merged in order, so a later provider with a static voice
    table takes over the languages it lists.

    Raises:
        CatalogBootstrapError: If a provider cannot list its voices or no
            voices were found at all
    """
    languages: Dict[str, List[str]] = {}
    owners: Dict[str, str] = {}

    for provider in providers:
        logger.info(f"Getting {provider.name} voices")
        try:
            provider_languages = provider.list_voices()
        except Exception as error:
            raise CatalogBootstrapError(
                f"failed to list {provider.name} voices: {error}"
            ) from error

        for language, voices in provider_languages.items():
            languages[language] = sorted(voices)
            owners[language] = provider.name

    if not languages:
        raise CatalogBootstrapError("no voices available from any provider")

    logger.info(f"Voice catalog loaded: {len(languages)} languages")
    return VoiceCatalog(languages, owners)
