"""Steam store languages understood by the title store."""

from __future__ import annotations

from enum import Enum

__all__ = ["StoreLanguage"]

# Steam internal name -> ISO code
_LANGUAGE_CODES: dict[str, str] = {
    "english": "en",
    "german": "de",
    "french": "fr",
    "spanish": "es",
    "italian": "it",
    "portuguese": "pt",
    "brazilian": "pt-BR",
    "russian": "ru",
    "polish": "pl",
    "dutch": "nl",
    "swedish": "sv",
    "turkish": "tr",
    "japanese": "ja",
    "koreana": "ko",
    "schinese": "zh-CN",
    "tchinese": "zh-TW",
}


class StoreLanguage(Enum):
    """Language the store scrapes localized text in.

    Values are the internal names Steam uses in store and API URLs.
    """

    ENGLISH = "english"
    GERMAN = "german"
    FRENCH = "french"
    SPANISH = "spanish"
    ITALIAN = "italian"
    PORTUGUESE = "portuguese"
    BRAZILIAN = "brazilian"
    RUSSIAN = "russian"
    POLISH = "polish"
    DUTCH = "dutch"
    SWEDISH = "swedish"
    TURKISH = "turkish"
    JAPANESE = "japanese"
    KOREAN = "koreana"
    SCHINESE = "schinese"
    TCHINESE = "tchinese"

    @property
    def code(self) -> str:
        """ISO language code, derived and never persisted."""
        return _LANGUAGE_CODES[self.value]

    @classmethod
    def parse(cls, text: str | None, strict: bool = False) -> StoreLanguage:
        """Resolves a Steam name or ISO code, falling back to English.

        Args:
            text: ``"german"``, ``"de"``, ``"GERMAN"`` and so on.
            strict: Raise instead of falling back when nothing matches.

        Returns:
            The matching language, or ENGLISH when nothing matches.

        Raises:
            ValueError: If ``strict`` is set and the text names no language.
        """
        wanted = (text or "").strip().lower()
        for member in cls:
            if wanted in (member.value, member.code.lower(), member.name.lower()):
                return member
        if strict:
            raise ValueError(f"Unknown store language: {text!r}")
        return cls.ENGLISH
