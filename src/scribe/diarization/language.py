"""Map short ASR language codes to locale-qualified codes."""

LANGUAGE_MAP: dict[str, str] = {
    "en": "en-us",
    "en_us": "en-us",
    "en_uk": "en-gb",
    "nl": "nl-nl",
    "de": "de-de",
    "fr": "fr-fr",
    "es": "es-es",
}


def normalize_language(code: str | None) -> str | None:
    """Return the locale-qualified code, or the input unchanged if unmapped.

    Lookup is case-insensitive; there is no fallback inference, so "ja"
    stays "ja" and "pt_br" stays "pt_br".
    """
    if not code:
        return code
    return LANGUAGE_MAP.get(code.lower(), code)
