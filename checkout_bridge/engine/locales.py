"""
Hosted checkout locale selection.

Maps a host order's language ISO code onto one of the locales the hosted
checkout page supports. Matching is case-insensitive and accepts either
`-` or `_` as the region separator:

  1. Exact match (e.g. "fr-CA")
  2. Language prefix (e.g. "en-US" falls back to "en")
  3. "auto", letting the checkout page pick from the browser
"""

from typing import Optional

AUTO_LOCALE = "auto"

SUPPORTED_CHECKOUT_LOCALES: tuple[str, ...] = (
    # ─── Languages ─────────────────────────────────────────────────────
    "bg",  # Bulgarian
    "cs",  # Czech
    "da",  # Danish
    "de",  # German
    "el",  # Greek
    "en",  # English
    "es",  # Spanish
    "et",  # Estonian
    "fi",  # Finnish
    "fil",  # Filipino
    "fr",  # French
    "hr",  # Croatian
    "hu",  # Hungarian
    "id",  # Indonesian
    "it",  # Italian
    "ja",  # Japanese
    "ko",  # Korean
    "lt",  # Lithuanian
    "lv",  # Latvian
    "ms",  # Malay
    "mt",  # Maltese
    "nb",  # Norwegian Bokmål
    "nl",  # Dutch
    "pl",  # Polish
    "pt",  # Portuguese
    "ro",  # Romanian
    "ru",  # Russian
    "sk",  # Slovak
    "sl",  # Slovenian
    "sv",  # Swedish
    "th",  # Thai
    "tr",  # Turkish
    "vi",  # Vietnamese
    "zh",  # Chinese (Simplified)
    # ─── Regional variants ─────────────────────────────────────────────
    "en-GB",
    "es-419",  # Latin America
    "fr-CA",
    "pt-BR",
    "zh-HK",
    "zh-TW",
)

_BY_KEY = {locale.lower(): locale for locale in SUPPORTED_CHECKOUT_LOCALES}


def find_best_match_locale(language_iso_code: Optional[str]) -> str:
    """Return the supported checkout locale closest to a language code."""
    if not language_iso_code or not language_iso_code.strip():
        return AUTO_LOCALE

    key = language_iso_code.strip().replace("_", "-").lower()
    if key in _BY_KEY:
        return _BY_KEY[key]

    language = key.split("-", 1)[0]
    return _BY_KEY.get(language, AUTO_LOCALE)
