"""Languages offered in the language selector."""

LANGUAGES = {
    'en': 'English',
    'es': 'Spanish',
    'fr': 'French',
    'de': 'German',
    'it': 'Italian',
    'pt': 'Portuguese',
    'ru': 'Russian',
    'zh': 'Chinese',
    'ja': 'Japanese',
    'ko': 'Korean',
}

DEFAULT_LANGUAGE = 'en'


def is_supported(code: str) -> bool:
    return code in LANGUAGES
