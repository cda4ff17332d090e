"""Manifest settings defaults and helpers."""
from __future__ import annotations

import locale
from typing import Dict


def _language_code() -> str:
    try:
        lang = locale.getlocale()[0] or ''
    except ValueError:
        lang = ''
    return lang.split('_')[0].lower() or 'en'


# every value is a string, the host side reads them as such
DEFAULT_SETTINGS: Dict[str, str] = {
    'active': 'true',
    'autoCloseBrackets': 'true',
    'autoHint': 'true',
    'descriptions': 'true',
    'languageCode': _language_code(),
    'lint': 'false',
    'log': 'false',
    'sortOrder': 'lastModifiedDesc',
    'showCount': 'true',
    'showInvisibles': 'true',
    'tabSize': '4',
}


def default_settings() -> Dict[str, str]:
    return dict(DEFAULT_SETTINGS)


def fill_missing(settings: Dict[str, str]) -> bool:
    """Add default values for missing keys in place. Returns True if any were added."""
    added = False
    for key, value in DEFAULT_SETTINGS.items():
        if key not in settings:
            settings[key] = value
            added = True
    return added


def drop_unknown(settings: Dict[str, str]) -> list:
    """Remove keys not in DEFAULT_SETTINGS in place. Returns the removed keys."""
    removed = [key for key in list(settings) if key not in DEFAULT_SETTINGS]
    for key in removed:
        del settings[key]
    return removed


def is_enabled(settings: Dict[str, str], key: str) -> bool:
    return settings.get(key) == 'true'
