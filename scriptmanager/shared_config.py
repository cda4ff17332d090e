"""
Shared configuration: on-disk locations used by the manager.

Everything lives under one app data directory so the manager stays portable.
SCRIPTMANAGER_HOME moves the whole tree; SCRIPTMANAGER_SAVE_LOCATION points the
script save location somewhere else (e.g. a synced folder).
"""

import os

APP_DATA_DIR = os.environ.get(
    'SCRIPTMANAGER_HOME',
    os.path.join(os.path.expanduser('~'), '.scriptmanager'),
)
SAVE_LOCATION = os.environ.get(
    'SCRIPTMANAGER_SAVE_LOCATION',
    os.path.join(APP_DATA_DIR, 'scripts'),
)
REQUIRE_DIR = os.path.join(APP_DATA_DIR, 'require')
MANIFEST_FILE = os.path.join(APP_DATA_DIR, 'manifest.json')
LOGS_DIR = os.path.join(APP_DATA_DIR, 'logs')

# file types the manager reads from the save location
SCRIPT_TYPES = ('js', 'css')

# longest filename accepted when saving
MAX_FILENAME_LENGTH = 250

# seconds before a remote fetch is abandoned
FETCH_TIMEOUT = 30


def ensure_app_directories() -> None:
    """Create required app-local directories at startup."""
    for path in (APP_DATA_DIR, SAVE_LOCATION, REQUIRE_DIR, LOGS_DIR):
        os.makedirs(path, exist_ok=True)
