"""
scriptmanager - A manager for userscripts and userstyles

Parses metablocks, keeps a manifest of url patterns, resolves which files run
on a page and checks their remote versions.
"""

__version__ = '1.0.0'
__author__ = 'scriptmanager'

from .models import (
    ParsedScript, ScriptFile, Manifest, InjectionPlan, UpdateInfo,
)
from .parser import MetadataParser
from .matcher import match, include, get_url_props
from .manifest import ManifestStore, reconcile_pattern_index
from .injector import InjectionResolver
from .updater import UpdateChecker, is_version_newer
from .utils import sanitize, unsanitize, normalize_weight
from .core_service import CoreService


__all__ = [
    'ParsedScript',
    'ScriptFile',
    'Manifest',
    'InjectionPlan',
    'UpdateInfo',
    'MetadataParser',
    'match',
    'include',
    'get_url_props',
    'ManifestStore',
    'reconcile_pattern_index',
    'InjectionResolver',
    'UpdateChecker',
    'is_version_newer',
    'sanitize',
    'unsanitize',
    'normalize_weight',
    'CoreService',
]
