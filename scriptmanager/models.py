"""
Data models for scriptmanager
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from .settings import default_settings

# directive key -> values in declaration order; read-only once parsed
Metadata = Mapping[str, Tuple[str, ...]]

INJECT_INTO = ('auto', 'content', 'page')
RUN_AT = ('document-start', 'document-end', 'document-idle')
CONTEXT_MENU = 'context-menu'


def freeze_metadata(metadata: Dict[str, List[str]]) -> Metadata:
    return MappingProxyType({key: tuple(values) for key, values in metadata.items()})


def thaw_metadata(metadata: Metadata) -> Dict[str, List[str]]:
    return {key: list(values) for key, values in metadata.items()}


@dataclass(frozen=True)
class ParsedScript:
    """Result of parsing a userscript/userstyle"""
    code: str
    content: str
    metablock: str
    metadata: Metadata

    def values(self, key: str) -> Tuple[str, ...]:
        return self.metadata.get(key, ())

    def first(self, key: str, default: Optional[str] = None) -> Optional[str]:
        values = self.metadata.get(key)
        return values[0] if values else default

    def has(self, key: str) -> bool:
        return key in self.metadata

    @property
    def name(self) -> str:
        # parse() guarantees @name exists
        return self.metadata['name'][0]


@dataclass
class ScriptFile:
    """A .js or .css file in the save location"""
    filename: str
    type: str
    content: str
    metadata: Metadata
    metablock: str = ""
    last_modified: int = 0
    disabled: bool = False

    @classmethod
    def from_parsed(cls, filename: str, parsed: ParsedScript,
                    last_modified: int = 0, disabled: bool = False) -> 'ScriptFile':
        return cls(
            filename=filename,
            type=filename.rsplit('.', 1)[-1],
            content=parsed.content,
            metadata=parsed.metadata,
            metablock=parsed.metablock,
            last_modified=last_modified,
            disabled=disabled,
        )

    def first(self, key: str, default: Optional[str] = None) -> Optional[str]:
        values = self.metadata.get(key)
        return values[0] if values else default

    def values(self, key: str) -> Tuple[str, ...]:
        return self.metadata.get(key, ())

    @property
    def name(self) -> str:
        return self.metadata['name'][0]

    @property
    def description(self) -> Optional[str]:
        return self.first('description')

    @property
    def can_update(self) -> bool:
        return 'version' in self.metadata and 'updateURL' in self.metadata

    @property
    def noframes(self) -> bool:
        return 'noframes' in self.metadata

    def to_dict(self) -> Dict:
        d = {
            'canUpdate': self.can_update,
            'content': self.content,
            'disabled': self.disabled,
            'filename': self.filename,
            'lastModified': self.last_modified,
            'metadata': thaw_metadata(self.metadata),
            'name': self.name,
            'noframes': self.noframes,
            'type': self.type,
        }
        if self.description is not None:
            d['description'] = self.description
        return d


# attribute name -> serialized key
PATTERN_INDEXES = {
    'match': 'match',
    'exclude_match': 'exclude-match',
    'include': 'include',
    'exclude': 'exclude',
}


@dataclass
class Manifest:
    """The persisted index of patterns, disabled files, requires and settings"""
    blacklist: List[str] = field(default_factory=list)
    disabled: List[str] = field(default_factory=list)
    exclude: Dict[str, List[str]] = field(default_factory=dict)
    exclude_match: Dict[str, List[str]] = field(default_factory=dict)
    include: Dict[str, List[str]] = field(default_factory=dict)
    match: Dict[str, List[str]] = field(default_factory=dict)
    require: Dict[str, List[str]] = field(default_factory=dict)
    settings: Dict[str, str] = field(default_factory=default_settings)

    def pattern_index(self, attr: str) -> Dict[str, List[str]]:
        return getattr(self, attr)

    def to_dict(self) -> Dict:
        return {
            'blacklist': list(self.blacklist),
            'disabled': list(self.disabled),
            'exclude': {k: list(v) for k, v in self.exclude.items()},
            'exclude-match': {k: list(v) for k, v in self.exclude_match.items()},
            'include': {k: list(v) for k, v in self.include.items()},
            'match': {k: list(v) for k, v in self.match.items()},
            'require': {k: list(v) for k, v in self.require.items()},
            'settings': dict(self.settings),
        }

    @classmethod
    def from_dict(cls, d: Dict) -> 'Manifest':
        def index(key: str) -> Dict[str, List[str]]:
            return {str(k): [str(f) for f in v] for k, v in (d.get(key) or {}).items()}

        settings = d.get('settings')
        return cls(
            blacklist=[str(p) for p in d.get('blacklist', [])],
            disabled=[str(f) for f in d.get('disabled', [])],
            exclude=index('exclude'),
            exclude_match=index('exclude-match'),
            include=index('include'),
            match=index('match'),
            require=index('require'),
            settings={str(k): str(v) for k, v in settings.items()} if settings else default_settings(),
        )


@dataclass
class InjectedStyle:
    filename: str
    code: str
    weight: int

    def to_dict(self) -> Dict:
        return {'code': self.code, 'weight': self.weight}


@dataclass
class InjectedScript:
    filename: str
    code: str
    weight: int
    grant: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {'code': self.code, 'weight': self.weight, 'grant': list(self.grant)}


@dataclass
class ContextMenuScript:
    filename: str
    code: str
    name: str
    grant: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {'code': self.code, 'name': self.name, 'grant': list(self.grant)}


def _empty_js_grid() -> Dict[str, Dict[str, List[InjectedScript]]]:
    return {inject_into: {run_at: [] for run_at in RUN_AT} for inject_into in INJECT_INTO}


def _empty_context_menu() -> Dict[str, List[ContextMenuScript]]:
    return {inject_into: [] for inject_into in INJECT_INTO}


@dataclass
class InjectionPlan:
    """Files to inject into a page, grouped by context and timing"""
    css: List[InjectedStyle] = field(default_factory=list)
    js: Dict[str, Dict[str, List[InjectedScript]]] = field(default_factory=_empty_js_grid)
    context_menu: Dict[str, List[ContextMenuScript]] = field(default_factory=_empty_context_menu)

    def is_empty(self) -> bool:
        if self.css:
            return False
        if any(bucket for grid in self.js.values() for bucket in grid.values()):
            return False
        return not any(self.context_menu.values())

    def to_dict(self) -> Dict:
        js = {
            inject_into: {
                run_at: {s.filename: s.to_dict() for s in bucket}
                for run_at, bucket in grid.items()
            }
            for inject_into, grid in self.js.items()
        }
        js[CONTEXT_MENU] = {
            inject_into: {s.filename: s.to_dict() for s in bucket}
            for inject_into, bucket in self.context_menu.items()
        }
        return {
            'css': {s.filename: s.to_dict() for s in self.css},
            'js': js,
        }


@dataclass
class UpdateInfo:
    """A file whose remote version is newer than the local one"""
    name: str
    filename: str
    type: str
    url: str

    def to_dict(self) -> Dict:
        return {
            'name': self.name,
            'filename': self.filename,
            'type': self.type,
            'url': self.url,
        }
