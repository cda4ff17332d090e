"""
URL pattern compiler and matcher.

Two dialects are supported:

* match patterns (@match, @exclude-match and the blacklist):
  ``scheme://host/path`` where scheme is http, https or *, host is ``*``,
  ``*.suffix`` or a literal host, and path is a glob.
* include/exclude patterns (@include, @exclude): a glob over the whole url,
  or a literal regular expression when wrapped in slashes (``/.../``).

Globs are parsed into literal and wildcard nodes and compiled once into an
anchored, case-insensitive regex. Compiled patterns are cached, and so are
malformed ones, which are logged the first time they are seen.
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Pattern, Tuple, Union

from .errors import MalformedPattern
from .monitor import log_event

ALL_URLS = '<all_urls>'

# protocols injection is supported for
RUNTIME_PROTOCOLS = ('http:', 'https:')

_URL_RE = re.compile(r'([a-z][a-z0-9+.\-]*:)//([^/?#\s]+)(/.*)?', re.IGNORECASE | re.DOTALL)

_MATCH_PATTERN_RE = re.compile(
    r'(http:|https:|\*:)//'
    r'((?:\*\.)?(?:[a-z0-9-]+\.)+(?:[a-z0-9]+)|\*\.[a-z]+|\*)'
    r'(/\S*)',
    re.IGNORECASE,
)


@dataclass(frozen=True)
class UrlProps:
    """A url split into the parts patterns are matched against"""
    protocol: str
    host: str
    pathname: str
    href: str


def get_url_props(url: str) -> Optional[UrlProps]:
    """Split a url into protocol (with colon), host, path (default '/') and href."""
    m = _URL_RE.fullmatch(url)
    if not m:
        return None
    return UrlProps(
        protocol=m.group(1),
        host=m.group(2),
        pathname=m.group(3) or '/',
        href=url,
    )


def validate_url(url: str) -> bool:
    """Remote script urls must be http(s) and point at a .js or .css file."""
    return url.startswith(('https://', 'http://')) and url.endswith(('.css', '.js'))


# glob AST

@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Wildcard:
    pass


GlobNode = Union[Literal, Wildcard]
WILDCARD = Wildcard()


def parse_glob(pattern: str) -> Tuple[GlobNode, ...]:
    """Split a glob into literal runs and wildcards; consecutive '*' collapse."""
    nodes = []
    buf = []
    for ch in pattern:
        if ch != '*':
            buf.append(ch)
            continue
        if buf:
            nodes.append(Literal(''.join(buf)))
            buf = []
        if not nodes or nodes[-1] is not WILDCARD:
            nodes.append(WILDCARD)
    if buf:
        nodes.append(Literal(''.join(buf)))
    return tuple(nodes)


@lru_cache(maxsize=2048)
def compile_glob(pattern: str) -> Pattern:
    """Compile a glob; use with fullmatch()."""
    source = ''.join(
        '.*' if node is WILDCARD else re.escape(node.text)
        for node in parse_glob(pattern)
    )
    return re.compile(source, re.IGNORECASE | re.DOTALL)


# match patterns

@dataclass(frozen=True)
class MatchPattern:
    scheme: str
    # None matches any host
    host: Optional[Pattern]
    path: Optional[Pattern]

    def matches(self, protocol: str, host: str, path: str) -> bool:
        if self.scheme == ALL_URLS:
            return True
        protocol = protocol.lower()
        if protocol not in RUNTIME_PROTOCOLS:
            return False
        if self.scheme != '*:' and self.scheme != protocol:
            return False
        if self.host is not None and not self.host.fullmatch(host):
            return False
        return bool(self.path.fullmatch(path))


def _compile_host(host: str) -> Optional[Pattern]:
    if host == '*':
        return None
    if host.startswith('*.'):
        return re.compile(r'(?:.*\.)?' + re.escape(host[2:]), re.IGNORECASE)
    return re.compile(re.escape(host), re.IGNORECASE)


def compile_match_pattern(pattern: str) -> MatchPattern:
    """
    Compile a match pattern.

    Raises:
        MalformedPattern: pattern does not fit scheme://host/path
    """
    if pattern == ALL_URLS:
        return MatchPattern(scheme=ALL_URLS, host=None, path=None)
    parts = _MATCH_PATTERN_RE.fullmatch(pattern)
    if not parts:
        raise MalformedPattern(f'malformed match pattern: {pattern}')
    return MatchPattern(
        scheme=parts.group(1).lower(),
        host=_compile_host(parts.group(2)),
        path=compile_glob(parts.group(3)),
    )


@lru_cache(maxsize=2048)
def _cached_match_pattern(pattern: str) -> Optional[MatchPattern]:
    # None for malformed patterns, so they are logged once
    try:
        return compile_match_pattern(pattern)
    except MalformedPattern as e:
        log_event('matcher.malformed', str(e), logging.WARNING)
        return None


def match(protocol: str, host: str, path: str, pattern: str) -> bool:
    """Test a match pattern against url parts. Malformed patterns never match."""
    compiled = _cached_match_pattern(pattern)
    if compiled is None:
        return False
    return compiled.matches(protocol, host, path)


def match_url(props: UrlProps, pattern: str) -> bool:
    return match(props.protocol, props.host, props.pathname, pattern)


# include/exclude patterns

@dataclass(frozen=True)
class IncludePattern:
    regex: Pattern
    # literal regexes may match anywhere, globs must match the whole url
    anchored: bool

    def matches(self, url: str) -> bool:
        if self.anchored:
            return bool(self.regex.fullmatch(url))
        return bool(self.regex.search(url))


def compile_include_pattern(pattern: str) -> IncludePattern:
    """
    Compile an @include/@exclude value.

    Raises:
        MalformedPattern: /.../ pattern is not a valid regular expression
    """
    if len(pattern) > 1 and pattern.startswith('/') and pattern.endswith('/'):
        try:
            regex = re.compile(pattern[1:-1], re.IGNORECASE)
        except re.error as e:
            raise MalformedPattern(f'invalid regex {pattern}: {e}') from e
        return IncludePattern(regex=regex, anchored=False)
    return IncludePattern(regex=compile_glob(pattern), anchored=True)


@lru_cache(maxsize=2048)
def _cached_include_pattern(pattern: str) -> Optional[IncludePattern]:
    try:
        return compile_include_pattern(pattern)
    except MalformedPattern as e:
        log_event('matcher.malformed', str(e), logging.WARNING)
        return None


def include(url: str, pattern: str) -> bool:
    """Test an include/exclude pattern against a full url."""
    compiled = _cached_include_pattern(pattern)
    if compiled is None:
        return False
    return compiled.matches(url)
