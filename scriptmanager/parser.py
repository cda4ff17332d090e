"""
Metablock parser for userscripts and userstyles
"""

import re
from typing import Dict, List, Optional

from .errors import ParseFailure
from .models import ParsedScript, freeze_metadata

# userscript framing: groups 1-3, userstyle framing: groups 4-6
# (metablock, body, code that follows)
_METABLOCK_RE = re.compile(
    r'(?:(// ==UserScript==\r?\n([\S\s]*?)\r?\n// ==/UserScript==)([\S\s]*)'
    r'|(/\* ==UserStyle==\r?\n([\S\s]*?)\r?\n==/UserStyle== \*/)([\S\s]*))'
)

# @key value, optionally prefixed by // inside the block
_DIRECTIVE_RE = re.compile(r'^(?:[ \t]*(?://)?[ \t]*@)([\w-]+)[ \t]+(\S+[^\r\n\t\v\f]*)')

# keys that are meaningful without a value
PRESENCE_KEYS = ('noframes',)
_PRESENCE_RE = re.compile(
    r'^(?:[ \t]*(?://)?[ \t]*@)(' + '|'.join(PRESENCE_KEYS) + r')[ \t]*$'
)


class MetadataParser:
    """Extracts @directives from userscript/userstyle metablocks"""

    @staticmethod
    def parse(content: str) -> Optional[ParsedScript]:
        """
        Parse file content.

        Returns None when the metablock is missing or declares no @name.
        """
        try:
            return MetadataParser.parse_or_raise(content)
        except ParseFailure:
            return None

    @staticmethod
    def parse_or_raise(content: str) -> ParsedScript:
        """Like parse() but raises ParseFailure with the reason."""
        m = _METABLOCK_RE.search(content)
        if not m:
            raise ParseFailure(ParseFailure.NO_METABLOCK, 'metablock missing')

        # content may precede the opening tag; pick groups by the framing found
        if m.group(1) is not None:
            metablock, body, code = m.group(1), m.group(2), m.group(3)
        else:
            metablock, body, code = m.group(4), m.group(5), m.group(6)

        metadata = MetadataParser.parse_directives(body)
        if 'name' not in metadata:
            raise ParseFailure(ParseFailure.MISSING_NAME, 'metablock has no @name')

        return ParsedScript(
            code=code.strip(),
            content=content,
            metablock=metablock,
            metadata=freeze_metadata(metadata),
        )

    @staticmethod
    def parse_directives(body: str) -> Dict[str, List[str]]:
        """Collect @key value lines of a metablock body, in line order."""
        metadata: Dict[str, List[str]] = {}
        for line in body.splitlines():
            if not line:
                continue
            m = _DIRECTIVE_RE.match(line)
            if m:
                metadata.setdefault(m.group(1), []).append(m.group(2).rstrip())
                continue
            m = _PRESENCE_RE.match(line)
            if m:
                metadata.setdefault(m.group(1), [])
        return metadata
