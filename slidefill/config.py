"""Engine configuration: the recognized placeholder set and package layout.

Configuration is an explicit value handed to every entry point; nothing in
the engine reads module-level state at call time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from pptx.opc.constants import RELATIONSHIP_TYPE as RT

from slidefill.errors import AmbiguousTokenSet

# ── Defaults ──────────────────────────────────────────────────────────────────
DEFAULT_OPEN = "{{"
DEFAULT_CLOSE = "}}"

DEFAULT_FIELDS = ("NAME", "BIRTH_DATE", "TITLE", "ROLE", "COMPANY", "EMAIL")

# Placeholder names found in older Portuguese-language templates
LEGACY_ALIASES = {
    "NOME": "NAME",
    "DATA_NASCIMENTO": "BIRTH_DATE",
    "CARGO": "ROLE",
    "EMPRESA": "COMPANY",
}

STRICT_IMAGE_REL = "http://purl.oclc.org/ooxml/officeDocument/relationships/image"
IMAGE_REL_TYPES = frozenset({RT.IMAGE, STRICT_IMAGE_REL})

# Separator the scanner emits between paragraphs, breaks and fields
BOUNDARY = "\x00"


@dataclass(frozen=True)
class PlaceholderToken:
    """A delimited field marker, e.g. ``{{NAME}}``.

    ``name`` is the text between the delimiters; ``field`` is the record key
    whose value replaces the whole literal.
    """

    name: str
    field: str
    open: str = DEFAULT_OPEN
    close: str = DEFAULT_CLOSE

    @property
    def literal(self) -> str:
        return f"{self.open}{self.name}{self.close}"

    def lookup(self, record: Mapping[str, object]) -> Optional[str]:
        """Value for this token, keyed by field first and then by name."""
        for key in (self.field, self.name):
            value = record.get(key)
            if value is not None:
                return value if isinstance(value, str) else str(value)
        return None


def validate_token_set(tokens: Iterable[PlaceholderToken]) -> tuple[PlaceholderToken, ...]:
    """Reject token sets whose literals could match ambiguously."""
    tokens = tuple(tokens)
    if not tokens:
        raise AmbiguousTokenSet("token set is empty")

    seen: dict[str, PlaceholderToken] = {}
    for token in tokens:
        if not token.open or not token.close:
            raise AmbiguousTokenSet(f"token {token.name!r} has an empty delimiter", name=token.name)
        if not token.name or not token.field:
            raise AmbiguousTokenSet("token name and field must be non-empty", name=token.name)
        if any(ch.isspace() or ch == BOUNDARY for ch in token.name):
            raise AmbiguousTokenSet(f"token name {token.name!r} contains whitespace", name=token.name)
        if token.open in token.name or token.close in token.name:
            raise AmbiguousTokenSet(f"token name {token.name!r} contains a delimiter", name=token.name)
        if token.name in seen:
            raise AmbiguousTokenSet(f"token {token.name!r} is defined twice", name=token.name)
        seen[token.name] = token

    for a in tokens:
        for b in tokens:
            if a is not b and a.literal in b.literal:
                raise AmbiguousTokenSet(
                    f"token {a.literal!r} overlaps {b.literal!r}",
                    inner=a.literal,
                    outer=b.literal,
                )
    return tokens


@dataclass(frozen=True)
class EngineConfig:
    """Recognized tokens plus the package path conventions."""

    tokens: tuple[PlaceholderToken, ...]
    slide_dir: str = "ppt/slides"
    media_dir: str = "ppt/media"
    image_rel_types: frozenset[str] = field(default=IMAGE_REL_TYPES)

    def __post_init__(self) -> None:
        object.__setattr__(self, "tokens", validate_token_set(self.tokens))
        object.__setattr__(self, "slide_dir", self.slide_dir.strip("/"))
        object.__setattr__(self, "media_dir", self.media_dir.strip("/"))

    @classmethod
    def from_fields(
        cls,
        fields: Iterable[str],
        open: str = DEFAULT_OPEN,
        close: str = DEFAULT_CLOSE,
        aliases: Optional[Mapping[str, str]] = None,
        **kwargs,
    ) -> "EngineConfig":
        """Build a config where each field is its own placeholder name.

        ``aliases`` maps extra placeholder names onto existing fields.
        """
        tokens = [PlaceholderToken(name, name, open, close) for name in fields]
        for name, target in (aliases or {}).items():
            tokens.append(PlaceholderToken(name, target, open, close))
        return cls(tokens=tuple(tokens), **kwargs)

    def with_fields(self, *fields: str) -> "EngineConfig":
        """Copy of this config that also recognizes ``fields``."""
        known = {token.name for token in self.tokens}
        first = self.tokens[0]
        extra = tuple(
            PlaceholderToken(name, name, first.open, first.close)
            for name in fields
            if name not in known
        )
        return EngineConfig(
            tokens=self.tokens + extra,
            slide_dir=self.slide_dir,
            media_dir=self.media_dir,
            image_rel_types=self.image_rel_types,
        )

    def token_for(self, name: str) -> Optional[PlaceholderToken]:
        for token in self.tokens:
            if token.name == name:
                return token
        return None

    @property
    def delimiter_pairs(self) -> list[tuple[str, str]]:
        pairs: list[tuple[str, str]] = []
        for token in self.tokens:
            if (token.open, token.close) not in pairs:
                pairs.append((token.open, token.close))
        return pairs

    @property
    def fields(self) -> list[str]:
        out: list[str] = []
        for token in self.tokens:
            if token.field not in out:
                out.append(token.field)
        return out


DEFAULT_CONFIG = EngineConfig.from_fields(DEFAULT_FIELDS, aliases=LEGACY_ALIASES)
