"""Usage tags attached to each symbol occurrence."""
from enum import IntFlag
from typing import Iterator, List


class Tag(IntFlag):
    """One atomic usage classification.

    Bit values are stable: they are what a TagSet serializes to.
    """
    DECLARATION = 1 << 0
    READ = 1 << 1
    WRITE = 1 << 2
    WRITABLE_REF = 1 << 3
    OVERRIDE = 1 << 4
    MOC_INVOKABLE = 1 << 5
    TEMPLATE = 1 << 6


TAG_NAMES = {
    Tag.DECLARATION: 'declaration',
    Tag.READ: 'read',
    Tag.WRITE: 'write',
    Tag.WRITABLE_REF: 'writable-ref',
    Tag.OVERRIDE: 'override',
    Tag.MOC_INVOKABLE: 'moc-invokable',
    Tag.TEMPLATE: 'template',
}

_ALL_BITS = 0
for _tag in TAG_NAMES:
    _ALL_BITS |= int(_tag)


class TagSet:
    """Immutable set of usage tags backed by a small bit-field.

    An empty TagSet is a legitimate result: it means the classifier had no
    informative judgement for the occurrence.
    """

    __slots__ = ('_bits',)

    def __init__(self, *tags: Tag):
        bits = 0
        for tag in tags:
            bits |= int(tag)
        object.__setattr__(self, '_bits', bits)

    def __setattr__(self, name, value):
        raise AttributeError("TagSet is immutable")

    @classmethod
    def empty(cls) -> 'TagSet':
        return cls()

    @classmethod
    def from_int(cls, bits: int) -> 'TagSet':
        """Rebuild a TagSet from its serialized bit-field.

        Raises:
            ValueError: If bits outside the known tags are set
        """
        if bits < 0 or bits & ~_ALL_BITS:
            raise ValueError(f"Unknown usage tag bits: {bits:#x}")
        return cls(*[tag for tag in TAG_NAMES if bits & tag])

    @classmethod
    def parse(cls, text: str) -> 'TagSet':
        """Parse a comma separated list of tag names (e.g. 'write,read').

        Raises:
            ValueError: If a name is not a known tag
        """
        by_name = {name: tag for tag, name in TAG_NAMES.items()}
        tags = []
        for raw in text.split(','):
            name = raw.strip().lower().replace('_', '-')
            if not name:
                continue
            if name not in by_name:
                known = ', '.join(by_name)
                raise ValueError(f"Unknown usage tag '{raw.strip()}' (known: {known})")
            tags.append(by_name[name])
        return cls(*tags)

    def to_int(self) -> int:
        return self._bits

    def names(self) -> List[str]:
        return [TAG_NAMES[tag] for tag in self]

    def __or__(self, other: 'TagSet | Tag') -> 'TagSet':
        if isinstance(other, Tag):
            return TagSet.from_int(self._bits | int(other))
        if isinstance(other, TagSet):
            return TagSet.from_int(self._bits | other._bits)
        return NotImplemented

    __ror__ = __or__

    def __and__(self, other: 'TagSet | Tag') -> 'TagSet':
        if isinstance(other, Tag):
            return TagSet.from_int(self._bits & int(other))
        if isinstance(other, TagSet):
            return TagSet.from_int(self._bits & other._bits)
        return NotImplemented

    def __contains__(self, tag: Tag) -> bool:
        return bool(self._bits & int(tag))

    def __iter__(self) -> Iterator[Tag]:
        for tag in TAG_NAMES:
            if self._bits & tag:
                yield tag

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __bool__(self) -> bool:
        return self._bits != 0

    def __eq__(self, other) -> bool:
        if isinstance(other, TagSet):
            return self._bits == other._bits
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._bits)

    def __repr__(self) -> str:
        if not self._bits:
            return "TagSet()"
        return "TagSet(" + ", ".join(f"Tag.{tag.name}" for tag in self) + ")"

    def __str__(self) -> str:
        return ','.join(self.names()) if self._bits else '-'


def usage_style(tags: TagSet) -> str:
    """Pick the display style for a classified occurrence.

    Declarations win over writes, writes over writable references, and those
    over plain reads. Anything else is shown as a neutral occurrence.
    """
    if Tag.DECLARATION in tags:
        return 'declaration'
    if Tag.WRITE in tags:
        return 'write'
    if Tag.WRITABLE_REF in tags:
        return 'writable-ref'
    if Tag.READ in tags:
        return 'read'
    return 'occurrence'
