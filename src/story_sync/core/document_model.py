"""In-memory tree document rendered by the scene editing surface.

A document is a flat sequence of paragraph blocks. Each block carries the
owning paragraph's ID and its two suggestion attributes, plus inline text
nodes with optional marks. Positions follow the ProseMirror convention:
a block occupies ``len(text) + 2`` positions (open token, text, close token).
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace
from typing import Any, Final

MARK_TYPES: Final[frozenset[str]] = frozenset({"em", "strong", "translation"})


class DocumentSchemaError(ValueError):
    """Raised when structured rich-text content does not fit the document schema."""


@dataclass(frozen=True)
class Mark:
    """Inline formatting applied to a text node."""

    type: str
    attrs: tuple[tuple[str, str], ...] = ()

    def as_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type}
        if self.attrs:
            payload["attrs"] = dict(self.attrs)
        return payload


@dataclass(frozen=True)
class TextNode:
    """Run of text sharing one set of marks."""

    text: str
    marks: tuple[Mark, ...] = ()

    def as_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": "text", "text": self.text}
        if self.marks:
            payload["marks"] = [mark.as_json() for mark in self.marks]
        return payload


@dataclass(frozen=True)
class Block:
    """One rendered paragraph block."""

    id: str | None
    content: tuple[TextNode, ...] = ()
    extra: str | None = None
    extra_loading: bool = False

    @property
    def text_content(self) -> str:
        return "".join(node.text for node in self.content)

    @property
    def has_marks(self) -> bool:
        return any(node.marks for node in self.content)

    @property
    def node_size(self) -> int:
        return len(self.text_content) + 2

    def with_text(self, text: str) -> Block:
        """Replace inline content with one unmarked text node."""
        return replace(self, content=(TextNode(text),) if text else ())


@dataclass(frozen=True)
class Document:
    """Ordered block sequence for one scene."""

    blocks: tuple[Block, ...]

    def __iter__(self) -> Iterator[Block]:
        return iter(self.blocks)

    def __len__(self) -> int:
        return len(self.blocks)

    @property
    def text_content(self) -> str:
        return "".join(block.text_content for block in self.blocks)

    @property
    def size(self) -> int:
        return sum(block.node_size for block in self.blocks)

    def index_of(self, block_id: str) -> int:
        for index, block in enumerate(self.blocks):
            if block.id == block_id:
                return index
        return -1

    def block_by_id(self, block_id: str) -> Block | None:
        index = self.index_of(block_id)
        return self.blocks[index] if index >= 0 else None

    def with_block_text(self, block_id: str, text: str) -> Document:
        """Return a copy where one block's text is replaced."""
        index = self._require_index(block_id)
        return self._replace_at(index, self.blocks[index].with_text(text))

    def with_block_attrs(
        self,
        block_id: str,
        *,
        extra: str | None = None,
        extra_loading: bool = False,
    ) -> Document:
        """Return a copy where one block's suggestion attributes are replaced."""
        index = self._require_index(block_id)
        block = replace(self.blocks[index], extra=extra, extra_loading=extra_loading)
        return self._replace_at(index, block)

    def insert_block_after(self, after_id: str | None, block: Block) -> Document:
        """Insert a block after ``after_id``; ``None`` inserts at the start."""
        index = 0 if after_id is None else self._require_index(after_id) + 1
        return Document(blocks=(*self.blocks[:index], block, *self.blocks[index:]))

    def remove_block(self, block_id: str) -> Document:
        index = self._require_index(block_id)
        return Document(blocks=(*self.blocks[:index], *self.blocks[index + 1 :]))

    def split_block(self, block_id: str, offset: int, *, new_id: str | None = None) -> Document:
        """Split one block at a text offset, as pressing Enter does.

        The left half keeps the block's ID and attributes. The right half gets
        ``new_id``; when omitted it repeats the original ID, mirroring how the
        editing surface copies node attributes on split.
        """
        index = self._require_index(block_id)
        block = self.blocks[index]
        length = len(block.text_content)
        offset = max(0, min(offset, length))
        left = replace(block, content=_slice_content(block.content, 0, offset))
        right = Block(
            id=new_id if new_id is not None else block.id,
            content=_slice_content(block.content, offset, length),
        )
        return Document(blocks=(*self.blocks[:index], left, right, *self.blocks[index + 1 :]))

    def _require_index(self, block_id: str) -> int:
        index = self.index_of(block_id)
        if index < 0:
            raise KeyError(f"Block {block_id} is not part of the document.")
        return index

    def _replace_at(self, index: int, block: Block) -> Document:
        return Document(blocks=(*self.blocks[:index], block, *self.blocks[index + 1 :]))


def node_from_json(payload: Any) -> tuple[Block, ...]:
    """Parse structured rich-text JSON into ID-less blocks.

    Raises ``DocumentSchemaError`` when the payload does not match the
    ``doc > paragraph > text`` schema or uses unknown mark types.
    """
    if not isinstance(payload, Mapping) or payload.get("type") != "doc":
        raise DocumentSchemaError("Structured content must be a 'doc' node.")
    raw_blocks = payload.get("content", [])
    if not isinstance(raw_blocks, list):
        raise DocumentSchemaError("Document content must be a list of blocks.")
    return tuple(_parse_block(raw) for raw in raw_blocks)


def content_to_json(content: tuple[TextNode, ...]) -> dict[str, Any]:
    """Wrap one block's inline content as a structured single-paragraph doc."""
    return {
        "type": "doc",
        "content": [{"type": "paragraph", "content": [node.as_json() for node in content]}],
    }


def paragraph_id_at_position(document: Document, position: int) -> str | None:
    """Return the ID of the block containing a document position, if any."""
    start = 0
    for block in document.blocks:
        end = start + block.node_size
        if start < position < end:
            return block.id
        start = end
    return None


def paragraph_range(document: Document, paragraph_id: str) -> tuple[int, int] | None:
    """Return the ``(from, to)`` position range covering one block."""
    start = 0
    for block in document.blocks:
        end = start + block.node_size
        if block.id == paragraph_id:
            return start, end
        start = end
    return None


def _parse_block(raw: Any) -> Block:
    if not isinstance(raw, Mapping) or raw.get("type") != "paragraph":
        raise DocumentSchemaError("Only 'paragraph' blocks are allowed in scene content.")
    raw_nodes = raw.get("content") or []
    if not isinstance(raw_nodes, list):
        raise DocumentSchemaError("Paragraph content must be a list of text nodes.")
    return Block(id=None, content=tuple(_parse_text_node(node) for node in raw_nodes))


def _parse_text_node(raw: Any) -> TextNode:
    if not isinstance(raw, Mapping) or raw.get("type") != "text":
        raise DocumentSchemaError("Paragraph content may only hold text nodes.")
    text = raw.get("text")
    if not isinstance(text, str) or not text:
        raise DocumentSchemaError("Text nodes must carry non-empty text.")
    raw_marks = raw.get("marks") or []
    if not isinstance(raw_marks, list):
        raise DocumentSchemaError("Text node marks must be a list.")
    return TextNode(text=text, marks=tuple(_parse_mark(mark) for mark in raw_marks))


def _parse_mark(raw: Any) -> Mark:
    if not isinstance(raw, Mapping) or raw.get("type") not in MARK_TYPES:
        raise DocumentSchemaError(f"Unsupported mark: {raw!r}")
    attrs = raw.get("attrs") or {}
    if not isinstance(attrs, Mapping):
        raise DocumentSchemaError("Mark attrs must be an object.")
    pairs: list[tuple[str, str]] = []
    for key, value in attrs.items():
        if value is None:
            continue
        if not isinstance(value, str):
            raise DocumentSchemaError(f"Mark attribute '{key}' must be a string.")
        pairs.append((str(key), value))
    return Mark(type=str(raw["type"]), attrs=tuple(sorted(pairs)))


def _slice_content(content: tuple[TextNode, ...], start: int, end: int) -> tuple[TextNode, ...]:
    sliced: list[TextNode] = []
    cursor = 0
    for node in content:
        node_start = cursor
        node_end = cursor + len(node.text)
        cursor = node_end
        lo = max(start, node_start)
        hi = min(end, node_end)
        if lo >= hi:
            continue
        sliced.append(TextNode(text=node.text[lo - node_start : hi - node_start], marks=node.marks))
    return tuple(sliced)
