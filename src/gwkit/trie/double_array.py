from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Iterable, Sequence


@dataclass(frozen=True)
class _Node:
    row: int
    col: int
    left: int
    right: int


def _children(seqs: list[list[int]], node: _Node) -> list[_Node]:
    # rows in [left, right) share a prefix up to node.col and are sorted,
    # so equal codes at col + 1 are contiguous
    col = node.col + 1
    starts: list[int] = []
    prev: int | None = None
    for i in range(node.left, node.right):
        code = seqs[i][col]
        if code != prev:
            starts.append(i)
            prev = code
    ends = starts[1:] + [node.right]
    return [_Node(row=s, col=col, left=s, right=e) for s, e in zip(starts, ends)]


@dataclass
class DoubleArray:
    """
    Double-array trie over token sequences.

    Each trie node occupies one slot. For a node at slot ``p`` and a token
    with code ``c`` the child lives at ``base[p] + c`` and is valid only if
    ``check[base[p] + c] == p + 1`` (0 marks a free slot). Every inserted
    sequence ends with a terminator code equal to ``len(encoding)``.

    Lookups are O(depth) array walks; no string comparison happens after
    the token -> code translation.
    """

    encoding: dict[str, int] = field(default_factory=dict)
    base: list[int] = field(default_factory=list)
    check: list[int] = field(default_factory=list)

    @classmethod
    def build(cls, seqs: Iterable[Sequence[str]]) -> "DoubleArray":
        da = cls()
        seqs = [list(s) for s in seqs]
        if not seqs:
            return da

        encoded = da._register_tokens(seqs)
        encoded.sort()
        da._add_seqs(encoded, 0, _Node(row=-1, col=-1, left=0, right=len(encoded)))
        da._trim()
        return da

    @property
    def terminator(self) -> int:
        return len(self.encoding)

    # ----------------------------
    # Construction
    # ----------------------------

    def _register_tokens(self, seqs: list[list[str]]) -> list[list[int]]:
        out: list[list[int]] = []
        for seq in seqs:
            codes: list[int] = []
            for token in seq:
                if token not in self.encoding:
                    self.encoding[token] = len(self.encoding)
                codes.append(self.encoding[token])
            out.append(codes)
        # the terminator is only known once every token has a code
        for codes in out:
            codes.append(self.terminator)
        return out

    def _ensure_size(self, i: int) -> None:
        while i >= len(self.base):
            grow = len(self.base) + 1
            self.base.extend([0] * grow)
            self.check.extend([0] * grow)

    def _is_free(self, j: int) -> bool:
        self._ensure_size(j)
        return self.check[j] == 0

    def _add_seqs(self, seqs: list[list[int]], pos: int, node: _Node) -> None:
        self._ensure_size(pos)
        children = _children(seqs, node)

        b = 1
        while not all(self._is_free(b + seqs[c.row][c.col]) for c in children):
            b += 1

        self.base[pos] = b
        for c in children:
            self.check[b + seqs[c.row][c.col]] = pos + 1

        for c in children:
            code = seqs[c.row][c.col]
            if code == self.terminator:
                continue
            self._add_seqs(seqs, b + code, c)

    def _trim(self) -> None:
        last = max((i for i, v in enumerate(self.check) if v != 0), default=-1)
        del self.base[last + 1 :]
        del self.check[last + 1 :]

    # ----------------------------
    # Queries
    # ----------------------------

    def _step(self, i: int, code: int) -> int | None:
        j = self.base[i] + code
        if j < len(self.check) and self.check[j] == i + 1:
            return j
        return None

    def _is_terminal(self, i: int) -> bool:
        return self._step(i, self.terminator) is not None

    def contains(self, seq: Sequence[str]) -> bool:
        """True iff ``seq`` was inserted as a whole sequence."""
        if not self.base:
            return False
        i = 0
        for token in seq:
            code = self.encoding.get(token)
            if code is None:
                return False
            nxt = self._step(i, code)
            if nxt is None:
                return False
            i = nxt
        return self._is_terminal(i)

    def has_common_prefix(self, seq: Sequence[str]) -> bool:
        """True iff some inserted sequence is a prefix of ``seq``."""
        if not self.base:
            return False
        i = 0
        if self._is_terminal(i):
            return True
        for token in seq:
            code = self.encoding.get(token)
            if code is None:
                return False
            nxt = self._step(i, code)
            if nxt is None:
                return False
            i = nxt
            if self._is_terminal(i):
                return True
        return False

    # ----------------------------
    # Serialization
    # ----------------------------

    def encoding_items(self) -> list[tuple[str, int]]:
        return sorted(self.encoding.items(), key=lambda kv: kv[1])

    def literal(self, qualifier: str = "") -> str:
        """
        Render as a Python constructor expression, e.g.
        ``DoubleArray(encoding={"c": 0}, base=[1, 1, 0], check=[0, 1, 2])``.

        Encoding entries are emitted by ascending index so identical tries
        always render to identical text.
        """
        name = f"{qualifier}.DoubleArray" if qualifier else "DoubleArray"
        enc = ", ".join(f"{json.dumps(tok)}: {idx}" for tok, idx in self.encoding_items())
        return f"{name}(encoding={{{enc}}}, base={self.base!r}, check={self.check!r})"
