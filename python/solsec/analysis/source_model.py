"""Structural model of Rust program sources (native Solana and Anchor)."""

from bisect import bisect_right
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import re
import threading


LANGUAGE_BY_SUFFIX = {
    ".rs": "rust",
}

_RAW_STRING_START = re.compile(r'b?r(#*)"')
_CHAR_LITERAL = re.compile(r"'(?:\\(?:x[0-9a-fA-F]{2}|u\{[0-9a-fA-F]{1,6}\}|.)|[^\\'\n])'")

_VISIBILITY = r"(?:\bpub(?:\s*\([^)]*\))?\s+)?"
_FN_RE = re.compile(
    _VISIBILITY
    + r"(?:(?:const|async|unsafe|default)\s+)*(?:extern\s+(?:\"[^\"]*\"\s+)?)?\bfn\s+([A-Za-z_][A-Za-z0-9_]*)"
)
_STRUCT_RE = re.compile(_VISIBILITY + r"\bstruct\s+([A-Za-z_][A-Za-z0-9_]*)")
_MOD_RE = re.compile(_VISIBILITY + r"\bmod\s+([A-Za-z_][A-Za-z0-9_]*)\s*\{")
_IMPL_RE = re.compile(r"\bimpl\b")
_USE_RE = re.compile(r"^\s*(?:pub\s+)?use\s+([^;]+);", re.MULTILINE)
_FIELD_RE = re.compile(
    r"^(?:pub(?:\s*\([^)]*\))?\s+)?([A-Za-z_][A-Za-z0-9_]*)\s*:\s*(.+)$", re.DOTALL
)
_TYPE_NAME_RE = re.compile(r"([A-Za-z_][A-Za-z0-9_]*)\s*(?:<.*)?$", re.DOTALL)

_OPEN = {"(": ")", "[": "]", "{": "}"}
_CLOSE = {")", "]", "}"}


def detect_language(path: str) -> str:
    """Guess the unit language from its file suffix."""
    return LANGUAGE_BY_SUFFIX.get(Path(path).suffix.lower(), "unknown")


def mask_source(text: str) -> str:
    """
    Blank out comments and string/char literal contents.

    Newlines and offsets are preserved, so positions in the masked text map
    one-to-one onto the original. Lifetimes ('a, 'info) are kept.
    """
    out = list(text)
    n = len(text)
    i = 0

    def blank(start: int, end: int) -> None:
        for j in range(start, min(end, n)):
            if out[j] != "\n":
                out[j] = " "

    while i < n:
        c = text[i]
        nxt = text[i + 1] if i + 1 < n else ""

        if c == "/" and nxt == "/":
            end = text.find("\n", i)
            end = n if end == -1 else end
            blank(i, end)
            i = end
            continue

        if c == "/" and nxt == "*":
            depth = 0
            j = i
            while j < n:
                if text.startswith("/*", j):
                    depth += 1
                    j += 2
                elif text.startswith("*/", j):
                    depth -= 1
                    j += 2
                    if depth == 0:
                        break
                else:
                    j += 1
            blank(i, j)
            i = j
            continue

        if c in "br" and (i == 0 or not (text[i - 1].isalnum() or text[i - 1] == "_")):
            m = _RAW_STRING_START.match(text, i)
            if m:
                closing = '"' + m.group(1)
                body_start = m.end()
                end = text.find(closing, body_start)
                end = n if end == -1 else end
                blank(body_start, end)
                i = end + len(closing)
                continue

        if c == '"':
            j = i + 1
            while j < n and text[j] != '"':
                j += 2 if text[j] == "\\" else 1
            blank(i + 1, j)
            i = j + 1
            continue

        if c == "'":
            m = _CHAR_LITERAL.match(text, i)
            if m:
                blank(i + 1, m.end() - 1)
                i = m.end()
                continue

        i += 1

    return "".join(out)


def match_delimiter(text: str, open_pos: int) -> int:
    """Return the index of the delimiter closing the one at ``open_pos``."""
    opener = text[open_pos]
    closer = _OPEN[opener]
    depth = 0
    for j in range(open_pos, len(text)):
        ch = text[j]
        if ch == opener:
            depth += 1
        elif ch == closer:
            depth -= 1
            if depth == 0:
                return j
    return len(text) - 1


def _match_angle(text: str, open_pos: int) -> int:
    depth = 0
    for j in range(open_pos, len(text)):
        ch = text[j]
        if ch == "<":
            depth += 1
        elif ch == ">" and text[j - 1] != "-":
            depth -= 1
            if depth == 0:
                return j
        elif ch in "{;":
            return j - 1
    return len(text) - 1


def split_top_level(text: str, sep: str = ",") -> List[Tuple[int, str]]:
    """Split on ``sep`` outside of (), [], {}, <>. Returns (offset, chunk) pairs."""
    chunks = []
    depth = 0
    start = 0
    for j, ch in enumerate(text):
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif ch == "<":
            depth += 1
        elif ch == ">" and (j == 0 or text[j - 1] != "-"):
            depth -= 1
        elif ch == sep and depth == 0:
            chunks.append((start, text[start:j]))
            start = j + 1
    chunks.append((start, text[start:]))
    return chunks


@dataclass(frozen=True)
class SourceLine:
    """One line of source: raw text and masked code."""
    number: int
    raw: str
    code: str


@dataclass(frozen=True)
class FieldDef:
    """A named struct field."""
    name: str
    type: str
    line: int
    attributes: Tuple[str, ...] = ()
    docs: Tuple[str, ...] = ()

    @property
    def type_name(self) -> str:
        """Outer type name, e.g. 'Account' for Account<'info, Vault>."""
        m = _TYPE_NAME_RE.match(self.type.strip())
        return m.group(1) if m else self.type.strip()

    def has_attribute(self, keyword: str) -> bool:
        pattern = re.compile(r"\b" + re.escape(keyword) + r"\b")
        return any(pattern.search(a) for a in self.attributes)


@dataclass(frozen=True)
class StructDef:
    """A struct declaration."""
    name: str
    start_line: int
    end_line: int
    attributes: Tuple[str, ...] = ()
    fields: Tuple[FieldDef, ...] = ()

    @property
    def is_accounts(self) -> bool:
        """Anchor #[derive(Accounts)] struct."""
        return any(re.search(r"derive\s*\([^)]*\bAccounts\b", a) for a in self.attributes)

    def field(self, name: str) -> Optional[FieldDef]:
        for f in self.fields:
            if f.name == name:
                return f
        return None


@dataclass(frozen=True)
class FunctionDef:
    """A function with a body."""
    name: str
    start_line: int
    body_start_line: int
    end_line: int
    params: str = ""
    return_type: str = ""
    attributes: Tuple[str, ...] = ()
    is_pub: bool = False
    is_unsafe: bool = False
    container: Optional[str] = None
    body: str = field(default="", repr=False)

    @property
    def qualified_name(self) -> str:
        return f"{self.container}::{self.name}" if self.container else self.name

    @property
    def context_struct(self) -> Optional[str]:
        """Accounts struct named by an Anchor ``Context<...>`` parameter."""
        m = re.search(r"\bContext\s*<\s*(?:'[A-Za-z_]\w*\s*,\s*)*([A-Za-z_]\w*)", self.params)
        return m.group(1) if m else None

    def contains_line(self, line: int) -> bool:
        return self.start_line <= line <= self.end_line


@dataclass(frozen=True)
class ModuleDef:
    """An inline ``mod name { ... }`` block."""
    name: str
    start_line: int
    end_line: int
    attributes: Tuple[str, ...] = ()

    @property
    def is_program(self) -> bool:
        """Anchor #[program] module: its public functions are instruction handlers."""
        return any(re.fullmatch(r"#\s*\[\s*program\s*\]", a) for a in self.attributes)


@dataclass
class SourceModel:
    """Parsed representation of one Rust source file."""
    lines: List[SourceLine] = field(default_factory=list)
    functions: List[FunctionDef] = field(default_factory=list)
    structs: List[StructDef] = field(default_factory=list)
    modules: List[ModuleDef] = field(default_factory=list)
    uses: List[str] = field(default_factory=list)
    masked: str = ""

    def line(self, number: int) -> Optional[SourceLine]:
        if 1 <= number <= len(self.lines):
            return self.lines[number - 1]
        return None

    def body_lines(self, function: FunctionDef) -> List[SourceLine]:
        """Lines of a function body, excluding the signature line."""
        return self.lines[function.body_start_line - 1:function.end_line]

    def body_code(self, function: FunctionDef) -> str:
        """Masked body text, braces included."""
        return function.body

    def function_at(self, line: int) -> Optional[FunctionDef]:
        """Innermost function enclosing a line."""
        enclosing = [f for f in self.functions if f.contains_line(line)]
        if not enclosing:
            return None
        return min(enclosing, key=lambda f: f.end_line - f.start_line)

    def struct(self, name: str) -> Optional[StructDef]:
        for s in self.structs:
            if s.name == name:
                return s
        return None

    @property
    def accounts_structs(self) -> List[StructDef]:
        return [s for s in self.structs if s.is_accounts]

    def is_test_code(self, function: FunctionDef) -> bool:
        """#[test] functions and anything inside a #[cfg(test)] module."""
        if any(re.search(r"#\s*\[\s*(?:\w+::)*test\b", a) for a in function.attributes):
            return True
        return any(
            m.start_line <= function.start_line <= m.end_line
            and any("cfg(test)" in a.replace(" ", "") for a in m.attributes)
            for m in self.modules
        )

    def instruction_handlers(self) -> List[FunctionDef]:
        """Public functions of #[program] modules, or native process_* entry points."""
        program_mods = [m for m in self.modules if m.is_program]
        handlers = []
        for fn in self.functions:
            if self.is_test_code(fn):
                continue
            if any(m.start_line <= fn.start_line <= m.end_line for m in program_mods) and fn.is_pub:
                handlers.append(fn)
            elif fn.name.startswith("process") or "AccountInfo" in fn.params:
                handlers.append(fn)
        return handlers


class SourceParser:
    """
    Lightweight structural parser for Rust.

    Not a full grammar: it recovers the items rules need (functions, structs,
    inline modules, attributes, use declarations) from masked source using
    delimiter matching.
    """

    def parse(self, text: str) -> SourceModel:
        masked = mask_source(text)
        raw_lines = text.split("\n")
        code_lines = masked.split("\n")
        if text.endswith("\n"):
            raw_lines.pop()
            code_lines.pop()
        lines = [
            SourceLine(number=i + 1, raw=raw.rstrip("\r"), code=code.rstrip("\r"))
            for i, (raw, code) in enumerate(zip(raw_lines, code_lines))
        ]

        self._text = text
        self._masked = masked
        self._line_starts = [0] + [m.end() for m in re.finditer("\n", masked)]
        self._attributes = self._find_attributes(masked)

        containers = self._find_containers(masked)
        modules = self._find_modules(masked)

        return SourceModel(
            lines=lines,
            functions=self._find_functions(masked, containers, modules),
            structs=self._find_structs(masked),
            modules=modules,
            uses=[" ".join(u.split()) for u in _USE_RE.findall(masked)],
            masked=masked,
        )

    def _line_of(self, offset: int) -> int:
        return bisect_right(self._line_starts, offset)

    def _find_attributes(self, masked: str) -> List[Tuple[int, int, str]]:
        spans = []
        for m in re.finditer(r"#!?\[", masked):
            end = match_delimiter(masked, m.end() - 1)
            spans.append((m.start(), end + 1, " ".join(masked[m.start():end + 1].split())))
        return spans

    def _attributes_before(self, pos: int) -> Tuple[str, ...]:
        """Outer attributes directly preceding an item starting at ``pos``."""
        collected = []
        cursor = pos
        for start, end, text in reversed(self._attributes):
            if end > cursor:
                continue
            if self._masked[end:cursor].strip():
                break
            if text.startswith("#!"):
                break
            collected.append(text)
            cursor = start
        return tuple(reversed(collected))

    def _find_containers(self, masked: str) -> List[Tuple[int, int, str]]:
        """impl blocks as (start, end, type name)."""
        containers = []
        for m in _IMPL_RE.finditer(masked):
            brace = masked.find("{", m.end())
            semi = masked.find(";", m.end())
            if brace == -1 or (semi != -1 and semi < brace):
                continue
            header = masked[m.end():brace]
            header = re.sub(r"\bwhere\b.*$", "", header, flags=re.DOTALL).strip()
            if header.startswith("<"):
                header = header[_match_angle(header, 0) + 1:]
            if re.search(r"\bfor\b", header):
                header = re.split(r"\bfor\b", header)[-1]
            name_match = _TYPE_NAME_RE.search(header.strip())
            name = name_match.group(1) if name_match else header.strip()
            containers.append((brace, match_delimiter(masked, brace), name))
        return containers

    def _find_modules(self, masked: str) -> List[ModuleDef]:
        modules = []
        for m in _MOD_RE.finditer(masked):
            brace = m.end() - 1
            end = match_delimiter(masked, brace)
            modules.append(ModuleDef(
                name=m.group(1),
                start_line=self._line_of(m.start()),
                end_line=self._line_of(end),
                attributes=self._attributes_before(m.start()),
            ))
        return modules

    def _find_functions(
        self,
        masked: str,
        containers: List[Tuple[int, int, str]],
        modules: List[ModuleDef],
    ) -> List[FunctionDef]:
        functions = []
        for m in _FN_RE.finditer(masked):
            pos = m.end()
            while pos < len(masked) and masked[pos].isspace():
                pos += 1
            if pos < len(masked) and masked[pos] == "<":
                pos = _match_angle(masked, pos) + 1
            paren = masked.find("(", pos)
            if paren == -1:
                continue
            paren_end = match_delimiter(masked, paren)

            brace = -1
            for j in range(paren_end + 1, len(masked)):
                if masked[j] == "{":
                    brace = j
                    break
                if masked[j] == ";":
                    break
            if brace == -1:
                continue  # declaration without body
            end = match_delimiter(masked, brace)

            prefix = masked[m.start():m.start(1)]
            return_type = masked[paren_end + 1:brace]
            return_type = re.sub(r"\bwhere\b.*$", "", return_type, flags=re.DOTALL)
            return_type = return_type.replace("->", "", 1).strip()

            container = None
            enclosing = [c for c in containers if c[0] < m.start() < c[1]]
            if enclosing:
                container = max(enclosing, key=lambda c: c[0])[2]
            else:
                start_line = self._line_of(m.start())
                in_mods = [md for md in modules if md.start_line <= start_line <= md.end_line]
                if in_mods:
                    container = max(in_mods, key=lambda md: md.start_line).name

            functions.append(FunctionDef(
                name=m.group(1),
                start_line=self._line_of(m.start()),
                body_start_line=self._line_of(brace),
                end_line=self._line_of(end),
                params=" ".join(masked[paren + 1:paren_end].split()),
                return_type=" ".join(return_type.split()),
                attributes=self._attributes_before(m.start()),
                is_pub=bool(re.match(r"\s*pub\b", prefix)),
                is_unsafe=bool(re.search(r"\bunsafe\b", prefix)),
                container=container,
                body=masked[brace:end + 1],
            ))
        return functions

    def _find_structs(self, masked: str) -> List[StructDef]:
        structs = []
        for m in _STRUCT_RE.finditer(masked):
            pos = m.end()
            while pos < len(masked) and masked[pos].isspace():
                pos += 1
            if pos < len(masked) and masked[pos] == "<":
                pos = _match_angle(masked, pos) + 1

            brace = -1
            for j in range(pos, len(masked)):
                if masked[j] == "{":
                    brace = j
                    break
                if masked[j] in ";(":
                    break
            if brace == -1:
                end = masked.find(";", pos)
                structs.append(StructDef(
                    name=m.group(1),
                    start_line=self._line_of(m.start()),
                    end_line=self._line_of(end if end != -1 else pos),
                    attributes=self._attributes_before(m.start()),
                ))
                continue

            end = match_delimiter(masked, brace)
            structs.append(StructDef(
                name=m.group(1),
                start_line=self._line_of(m.start()),
                end_line=self._line_of(end),
                attributes=self._attributes_before(m.start()),
                fields=tuple(self._parse_fields(brace + 1, end)),
            ))
        return structs

    def _parse_fields(self, body_start: int, body_end: int) -> List[FieldDef]:
        fields = []
        body = self._masked[body_start:body_end]
        for offset, chunk in split_top_level(body):
            if not chunk.strip():
                continue
            attributes = []
            rest = chunk
            cursor = 0
            while True:
                stripped = rest[cursor:].lstrip()
                lead = len(rest[cursor:]) - len(stripped)
                if not stripped.startswith("#["):
                    break
                attr_start = cursor + lead
                attr_end = match_delimiter(rest, attr_start + 1)
                attributes.append(" ".join(rest[attr_start:attr_end + 1].split()))
                cursor = attr_end + 1
            tail = rest[cursor:]
            decl_start = cursor + len(tail) - len(tail.lstrip())
            m = _FIELD_RE.match(tail.strip())
            if not m:
                continue

            name_offset = body_start + offset + decl_start + m.start(1)
            raw_chunk = self._text[body_start + offset:body_start + offset + len(chunk)]
            docs = tuple(d.strip() for d in re.findall(r"^\s*///(.*)$", raw_chunk, re.MULTILINE))

            fields.append(FieldDef(
                name=m.group(1),
                type=" ".join(m.group(2).split()),
                line=self._line_of(name_offset),
                attributes=tuple(attributes),
                docs=docs,
            ))
        return fields


class ScanUnit:
    """
    One analyzable compilation target and its parsed representation.

    The unit is read-only once created; the model is built at most once and
    may be shared by concurrent rule evaluations.
    """

    def __init__(self, path: str, source: str, language: Optional[str] = None):
        self.path = str(path)
        self.source = source
        self.language = language or detect_language(self.path)
        self._model: Optional[SourceModel] = None
        self._lock = threading.Lock()

    @classmethod
    def from_file(cls, path: Path, root: Optional[Path] = None) -> "ScanUnit":
        """Read a unit from disk, reporting its path relative to ``root``."""
        path = Path(path)
        text = path.read_text(encoding="utf-8", errors="replace")
        display = path
        if root is not None:
            try:
                display = path.relative_to(root)
            except ValueError:
                display = path
        return cls(path=display.as_posix(), source=text)

    @property
    def model(self) -> SourceModel:
        if self._model is None:
            with self._lock:
                if self._model is None:
                    self._model = SourceParser().parse(self.source)
        return self._model

    def snippet(self, start_line: int, end_line: Optional[int] = None) -> str:
        """Raw source text of a line range."""
        end_line = end_line or start_line
        lines = self.model.lines[start_line - 1:end_line]
        return "\n".join(line.raw for line in lines)

    def __repr__(self) -> str:
        return f"ScanUnit(path={self.path!r}, language={self.language!r})"
