"""Structural outline of Java sources.

This is not a compiler front end. It blanks comments and literals, tracks
brace and parenthesis depth, and recovers the declarations reviewers care
about: types, fields, methods, constructors, their annotations, modifiers
and line spans. Method bodies are kept as blanked text for detectors to scan.
"""
from __future__ import annotations

import bisect
import re
from dataclasses import dataclass, field

MODIFIERS = {
    "public", "protected", "private", "static", "final", "abstract", "synchronized",
    "native", "transient", "volatile", "default", "strictfp", "sealed", "non-sealed",
}

_TYPE_DECL = re.compile(r"(?<![\w@])(class|interface|enum|record|@interface)\s+([A-Za-z_$][\w$]*)")
_PACKAGE = re.compile(r"^\s*package\s+([\w.]+)\s*;", re.MULTILINE)
_IMPORT = re.compile(r"^\s*import\s+(static\s+)?([\w.]+(?:\.\*)?)\s*;", re.MULTILINE)
_IDENT = re.compile(r"[A-Za-z_$][\w$]*")
_ANNOTATION = re.compile(r"@\s*([\w.$]+)")


class JavaParseError(Exception):
    """Raised when a source cannot be outlined (e.g. unbalanced braces)."""


@dataclass
class JavaAnnotation:
    name: str
    arguments: str = ""
    line: int = 0

    @property
    def simple_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]


@dataclass
class JavaParameter:
    type: str
    name: str
    annotations: list[JavaAnnotation] = field(default_factory=list)


@dataclass
class JavaField:
    name: str
    type: str
    line: int
    modifiers: frozenset[str] = frozenset()
    annotations: list[JavaAnnotation] = field(default_factory=list)
    initializer: str | None = None

    def has_annotation(self, *names: str) -> bool:
        return any(a.simple_name in names for a in self.annotations)


@dataclass
class JavaMethod:
    name: str
    return_type: str | None
    line: int
    end_line: int
    parameters: list[JavaParameter] = field(default_factory=list)
    modifiers: frozenset[str] = frozenset()
    annotations: list[JavaAnnotation] = field(default_factory=list)
    body: str | None = None
    body_start: int = 0

    @property
    def is_constructor(self) -> bool:
        return self.return_type is None

    def has_annotation(self, *names: str) -> bool:
        return any(a.simple_name in names for a in self.annotations)

    def annotation(self, name: str) -> JavaAnnotation | None:
        for a in self.annotations:
            if a.simple_name == name:
                return a
        return None


@dataclass
class JavaType:
    name: str
    kind: str
    line: int
    end_line: int
    modifiers: frozenset[str] = frozenset()
    annotations: list[JavaAnnotation] = field(default_factory=list)
    extends: tuple[str, ...] = ()
    implements: tuple[str, ...] = ()
    components: list[JavaParameter] = field(default_factory=list)
    fields: list[JavaField] = field(default_factory=list)
    methods: list[JavaMethod] = field(default_factory=list)
    types: list[JavaType] = field(default_factory=list)
    qualified_name: str = ""

    def has_annotation(self, *names: str) -> bool:
        return any(a.simple_name in names for a in self.annotations)

    def annotation(self, name: str) -> JavaAnnotation | None:
        for a in self.annotations:
            if a.simple_name == name:
                return a
        return None

    def field_named(self, name: str) -> JavaField | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    @property
    def constructors(self) -> list[JavaMethod]:
        return [m for m in self.methods if m.is_constructor]


@dataclass
class JavaSource:
    path: str
    code: str
    package: str = ""
    imports: list[str] = field(default_factory=list)
    types: list[JavaType] = field(default_factory=list)
    _line_starts: list[int] = field(default_factory=list, repr=False)

    def line_of(self, offset: int) -> int:
        return bisect.bisect_right(self._line_starts, offset)

    def all_types(self) -> list[JavaType]:
        result: list[JavaType] = []
        stack = list(reversed(self.types))
        while stack:
            t = stack.pop()
            result.append(t)
            stack.extend(reversed(t.types))
        return result

    @property
    def is_test(self) -> bool:
        p = self.path.replace("\\", "/")
        return "/src/test/" in f"/{p}" or any(
            t.name.endswith(("Test", "Tests", "IT")) for t in self.types
        )


def parse_java(text: str, path: str = "<source>") -> JavaSource:
    code = strip_code(text)
    _check_balance(code, path)

    source = JavaSource(path=path, code=code)
    source._line_starts = [0] + [m.end() for m in re.finditer("\n", code)]

    package = _PACKAGE.search(code)
    if package:
        source.package = package.group(1)
    source.imports = [m.group(2) for m in _IMPORT.finditer(code)]

    parser = _Parser(source)
    source.types = parser.parse_body(0, len(code), owner=None)
    return source


def strip_code(text: str) -> str:
    """Blank out comments and the contents of string/char literals.

    Output has the same length and line structure as the input, so offsets
    and line numbers stay valid. Quotes are kept so literals remain visible
    as empty strings.
    """
    out = list(text)
    i = 0
    n = len(text)

    def blank(start: int, end: int) -> None:
        for k in range(start, min(end, n)):
            if out[k] != "\n":
                out[k] = " "

    while i < n:
        c = text[i]
        if c == "/" and text.startswith("//", i):
            end = text.find("\n", i)
            end = n if end == -1 else end
            blank(i, end)
            i = end
        elif c == "/" and text.startswith("/*", i):
            end = text.find("*/", i + 2)
            end = n if end == -1 else end + 2
            blank(i, end)
            i = end
        elif c == '"' and text.startswith('"""', i):
            end = text.find('"""', i + 3)
            end = n if end == -1 else end
            blank(i + 3, end)
            i = end + 3
        elif c in "\"'":
            j = i + 1
            while j < n and text[j] != c and text[j] != "\n":
                j += 2 if text[j] == "\\" else 1
            blank(i + 1, j)
            i = j + 1
        else:
            i += 1
    return "".join(out)


def match_brace(code: str, open_index: int) -> int:
    """Return the index of the brace closing the one at open_index."""
    depth = 0
    for i in range(open_index, len(code)):
        c = code[i]
        if c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                return i
    raise JavaParseError(f"unbalanced braces starting at offset {open_index}")


def match_paren(code: str, open_index: int) -> int:
    depth = 0
    for i in range(open_index, len(code)):
        c = code[i]
        if c == "(":
            depth += 1
        elif c == ")":
            depth -= 1
            if depth == 0:
                return i
    raise JavaParseError(f"unbalanced parentheses starting at offset {open_index}")


def split_top_level(text: str, sep: str = ",") -> list[str]:
    """Split on sep where it is not nested in (), <>, [] or {}."""
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for c in text:
        if c in "(<[{":
            depth += 1
        elif c in ")>]}":
            depth = max(0, depth - 1)
        if c == sep and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(c)
    tail = "".join(current)
    if tail.strip():
        parts.append(tail)
    return [p.strip() for p in parts if p.strip()]


def type_base(type_name: str) -> str:
    """`java.util.Map<String, List<X>>[]` -> `Map`."""
    base = type_name.split("<", 1)[0].replace("[]", "").replace("...", "").strip()
    return base.rsplit(".", 1)[-1]


def _check_balance(code: str, path: str) -> None:
    braces = parens = 0
    for c in code:
        if c == "{":
            braces += 1
        elif c == "}":
            braces -= 1
        elif c == "(":
            parens += 1
        elif c == ")":
            parens -= 1
        if braces < 0 or parens < 0:
            raise JavaParseError(f"{path}: unexpected closing bracket")
    if braces or parens:
        raise JavaParseError(f"{path}: unbalanced brackets ({braces} brace(s), {parens} paren(s) left open)")


class _Parser:
    def __init__(self, source: JavaSource) -> None:
        self.src = source
        self.code = source.code

    def parse_body(self, start: int, end: int, owner: JavaType | None) -> list[JavaType]:
        """Scan declarations between start and end; fill owner and return nested types."""
        code = self.code
        types: list[JavaType] = []
        i = chunk_start = start
        paren = 0

        if owner is not None and owner.kind == "enum":
            i = chunk_start = self._skip_enum_constants(start, end)

        while i < end:
            c = code[i]
            if c == "(":
                paren += 1
            elif c == ")":
                paren -= 1
            elif c == ";" and paren == 0:
                if owner is not None:
                    self._statement(chunk_start, i, owner)
                chunk_start = i + 1
            elif c == "{" and paren == 0:
                close = match_brace(code, i)
                if _has_assignment(code[chunk_start:i]):
                    # Array initializer, anonymous class or lambda: part of a field.
                    i = close + 1
                    continue
                nested = self._block(chunk_start, i, close, owner)
                if nested is not None:
                    types.append(nested)
                i = chunk_start = close + 1
                continue
            i += 1
        return types

    def _skip_enum_constants(self, start: int, end: int) -> int:
        code = self.code
        depth = 0
        for i in range(start, end):
            c = code[i]
            if c in "({":
                depth += 1
            elif c in ")}":
                depth -= 1
            elif c == ";" and depth == 0:
                return i + 1
        return end

    def _block(self, start: int, brace: int, close: int, owner: JavaType | None) -> JavaType | None:
        header_start = _skip_space(self.code, start, brace)
        header = self.code[header_start:brace]
        annotations, rest, rest_offset = self._annotations(header, header_start)

        decl = _TYPE_DECL.search(rest)
        if decl and "(" not in rest[:decl.start()]:
            return self._type(decl, rest, rest_offset, annotations, brace, close, owner)

        if owner is None:
            return None
        if "(" in rest:
            method = self._method(rest, rest_offset, annotations, owner)
            if method is not None:
                method.end_line = self.src.line_of(close)
                method.body = self.code[brace + 1:close]
                method.body_start = brace + 1
                owner.methods.append(method)
        # Initializer blocks are not recorded.
        return None

    def _type(self, decl, rest, rest_offset, annotations, brace, close, owner) -> JavaType:
        kind = decl.group(1).lstrip("@")
        if decl.group(1) == "@interface":
            kind = "annotation"
        name = decl.group(2)
        modifiers = frozenset(t for t in rest[:decl.start()].split() if t in MODIFIERS)
        tail = rest[decl.end():]

        components: list[JavaParameter] = []
        if kind == "record":
            open_paren = tail.find("(")
            if open_paren != -1:
                close_paren = match_paren(tail, open_paren)
                components = _parameters(tail[open_paren + 1:close_paren])
                tail = tail[close_paren + 1:]

        tail = _drop_type_parameters(tail)
        extends = _clause(tail, "extends")
        implements = _clause(tail, "implements")

        jtype = JavaType(
            name=name,
            kind=kind,
            line=self.src.line_of(rest_offset + decl.start(2)),
            end_line=self.src.line_of(close),
            modifiers=modifiers,
            annotations=annotations,
            extends=extends,
            implements=implements,
            components=components,
            qualified_name=f"{owner.qualified_name}.{name}" if owner is not None else name,
        )
        jtype.types = self.parse_body(brace + 1, close, owner=jtype)
        return jtype

    def _statement(self, start: int, end: int, owner: JavaType) -> None:
        header_start = _skip_space(self.code, start, end)
        header = self.code[header_start:end]
        if not header.strip():
            return
        annotations, rest, rest_offset = self._annotations(header, header_start)
        assign = _assignment_index(rest)
        paren = rest.find("(")
        if paren != -1 and (assign == -1 or paren < assign):
            method = self._method(rest, rest_offset, annotations, owner)
            if method is not None:
                method.end_line = self.src.line_of(end)
                owner.methods.append(method)
            return
        owner.fields.extend(self._fields(rest, rest_offset, annotations))

    def _method(self, rest: str, offset: int, annotations, owner: JavaType) -> JavaMethod | None:
        open_paren = rest.find("(")
        close_paren = match_paren(rest, open_paren)
        tokens = _tokens(rest[:open_paren])
        if not tokens or not _IDENT.fullmatch(tokens[-1][0]):
            return None
        name, name_pos = tokens[-1]
        modifiers = frozenset(t for t, _ in tokens[:-1] if t in MODIFIERS)
        type_tokens = [t for t, _ in tokens[:-1] if t not in MODIFIERS and not t.startswith("<")]
        return_type = type_tokens[-1] if type_tokens else None
        if return_type is None and name != owner.name:
            return None
        return JavaMethod(
            name=name,
            return_type=return_type,
            line=self.src.line_of(offset + name_pos),
            end_line=self.src.line_of(offset + close_paren),
            parameters=_parameters(rest[open_paren + 1:close_paren]),
            modifiers=modifiers,
            annotations=annotations,
        )

    def _fields(self, rest: str, offset: int, annotations) -> list[JavaField]:
        declarators = split_top_level(rest, ",")
        if not declarators:
            return []

        first = declarators[0]
        assign = _assignment_index(first)
        left = first if assign == -1 else first[:assign]
        tokens = _tokens(left)
        if len(tokens) < 2:
            return []
        name, name_pos = tokens[-1]
        if not _IDENT.fullmatch(name.replace("[]", "")):
            return []
        modifiers = frozenset(t for t, _ in tokens[:-1] if t in MODIFIERS)
        type_tokens = [t for t, _ in tokens[:-1] if t not in MODIFIERS]
        if not type_tokens:
            return []
        ftype = type_tokens[-1]
        name_offset = offset + rest.find(first) + name_pos

        fields = [JavaField(
            name=name.replace("[]", ""),
            type=ftype,
            line=self.src.line_of(name_offset),
            modifiers=modifiers,
            annotations=annotations,
            initializer=first[assign + 1:].strip() if assign != -1 else None,
        )]
        for extra in declarators[1:]:
            assign = _assignment_index(extra)
            extra_name = (extra if assign == -1 else extra[:assign]).strip().replace("[]", "")
            if _IDENT.fullmatch(extra_name):
                fields.append(JavaField(
                    name=extra_name,
                    type=ftype,
                    line=self.src.line_of(offset + rest.find(extra)),
                    modifiers=modifiers,
                    annotations=annotations,
                    initializer=extra[assign + 1:].strip() if assign != -1 else None,
                ))
        return fields

    def _annotations(self, header: str, header_offset: int) -> tuple[list[JavaAnnotation], str, int]:
        """Remove annotations that sit outside parentheses; return them and the remaining text.

        Removed characters are replaced with spaces so offsets into the
        remaining text still map onto the source.
        """
        annotations: list[JavaAnnotation] = []
        chars = list(header)
        i = 0
        depth = 0
        while i < len(header):
            c = header[i]
            if c in "({":
                depth += 1
            elif c in ")}":
                depth -= 1
            elif c == "@" and depth == 0 and not header.startswith("@interface", i):
                m = _ANNOTATION.match(header, i)
                if m:
                    end = m.end()
                    args = ""
                    j = _skip_space(header, end, len(header))
                    if j < len(header) and header[j] == "(":
                        close = match_paren(header, j)
                        args = header[j + 1:close].strip()
                        end = close + 1
                    annotations.append(JavaAnnotation(
                        name=m.group(1),
                        arguments=args,
                        line=self.src.line_of(header_offset + i),
                    ))
                    for k in range(i, end):
                        if chars[k] != "\n":
                            chars[k] = " "
                    i = end
                    continue
            i += 1
        return annotations, "".join(chars), header_offset


def _skip_space(text: str, start: int, end: int) -> int:
    while start < end and text[start].isspace():
        start += 1
    return start


def _assignment_index(text: str) -> int:
    """Index of a top-level `=` that is an assignment, or -1."""
    depth = 0
    for i, c in enumerate(text):
        if c in "([{":
            depth += 1
        elif c in ")]}":
            depth -= 1
        elif c == "=" and depth == 0:
            prev = text[i - 1] if i > 0 else ""
            nxt = text[i + 1] if i + 1 < len(text) else ""
            if prev not in "=!<>" and nxt != "=":
                return i
    return -1


def _has_assignment(header: str) -> bool:
    return _assignment_index(header) != -1


def _tokens(text: str) -> list[tuple[str, int]]:
    """Whitespace tokens, keeping generic arguments attached to their type.

    Returns (token, offset) pairs. A leading `<...>` after modifiers is kept
    as its own token (method type parameters).
    """
    tokens: list[tuple[str, int]] = []
    depth = 0
    current = ""
    start = 0
    for i, c in enumerate(text):
        if c == "<":
            depth += 1
        elif c == ">":
            depth -= 1
        if c.isspace() and depth == 0:
            if current:
                tokens.append((current, start))
                current = ""
            continue
        if not current:
            start = i
        current += c
    if current:
        tokens.append((current, start))

    merged: list[tuple[str, int]] = []
    for tok, pos in tokens:
        if merged and (tok.startswith("[") or tok.startswith("...")):
            merged[-1] = (merged[-1][0] + tok, merged[-1][1])
        elif merged and tok.startswith("<") and merged[-1][0] not in MODIFIERS:
            merged[-1] = (merged[-1][0] + tok, merged[-1][1])
        else:
            merged.append((tok, pos))
    return [(re.sub(r"\s+", "", t) if "<" in t else t, p) for t, p in merged]


def _parameters(text: str) -> list[JavaParameter]:
    params: list[JavaParameter] = []
    for part in split_top_level(text, ","):
        annotations: list[JavaAnnotation] = []
        for m in re.finditer(r"@\s*([\w.$]+)(\s*\((?:[^()]|\([^()]*\))*\))?", part):
            annotations.append(JavaAnnotation(name=m.group(1), arguments=(m.group(2) or "").strip()[1:-1].strip()))
        cleaned = re.sub(r"@\s*[\w.$]+(\s*\((?:[^()]|\([^()]*\))*\))?", " ", part)
        tokens = [t for t, _ in _tokens(cleaned) if t != "final"]
        if len(tokens) < 2:
            continue
        params.append(JavaParameter(type=" ".join(tokens[:-1]), name=tokens[-1], annotations=annotations))
    return params


def _drop_type_parameters(tail: str) -> str:
    stripped = tail.lstrip()
    if not stripped.startswith("<"):
        return tail
    depth = 0
    for i, c in enumerate(stripped):
        if c == "<":
            depth += 1
        elif c == ">":
            depth -= 1
            if depth == 0:
                return stripped[i + 1:]
    return tail


def _clause(tail: str, keyword: str) -> tuple[str, ...]:
    m = re.search(rf"\b{keyword}\b(.*?)(?=\bextends\b|\bimplements\b|\bpermits\b|$)", tail, re.DOTALL)
    if not m:
        return ()
    return tuple(re.sub(r"\s+", "", p) for p in split_top_level(m.group(1), ","))
