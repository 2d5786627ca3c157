# quantmind/guards/json_clean.py

"""
Tolerant JSON recovery for language-model replies.

Models asked to "return JSON" regularly hand back something close to it:
the object wrapped in markdown fences or chatty prose, smart quotes, missing
or trailing commas, bare keys, full-width punctuation, inline comments,
NaN/Infinity, or floats printed with absurd precision. This module salvages
a value from such text with a fixed sequence of textual repairs before
giving up with a classified failure.

Pipeline
--------
1) Trim, then strip a leading ```lang fence and a trailing ``` fence.
2) Slice the buffer from the first '{' / '[' to the last '}' / ']'.
3) Fast path: strict decode. Valid input is returned untouched.
4) Repair passes, in this order. The strict decoder is retried after every
   pass that changed the buffer:
     a. strip // and /* */ comments outside string literals
     b. typographic quotes (“ ” ‘ ’) -> '"'
     c. floats with 5+ zeros after the point -> integer part
     d. '} {' -> '}, {'   and   '] [' -> '], ['
     e. '"a" "b"' -> '"a", "b"'
     f. comma between a finished key/value pair and the next key, including
        values that end with } or ]
     g. trailing commas before '}' / ']'
     h. full-width ':' and ',' outside string literals
     i. quote bare object keys
     j. NaN / Infinity -> null (True/False/None -> true/false/null)
     k. 'single-quoted' strings -> "double-quoted"
     l. raw newlines/tabs inside strings -> escapes
     m. '{...}, {...}' at the top level -> '[{...}, {...}]'
5) Final strict decode; failure raises UnrecoverableSyntax carrying the
   decoder message.

Known approximation: passes b, d-f work on raw text. A stray quote inside a
string can shift what the string-aware passes treat as string content.

Public API
----------
- parse_llm_json(text) -> Any                 (raises LLMJsonError)
- recover_json(text) -> RecoveryResult        (never raises for bad text)
- detect_truncation(text) -> (bool, reasons)
- Classes: LLMJsonError, EmptyInput, UnrecoverableSyntax, RecoveryResult,
  ErrorCode, JSONEngine

CLI
---
quantmind-json --input path_or_inline [--indent 2] [--normalize-scores]
"""

from __future__ import annotations

import argparse
import json
import logging
import re
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import orjson

from quantmind.agent.normalizer import normalize_scores


logger = logging.getLogger("quantmind.json")


def _reject_invalid_constant(value: str):
    raise ValueError(f"Invalid constant '{value}' in JSON input.")


# --------------------------- JSON Engine (orjson-first) ---------------------------

class JSONEngine:
    """
    A thin facade over orjson with fallback to stdlib json.
    - loads(): orjson first; stdlib json when orjson refuses the input.
      The stdlib path rejects NaN and Infinity so both backends agree
      with JSON.parse.
    - dumps(): orjson when the options allow it (indent in {None, 2},
      ensure_ascii=False), stdlib json otherwise.
    """
    def __init__(self) -> None:
        self.orjson = orjson
        self.stdjson = json

    def loads(self, s: Union[str, bytes, bytearray]) -> Any:
        return self.loads_with_backend(s)[0]

    def loads_with_backend(self, s: Union[str, bytes, bytearray]) -> Tuple[Any, str]:
        try:
            return self.orjson.loads(s), "orjson"
        except self.orjson.JSONDecodeError:
            pass
        if isinstance(s, (bytes, bytearray)):
            s = s.decode("utf-8", errors="replace")
        return self.stdjson.loads(s, parse_constant=_reject_invalid_constant), "json"

    def dumps(
        self,
        obj: Any,
        *,
        sort_keys: bool = False,
        ensure_ascii: bool = False,
        indent: Optional[int] = None,
    ) -> str:
        if not ensure_ascii and indent in (None, 2):
            options = 0
            if sort_keys:
                options |= self.orjson.OPT_SORT_KEYS
            if indent == 2:
                options |= self.orjson.OPT_INDENT_2
            try:
                return self.orjson.dumps(obj, option=options).decode("utf-8")
            except TypeError:
                # non-str keys, big ints and friends
                pass
        return self.stdjson.dumps(obj, sort_keys=sort_keys, ensure_ascii=ensure_ascii, indent=indent)


json_engine = JSONEngine()


# ----------------------------- Result Types -----------------------------

class ErrorCode(str, Enum):
    EMPTY_INPUT = "empty_input"
    UNRECOVERABLE_SYNTAX = "unrecoverable_syntax"


class LLMJsonError(ValueError):
    """Base class for recovery failures. `code` classifies the failure."""

    code: ErrorCode = ErrorCode.UNRECOVERABLE_SYNTAX

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message}


class EmptyInput(LLMJsonError):
    code = ErrorCode.EMPTY_INPUT

    def __init__(self, message: str = "No content to parse.") -> None:
        super().__init__(message)


class UnrecoverableSyntax(LLMJsonError):
    code = ErrorCode.UNRECOVERABLE_SYNTAX

    def __init__(
        self,
        message: str,
        *,
        likely_truncated: bool = False,
        truncation_reasons: Optional[List[str]] = None,
        applied: Optional[List[str]] = None,
    ) -> None:
        super().__init__(message or "JSON decode failed.")
        self.likely_truncated = likely_truncated
        self.truncation_reasons = list(truncation_reasons or [])
        self.applied = list(applied or [])

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "likely_truncated": self.likely_truncated,
            "truncation_reasons": self.truncation_reasons,
            "applied": self.applied,
        })
        return data


@dataclass
class RecoveryResult:
    ok: bool
    data: Any = None
    error: Optional[LLMJsonError] = None
    source: Optional[str] = None  # "raw" | "repaired"
    applied: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "data": self.data,
            "error": self.error.to_dict() if self.error else None,
            "source": self.source,
            "applied": self.applied,
        }


# ----------------------------- Extraction -----------------------------

_FENCE_OPEN_RE = re.compile(r"^```[\w+-]*\s*")
_FENCE_CLOSE_RE = re.compile(r"\s*```$")
_OPENING_RE = re.compile(r"[{\[]")


def _strip_code_fences(text: str) -> str:
    clean = text.strip()
    clean = _FENCE_OPEN_RE.sub("", clean, count=1)
    clean = _FENCE_CLOSE_RE.sub("", clean, count=1)
    return clean.strip()


def _extract_boundaries(text: str) -> str:
    """Slice to the span between the first opening and the last closing bracket."""
    first = _OPENING_RE.search(text)
    last = max(text.rfind("}"), text.rfind("]"))
    if first is not None and last > first.start():
        return text[first.start():last + 1]
    return text


def _try_decode(text: str) -> Tuple[bool, Any, Optional[str]]:
    try:
        return True, json_engine.loads(text), None
    except ValueError as exc:
        return False, None, str(exc)
    except RecursionError as exc:
        # past orjson's depth limit the stdlib decoder recurses per level
        return False, None, f"JSON nesting too deep: {exc}"


# ----------------------------- String segments -----------------------------

def _split_strings(s: str) -> List[Tuple[bool, str]]:
    """
    Split `s` into (in_string, chunk) pieces on ASCII double-quoted literals.
    String chunks keep their quotes; an unterminated literal runs to the end.
    """
    parts: List[Tuple[bool, str]] = []
    buf: List[str] = []
    in_string = False
    escape = False
    for ch in s:
        if in_string:
            buf.append(ch)
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                parts.append((True, "".join(buf)))
                buf = []
                in_string = False
        elif ch == '"':
            if buf:
                parts.append((False, "".join(buf)))
            buf = [ch]
            in_string = True
        else:
            buf.append(ch)
    if buf:
        parts.append((in_string, "".join(buf)))
    return parts


def _map_segments(
    s: str,
    outside: Optional[Callable[[str], str]] = None,
    inside: Optional[Callable[[str], str]] = None,
) -> str:
    out: List[str] = []
    for in_string, chunk in _split_strings(s):
        fn = inside if in_string else outside
        out.append(fn(chunk) if fn is not None else chunk)
    return "".join(out)


def _prev_non_ws(s: str, i: int) -> Tuple[Optional[str], int]:
    j = i
    while j >= 0 and s[j] in " \t\r\n":
        j -= 1
    return (s[j] if j >= 0 else None), j


# ----------------------------- Repair passes -----------------------------

SMART_QUOTES = "“”‘’"
_SMART_QUOTE_TABLE = str.maketrans({q: '"' for q in SMART_QUOTES})
_FULLWIDTH_TABLE = str.maketrans({"：": ":", "，": ","})

_FLOAT_ARTIFACT_RE = re.compile(r"(?<![\w.])(\d+)\.0{5,}\d*(?![\w.])")
_ADJACENT_OBJECTS_RE = re.compile(r"\}(\s*)\{")
_ADJACENT_ARRAYS_RE = re.compile(r"\](\s*)\[")
_STRING_LITERAL = r'"(?:[^"\\]|\\.)*"'
_MISSING_PAIR_COMMA_RE = re.compile(
    r"([:：]\s*(?:" + _STRING_LITERAL + r"|[\w.+-]+))(\s+)(?=" + _STRING_LITERAL + r"\s*[:：])"
)
_MISSING_CONTAINER_COMMA_RE = re.compile(r"([}\]])(\s*)(?=" + _STRING_LITERAL + r"\s*[:：])")
_TRAILING_COMMA_RE = re.compile(r"[,，](\s*[}\]])")
_BARE_KEY_RE = re.compile(r"([{,]\s*)(\w+)(\s*:)")
_LITERAL_RE = re.compile(r"(?<![\w.])([+-]?Infinity|-?NaN|True|False|None)(?![\w.])")
_LITERALS = {"True": "true", "False": "false", "None": "null"}
_CONTROL_ESCAPES = {"\n": "\\n", "\t": "\\t", "\r": "\\r"}


def _strip_comments(s: str) -> str:
    """
    Remove // and /* */ comments outside string literals. Literals opened by a
    typographic quote count too, since quote normalization runs later.
    """
    out: List[str] = []
    closers: Optional[str] = None
    escape = False
    i = 0
    n = len(s)
    while i < n:
        ch = s[i]
        if closers is not None:
            out.append(ch)
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch in closers:
                closers = None
            i += 1
            continue
        if ch == '"':
            closers = '"'
        elif ch in SMART_QUOTES:
            closers = SMART_QUOTES + '"'
        elif ch == "/" and s.startswith("//", i):
            i += 2
            while i < n and s[i] not in "\r\n":
                i += 1
            continue
        elif ch == "/" and s.startswith("/*", i):
            end = s.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _normalize_smart_quotes(s: str) -> str:
    return s.translate(_SMART_QUOTE_TABLE)


def _collapse_float_artifacts(s: str) -> str:
    return _map_segments(s, outside=lambda chunk: _FLOAT_ARTIFACT_RE.sub(r"\1", chunk))


def _comma_between_containers(s: str) -> str:
    def fix(chunk: str) -> str:
        chunk = _ADJACENT_OBJECTS_RE.sub(r"},\1{", chunk)
        return _ADJACENT_ARRAYS_RE.sub(r"],\1[", chunk)
    return _map_segments(s, outside=fix)


def _comma_between_strings(s: str) -> str:
    parts = _split_strings(s)
    out: List[str] = []
    for idx, (in_string, chunk) in enumerate(parts):
        if (
            not in_string
            and chunk.isspace()
            and 0 < idx < len(parts) - 1
            and parts[idx - 1][0]
            and parts[idx + 1][0]
        ):
            out.append("," + chunk)
        else:
            out.append(chunk)
    return "".join(out)


def _comma_between_pairs(s: str) -> str:
    s = _MISSING_PAIR_COMMA_RE.sub(r"\1,\2", s)
    # a nested object or array value ends with } or ]
    return _MISSING_CONTAINER_COMMA_RE.sub(r"\1,\2", s)


def _remove_trailing_commas(s: str) -> str:
    return _map_segments(s, outside=lambda chunk: _TRAILING_COMMA_RE.sub(r"\1", chunk))


def _normalize_fullwidth_punctuation(s: str) -> str:
    return _map_segments(s, outside=lambda chunk: chunk.translate(_FULLWIDTH_TABLE))


def _quote_bare_keys(s: str) -> str:
    return _map_segments(s, outside=lambda chunk: _BARE_KEY_RE.sub(r'\1"\2"\3', chunk))


def _replace_nonstandard_literals(s: str) -> str:
    def fix(chunk: str) -> str:
        return _LITERAL_RE.sub(lambda m: _LITERALS.get(m.group(1), "null"), chunk)
    return _map_segments(s, outside=fix)


def _convert_single_quoted_strings(s: str) -> str:
    """
    Convert 'single-quoted' strings to "double-quoted" when they sit in an
    obvious JSON position (after {, [, , or :) and have a closing quote.
    """
    out: List[str] = []
    in_dq = False
    esc = False
    i = 0
    n = len(s)
    while i < n:
        ch = s[i]
        if in_dq:
            out.append(ch)
            if esc:
                esc = False
            elif ch == "\\":
                esc = True
            elif ch == '"':
                in_dq = False
            i += 1
            continue
        if ch == '"':
            in_dq = True
        elif ch == "'":
            prev, _ = _prev_non_ws(s, i - 1)
            if prev is None or prev in "{[,:":
                j = i + 1
                esc_sq = False
                buf: List[str] = []
                while j < n:
                    cj = s[j]
                    if esc_sq:
                        # \' is not a JSON escape
                        buf.append(cj if cj == "'" else "\\" + cj)
                        esc_sq = False
                    elif cj == "\\":
                        esc_sq = True
                    elif cj == "'":
                        break
                    else:
                        buf.append('\\"' if cj == '"' else cj)
                    j += 1
                if j < n:
                    out.append('"' + "".join(buf) + '"')
                    i = j + 1
                    continue
        out.append(ch)
        i += 1
    return "".join(out)


def _escape_control_characters(s: str) -> str:
    def fix(chunk: str) -> str:
        return "".join(_CONTROL_ESCAPES.get(ch, ch) for ch in chunk)
    return _map_segments(s, inside=fix)


def _has_top_level_comma(s: str) -> bool:
    depth = 0
    for in_string, chunk in _split_strings(s):
        if in_string:
            continue
        for ch in chunk:
            if ch in "{[":
                depth += 1
            elif ch in "}]":
                depth -= 1
            elif ch == "," and depth == 0:
                return True
    return False


def _wrap_concatenated_roots(s: str) -> str:
    if s[:1] in "{[" and s[-1:] in "}]" and _has_top_level_comma(s):
        return "[" + s + "]"
    return s


# Order matters: later passes assume the earlier normalizations happened.
REPAIR_PASSES: Sequence[Tuple[str, Callable[[str], str]]] = (
    ("strip_comments", _strip_comments),
    ("normalize_smart_quotes", _normalize_smart_quotes),
    ("collapse_float_artifacts", _collapse_float_artifacts),
    ("comma_between_containers", _comma_between_containers),
    ("comma_between_strings", _comma_between_strings),
    ("comma_between_pairs", _comma_between_pairs),
    ("remove_trailing_commas", _remove_trailing_commas),
    ("normalize_fullwidth_punctuation", _normalize_fullwidth_punctuation),
    ("quote_bare_keys", _quote_bare_keys),
    ("replace_nonstandard_literals", _replace_nonstandard_literals),
    ("convert_single_quoted_strings", _convert_single_quoted_strings),
    ("escape_control_characters", _escape_control_characters),
    ("wrap_concatenated_roots", _wrap_concatenated_roots),
)


# ----------------------------- Diagnostics -----------------------------

def detect_truncation(s: str) -> Tuple[bool, List[str]]:
    """
    Heuristic truncation detector for JSON-like strings.
    Returns (likely_truncated, reasons).
    """
    reasons: List[str] = []
    if not s or not isinstance(s, str):
        return False, reasons

    stack: List[str] = []
    in_string = False
    escape = False
    for ch in s:
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]" and stack:
            # a closer without an opener is malformed, not truncated
            opening = stack.pop()
            if (opening == "{") != (ch == "}"):
                reasons.append("mismatched_brackets")
    if in_string:
        reasons.append("unclosed_string")
    if stack:
        reasons.append("unclosed_braces_or_brackets")

    stripped = s.rstrip()
    if stripped and stripped[-1] in ",:{[\\":
        reasons.append("suspicious_trailing_character")
    if stripped.endswith("..."):
        reasons.append("ellipsis_or_continuation_marker")

    return bool(reasons), reasons


# ------------------------------ Main API ------------------------------

def _run_pipeline(text: Union[str, bytes, bytearray, None]) -> Tuple[Any, str, List[str]]:
    if text is None:
        raise EmptyInput()
    if isinstance(text, (bytes, bytearray)):
        text = text.decode("utf-8", errors="replace")
    if not isinstance(text, str):
        raise TypeError(f"Expected str or bytes, got {type(text).__name__}.")
    if not text.strip():
        raise EmptyInput()

    buf = _strip_code_fences(text)
    if not buf:
        raise EmptyInput("Input holds an empty code block.")

    ok, value, error = _try_decode(buf)
    if ok:
        return value, "raw", []

    sliced = _extract_boundaries(buf)
    if sliced != buf:
        buf = sliced
        ok, value, error = _try_decode(buf)
        if ok:
            return value, "raw", []

    applied: List[str] = []
    for name, repair in REPAIR_PASSES:
        repaired = repair(buf)
        if repaired == buf:
            continue
        buf = repaired
        applied.append(name)
        ok, value, error = _try_decode(buf)
        if ok:
            logger.debug("Recovered JSON after passes: %s", ", ".join(applied))
            return value, "repaired", applied

    likely_truncated, reasons = detect_truncation(buf)
    logger.warning(
        "JSON recovery failed: %s (truncated=%s passes=%s len=%d)",
        error,
        likely_truncated,
        applied,
        len(buf),
    )
    raise UnrecoverableSyntax(
        error or "JSON decode failed.",
        likely_truncated=likely_truncated,
        truncation_reasons=reasons,
        applied=applied,
    )


def parse_llm_json(text: Union[str, bytes, bytearray, None]) -> Any:
    """
    Recover a JSON value from raw model output.

    Raises EmptyInput for empty/whitespace-only text and UnrecoverableSyntax
    when no repair sequence produces decodable JSON. Already-valid JSON is
    decoded as-is.
    """
    return _run_pipeline(text)[0]


def recover_json(text: Union[str, bytes, bytearray, None]) -> RecoveryResult:
    """Non-throwing variant of parse_llm_json()."""
    try:
        data, source, applied = _run_pipeline(text)
    except LLMJsonError as exc:
        return RecoveryResult(ok=False, error=exc, applied=getattr(exc, "applied", []))
    return RecoveryResult(ok=True, data=data, source=source, applied=applied)


# ------------------------------ CLI ------------------------------

def _load_text_or_file(text_or_path: str) -> str:
    if text_or_path == "-":
        return sys.stdin.read()
    path = Path(text_or_path)
    try:
        if path.is_file():
            return path.read_text(encoding="utf-8")
    except OSError:
        # too long or otherwise not a usable path: treat as inline text
        pass
    return text_or_path


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Recover JSON from language-model output.")
    parser.add_argument("--input", required=True, help="Path to input file, inline text, or '-' for stdin.")
    parser.add_argument("--indent", type=int, default=2, help="Indent for output. Values other than 2 use stdlib json.")
    parser.add_argument("--ensure-ascii", action="store_true", help="Escape non-ASCII characters in output.")
    parser.add_argument("--normalize-scores", action="store_true", help="Scale fraction scores to percentages.")
    args = parser.parse_args(argv)

    result = recover_json(_load_text_or_file(args.input))
    if not result.ok:
        sys.stderr.write(json_engine.dumps(result.error.to_dict()) + "\n")
        return 1

    data = normalize_scores(result.data) if args.normalize_scores else result.data
    print(json_engine.dumps(data, ensure_ascii=args.ensure_ascii, indent=args.indent))
    return 0


if __name__ == "__main__":
    sys.exit(main())
