# =============================================================================
# Conditions - Route / Operation Matching
# =============================================================================
# A condition is one of three variants:
#   PathTemplate  - "/user/:id" style templates (or an exact operation name)
#   Pattern       - compiled regular expression
#   Predicate     - arbitrary callable over the RequestContext
# Each variant knows how to test a subject string and which parameters to
# write into ctx.path_params when it matches.
# =============================================================================

import re
from dataclasses import dataclass
from functools import cached_property
from re import Pattern as RePattern
from typing import Any, Callable, Dict, List, Optional, Tuple, Union
from urllib.parse import unquote

ConditionInput = Union[str, RePattern, Callable[[Any], bool]]

_DEFAULT_SEGMENT = r"[^/#?]+?"
_NAME_CHARS = re.compile(r"[A-Za-z0-9_]")


# =============================================================================
# PATH TEMPLATE COMPILER
# =============================================================================

def _read_group(template: str, start: int) -> Tuple[str, int]:
    """Read a balanced '(...)' group starting at template[start] == '('."""
    depth = 0
    i = start
    while i < len(template):
        char = template[i]
        if char == "\\":
            i += 2
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return template[start + 1:i], i + 1
        i += 1
    raise ValueError(f"Unbalanced group in path template: {template}")


def _tokenize(template: str) -> List[Any]:
    """Split a template into literal strings and parameter dicts."""
    tokens: List[Any] = []
    literal = ""
    unnamed = 0
    i = 0
    while i < len(template):
        char = template[i]
        if char == "\\" and i + 1 < len(template):
            literal += template[i + 1]
            i += 2
            continue

        if char == ":" or char == "(":
            if char == ":":
                j = i + 1
                while j < len(template) and _NAME_CHARS.match(template[j]):
                    j += 1
                name = template[i + 1:j]
                if not name:
                    raise ValueError(f"Missing parameter name at {i} in {template}")
                i = j
                pattern = _DEFAULT_SEGMENT
                if i < len(template) and template[i] == "(":
                    pattern, i = _read_group(template, i)
            else:
                pattern, i = _read_group(template, i)
                name = str(unnamed)
                unnamed += 1

            modifier = ""
            if i < len(template) and template[i] in "?*+":
                modifier = template[i]
                i += 1

            prefix = ""
            if literal.endswith("/"):
                prefix, literal = "/", literal[:-1]
            if literal:
                tokens.append(literal)
                literal = ""
            tokens.append({"name": name, "pattern": pattern, "modifier": modifier, "prefix": prefix})
            continue

        literal += char
        i += 1

    if literal:
        tokens.append(literal)
    return tokens


def compile_path_template(template: str) -> Tuple[RePattern, Dict[str, str]]:
    """
    Compile a path template into a regex.

    Supports ":name", ":name?", ":name*", ":name+", ":name(regex)" and
    unnamed "(regex)" groups (keyed "0", "1", ...). Matching is
    case-insensitive and tolerates one trailing slash.

    Returns:
        Tuple of (compiled regex, {group name: parameter key})
    """
    parts: List[str] = []
    group_names: Dict[str, str] = {}

    for index, token in enumerate(_tokenize(template)):
        if isinstance(token, str):
            parts.append(re.escape(token))
            continue

        group = f"p{index}"
        group_names[group] = token["name"]
        prefix = re.escape(token["prefix"])
        pattern = token["pattern"]
        modifier = token["modifier"]

        if modifier in ("*", "+"):
            body = f"(?P<{group}>(?:{pattern})(?:{prefix}(?:{pattern}))*)"
            suffix = "?" if modifier == "*" else ""
            parts.append(f"(?:{prefix}{body}){suffix}")
        elif modifier == "?":
            parts.append(f"(?:{prefix}(?P<{group}>{pattern}))?")
        else:
            parts.append(f"{prefix}(?P<{group}>{pattern})")

    regex = "^" + "".join(parts)
    if not regex.endswith("/"):
        regex += "/?"
    regex += "$"
    return re.compile(regex, re.IGNORECASE), group_names


# =============================================================================
# CONDITION VARIANTS
# =============================================================================

@dataclass(frozen=True)
class PathTemplate:
    """Path template for routes; exact name comparison for operations."""
    extracts_params = True
    template: str

    @cached_property
    def _compiled(self) -> Tuple[RePattern, Dict[str, str]]:
        return compile_path_template(self.template)

    def match(self, ctx: Any, subject: Optional[str]) -> Optional[Dict[str, Any]]:
        if subject is None:
            return None
        regex, group_names = self._compiled
        found = regex.match(subject)
        if not found:
            return None
        params: Dict[str, Any] = {}
        for group, key in group_names.items():
            value = found.group(group)
            if value is not None:
                params[key] = unquote(value)
        return params

    def match_name(self, ctx: Any, subject: Optional[str]) -> Optional[Dict[str, Any]]:
        return {} if subject is not None and subject == self.template else None


@dataclass(frozen=True)
class Pattern:
    """Regular expression searched against the path or operation name."""
    extracts_params = True
    regex: RePattern

    def match(self, ctx: Any, subject: Optional[str]) -> Optional[Dict[str, Any]]:
        if subject is None:
            return None
        found = self.regex.search(subject)
        if not found:
            return None
        params: Dict[str, Any] = {"0": found.group(0)}
        for index, value in enumerate(found.groups(), start=1):
            params[str(index)] = value
        params.update(found.groupdict())
        return params

    match_name = match


@dataclass(frozen=True)
class Predicate:
    """Arbitrary callable; matched contexts keep path_params unset."""
    extracts_params = False
    fn: Callable[[Any], bool]

    def match(self, ctx: Any, subject: Optional[str]) -> Optional[Dict[str, Any]]:
        return {} if self.fn(ctx) else None

    match_name = match


Condition = Union[PathTemplate, Pattern, Predicate]


def to_condition(value: Union[ConditionInput, Condition]) -> Condition:
    """Wrap a registration argument in its condition variant."""
    if isinstance(value, (PathTemplate, Pattern, Predicate)):
        return value
    if isinstance(value, str):
        return PathTemplate(value)
    if isinstance(value, re.Pattern):
        return Pattern(value)
    if callable(value):
        return Predicate(value)
    raise TypeError(f"Unsupported condition type: {type(value).__name__}")
