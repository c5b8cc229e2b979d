"""
Template Renderer - merges a proposal template with structured fields.

The template language is a deliberately small subset of Handlebars:

    {{key}}                        placeholder
    {{#if key}} ... {{/if}}        conditional block
    {{#each path}} ... {{/each}}   repeated block (always elided)

Tags are matched exactly as written: {{ key }} is not a placeholder for
"key", and {{#if  key }} is not a conditional. Both are stripped.

Rendering rules, equivalent to applying these passes in order:

1. Conditional blocks whose key is in the field map keep their body when
   the value is truthy and disappear otherwise.
2. Placeholders whose key is in the field map become the value ("" when
   the value is falsy).
3. Every each-block is removed together with its body.
4. Any other {{ ... }} token is stripped.

Conditionals on keys missing from the field map are controlled by
ConditionalMode: PRESERVE keeps the block markers verbatim, RESOLVE
treats the missing key as falsy.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Union

from proposal_workflow.models.enums import ConditionalMode

logger = logging.getLogger(__name__)

_TAG_PATTERN = re.compile(r"\{\{(.*?)\}\}", re.DOTALL)
_IF_OPEN = re.compile(r"^#if (\S+)$")
_EACH_OPEN = re.compile(r"^#each (\S+)$")


# ===========================================
# Tokens
# ===========================================

@dataclass
class Token:
    """A run of literal text or a single {{ ... }} tag."""
    kind: str  # "text" | "tag"
    value: str
    raw: str


def tokenize(template_html: str) -> List[Token]:
    """Split template source into literal text and tag tokens."""
    tokens: List[Token] = []
    position = 0
    for match in _TAG_PATTERN.finditer(template_html):
        if match.start() > position:
            text = template_html[position:match.start()]
            tokens.append(Token("text", text, text))
        tokens.append(Token("tag", match.group(1), match.group(0)))
        position = match.end()
    if position < len(template_html):
        text = template_html[position:]
        tokens.append(Token("text", text, text))
    return tokens


# ===========================================
# AST
# ===========================================

@dataclass
class Literal:
    text: str


@dataclass
class Placeholder:
    key: str
    raw: str


@dataclass
class IfBlock:
    key: str
    open_raw: str
    close_raw: str
    body: List["Node"] = field(default_factory=list)


@dataclass
class EachBlock:
    path: str
    body: List["Node"] = field(default_factory=list)


@dataclass
class ResidualTag:
    """Any tag the language does not interpret; always stripped."""
    raw: str


Node = Union[Literal, Placeholder, IfBlock, EachBlock, ResidualTag]


@dataclass
class _OpenBlock:
    node: Union[IfBlock, EachBlock]
    closer: str
    parent_body: List[Node]
    opener: Token


def parse(template_html: str) -> List[Node]:
    """
    Parse template source into a node list.

    Unbalanced markers never fail the parse: an opener without a closer
    degrades to a residual tag followed by its would-be body, and a
    stray closer becomes a residual tag.
    """
    root: List[Node] = []
    body = root
    stack: List[_OpenBlock] = []

    for token in tokenize(template_html):
        if token.kind == "text":
            body.append(Literal(token.value))
            continue

        tag = token.value
        if_match = _IF_OPEN.match(tag)
        each_match = _EACH_OPEN.match(tag)

        if if_match:
            block = IfBlock(key=if_match.group(1), open_raw=token.raw, close_raw="")
            stack.append(_OpenBlock(block, "/if", body, token))
            body = block.body
        elif each_match:
            block = EachBlock(path=each_match.group(1))
            stack.append(_OpenBlock(block, "/each", body, token))
            body = block.body
        elif tag in ("/if", "/each"):
            if stack and stack[-1].closer == tag:
                frame = stack.pop()
                if isinstance(frame.node, IfBlock):
                    frame.node.close_raw = token.raw
                frame.parent_body.append(frame.node)
                body = frame.parent_body
            else:
                body.append(ResidualTag(token.raw))
        elif tag and not tag.startswith(("#", "/")) and " " not in tag:
            body.append(Placeholder(key=tag, raw=token.raw))
        else:
            body.append(ResidualTag(token.raw))

    # Unclosed blocks: keep their content inline, drop the dangling opener
    while stack:
        frame = stack.pop()
        frame.parent_body.append(ResidualTag(frame.opener.raw))
        frame.parent_body.extend(frame.node.body)
        body = frame.parent_body

    return root


# ===========================================
# Rendering
# ===========================================

def _stringify(value: Any) -> str:
    return str(value) if value else ""


def _render_nodes(
    nodes: List[Node],
    fields: Mapping[str, Any],
    mode: ConditionalMode,
    out: List[str]
) -> None:
    for node in nodes:
        if isinstance(node, Literal):
            out.append(node.text)
        elif isinstance(node, Placeholder):
            if node.key in fields:
                out.append(_stringify(fields[node.key]))
        elif isinstance(node, IfBlock):
            if node.key in fields:
                if fields[node.key]:
                    _render_nodes(node.body, fields, mode, out)
            elif mode == ConditionalMode.PRESERVE:
                out.append(node.open_raw)
                _render_nodes(node.body, fields, mode, out)
                out.append(node.close_raw)
        # EachBlock and ResidualTag render to nothing


def render(
    template_html: str,
    fields: Mapping[str, Any],
    mode: ConditionalMode = ConditionalMode.PRESERVE
) -> str:
    """
    Render a template with the given field map.

    Pure and deterministic; never raises for any template text.

    Args:
        template_html: Template source with placeholder syntax
        fields: Field name -> value map
        mode: Handling of conditionals on keys absent from ``fields``

    Returns:
        Rendered HTML
    """
    if not template_html:
        return ""
    out: List[str] = []
    _render_nodes(parse(template_html), fields or {}, ConditionalMode(mode), out)
    return "".join(out)


class TemplateRenderer:
    """Renderer bound to a conditional mode."""

    def __init__(self, mode: Optional[ConditionalMode] = None):
        self._mode = mode

    @property
    def mode(self) -> ConditionalMode:
        """Lazy load the configured mode."""
        if self._mode is None:
            from proposal_workflow.core.config import get_settings
            configured = get_settings().TEMPLATE_CONDITIONAL_MODE
            try:
                self._mode = ConditionalMode(configured)
            except ValueError:
                logger.warning(f"Unknown TEMPLATE_CONDITIONAL_MODE '{configured}', using preserve")
                self._mode = ConditionalMode.PRESERVE
        return self._mode

    def render(self, template_html: str, fields: Mapping[str, Any]) -> str:
        return render(template_html, fields, self.mode)


# Singleton instance
template_renderer = TemplateRenderer()
