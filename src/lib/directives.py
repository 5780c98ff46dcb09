"""
Directive parsers for readme-runner

Handles the two hidden markdown comment directives:

    [tags]:# (setup linux)
    [prompt]:# (eggs "How many eggs?" [2 4 6] 6)

Tag lines label the sections that follow them; prompt lines ask the
operator for a value and bind it to an environment variable.
"""

import re
from typing import Callable, Dict, Iterable, List, Sequence

from ..models.directives import Prompt, TAGS_PREFIX, PROMPT_PREFIX, ALWAYS_TAG
from .errors import FormatError, ValidationError
from .log import LOG


PromptFunc = Callable[[str], str]

# Group 1: whitespace separated tag tokens
TAGS_RE = re.compile(r'^\[tags\]:#\s*\(([^)]*)\)$')

# Group 1: variable name
# Group 2: prompt text inside double quotes
# Group 3: optional options list (including square brackets)
# Group 4: optional default value (non-space token)
PROMPT_RE = re.compile(
    r'^\[prompt\]:#\s*\(\s*(\w+)\s+"([^"]+)"\s*(\[[^\]]*\])?\s*(\S+)?\s*\)$',
    re.ASCII,
)


def tags_parse(line: str) -> List[str]:
    """
    Parse a tags directive into its ordered tag list

    Args:
        line: Trimmed source line

    Returns:
        Tag tokens in declaration order

    Raises:
        FormatError: If the line is not a tags directive or names no tags

    Example:
        >>> tags_parse("[tags]:# (  foo  bar  )")
        ['foo', 'bar']
    """
    match = TAGS_RE.match(line.strip())
    if not match:
        raise FormatError(f"invalid tags directive format: {line}")

    tags = match.group(1).split()
    if not tags:
        raise FormatError(f"tags directive names no tags: {line}")
    return tags


def always_check(tags: Iterable[str]) -> bool:
    """Check if a tag list carries the reserved 'always' tag"""
    return ALWAYS_TAG in tags


def tags_match(section_tags: Sequence[str], requested_tags: Sequence[str]) -> bool:
    """
    Check whether a section should run for the requested tags

    An empty request matches everything. Otherwise the section must carry
    at least one requested tag, with 'always' implicitly requested.

    Example:
        >>> tags_match(["foo", "bar"], ["bar"])
        True
        >>> tags_match(["always"], ["baz"])
        True
        >>> tags_match([], ["foo"])
        False
    """
    if not requested_tags:
        return True
    wanted = set(requested_tags) | {ALWAYS_TAG}
    return any(tag in wanted for tag in section_tags)


def prompt_parse(line: str) -> Prompt:
    """
    Parse a single prompt directive line

    Ordering is fixed: name, quoted text, optional [options], optional default.

    Args:
        line: Trimmed source line

    Returns:
        Prompt descriptor

    Raises:
        FormatError: If the line does not match the prompt grammar

    Example:
        >>> prompt_parse('[prompt]:# (name "Name?" [alice bob] alice)')
        Prompt(var_name='name', text='Name?', options=['alice', 'bob'], default='alice')
    """
    match = PROMPT_RE.match(line.strip())
    if not match:
        raise FormatError(f"invalid prompt format: {line}")

    prompt = Prompt(var_name=match.group(1), text=match.group(2))
    if match.group(3):
        prompt.options = match.group(3)[1:-1].split()
    if match.group(4):
        prompt.default = match.group(4)
    return prompt


def prompt_process(prompt_fn: PromptFunc, lines: Sequence[str]) -> Dict[str, str]:
    """
    Ask the operator every prompt directive in a section

    For each directive: show the composite question, substitute the default
    for an empty response, and validate against the declared options.

    Args:
        prompt_fn: Injected function that shows a message and returns the response
        lines: Lines of a PROMPT section (normally exactly one)

    Returns:
        Mapping of variable name to resolved response

    Raises:
        FormatError: If a directive line is malformed
        ValidationError: If a response is not among the declared options
    """
    resolved: Dict[str, str] = {}
    for line in lines:
        line = line.strip()
        if not line.startswith(PROMPT_PREFIX):
            continue

        prompt = prompt_parse(line)
        response = prompt_fn("\n" + prompt.message_build())

        if response == "" and prompt.default:
            response = prompt.default

        if prompt.options and response not in prompt.options:
            raise ValidationError(
                f"invalid response for {prompt.var_name}. "
                f"Must be one of [{' '.join(prompt.options)}]"
            )

        LOG(f"Prompt {prompt.var_name} resolved to {response!r}", level=3)
        resolved[prompt.var_name] = response
    return resolved


__all__ = [
    "TAGS_PREFIX",
    "PROMPT_PREFIX",
    "tags_parse",
    "always_check",
    "tags_match",
    "prompt_parse",
    "prompt_process",
]
