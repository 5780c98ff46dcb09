"""
Directive models: tag and prompt line prefixes, prompt descriptor

Defines the hidden markdown directives understood by readme-runner and
the descriptor produced when a [prompt]:# line is parsed.
"""

from dataclasses import dataclass, field
from typing import List


TAGS_PREFIX = "[tags]:#"
PROMPT_PREFIX = "[prompt]:#"

# Reserved tag: section is included in every run regardless of start/tags
ALWAYS_TAG = "always"


@dataclass
class Prompt:
    """
    Descriptor parsed from one [prompt]:# directive

    Attributes:
        var_name: Environment variable that receives the response
        text: Question shown to the operator
        options: Acceptable literal responses; empty means unconstrained
        default: Value used for an empty response; empty means no default

    Example:
        For source '[prompt]:# (eggs "How many eggs?" [2 4 6] 6)':
        Prompt(var_name="eggs", text="How many eggs?",
               options=["2", "4", "6"], default="6")
    """
    var_name: str
    text: str
    options: List[str] = field(default_factory=list)
    default: str = ""

    def message_build(self) -> str:
        """
        Build the composite question shown to the operator

        Returns:
            Question text with "(options: ...)" and "[default: ...]" appended
            when present, terminated by ": ".
        """
        message = self.text
        if self.options:
            message += " (options: " + ", ".join(self.options) + ")"
        if self.default:
            message += f" [default: {self.default}]"
        return message + ": "
