"""
Shared fixtures for readme-runner tests
"""

import shutil
from typing import Iterable, List

import pytest


requires_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash not available")
requires_sh = pytest.mark.skipif(shutil.which("sh") is None, reason="sh not available")


class ScriptedPrompt:
    """
    Prompt function returning predetermined responses

    Records every message it was asked; once the script runs out it
    answers with the empty string (the default choice everywhere).
    """

    def __init__(self, responses: Iterable[str]) -> None:
        self.responses: List[str] = list(responses)
        self.messages: List[str] = []

    def __call__(self, message: str) -> str:
        self.messages.append(message)
        if not self.responses:
            return ""
        return self.responses.pop(0)


@pytest.fixture
def scripted_prompt():
    """Factory fixture: scripted_prompt(["r", "s"]) -> ScriptedPrompt"""
    return ScriptedPrompt
