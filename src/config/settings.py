"""
Application settings and configuration

Uses pydantic-settings for type-safe configuration via environment variables.
All settings use READMERUNNER_ prefix (e.g., READMERUNNER_RUN_TIMEOUT=30).

Settings can also be loaded from a .env file in the project root.
"""

import secrets
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


ANSI_GREEN = "\033[32m"
ANSI_RED = "\033[31m"
ANSI_RESET = "\033[0m"


class AppSettings(BaseSettings):
    """
    Application configuration via environment variables.

    Environment variables use READMERUNNER_ prefix.

    Examples:
        READMERUNNER_BASH_COMMAND=/usr/local/bin/bash
        READMERUNNER_RUN_TIMEOUT=60
        READMERUNNER_HIGHLIGHT_CODE=true
    """

    model_config = SettingsConfigDict(
        env_prefix="READMERUNNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Shell transport configuration
    end_marker: str = Field(
        default="__END_OF_SNIPPET__",
        description="Prefix of the line echoed after every snippet to frame its output",
    )

    exit_marker: str = Field(
        default="__EXIT_CODE__",
        description="Prefix of the line carrying a verify snippet's exit status",
    )

    bash_command: str = Field(
        default="bash",
        description="Interpreter spawned for ```bash fences",
    )

    sh_command: str = Field(
        default="sh",
        description="Interpreter spawned for ```sh and ```shell fences",
    )

    verify_command: str = Field(
        default="bash",
        description="Interpreter spawned for ```verify fences (must support function-scoped exit override)",
    )

    run_timeout: Optional[float] = Field(
        default=None,
        description="Seconds to wait for a snippet to finish; unset waits forever",
    )

    # Rendering configuration
    color_output: bool = Field(
        default=True,
        description="Colour the verify Success/Failure verdict with ANSI escapes",
    )

    highlight_code: bool = Field(
        default=False,
        description="Syntax highlight code fences for the terminal via Pygments",
    )

    completion_banner: str = Field(
        default="> README complete!",
        description="Line printed once every section has been walked",
    )

    # Output configuration
    log_file: str = Field(
        default="readme-runner.log",
        description="Transcript file name (appended to, created in the output directory)",
    )

    def marker_make(self, prefix: str) -> str:
        """
        Generate a marker token unique to one shell process.

        Args:
            prefix: Marker prefix (end_marker or exit_marker)

        Returns:
            Marker string (e.g., "__END_OF_SNIPPET__3f9a1c2e")

        Example:
            >>> settings = AppSettings()
            >>> settings.marker_make("__END_OF_SNIPPET__").startswith("__END_OF_SNIPPET__")
            True
        """
        return f"{prefix}{secrets.token_hex(4)}"

    def verdict_format(self, status: int) -> str:
        """
        Render the verify verdict for an exit status.

        Args:
            status: Exit status returned by the verify snippet

        Returns:
            "Success" line for status 0, otherwise a "Failure" line that
            embeds the status. Coloured when color_output is set.

        Example:
            >>> AppSettings(color_output=False).verdict_format(127)
            'Failure [command exited with status 127]\\n'
        """
        if status == 0:
            text, color = "Success", ANSI_GREEN
        else:
            text, color = f"Failure [command exited with status {status}]", ANSI_RED

        if not self.color_output:
            return f"{text}\n"
        return f"{color}{text}{ANSI_RESET}\n"


# Singleton instance - import this in your code
appsettings = AppSettings()
