"""External humanizing service adapter."""

from humanizer.humanize.client import (
    HumanizeClient,
    HumanizeServiceError,
    extract_humanized_text,
)

__all__ = [
    "HumanizeClient",
    "HumanizeServiceError",
    "extract_humanized_text",
]
