"""Prompt validation for generation requests.

Validates text prompts before a job row is created.
"""

from atelier.services.exceptions import ValidationError

MAX_PROMPT_LENGTH = 2000


def validate_prompt(prompt: str | None) -> str:
    """Validate prompt text for generation.

    Args:
        prompt: Text prompt from the user

    Returns:
        Prompt with surrounding whitespace removed

    Raises:
        ValidationError: If prompt is empty after trimming, not a string,
            or exceeds MAX_PROMPT_LENGTH characters
    """
    if prompt is None:
        raise ValidationError("Prompt cannot be empty")

    if not isinstance(prompt, str):
        raise ValidationError(f"Prompt must be a string, got {type(prompt).__name__}")

    prompt = prompt.strip()
    if not prompt:
        raise ValidationError("Prompt cannot be empty")

    if len(prompt) > MAX_PROMPT_LENGTH:
        raise ValidationError(
            f"Prompt exceeds maximum length of {MAX_PROMPT_LENGTH} characters (got {len(prompt)})"
        )

    return prompt
