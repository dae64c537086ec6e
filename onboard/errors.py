"""Message helpers shared by config validation and the CLI.

Config errors name the offending entry and field, e.g.
``Item 'git' field 'check' must be a non-empty string``. Anything shown to the
user on stderr carries the ``Error: `` prefix.
"""


def format_error(message: str) -> str:
    return f"Error: {message}"


def format_field_error(entity: str, field: str, issue: str) -> str:
    """Describe a bad field; ``entity`` is ``"Item 'id'"`` or ``"dependencies[2]"``."""
    return f"{entity} field '{field}' {issue}"


def format_suggestion(message: str, suggestion: str) -> str:
    # "Error: item 'foo' not found. Hint: run 'onboard status' ..."
    return f"{format_error(message)}. Hint: {suggestion}"


__all__ = [
    "format_error",
    "format_field_error",
    "format_suggestion",
]
