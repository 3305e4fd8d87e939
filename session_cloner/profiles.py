"""Built-in removal presets."""

from session_cloner.errors import ValidationError
from session_cloner.models import RemovalOptions, ToolHandlingMode

BUILT_IN_PROFILES: dict[str, RemovalOptions] = {
    "quick-clean": RemovalOptions(100, ToolHandlingMode.REMOVE, 100),
    "heavy-trim": RemovalOptions(100, ToolHandlingMode.TRUNCATE, 100),
    "preserve-recent": RemovalOptions(80, ToolHandlingMode.REMOVE, 100),
    "light-trim": RemovalOptions(50, ToolHandlingMode.TRUNCATE, 100),
}


def get_profile(name: str) -> RemovalOptions:
    """Return a copy of a built-in profile.

    Raises:
        ValidationError: If no profile has that name
    """
    profile = BUILT_IN_PROFILES.get(name)
    if profile is None:
        raise ValidationError(
            f"Unknown profile {name!r}; available: {', '.join(sorted(BUILT_IN_PROFILES))}"
        )
    return RemovalOptions(profile.tool_removal, profile.tool_handling_mode, profile.thinking_removal)


def list_profiles() -> dict[str, RemovalOptions]:
    return dict(BUILT_IN_PROFILES)
