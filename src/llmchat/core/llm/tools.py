"""Per-provider tool policy.

Tools are opt-in and provider-dependent. Validation runs before any adapter
is called, so an unsupported combination is rejected without a network call
and at zero cost.
"""

from collections.abc import Iterable

from ..errors import InvalidTool, ToolNotSupported
from ..models import Provider
from ..types import ToolId

PROVIDER_TOOLS: dict[Provider, frozenset[ToolId]] = {
    Provider.ANTHROPIC: frozenset(
        {ToolId.SEARCH, ToolId.CODE, ToolId.THINK, ToolId.THINK_HIGH}
    ),
    Provider.OPENAI: frozenset(
        {ToolId.SEARCH, ToolId.CODE, ToolId.THINK, ToolId.THINK_HIGH, ToolId.NO_THINK}
    ),
    Provider.GOOGLE: frozenset(
        {ToolId.SEARCH, ToolId.CODE, ToolId.THINK, ToolId.THINK_HIGH, ToolId.NO_THINK}
    ),
}

# Providers that accept an image URL alongside the user's text
IMAGE_PROVIDERS: frozenset[Provider] = frozenset({Provider.ANTHROPIC, Provider.OPENAI})

# Pairs that cannot be combined in one request
_CONFLICTS: tuple[frozenset[ToolId], ...] = (
    frozenset({ToolId.THINK, ToolId.NO_THINK}),
    frozenset({ToolId.THINK_HIGH, ToolId.NO_THINK}),
    frozenset({ToolId.THINK, ToolId.THINK_HIGH}),
)


def allowed_tools(provider: Provider | str) -> list[str]:
    """Return the sorted tool names a provider accepts (empty if none)."""
    allowed = PROVIDER_TOOLS.get(Provider(provider), frozenset())
    return sorted(t.value for t in allowed)


def validate_tools(provider: Provider | str, tools: Iterable[str]) -> frozenset[ToolId]:
    """Check requested tools against the provider's allow-list.

    Args:
        provider: Provider id of the resolved model
        tools: Tool names as typed by the user (duplicates are ignored)

    Returns:
        The permitted tools (empty when none were requested)

    Raises:
        ToolNotSupported: If the provider supports no tools at all
        InvalidTool: If any tool is outside the allow-list, or two
            requested tools contradict each other
    """
    requested = list(dict.fromkeys(tools))
    if not requested:
        return frozenset()

    provider = Provider(provider)
    allowed = PROVIDER_TOOLS.get(provider)
    if allowed is None:
        raise ToolNotSupported(provider.value, requested)

    allowed_names = {t.value for t in allowed}
    bad = [t for t in requested if t not in allowed_names]
    if bad:
        raise InvalidTool(provider.value, bad, sorted(allowed_names))

    permitted = frozenset(ToolId(t) for t in requested)
    for conflict in _CONFLICTS:
        if conflict <= permitted:
            names = sorted(t.value for t in conflict)
            raise InvalidTool(
                provider.value,
                names,
                sorted(allowed_names),
                f"Conflicting tools: {' and '.join(f'`{n}`' for n in names)} "
                "cannot be used together",
            )

    return permitted


def validate_image(provider: Provider | str, image_url: str | None) -> None:
    """Reject image input for providers whose adapter cannot send it.

    Raises:
        ToolNotSupported: If an image URL is given for such a provider
    """
    if image_url is None:
        return

    provider = Provider(provider)
    if provider not in IMAGE_PROVIDERS:
        supported = ", ".join(sorted(p.value for p in IMAGE_PROVIDERS))
        raise ToolNotSupported(
            provider.value,
            ["image"],
            f"Image URLs are not supported by {provider.value} models (only {supported})",
        )
