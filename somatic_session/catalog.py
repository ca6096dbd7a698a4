"""
Static mood catalog.
"""

from .errors import UnknownMoodError
from .models import MoodId, MoodStyle, VisualVariant

MOOD_CATALOG: dict[MoodId, MoodStyle] = {
    MoodId.HEAVY: MoodStyle(
        id=MoodId.HEAVY,
        label="Heavy",
        name="The Shake",
        description="去重",
        color="#ff6b35",
        secondary_color="#f7931e",
        variant=VisualVariant.SHAKE,
    ),
    MoodId.ANXIOUS: MoodStyle(
        id=MoodId.ANXIOUS,
        label="Anxious",
        name="The Hum",
        description="共鸣",
        color="#9d4edd",
        secondary_color="#7209b7",
        variant=VisualVariant.HUM,
    ),
    MoodId.CHAOTIC: MoodStyle(
        id=MoodId.CHAOTIC,
        label="Chaotic",
        name="The Rock",
        description="摇篮",
        color="#2d6a4f",
        secondary_color="#52b788",
        variant=VisualVariant.ROCK,
    ),
}


def lookup(mood_id: MoodId | str, catalog: dict[MoodId, MoodStyle] | None = None) -> MoodStyle:
    """
    Look up the style for a mood.

    Args:
        mood_id: A MoodId or its string value
        catalog: Catalog to search (defaults to MOOD_CATALOG)

    Returns:
        The MoodStyle registered for the identifier

    Raises:
        UnknownMoodError: If the identifier is not in the catalog
    """
    catalog = MOOD_CATALOG if catalog is None else catalog
    try:
        key = MoodId(mood_id)
    except ValueError:
        raise UnknownMoodError(mood_id) from None
    try:
        return catalog[key]
    except KeyError:
        raise UnknownMoodError(mood_id) from None


def list_moods(catalog: dict[MoodId, MoodStyle] | None = None) -> list[MoodStyle]:
    """Return the catalog in check-in display order."""
    catalog = MOOD_CATALOG if catalog is None else catalog
    return list(catalog.values())
