"""Domain constants."""

from itinerary_jobs.domain.enums import CategoryGroup

START_MARKER = "start"
END_MARKER = "end"

# Interest keywords per category id. Order matters for the keyword mapper.
CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "museum": ("museum", "museums", "exhibit", "exhibition", "history", "science"),
    "gallery": ("gallery", "galleries", "art", "painting", "sculpture"),
    "landmark": ("landmark", "sightseeing", "sights", "monument", "tower", "architecture"),
    "historic": ("historic", "heritage", "castle", "ruins", "old town"),
    "park": ("park", "parks", "garden", "gardens", "nature", "green", "outdoor"),
    "viewpoint": ("view", "viewpoint", "panorama", "lookout", "skyline"),
    "church": ("church", "cathedral", "temple", "mosque", "religious", "chapel"),
    "restaurant": ("food", "restaurant", "dinner", "lunch", "eat", "cuisine", "local food"),
    "cafe": ("cafe", "coffee", "tea", "bakery", "dessert"),
    "bar": ("bar", "bars", "pub", "beer", "wine", "nightlife", "cocktail"),
    "market": ("market", "markets", "bazaar", "street food"),
    "shopping": ("shopping", "shop", "shops", "boutique", "mall"),
    "theater": ("theater", "theatre", "music", "concert", "opera", "show"),
    "zoo": ("zoo", "aquarium", "animals", "kids", "family"),
    "beach": ("beach", "beaches", "sea", "seaside", "swim"),
}

DEFAULT_CATEGORIES: tuple[str, ...] = ("landmark", "museum", "park")

DEFAULT_DWELL_MINUTES: dict[str, int] = {
    "museum": 90,
    "gallery": 60,
    "park": 45,
    "landmark": 30,
    "historic": 45,
    "viewpoint": 20,
    "church": 30,
    "restaurant": 60,
    "food": 30,
    "cafe": 30,
    "bar": 45,
    "market": 45,
    "shopping": 45,
    "theater": 120,
    "zoo": 120,
    "beach": 90,
}
FALLBACK_DWELL_MINUTES = 30

FOOD_CATEGORIES = frozenset(
    {"restaurant", "cafe", "food", "bar", "pub", "market", "japanese", "chinese", "italian"}
)
CULTURAL_CATEGORIES = frozenset(
    {
        "museum",
        "gallery",
        "historic",
        "monument",
        "landmark",
        "church",
        "cathedral",
        "temple",
        "building",
        "theater",
    }
)


def category_group(category: str) -> CategoryGroup:
    key = (category or "").strip().lower()
    if key in FOOD_CATEGORIES:
        return CategoryGroup.FOOD
    if key in CULTURAL_CATEGORIES:
        return CategoryGroup.CULTURAL
    return CategoryGroup.OTHER
