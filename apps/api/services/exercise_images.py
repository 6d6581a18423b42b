"""
Exercise illustration lookup.

Exercise names come from generated sessions, mostly in French. Lookup order:
1. ``exercise_image_cache`` keyed on the normalised name
2. ExerciseDB fuzzy search on the English name (given or translated)
3. nothing (the client falls back to its default illustration)

Misses are remembered in Redis for a while so that the same unknown name does
not hit ExerciseDB on every page view.
"""

import logging
import unicodedata
from typing import Any, Dict, Optional

import requests
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.cache import cache_key, get_cache, set_cache
from core.config import settings
from models import ExerciseImageCache

logger = logging.getLogger(__name__)

MISS_CACHE_TTL_S = 6 * 3600

FRENCH_TO_ENGLISH = {
    "developpe couche": "bench press",
    "developpe incline": "incline bench press",
    "developpe decline": "decline bench press",
    "developpe militaire": "overhead press",
    "developpe epaules": "shoulder press",
    "developpe halteres": "dumbbell press",
    "souleve de terre": "deadlift",
    "squat": "squat",
    "tractions": "pull up",
    "rowing": "row",
    "tirage vertical": "lat pulldown",
    "tirage horizontal": "seated row",
    "curl": "curl",
    "extension triceps": "tricep extension",
    "extensions triceps": "tricep extension",
    "presse a cuisses": "leg press",
    "fentes": "lunge",
    "elevations laterales": "lateral raise",
    "leg curl": "leg curl",
    "leg extension": "leg extension",
    "hip thrust": "hip thrust",
    "crunch": "crunch",
    "gainage": "plank",
    "planche": "plank",
    "pompes": "push up",
    "dips": "dips",
    "mollets": "calf raise",
}


def normalize_exercise_name(name: str) -> str:
    """Lowercase, accents stripped, trimmed."""
    decomposed = unicodedata.normalize("NFD", (name or "").lower())
    return "".join(c for c in decomposed if unicodedata.category(c) != "Mn").strip()


def translate_to_english(name: str) -> str:
    normalized = normalize_exercise_name(name)
    if normalized in FRENCH_TO_ENGLISH:
        return FRENCH_TO_ENGLISH[normalized]
    for french, english in FRENCH_TO_ENGLISH.items():
        if french in normalized:
            return english
    # Possibly already English
    return name


def _result(image_url: Optional[str], gif_url: Optional[str], source: str) -> Dict[str, Any]:
    return {"image_url": image_url, "gif_url": gif_url, "source": source}


def search_exercisedb(term: str) -> Optional[Dict[str, Any]]:
    """First ExerciseDB match for ``term``, or None. Network/API errors count as a miss."""
    url = f"{settings.EXERCISEDB_BASE_URL.rstrip('/')}/exercises/search"
    params = {"q": term, "limit": 1, "threshold": settings.EXERCISEDB_MATCH_THRESHOLD}
    try:
        r = requests.get(
            url,
            params=params,
            headers={"Accept": "application/json"},
            timeout=settings.EXTERNAL_API_TIMEOUT,
        )
        r.raise_for_status()
        data = r.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"ExerciseDB lookup failed for '{term}': {e}")
        return None

    items = data.get("data") if isinstance(data, dict) else None
    if not items or not data.get("success"):
        return None
    return items[0]


def get_exercise_image(db: Session, exercise_name: str, english_name: Optional[str] = None) -> Dict[str, Any]:
    normalized = normalize_exercise_name(exercise_name)

    cached = (
        db.query(ExerciseImageCache)
        .filter(ExerciseImageCache.exercise_name_normalized == normalized)
        .first()
    )
    if cached:
        return _result(cached.image_url, cached.gif_url, "cache")

    miss_key = cache_key("exercise_image_miss", normalized)
    if get_cache(miss_key):
        return _result(None, None, "not_found")

    search_term = english_name or translate_to_english(exercise_name)
    logger.info(
        "Searching ExerciseDB",
        extra={"extra_fields": {"exercise": exercise_name, "term": search_term, "translated": not english_name}},
    )
    match = search_exercisedb(search_term)
    gif_url = (match or {}).get("gifUrl")
    if not gif_url:
        set_cache(miss_key, True, ttl=MISS_CACHE_TTL_S)
        return _result(None, None, "not_found")

    try:
        with db.begin_nested():
            db.add(
                ExerciseImageCache(
                    exercise_name=exercise_name,
                    exercise_name_normalized=normalized,
                    image_url=gif_url,
                    gif_url=gif_url,
                    source="exercisedb",
                )
            )
    except IntegrityError:
        # Concurrent lookup already cached it
        logger.info(f"Exercise image already cached for '{normalized}'")

    return _result(gif_url, gif_url, "exercisedb")
