"""
Search, filter and sort helpers over lists of hospital aggregates.

Every function returns a new list and leaves its input untouched, so filters
compose by plain sequential application.
"""

from __future__ import annotations

import logging
from typing import Sequence

from .data import HospitalAggregate
from .geo import Location, distances_to

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------
# Lookup tables
# -------------------------------------------------------------------
# Upper bound is exclusive; None means open-ended
BUDGET_RANGES: dict[str, tuple[float, float | None]] = {
    "0-1000": (0.0, 1000.0),
    "1000-5000": (1000.0, 5000.0),
    "5000-10000": (5000.0, 10000.0),
    "10000+": (10000.0, None),
}

SPECIALTY_KEYWORDS: dict[str, list[str]] = {
    "cardiology": ["heart", "cardiac", "cardiovascular"],
    "orthopedics": ["joint", "bone", "knee", "hip"],
    "neurology": ["brain", "neuro", "spine"],
    "oncology": ["cancer", "tumor", "oncology"],
    "general": ["surgery", "general"],
}

SORT_OPTIONS = (
    "recommended",
    "price-low",
    "price-high",
    "rating-high",
    "distance",
    "name",
    "city",
    "utilization",
)

DEFAULT_WEIGHTS = (0.4, 0.4, 0.2)


# -------------------------------------------------------------------
# Search
# -------------------------------------------------------------------
def _matches_any(text: str, terms: Sequence[str]) -> bool:
    text = text.lower()
    return any(term in text for term in terms)


def search_hospitals(
    hospitals: Sequence[HospitalAggregate], query: str | None
) -> list[HospitalAggregate]:
    """
    Free-text search by name, city or treatment.

    Hospitals whose name or city contains any query term win; only when none
    do, hospitals offering a matching treatment are returned instead.
    """
    terms = (query or "").lower().split()
    if not terms:
        return list(hospitals)

    by_place = [h for h in hospitals if _matches_any(f"{h.name} {h.city}", terms)]
    if by_place:
        return by_place

    return [
        h for h in hospitals if any(_matches_any(t, terms) for t in h.treatments)
    ]


def search_by_treatment_and_location(
    hospitals: Sequence[HospitalAggregate],
    treatment: str | None,
    location: str | None,
) -> list[HospitalAggregate]:
    results = list(hospitals)
    treatment = (treatment or "").strip().lower()
    location = (location or "").strip().lower()

    if treatment:
        results = [
            h
            for h in results
            if treatment in h.name.lower()
            or any(treatment in t.lower() for t in h.treatments)
        ]

    if location:
        results = [
            h
            for h in results
            if location in h.address.lower() or location in h.city.lower()
        ]

    return results


# -------------------------------------------------------------------
# Filters
# -------------------------------------------------------------------
def filter_by_location(
    hospitals: Sequence[HospitalAggregate], location: str | None
) -> list[HospitalAggregate]:
    if not location:
        return list(hospitals)
    needle = location.lower()
    return [h for h in hospitals if needle in h.city.lower()]


def filter_by_budget(
    hospitals: Sequence[HospitalAggregate], budget: str | None
) -> list[HospitalAggregate]:
    if not budget or budget == "any":
        return list(hospitals)
    if budget not in BUDGET_RANGES:
        raise ValueError(f"Unknown budget range: {budget!r}")

    low, high = BUDGET_RANGES[budget]
    return [
        h
        for h in hospitals
        if h.average_cost >= low and (high is None or h.average_cost < high)
    ]


def specialties_for(hospital: HospitalAggregate) -> list[str]:
    """Specialties whose keywords appear in any of the hospital's treatments."""
    treatments = [t.lower() for t in hospital.treatments]
    return [
        specialty
        for specialty, keywords in SPECIALTY_KEYWORDS.items()
        if any(k in t for t in treatments for k in keywords)
    ]


def filter_by_specialty(
    hospitals: Sequence[HospitalAggregate], specialty: str | None
) -> list[HospitalAggregate]:
    if not specialty or specialty == "all":
        return list(hospitals)
    specialty = specialty.lower()
    if specialty not in SPECIALTY_KEYWORDS:
        raise ValueError(f"Unknown specialty: {specialty!r}")
    return [h for h in hospitals if specialty in specialties_for(h)]


def filter_by_distance(
    hospitals: Sequence[HospitalAggregate],
    origin: Location,
    max_miles: float,
) -> list[HospitalAggregate]:
    """Keep hospitals within max_miles of origin; unlocated hospitals are dropped."""
    distances = distances_to(hospitals, origin)
    return [
        h for h, d in zip(hospitals, distances) if d is not None and d <= max_miles
    ]


def filter_by_rating(
    hospitals: Sequence[HospitalAggregate], min_rating: float | None
) -> list[HospitalAggregate]:
    if min_rating is None:
        return list(hospitals)
    return [h for h in hospitals if h.rating >= min_rating]


# -------------------------------------------------------------------
# Sorting
# -------------------------------------------------------------------
def _normalise(values: Sequence[float]) -> list[float]:
    """Min-max scale to [0, 1]; a flat series scales to all zeros."""
    if not values:
        return []
    lo, hi = min(values), max(values)
    if hi == lo:
        return [0.0] * len(values)
    return [(v - lo) / (hi - lo) for v in values]


def recommended_scores(
    hospitals: Sequence[HospitalAggregate],
    origin: Location | None = None,
    weights: tuple[float, float, float] | None = None,
) -> list[float]:
    """
    Composite score blending rating, case volume and closeness.

    Without an origin the distance weight is dropped. Hospitals without
    coordinates get no closeness credit.
    """
    w_rating, w_volume, w_distance = weights or DEFAULT_WEIGHTS
    ratings = _normalise([h.rating for h in hospitals])
    volumes = _normalise([float(h.total_cases) for h in hospitals])

    if origin is None:
        return [w_rating * r + w_volume * v for r, v in zip(ratings, volumes)]

    distances = distances_to(hospitals, origin)
    known = [d for d in distances if d is not None]
    far = max(known) if known else 0.0
    near = min(known) if known else 0.0
    closeness = []
    for d in distances:
        if d is None:
            closeness.append(0.0)
        elif far == near:
            closeness.append(1.0)
        else:
            closeness.append(1.0 - (d - near) / (far - near))

    return [
        w_rating * r + w_volume * v + w_distance * c
        for r, v, c in zip(ratings, volumes, closeness)
    ]


def sort_hospitals(
    hospitals: Sequence[HospitalAggregate],
    sort_by: str | None = "recommended",
    origin: Location | None = None,
    weights: tuple[float, float, float] | None = None,
) -> list[HospitalAggregate]:
    sort_by = sort_by or "recommended"
    if sort_by not in SORT_OPTIONS:
        raise ValueError(f"Unknown sort order: {sort_by!r}")

    hospitals = list(hospitals)

    if sort_by == "price-low":
        return sorted(hospitals, key=lambda h: h.average_cost)
    if sort_by == "price-high":
        return sorted(hospitals, key=lambda h: h.average_cost, reverse=True)
    if sort_by == "rating-high":
        return sorted(hospitals, key=lambda h: h.rating, reverse=True)
    if sort_by == "name":
        return sorted(hospitals, key=lambda h: h.name.lower())
    if sort_by == "city":
        return sorted(hospitals, key=lambda h: h.city.lower())
    if sort_by == "utilization":
        return sorted(hospitals, key=lambda h: h.total_cases, reverse=True)
    if sort_by == "distance":
        if origin is None:
            return hospitals
        distances = distances_to(hospitals, origin)
        order = sorted(
            range(len(hospitals)),
            # Unlocated hospitals go last
            key=lambda i: (distances[i] is None, distances[i] or 0.0),
        )
        return [hospitals[i] for i in order]

    scores = recommended_scores(hospitals, origin, weights)
    order = sorted(range(len(hospitals)), key=lambda i: scores[i], reverse=True)
    return [hospitals[i] for i in order]


def apply_filters(
    hospitals: Sequence[HospitalAggregate],
    *,
    query: str | None = None,
    treatment: str | None = None,
    location: str | None = None,
    budget: str | None = None,
    specialty: str | None = None,
    max_distance: float | None = None,
    min_rating: float | None = None,
    sort_by: str | None = "recommended",
    origin: Location | None = None,
    weights: tuple[float, float, float] | None = None,
) -> list[HospitalAggregate]:
    """
    Run the whole listing pipeline: search, then each filter on the previous
    step's output, then sort.
    """
    results = search_hospitals(hospitals, query)
    results = search_by_treatment_and_location(results, treatment, location)
    results = filter_by_budget(results, budget)
    results = filter_by_specialty(results, specialty)
    if max_distance is not None and origin is not None:
        results = filter_by_distance(results, origin, max_distance)
    results = filter_by_rating(results, min_rating)
    results = sort_hospitals(results, sort_by, origin, weights)

    logger.debug("Filter pipeline kept %d of %d hospitals", len(results), len(hospitals))
    return results
