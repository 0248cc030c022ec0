"""
Hospital cost comparison: the bounded selection set, per-treatment cost
lookup, relative cost categories, chart payloads and the Markdown report.
"""

from __future__ import annotations

import datetime
from typing import Iterable, Iterator, Sequence

from .data import HospitalAggregate, HospitalKey

CATEGORY_RGB = {
    "low": (52, 168, 83),
    "medium": (251, 188, 5),
    "high": (234, 67, 53),
}
UNKNOWN_RGB = (128, 128, 128)

CATEGORY_LABELS = {"low": "Best (Low)", "medium": "Average", "high": "High"}

NAME_BREAKPOINTS = [" HOSPITAL", " MEDICAL", " CENTER", " HEALTH"]


class SelectionFullError(Exception):
    """Raised when adding to a selection that already holds its limit."""

    def __init__(self, limit: int):
        super().__init__(
            f"You can compare up to {limit} hospitals at a time. Please remove one first."
        )
        self.limit = limit


# -------------------------------------------------------------------
# Selection
# -------------------------------------------------------------------
class SelectionSet:
    """Ordered, bounded set of hospital keys chosen for comparison."""

    def __init__(self, limit: int = 3, keys: Iterable[Sequence[str]] = ()):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self._keys: list[HospitalKey] = []
        for key in keys:
            name, city = key
            if (name, city) not in self._keys and len(self._keys) < limit:
                self._keys.append((name, city))

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[HospitalKey]:
        return iter(self._keys)

    def __contains__(self, key) -> bool:
        return tuple(key) in self._keys

    @property
    def keys(self) -> list[HospitalKey]:
        return list(self._keys)

    def add(self, key: HospitalKey) -> bool:
        """Add a key; returns False if it was already selected."""
        key = tuple(key)
        if key in self._keys:
            return False
        if len(self._keys) >= self.limit:
            raise SelectionFullError(self.limit)
        self._keys.append(key)
        return True

    def remove(self, key: HospitalKey) -> bool:
        key = tuple(key)
        if key not in self._keys:
            return False
        self._keys.remove(key)
        return True

    def toggle(self, key: HospitalKey) -> bool:
        """Flip membership; returns True when the key is now selected."""
        if self.remove(key):
            return False
        self.add(key)
        return True

    def clear(self) -> None:
        self._keys.clear()

    def to_list(self) -> list[list[str]]:
        return [list(k) for k in self._keys]


# -------------------------------------------------------------------
# Costs
# -------------------------------------------------------------------
def treatment_cost(hospital: HospitalAggregate | None, treatment: str | None = None) -> float:
    """
    Average cost of a treatment at a hospital.

    Falls back from an exact match to the first case-insensitive substring
    match, then to the hospital's overall average.
    """
    if hospital is None:
        return 0.0

    if treatment:
        stats = hospital.treatments.get(treatment)
        if stats is not None:
            return stats.average_cost

        needle = treatment.lower()
        for name, stats in hospital.treatments.items():
            if needle in name.lower():
                return stats.average_cost

    return hospital.average_cost or 0.0


def cost_category(cost: float | None, all_costs: Sequence[float | None]) -> str:
    """
    'low', 'medium' or 'high' by splitting the observed cost range into thirds.

    The boundaries move with ``all_costs``, so a hospital's category depends
    on what it is compared against.
    """
    valid = [c for c in all_costs if c is not None]
    if cost is None or not valid:
        return "medium"

    lowest, highest = min(valid), max(valid)
    if lowest == highest:
        return "medium"

    third = (highest - lowest) / 3
    if cost <= lowest + third:
        return "low"
    if cost >= lowest + 2 * third:
        return "high"
    return "medium"


def compare_costs(
    hospitals: Sequence[HospitalAggregate], treatment: str | None = None
) -> list[dict]:
    """Per-hospital cost and category, cheapest first."""
    if not hospitals:
        return []

    costs = [treatment_cost(h, treatment) for h in hospitals]
    rows = [
        {
            "id": h.id,
            "name": h.name,
            "city": h.city,
            "cost": cost,
            "cost_category": cost_category(cost, costs),
        }
        for h, cost in zip(hospitals, costs)
    ]
    return sorted(rows, key=lambda r: r["cost"])


# -------------------------------------------------------------------
# Chart
# -------------------------------------------------------------------
def category_color(category: str | None, alpha: float) -> str:
    r, g, b = CATEGORY_RGB.get(category or "", UNKNOWN_RGB)
    return f"rgba({r}, {g}, {b}, {alpha})"


def shorten_name(name: str) -> str:
    if len(name) <= 20:
        return name
    for bp in NAME_BREAKPOINTS:
        index = name.find(bp)
        if 0 < index < 20:
            return name[:index]
    return name[:17] + "..."


def chart_data(
    hospitals: Sequence[HospitalAggregate], treatment: str | None = None
) -> dict:
    """
    Bar chart payload for the selected hospitals, in selection order.

    The front-end hands ``labels``, ``values`` and the colour lists straight
    to its chart widget.
    """
    title = f"{treatment} Cost Comparison" if treatment else "Average Cost Comparison"
    if not hospitals:
        return {
            "title": title,
            "labels": [],
            "values": [],
            "background_colors": [],
            "border_colors": [],
        }

    values = [treatment_cost(h, treatment) for h in hospitals]
    categories = [cost_category(v, values) for v in values]
    return {
        "title": title,
        "labels": [shorten_name(h.name) for h in hospitals],
        "values": values,
        "categories": categories,
        "background_colors": [category_color(c, 0.7) for c in categories],
        "border_colors": [category_color(c, 1.0) for c in categories],
    }


# -------------------------------------------------------------------
# Report
# -------------------------------------------------------------------
def cost_report(
    hospitals: Sequence[HospitalAggregate],
    treatment: str | None = None,
    generated_on: datetime.date | None = None,
) -> str:
    if not hospitals:
        raise ValueError("Please select hospitals to compare before generating a report.")

    generated_on = generated_on or datetime.date.today()
    lines = [
        "# Hospital Cost Comparison Report",
        "",
        f"Generated on {generated_on.isoformat()}",
        "",
        "## Hospitals Compared",
        "",
    ]
    for index, h in enumerate(hospitals, start=1):
        lines += [
            f"### {index}. {h.name}",
            f"- Address: {h.address}, {h.city}",
            f"- Total Cases: {h.total_cases}",
            f"- Average Cost: ${h.average_cost:.2f}",
            "",
        ]

    lines += ["## Cost Comparison", ""]
    if treatment:
        lines += [
            f"### {treatment} Treatment Costs",
            "",
            "| Hospital | Cost | Category |",
            "|----------|------|----------|",
        ]
    else:
        lines += [
            "| Hospital | Average Cost | Category |",
            "|----------|--------------|----------|",
        ]
    for row in compare_costs(hospitals, treatment):
        lines.append(
            f"| {row['name']} | ${row['cost']:.2f} | {CATEGORY_LABELS[row['cost_category']]} |"
        )

    if treatment:
        needle = treatment.lower()
        lines += ["", "## Treatment Details", ""]
        for h in hospitals:
            lines += [f"### {h.name}", ""]
            relevant = sorted(
                ((name, s) for name, s in h.treatments.items() if needle in name.lower()),
                key=lambda item: item[1].count,
                reverse=True,
            )
            if relevant:
                lines += [
                    "| Treatment | Cases | Average Cost |",
                    "|-----------|-------|--------------|",
                ]
                lines += [
                    f"| {name} | {s.count} | ${s.average_cost:.2f} |" for name, s in relevant
                ]
            else:
                lines.append(f"No specific data available for {treatment} treatments.")
            lines.append("")

    return "\n".join(lines) + "\n"
