"""
Hospital encounter dataset: CSV parsing and per-hospital aggregation.

The encounter CSV has one row per treatment encounter. Rows are grouped by
(NAME, CITY) into ``HospitalAggregate`` objects holding per-treatment counts
and running average costs.
"""

from __future__ import annotations

import csv
import io
import logging
import random
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

import pandas as pd

logger = logging.getLogger(__name__)

UNKNOWN_TREATMENT = "Unknown Treatment"

TEXT_COLUMNS = ["NAME", "ADDRESS", "CITY", "STATE", "DESCRIPTION"]
NUMERIC_COLUMNS = ["BASE_ENCOUNTER_COST", "UTILIZATION", "LAT", "LON"]

HospitalKey = tuple[str, str]


class DatasetError(Exception):
    """Raised when the encounter CSV cannot be read or parsed."""


# -------------------------------------------------------------------
# Aggregate types
# -------------------------------------------------------------------
@dataclass
class TreatmentStats:
    count: int = 0
    total_cost: float = 0.0
    average_cost: float = 0.0

    def add(self, cost: float) -> None:
        self.count += 1
        self.total_cost += cost
        self.average_cost = self.total_cost / self.count

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "total_cost": self.total_cost,
            "average_cost": self.average_cost,
        }


@dataclass
class HospitalAggregate:
    name: str
    city: str
    address: str = ""
    state: str = ""
    lat: float | None = None
    lon: float | None = None
    treatments: dict[str, TreatmentStats] = field(default_factory=dict)
    total_cases: int = 0
    total_cost: float = 0.0
    average_cost: float = 0.0
    utilization: float = 0.0
    rating: float = 0.0
    reviews: int = 0

    @property
    def key(self) -> HospitalKey:
        return (self.name, self.city)

    @property
    def id(self) -> str:
        return f"{self.name}-{self.city}"

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lon is not None

    def add_encounter(self, treatment: str, cost: float, utilization: float = 1.0) -> None:
        """Fold one encounter into the rollups, keeping averages in step."""
        stats = self.treatments.setdefault(treatment, TreatmentStats())
        stats.add(cost)

        self.total_cases += 1
        self.total_cost += cost
        self.average_cost = self.total_cost / self.total_cases
        self.utilization += utilization

    def to_dict(self, include_treatments: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "city": self.city,
            "address": self.address,
            "state": self.state,
            "lat": self.lat,
            "lon": self.lon,
            "total_cases": self.total_cases,
            "total_cost": self.total_cost,
            "average_cost": self.average_cost,
            "utilization": self.utilization,
            "rating": self.rating,
            "reviews": self.reviews,
        }
        if include_treatments:
            data["treatments"] = {
                name: stats.to_dict() for name, stats in self.treatments.items()
            }
        return data


# -------------------------------------------------------------------
# Parsing
# -------------------------------------------------------------------
def _to_float(value, default: float = 0.0) -> float:
    """Return float(value), or default if missing/NaN/unparsable."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return default if pd.isna(number) else number


def _coordinate(value) -> float | None:
    # 0 is what unparsable coordinates coerce to, so it means "unknown"
    number = _to_float(value)
    return None if number == 0 else number


def _balance_quotes(lines: list[str]) -> list[str]:
    cleaned = []
    for number, line in enumerate(lines, start=1):
        if line.count('"') % 2:
            # An unclosed quote would swallow every following line
            logger.warning("Unbalanced quote in CSV line %d, quotes ignored: %s", number, line)
            line = line.replace('"', "")
        cleaned.append(line)
    return cleaned


def _read_frame(text: str, n_cols: int) -> pd.DataFrame:
    def keep_leading_fields(fields: list[str]) -> list[str]:
        logger.warning(
            "CSV row has %d fields, expected %d; extra fields dropped: %s",
            len(fields), n_cols, fields,
        )
        return fields[:n_cols]

    return pd.read_csv(
        io.StringIO(text),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        engine="python",
        on_bad_lines=keep_leading_fields,
    )


def parse_csv(text: str) -> pd.DataFrame:
    """
    Parse raw CSV text into a frame of normalised encounter rows.

    Column names are upper-cased; text columns are stripped strings and
    numeric columns are floats with unparsable values set to 0. Input that
    is not a string or has no data rows yields an empty frame.

    Values are matched to headers by position: a row with extra fields
    keeps its leading ones, and a line with an unbalanced quote is read
    with its quotes ignored.
    """
    if not text or not isinstance(text, str):
        logger.error("Invalid CSV data: %r", type(text).__name__)
        return pd.DataFrame(columns=TEXT_COLUMNS + NUMERIC_COLUMNS)

    lines = [line for line in text.splitlines() if line.strip()]
    if len(lines) < 2:
        logger.error("CSV data has insufficient lines: %d", len(lines))
        return pd.DataFrame(columns=TEXT_COLUMNS + NUMERIC_COLUMNS)

    lines = _balance_quotes(lines)
    n_cols = len(next(csv.reader(lines[:1])))
    try:
        df = _read_frame("\n".join(lines), n_cols)
    except pd.errors.EmptyDataError:
        return pd.DataFrame(columns=TEXT_COLUMNS + NUMERIC_COLUMNS)
    except (pd.errors.ParserError, csv.Error) as exc:
        raise DatasetError(f"Could not parse encounter CSV: {exc}") from exc

    df = df.rename(columns={c: str(c).strip().upper() for c in df.columns})
    has_utilization = "UTILIZATION" in df.columns

    for col in TEXT_COLUMNS:
        if col not in df.columns:
            df[col] = ""
        df[col] = df[col].fillna("").astype(str).str.strip()

    for col in NUMERIC_COLUMNS:
        if col not in df.columns:
            df[col] = 0.0
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0)

    # Without a utilization column every encounter counts as one case
    if not has_utilization:
        df["UTILIZATION"] = 1.0

    return df


# -------------------------------------------------------------------
# Aggregation
# -------------------------------------------------------------------
def aggregate(rows: pd.DataFrame | Iterable[dict]) -> list[HospitalAggregate]:
    """
    Group encounter rows into one aggregate per unique (name, city).

    Rows missing a name or city are skipped with a warning. The returned
    list has no ordering guarantee.
    """
    if isinstance(rows, pd.DataFrame):
        rows = rows.to_dict(orient="records")

    hospitals: dict[HospitalKey, HospitalAggregate] = {}
    skipped = 0

    for row in rows:
        name = str(row.get("NAME") or "").strip()
        city = str(row.get("CITY") or "").strip()
        if not name or not city:
            skipped += 1
            logger.warning("Skipping entry with missing NAME or CITY: %s", row)
            continue

        hospital = hospitals.get((name, city))
        if hospital is None:
            hospital = HospitalAggregate(
                name=name,
                city=city,
                address=str(row.get("ADDRESS") or "").strip(),
                state=str(row.get("STATE") or "").strip(),
            )
            hospitals[(name, city)] = hospital

        if not hospital.has_coordinates:
            lat = _coordinate(row.get("LAT"))
            lon = _coordinate(row.get("LON"))
            if lat is not None and lon is not None:
                hospital.lat, hospital.lon = lat, lon

        treatment = str(row.get("DESCRIPTION") or "").strip() or UNKNOWN_TREATMENT
        hospital.add_encounter(
            treatment,
            _to_float(row.get("BASE_ENCOUNTER_COST")),
            _to_float(row.get("UTILIZATION", 1.0)),
        )

    if skipped:
        logger.warning("Skipped %d entries with missing NAME or CITY", skipped)
    return list(hospitals.values())


def assign_mock_ratings(hospitals: Iterable[HospitalAggregate]) -> None:
    """Give each hospital a rating in [3.0, 5.0] and a review count, stable per key."""
    for hospital in hospitals:
        rnd = random.Random(hospital.id)
        hospital.rating = round(3 + rnd.random() * 2, 1)
        hospital.reviews = int(50 + rnd.random() * 300)


# -------------------------------------------------------------------
# Dataset
# -------------------------------------------------------------------
class HospitalDataset:
    """
    In-memory hospital aggregates built from the encounter CSV.

    ``reload`` rebuilds the whole list and swaps it in; readers never see a
    half-built list.
    """

    def __init__(self, csv_path: str | Path | None = None):
        self.csv_path = Path(csv_path) if csv_path else None
        self._hospitals: list[HospitalAggregate] = []
        self._index: dict[HospitalKey, HospitalAggregate] = {}
        self._diseases: list[str] = []
        self._loaded = False
        self._lock = threading.Lock()

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def hospitals(self) -> list[HospitalAggregate]:
        """Aggregates ordered by total cases, busiest first."""
        if not self._loaded:
            raise DatasetError("Hospital data has not been loaded.")
        return self._hospitals

    def load(self) -> list[HospitalAggregate]:
        if self.csv_path is None:
            raise DatasetError("No encounter CSV configured.")
        try:
            text = self.csv_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise DatasetError(f"Could not read {self.csv_path}: {exc}") from exc
        return self.load_text(text)

    reload = load

    def load_text(self, text: str) -> list[HospitalAggregate]:
        rows = parse_csv(text)
        hospitals = aggregate(rows)
        assign_mock_ratings(hospitals)
        hospitals.sort(key=lambda h: h.total_cases, reverse=True)

        with self._lock:
            self._hospitals = hospitals
            self._index = {h.key: h for h in hospitals}
            self._loaded = True

        logger.info(
            "Loaded %d unique hospitals with %d total entries", len(hospitals), len(rows)
        )
        return hospitals

    def get(self, name: str, city: str) -> HospitalAggregate | None:
        if not self._loaded:
            raise DatasetError("Hospital data has not been loaded.")
        return self._index.get((name, city))

    def top_hospitals(self, limit: int = 10) -> list[HospitalAggregate]:
        return self.hospitals[:limit]

    def cities(self) -> list[str]:
        return sorted({h.city for h in self.hospitals if h.city})

    def load_diseases(self, text: str) -> int:
        """Register treatment names from an extra disease CSV; returns its row count."""
        rows = parse_csv(text)
        names = {d for d in rows["DESCRIPTION"] if d}
        with self._lock:
            self._diseases = sorted(names)
        logger.info("Loaded %d disease records", len(rows))
        return len(rows)

    def treatments(self) -> list[str]:
        names = {t for h in self.hospitals for t in h.treatments}
        names.update(self._diseases)
        return sorted(names)
