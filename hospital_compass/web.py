"""
Flask application exposing accounts, hospital listings and cost comparison.
"""

from __future__ import annotations

import logging
from pathlib import Path

from flask import (
    Blueprint,
    Flask,
    Response,
    current_app,
    jsonify,
    request,
    send_from_directory,
    session,
)

from .comparison import (
    SelectionFullError,
    SelectionSet,
    chart_data,
    compare_costs,
    cost_category,
    cost_report,
)
from .config import Settings, get_settings
from .data import DatasetError, HospitalDataset
from .geo import Location, distances_to, resolve_location
from .pagination import paginate
from .search import apply_filters, filter_by_specialty, sort_hospitals, specialties_for
from .users import EmailExistsError, UserStore

logger = logging.getLogger(__name__)

bp = Blueprint("compass", __name__)

MAX_PAGE_SIZE = 100
SESSION_SELECTION = "compare"


# -------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------
class BadQuery(ValueError):
    """A request parameter could not be understood."""


def _settings() -> Settings:
    return current_app.extensions["compass.settings"]


def _dataset() -> HospitalDataset:
    return current_app.extensions["compass.dataset"]


def _users() -> UserStore:
    return current_app.extensions["compass.users"]


def _arg_float(name: str) -> float | None:
    raw = (request.args.get(name) or "").strip()
    if not raw or raw == "any":
        return None
    try:
        return float(raw)
    except ValueError:
        raise BadQuery(f"Invalid {name} parameter: {raw!r}") from None


def _arg_int(name: str, default: int) -> int:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise BadQuery(f"Invalid {name} parameter: {raw!r}") from None


def _origin() -> Location:
    settings = _settings()
    return resolve_location(
        request.args.get("lat"),
        request.args.get("lon"),
        Location(settings.default_lat, settings.default_lon),
    )


def _selection() -> SelectionSet:
    return SelectionSet(_settings().compare_limit, session.get(SESSION_SELECTION, []))


def _save_selection(selection: SelectionSet) -> None:
    session[SESSION_SELECTION] = selection.to_list()


def _selected_hospitals(selection: SelectionSet):
    dataset = _dataset()
    hospitals = []
    for name, city in selection:
        hospital = dataset.get(name, city)
        # Selections can outlive a reload that dropped the hospital
        if hospital is not None:
            hospitals.append(hospital)
    return hospitals


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _credentials():
    body = _json_body()
    return str(body.get("email") or "").strip(), str(body.get("password") or "")


# -------------------------------------------------------------------
# Accounts
# -------------------------------------------------------------------
@bp.route("/signup", methods=["POST"])
def signup():
    email, password = _credentials()
    if not email or not password:
        return jsonify({"message": "Email and password are required"}), 400

    try:
        _users().create_user(email, password)
    except EmailExistsError:
        return jsonify({"message": "Email already exists"}), 400
    except Exception:  # noqa: BLE001
        logger.exception("Signup error")
        return jsonify({"message": "Internal server error"}), 500
    return jsonify({"message": "Account created successfully"}), 201


@bp.route("/login", methods=["POST"])
def login():
    email, password = _credentials()
    try:
        account = _users().authenticate(email, password) if email else None
    except Exception:  # noqa: BLE001
        logger.exception("Login error")
        return jsonify({"message": "Internal server error"}), 500

    if account is None:
        return jsonify({"message": "Invalid email or password"}), 401

    session["email"] = account
    return jsonify({"message": "Login successful", "email": account})


@bp.route("/logout", methods=["POST"])
def logout():
    session.clear()
    return jsonify({"message": "Logged out"})


# -------------------------------------------------------------------
# Static front-end
# -------------------------------------------------------------------
@bp.route("/")
def index():
    return send_from_directory(_settings().frontend_dir, "index.html")


@bp.route("/data/<path:filename>")
def data_file(filename):
    data_csv = Path(_settings().data_csv)
    return send_from_directory(data_csv.parent, filename)


@bp.route("/health")
def health_check():
    dataset = _dataset()
    return jsonify(
        {
            "status": "ok" if dataset.loaded else "degraded",
            "data_loaded": dataset.loaded,
            "hospitals": len(dataset.hospitals) if dataset.loaded else 0,
        }
    )


# -------------------------------------------------------------------
# Hospitals
# -------------------------------------------------------------------
@bp.route("/api/hospitals")
def api_hospitals():
    """
    Query params:
      - q: free-text search over name, city and treatments
      - treatment, location: targeted search terms
      - budget: any | 0-1000 | 1000-5000 | 5000-10000 | 10000+
      - specialty: all | cardiology | orthopedics | neurology | oncology | general
      - distance: max miles from the user's location
      - rating: minimum rating
      - sort: recommended (default) | price-low | price-high | rating-high |
              distance | name | city | utilization
      - page, page_size
      - lat, lon: user location; the configured default is used otherwise
    """
    settings = _settings()
    origin = _origin()

    hospitals = _dataset().hospitals
    try:
        results = apply_filters(
            hospitals,
            query=request.args.get("q"),
            treatment=request.args.get("treatment"),
            location=request.args.get("location"),
            budget=request.args.get("budget"),
            specialty=request.args.get("specialty"),
            max_distance=_arg_float("distance"),
            min_rating=_arg_float("rating"),
            sort_by=request.args.get("sort") or "recommended",
            origin=origin,
            weights=settings.recommended_weights,
        )
    except ValueError as exc:
        raise BadQuery(str(exc)) from exc

    page_size = _arg_int("page_size", settings.page_size)
    if not 0 < page_size <= MAX_PAGE_SIZE:
        raise BadQuery(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
    page = paginate(
        results, _arg_int("page", 1), page_size, settings.max_visible_pages
    )

    all_costs = [h.average_cost for h in results]
    selection = _selection()
    distances = distances_to(page.items, origin)
    records = []
    for hospital, distance in zip(page.items, distances):
        record = hospital.to_dict(include_treatments=False)
        record.update(
            {
                "distance_miles": round(distance, 1) if distance is not None else None,
                "specialties": specialties_for(hospital),
                "estimated_cost": hospital.average_cost,
                "cost_category": cost_category(hospital.average_cost, all_costs),
                "compared": hospital.key in selection,
            }
        )
        records.append(record)

    return jsonify(
        {
            "hospitals": records,
            "pagination": page.meta(),
            "origin": {"lat": origin.lat, "lon": origin.lon},
        }
    )


@bp.route("/api/hospital")
def api_hospital_detail():
    name = (request.args.get("name") or "").strip()
    city = (request.args.get("city") or "").strip()
    if not name or not city:
        return jsonify({"error": "Missing name/city parameters."}), 400

    hospital = _dataset().get(name, city)
    if hospital is None:
        return jsonify({"error": f"No hospital named {name} in {city}."}), 404

    record = hospital.to_dict()
    record["specialties"] = specialties_for(hospital)
    return jsonify(record)


@bp.route("/api/top-hospitals")
def api_top_hospitals():
    """
    Busiest hospitals by case count, optionally narrowed by specialty and
    re-sorted by name, city or utilization.
    """
    limit = _arg_int("limit", _settings().top_hospitals_limit)
    if limit <= 0:
        raise BadQuery("limit must be positive")

    hospitals = _dataset().top_hospitals(limit)
    try:
        hospitals = filter_by_specialty(hospitals, request.args.get("specialty"))
        hospitals = sort_hospitals(hospitals, request.args.get("sort") or "utilization")
    except ValueError as exc:
        raise BadQuery(str(exc)) from exc

    return jsonify(
        {
            "hospitals": [
                dict(h.to_dict(include_treatments=False), rank=rank)
                for rank, h in enumerate(hospitals, start=1)
            ]
        }
    )


@bp.route("/api/cities")
def api_cities():
    return jsonify({"cities": _dataset().cities()})


@bp.route("/api/treatments")
def api_treatments():
    return jsonify({"treatments": _dataset().treatments()})


@bp.route("/api/diseases", methods=["POST"])
def api_upload_diseases():
    """Accept a disease CSV as an uploaded ``file`` or as the raw request body."""
    upload = request.files.get("file")
    if upload is not None:
        if not (upload.filename or "").lower().endswith(".csv"):
            return jsonify({"error": "Please upload a CSV file."}), 400
        text = upload.read().decode("utf-8", errors="replace")
    else:
        text = request.get_data(as_text=True)

    if not text.strip():
        return jsonify({"error": "Empty disease data."}), 400

    try:
        count = _dataset().load_diseases(text)
    except DatasetError as exc:
        logger.warning("Rejected disease upload: %s", exc)
        return jsonify(
            {"error": "Error processing disease data. Please check the file format."}
        ), 400
    return jsonify({"message": f"Successfully loaded {count} disease records.", "count": count})


@bp.route("/api/reload", methods=["POST"])
def api_reload():
    hospitals = _dataset().reload()
    return jsonify({"hospitals": len(hospitals)})


# -------------------------------------------------------------------
# Comparison
# -------------------------------------------------------------------
def _comparison_payload(selection: SelectionSet) -> dict:
    treatment = (request.args.get("treatment") or "").strip() or None
    hospitals = _selected_hospitals(selection)
    return {
        "selected": [h.to_dict(include_treatments=False) for h in hospitals],
        "limit": selection.limit,
        "treatment": treatment,
        "comparison": compare_costs(hospitals, treatment),
        "chart": chart_data(hospitals, treatment),
    }


@bp.route("/api/compare")
def api_compare():
    return jsonify(_comparison_payload(_selection()))


@bp.route("/api/compare/toggle", methods=["POST"])
def api_compare_toggle():
    body = _json_body()
    name = str(body.get("name") or "").strip()
    city = str(body.get("city") or "").strip()
    if not name or not city:
        return jsonify({"error": "Missing name/city."}), 400
    if _dataset().get(name, city) is None:
        return jsonify({"error": f"No hospital named {name} in {city}."}), 404

    selection = _selection()
    try:
        selected = selection.toggle((name, city))
    except SelectionFullError as exc:
        return jsonify({"error": str(exc)}), 409
    _save_selection(selection)

    payload = _comparison_payload(selection)
    payload["toggled"] = {"name": name, "city": city, "selected": selected}
    return jsonify(payload)


@bp.route("/api/compare", methods=["DELETE"])
def api_compare_clear():
    selection = _selection()
    selection.clear()
    _save_selection(selection)
    return jsonify(_comparison_payload(selection))


@bp.route("/api/compare/report")
def api_compare_report():
    treatment = (request.args.get("treatment") or "").strip() or None
    hospitals = _selected_hospitals(_selection())
    if not hospitals:
        return jsonify({"error": "Please select hospitals to compare before generating a report."}), 400

    report = cost_report(hospitals, treatment)
    return Response(
        report,
        mimetype="text/markdown",
        headers={"Content-Disposition": "attachment; filename=cost-comparison.md"},
    )


# -------------------------------------------------------------------
# Errors
# -------------------------------------------------------------------
def _dataset_unavailable(exc: DatasetError):
    logger.error("Hospital data unavailable: %s", exc)
    return jsonify({"error": "Error loading hospital data. Please try again later."}), 503


def _bad_request(exc: BadQuery):
    return jsonify({"error": str(exc)}), 400


# -------------------------------------------------------------------
# App factory
# -------------------------------------------------------------------
def create_app(
    settings: Settings | None = None,
    dataset: HospitalDataset | None = None,
    users: UserStore | None = None,
) -> Flask:
    settings = settings or get_settings()
    frontend_dir = Path(settings.frontend_dir)

    app = Flask(__name__, static_folder=str(frontend_dir), static_url_path="")
    app.secret_key = settings.secret_key

    if dataset is None:
        dataset = HospitalDataset(settings.data_csv)
        try:
            dataset.load()
        except DatasetError:
            # Keep serving; data endpoints answer 503 until a reload succeeds
            logger.exception("Could not load hospital data at startup")

    app.extensions["compass.settings"] = settings
    app.extensions["compass.dataset"] = dataset
    app.extensions["compass.users"] = users or UserStore(settings.database_url)

    app.register_blueprint(bp)
    app.register_error_handler(DatasetError, _dataset_unavailable)
    app.register_error_handler(BadQuery, _bad_request)

    return app
