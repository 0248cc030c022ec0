"""Shared fixtures: a small encounter CSV, a loaded dataset and a Flask client."""

import pytest

from hospital_compass.config import Settings
from hospital_compass.data import HospitalDataset
from hospital_compass.users import UserStore
from hospital_compass.web import create_app

ENCOUNTERS_CSV = """\
NAME,ADDRESS,CITY,STATE,LAT,LON,DESCRIPTION,BASE_ENCOUNTER_COST,UTILIZATION
GENERAL HOSPITAL,1 MAIN ST,BOSTON,MA,42.36,-71.06,Total knee replacement,12000,2
GENERAL HOSPITAL,1 MAIN ST,BOSTON,MA,42.36,-71.06,Total knee replacement,14000,1
GENERAL HOSPITAL,1 MAIN ST,BOSTON,MA,42.36,-71.06,Cardiac catheterization,7000,1
HARBOR MEDICAL CENTER,9 DOCK RD,QUINCY,MA,42.25,-71.00,Hip replacement,9000,3
HARBOR MEDICAL CENTER,9 DOCK RD,QUINCY,MA,42.25,-71.00,Chemotherapy for cancer,3000,1
VALLEY CLINIC,5 ELM ST,SPRINGFIELD,MA,42.10,-72.59,Brain MRI,800,4
HILLSIDE HOSPITAL,2 HILL RD,WORCESTER,MA,42.27,-71.80,General surgery consultation,450,2
ISLAND HOSPITAL,7 SHORE DR,NANTUCKET,MA,,,Emergency room admission,2500,1
"""


@pytest.fixture
def csv_path(tmp_path):
    path = tmp_path / "merged_data.csv"
    path.write_text(ENCOUNTERS_CSV, encoding="utf-8")
    return path


@pytest.fixture
def frontend_dir(tmp_path):
    path = tmp_path / "Frontend"
    path.mkdir()
    (path / "index.html").write_text("<h1>HealthCare Compass</h1>", encoding="utf-8")
    return path


@pytest.fixture
def settings(csv_path, frontend_dir):
    return Settings(
        data_csv=csv_path,
        frontend_dir=frontend_dir,
        database_url="sqlite://",
        secret_key="test-secret",
        page_size=5,
        compare_limit=3,
        default_lat=42.3601,
        default_lon=-71.0589,
        recommended_weights=(0.4, 0.4, 0.2),
    )


@pytest.fixture
def dataset(csv_path):
    ds = HospitalDataset(csv_path)
    ds.load()
    return ds


@pytest.fixture
def hospitals(dataset):
    return dataset.hospitals


@pytest.fixture
def app(settings):
    app = create_app(settings, users=UserStore("sqlite://"))
    app.config.update(TESTING=True)
    return app


@pytest.fixture
def client(app):
    return app.test_client()
