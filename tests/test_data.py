import logging

import pytest

from hospital_compass.data import (
    UNKNOWN_TREATMENT,
    DatasetError,
    HospitalDataset,
    aggregate,
    parse_csv,
)


def _by_name(hospitals):
    return {h.name: h for h in hospitals}


def test_example_rows_aggregate_to_two_hospitals():
    text = (
        "NAME,CITY,DESCRIPTION,BASE_ENCOUNTER_COST\n"
        "A,X,Knee,1000\n"
        "A,X,Knee,2000\n"
        "B,Y,Hip,500\n"
    )
    hospitals = _by_name(aggregate(parse_csv(text)))

    assert len(hospitals) == 2
    assert hospitals["A"].average_cost == 1500
    assert hospitals["A"].total_cases == 2
    assert hospitals["A"].treatments["Knee"].count == 2
    assert hospitals["B"].average_cost == 500
    assert hospitals["B"].total_cases == 1


def test_average_cost_matches_totals(hospitals):
    for h in hospitals:
        assert h.average_cost == pytest.approx(h.total_cost / h.total_cases)
        assert sum(t.count for t in h.treatments.values()) == h.total_cases
        for stats in h.treatments.values():
            assert stats.average_cost == pytest.approx(stats.total_cost / stats.count)


def test_same_name_in_different_cities_stays_separate():
    text = (
        "NAME,CITY,DESCRIPTION,BASE_ENCOUNTER_COST\n"
        "MERCY,SPRINGFIELD,Knee,100\n"
        "MERCY,WORCESTER,Knee,300\n"
        "MERCY,SPRINGFIELD,Hip,200\n"
    )
    hospitals = aggregate(parse_csv(text))

    assert sorted(h.key for h in hospitals) == [
        ("MERCY", "SPRINGFIELD"),
        ("MERCY", "WORCESTER"),
    ]


def test_rows_missing_name_or_city_are_skipped(caplog):
    text = (
        "NAME,CITY,DESCRIPTION,BASE_ENCOUNTER_COST\n"
        ",BOSTON,Knee,100\n"
        "GENERAL,,Knee,100\n"
        "GENERAL,BOSTON,Knee,100\n"
    )
    with caplog.at_level(logging.WARNING, logger="hospital_compass.data"):
        hospitals = aggregate(parse_csv(text))

    assert [h.key for h in hospitals] == [("GENERAL", "BOSTON")]
    assert "missing NAME or CITY" in caplog.text


def test_blank_treatment_and_bad_cost_get_defaults():
    text = (
        "NAME,CITY,DESCRIPTION,BASE_ENCOUNTER_COST\n"
        "GENERAL,BOSTON,,abc\n"
        "GENERAL,BOSTON,  Knee  ,300\n"
    )
    (hospital,) = aggregate(parse_csv(text))

    assert hospital.treatments[UNKNOWN_TREATMENT].total_cost == 0
    assert "Knee" in hospital.treatments
    assert hospital.total_cases == 2
    assert hospital.average_cost == 150


def test_quoted_fields_keep_commas():
    text = (
        "NAME,ADDRESS,CITY,DESCRIPTION,BASE_ENCOUNTER_COST\n"
        '"ST. MARY, NORTH","1 MAIN ST, SUITE 2",BOSTON,"Check up, annual",90\n'
    )
    (hospital,) = aggregate(parse_csv(text))

    assert hospital.name == "ST. MARY, NORTH"
    assert hospital.address == "1 MAIN ST, SUITE 2"
    assert "Check up, annual" in hospital.treatments


def test_row_with_extra_fields_is_kept(caplog):
    text = (
        "NAME,CITY,DESCRIPTION,BASE_ENCOUNTER_COST\n"
        "A,X,Knee,1000\n"
        "A,X,Knee, left,2000\n"
        "B,Y,Hip,500\n"
    )
    with caplog.at_level(logging.WARNING, logger="hospital_compass.data"):
        hospitals = _by_name(aggregate(parse_csv(text)))

    assert hospitals["A"].total_cases == 2
    # Values map to headers by position, so " left" lands in the cost column
    assert hospitals["A"].average_cost == 500
    assert hospitals["B"].total_cases == 1
    assert "extra fields dropped" in caplog.text


def test_unbalanced_quote_only_affects_its_own_line(caplog):
    text = (
        "NAME,CITY,DESCRIPTION,BASE_ENCOUNTER_COST\n"
        'A,X,"Knee,1000\n'
        "B,Y,Hip,500\n"
        'C,Z,"Scan, full body",300\n'
    )
    with caplog.at_level(logging.WARNING, logger="hospital_compass.data"):
        hospitals = _by_name(aggregate(parse_csv(text)))

    assert sorted(hospitals) == ["A", "B", "C"]
    assert hospitals["A"].treatments["Knee"].average_cost == 1000
    assert hospitals["B"].average_cost == 500
    assert "Scan, full body" in hospitals["C"].treatments
    assert "Unbalanced quote in CSV line 2" in caplog.text


@pytest.mark.parametrize("text", ["", None, 42, "NAME,CITY\n", "\n\n"])
def test_unusable_input_parses_to_no_rows(text):
    assert parse_csv(text).empty


def test_utilization_is_summed_or_counted():
    with_column = (
        "NAME,CITY,DESCRIPTION,BASE_ENCOUNTER_COST,UTILIZATION\n"
        "A,X,Knee,10,3\n"
        "A,X,Knee,10,n/a\n"
        "A,X,Knee,10,4\n"
    )
    without_column = "NAME,CITY,DESCRIPTION,BASE_ENCOUNTER_COST\nA,X,Knee,10\nA,X,Hip,10\n"

    assert aggregate(parse_csv(with_column))[0].utilization == 7
    assert aggregate(parse_csv(without_column))[0].utilization == 2


def test_coordinates_are_optional_and_filled_from_later_rows():
    text = (
        "NAME,CITY,LAT,LON,DESCRIPTION,BASE_ENCOUNTER_COST\n"
        "A,X,,,Knee,10\n"
        "A,X,42.1,-71.2,Knee,10\n"
        "B,Y,bad,,Hip,10\n"
    )
    hospitals = _by_name(aggregate(parse_csv(text)))

    assert (hospitals["A"].lat, hospitals["A"].lon) == (42.1, -71.2)
    assert not hospitals["B"].has_coordinates


def test_aggregate_accepts_plain_dicts():
    rows = [
        {"NAME": "A", "CITY": "X", "DESCRIPTION": "Knee", "BASE_ENCOUNTER_COST": "oops"},
        {"NAME": "A", "CITY": "X", "DESCRIPTION": "Knee", "BASE_ENCOUNTER_COST": 40},
    ]
    (hospital,) = aggregate(rows)

    assert hospital.total_cost == 40
    assert hospital.average_cost == 20


def test_dataset_orders_by_total_cases(dataset):
    cases = [h.total_cases for h in dataset.hospitals]

    assert cases == sorted(cases, reverse=True)
    assert dataset.hospitals[0].name == "GENERAL HOSPITAL"
    assert dataset.top_hospitals(2)[1].name == "HARBOR MEDICAL CENTER"


def test_dataset_lookups(dataset):
    assert dataset.get("VALLEY CLINIC", "SPRINGFIELD").average_cost == 800
    assert dataset.get("VALLEY CLINIC", "BOSTON") is None
    assert dataset.cities() == ["BOSTON", "NANTUCKET", "QUINCY", "SPRINGFIELD", "WORCESTER"]
    assert "Brain MRI" in dataset.treatments()


def test_mock_ratings_are_bounded_and_stable(csv_path):
    first = HospitalDataset(csv_path)
    second = HospitalDataset(csv_path)
    first.load()
    second.load()

    for a, b in zip(first.hospitals, second.hospitals):
        assert 3.0 <= a.rating <= 5.0
        assert 50 <= a.reviews < 350
        assert (a.rating, a.reviews) == (b.rating, b.reviews)


def test_reload_replaces_aggregates(dataset, csv_path):
    before = dataset.hospitals
    csv_path.write_text("NAME,CITY,DESCRIPTION,BASE_ENCOUNTER_COST\nA,X,Knee,10\n")

    dataset.reload()

    assert dataset.hospitals is not before
    assert [h.key for h in dataset.hospitals] == [("A", "X")]


def test_disease_upload_extends_treatments(dataset):
    count = dataset.load_diseases("DESCRIPTION\nAsthma\nDiabetes\nAsthma\n")

    assert count == 3
    treatments = dataset.treatments()
    assert "Asthma" in treatments
    assert "Diabetes" in treatments


def test_dataset_loads_file_with_stray_quote(tmp_path):
    path = tmp_path / "encounters.csv"
    path.write_text(
        "NAME,CITY,DESCRIPTION,BASE_ENCOUNTER_COST\n"
        'A,X,"Knee,1000\n'
        "B,Y,Hip,500\n"
        "C,Z,MRI,300\n"
    )

    hospitals = HospitalDataset(path).load()

    assert len(hospitals) == 3


def test_missing_file_raises_dataset_error(tmp_path):
    ds = HospitalDataset(tmp_path / "missing.csv")

    with pytest.raises(DatasetError):
        ds.load()
    with pytest.raises(DatasetError):
        ds.hospitals
