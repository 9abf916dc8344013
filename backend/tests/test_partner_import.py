"""Import runner: upsert outcomes, locations, soft fixes and job lifecycle."""

import pytest

from partner_map.models.partner_import import PartnerImport
from partner_map.models.partner_school import PartnerSchool
from partner_map.services.fallback_location import CONTINENT_BBOXES, fallback_point
from partner_map.services.partner_import import run_partner_import

HEADER = "Continent,Country,Partner Institution,City,Language requirements,Degree programmes,Status,Lat,Lon\n"


@pytest.fixture
def queue_import(db, tmp_path):
    def build(text: str, name: str = "partners.csv") -> PartnerImport:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        record = PartnerImport(
            original_file_name=name,
            file_url=f"/uploads/partner-imports/{name}",
            local_path=str(path),
            file_hash="0" * 64,
            status="queued",
        )
        db.add(record)
        db.commit()
        return record
    return build


def _school(db, name):
    return db.query(PartnerSchool).filter(PartnerSchool.name == name).one()


def test_three_row_import(db, queue_import, fake_geocoder):
    record = queue_import(
        HEADER
        + "Europe,Finland,Aalto University,Espoo,English B2,,Confirmed,60.18,24.83\n"
        + "Europe,Sweden,Lund University,Lund,English B2,,Negotiation,,\n"
        + "Asia,,Nameless Institute,Tokyo,,,,,\n"
    )

    result = run_partner_import(db, record.id, fake_geocoder())

    assert result.status == "succeeded"
    assert result.summary == {"inserted": 2, "updated": 0, "unchanged": 0, "failed_rows": 1}
    assert result.row_errors == [{"row": 3, "external_key": None, "message": "Row missing required fields"}]
    assert result.started_at is not None
    assert result.finished_at is not None

    aalto = _school(db, "Aalto University")
    assert aalto.geocode_precision == "manual"
    assert aalto.location == {"type": "Point", "coordinates": [24.83, 60.18]}
    assert aalto.external_key == "aalto-university|finland|espoo"
    assert aalto.source_import_id == record.id

    lund = _school(db, "Lund University")
    lon_min, lat_min, lon_max, lat_max = CONTINENT_BBOXES["europe"]
    assert lund.geocode_precision == "none"
    assert lon_min <= lund.longitude <= lon_max
    assert lat_min <= lund.latitude <= lat_max
    assert (lund.longitude, lund.latitude) == fallback_point("Europe", "Sweden", "Lund", "Lund University")
    assert lund.status == "negotiation"


def test_geocoded_city_precision(db, queue_import, fake_geocoder):
    geocoder = fake_geocoder({("Lund", "Sweden"): (13.19, 55.70)})
    record = queue_import(HEADER + "Europe,Sweden,Lund University,Lund,,,,,\n")

    run_partner_import(db, record.id, geocoder)

    lund = _school(db, "Lund University")
    assert lund.geocode_precision == "city"
    assert (lund.longitude, lund.latitude) == (13.19, 55.70)
    assert lund.geocode_provider == "fake"
    assert lund.geocode_query == "Lund, Sweden"
    assert lund.geocode_updated_at is not None
    # Import geocoding resolves by city only
    assert geocoder.calls == [("Lund", "Sweden", None)]


def test_reimport_same_file_is_unchanged(db, queue_import, fake_geocoder):
    text = (
        HEADER
        + "Europe,Finland,Aalto University,Espoo,English B2,,Confirmed,60.18,24.83\n"
        + "Europe,Sweden,Lund University,Lund,Swedish,,,,\n"
    )
    run_partner_import(db, queue_import(text, "first.csv").id, fake_geocoder())
    lund_before = _school(db, "Lund University").location

    second = run_partner_import(db, queue_import(text, "second.csv").id, fake_geocoder())

    assert second.summary == {"inserted": 0, "updated": 0, "unchanged": 2, "failed_rows": 0}
    assert _school(db, "Lund University").location == lund_before
    assert db.query(PartnerSchool).count() == 2


def test_changed_field_is_updated(db, queue_import, fake_geocoder):
    run_partner_import(db, queue_import(HEADER + "Europe,Finland,Aalto,Espoo,,,Confirmed,,\n", "a.csv").id, fake_geocoder())
    second = run_partner_import(
        db, queue_import(HEADER + "Europe,Finland,Aalto,Espoo,,,Negotiation,,\n", "b.csv").id, fake_geocoder()
    )

    assert second.summary["updated"] == 1
    assert _school(db, "Aalto").status == "negotiation"


def test_manual_location_survives_reimport(db, queue_import, fake_geocoder, make_school):
    make_school(
        external_key="aalto|finland|espoo",
        name="Aalto",
        longitude=1.0,
        latitude=2.0,
        geocode_precision="manual",
    )
    geocoder = fake_geocoder({("Espoo", "Finland"): (24.65, 60.2)})

    run_partner_import(db, queue_import(HEADER + "Europe,Finland,Aalto,Espoo,,,,50.0,20.0\n").id, geocoder)

    aalto = _school(db, "Aalto")
    assert (aalto.longitude, aalto.latitude) == (1.0, 2.0)
    assert aalto.geocode_precision == "manual"
    assert geocoder.calls == []


def test_supplied_external_key_is_used(db, queue_import, fake_geocoder):
    text = "externalKey,name,country\nAALTO-001,Aalto,Finland\n"
    run_partner_import(db, queue_import(text).id, fake_geocoder())
    assert _school(db, "Aalto").external_key == "AALTO-001"


def test_agreement_scope_soft_fix(db, queue_import, fake_geocoder):
    record = queue_import(HEADER + 'Europe,Finland,Aalto,Espoo,,"General agreement, all faculties",,,\n')

    result = run_partner_import(db, record.id, fake_geocoder())

    aalto = _school(db, "Aalto")
    assert aalto.agreement_scope == "General agreement, all faculties"
    assert aalto.degree_programmes_in_agreement == ["General agreement", "all faculties"]
    [warning] = result.warnings
    assert warning["row"] == 1
    assert warning["external_key"] == "aalto|finland|espoo"
    assert warning["message"].startswith("Soft fix:")
    assert '"General agreement, all faculties"' in warning["message"]


def test_soft_fix_snippet_is_truncated(db, queue_import, fake_geocoder):
    long_scope = "Agreement " + "x" * 300
    result = run_partner_import(
        db, queue_import(HEADER + f"Europe,Finland,Aalto,Espoo,,{long_scope},,,\n").id, fake_geocoder()
    )
    message = result.warnings[0]["message"]
    assert f'"{long_scope[:180]}…"' in message


def test_unknown_level_warning(db, queue_import, fake_geocoder):
    result = run_partner_import(
        db, queue_import(HEADER + "Europe,Finland,Aalto,Espoo,Good Finnish skills,,,,\n").id, fake_geocoder()
    )

    assert result.warnings == [{
        "row": 1,
        "external_key": "aalto|finland|espoo",
        "message": "Language requirement missing CEFR level; set to UNKNOWN. (Good Finnish skills)",
    }]
    assert _school(db, "Aalto").language_requirements == [
        {"language": "Good Finnish skills", "level": "UNKNOWN"},
    ]


def test_job_is_claimed_once(db, queue_import, fake_geocoder):
    record = queue_import(HEADER + "Europe,Finland,Aalto,Espoo,,,,,\n")

    assert run_partner_import(db, record.id, fake_geocoder()) is not None
    assert run_partner_import(db, record.id, fake_geocoder()) is None
    assert db.query(PartnerSchool).count() == 1


def test_missing_file_fails_job(db, queue_import, fake_geocoder, tmp_path):
    record = queue_import(HEADER)
    (tmp_path / "partners.csv").unlink()

    with pytest.raises(FileNotFoundError):
        run_partner_import(db, record.id, fake_geocoder())

    failed = db.get(PartnerImport, record.id)
    assert failed.status == "failed"
    assert failed.finished_at is not None
    assert "FileNotFoundError" in failed.error_log


def test_unexpected_error_keeps_diagnostics(db, queue_import, fake_geocoder):
    def explode(city, country, name):
        raise RuntimeError("geocoder down")

    record = queue_import(
        HEADER
        + "Europe,,No Country,Espoo,,,,,\n"
        + "Europe,Finland,Aalto,Espoo,,,,,\n"
    )

    with pytest.raises(RuntimeError):
        run_partner_import(db, record.id, fake_geocoder(on_call=explode))

    failed = db.get(PartnerImport, record.id)
    assert failed.status == "failed"
    assert "geocoder down" in failed.error_log
    assert len(failed.row_errors) == 1
    # The rejected row is counted once while running and once more on failure
    assert failed.failed_rows == 2


def test_row_errors_are_bounded(db, queue_import, fake_geocoder):
    rows = "".join(f"School {i},\n" for i in range(250))
    result = run_partner_import(db, queue_import("name,country\n" + rows).id, fake_geocoder())

    assert result.failed_rows == 250
    assert len(result.row_errors) == 200
    assert result.row_errors[-1]["row"] == 200


def test_warnings_are_bounded(db, queue_import, fake_geocoder):
    rows = "".join(f"School {i},Finland,Good Finnish skills\n" for i in range(250))
    result = run_partner_import(db, queue_import("name,country,language\n" + rows).id, fake_geocoder())

    assert result.inserted == 250
    assert len(result.warnings) == 200


def test_long_cells_are_stored_whole(db, queue_import, fake_geocoder):
    name = "Institute of " + "Applied Sciences " * 20
    city = "Llanfair" + "pwll" * 80
    text = f"name,country,city,continent\n{name},{'Republic ' * 20}Land,{city},{'Far ' * 40}\n"

    result = run_partner_import(db, queue_import(text).id, fake_geocoder())

    assert result.summary["inserted"] == 1
    school = db.query(PartnerSchool).one()
    assert school.name == name.strip()
    assert school.city == city
    # Postgres would reject over-long cells in bounded VARCHAR columns
    for column in ("external_key", "name", "continent", "country", "city"):
        assert getattr(PartnerSchool.__table__.c[column].type, "length", None) is None
