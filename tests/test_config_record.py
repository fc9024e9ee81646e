from sqlalchemy import create_engine

from cdsctf.entity import configs, create_schema, insert_row
from cdsctf.transfer.config import ConfigRecord


def test_default_record():
    record = ConfigRecord()
    assert (record.id, record.value) == (0, None)


def test_from_mapping():
    record = ConfigRecord.from_row({"id": 4, "value": {"site": {"title": "x"}}})
    assert record == ConfigRecord(id=4, value={"site": {"title": "x"}})


def test_from_stored_row():
    engine = create_engine("sqlite://")
    create_schema(engine)
    value = {"auth": {"jwt": {"expiration": 60}}}
    with engine.begin() as conn:
        row = insert_row(conn, configs, {"value": value})
    record = ConfigRecord.from_row(row)
    assert record.value == value
    assert record.id == row["id"]