import pytest

from stocktrack.errors import ConflictError, NotFoundError, ValidationError
from stocktrack.models.metadata import Bin
from stocktrack.services import metadata_service


def test_create_normalises_and_rejects_duplicates(db_session):
    entry = metadata_service.create_entry(db_session, "bins", " a-01 ")
    assert entry.name == "A-01"

    with pytest.raises(ConflictError):
        metadata_service.create_entry(db_session, "bins", "A-01")


@pytest.mark.parametrize("name", ["", "A/1", "X" * 51])
def test_invalid_bin_names(db_session, name):
    with pytest.raises(ValidationError):
        metadata_service.create_entry(db_session, "bins", name)


def test_soft_delete_and_reactivate(db_session):
    entry = metadata_service.create_entry(db_session, "colors", "red")
    metadata_service.delete_entry(db_session, "colors", entry.id)
    assert metadata_service.list_active(db_session, "colors") == []

    again = metadata_service.create_entry(db_session, "colors", "RED")
    assert again.id == entry.id
    assert again.is_active


def test_unknown_kind(db_session):
    with pytest.raises(NotFoundError):
        metadata_service.list_active(db_session, "flavours")


def test_ensure_bin(db_session):
    assert metadata_service.ensure_bin(db_session, "z9") is True
    assert metadata_service.ensure_bin(db_session, "Z9") is False
    db_session.commit()
    assert db_session.query(Bin).count() == 1


def test_all_names(db_session):
    metadata_service.seed_defaults(db_session)
    names = metadata_service.get_all_names(db_session)
    assert set(names) == {"bins", "sizes", "colors", "packs", "categories"}
    assert "A1" in names["bins"]
