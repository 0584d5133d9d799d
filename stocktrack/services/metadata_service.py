import logging
import re

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stocktrack.errors import ConflictError, NotFoundError, ValidationError
from stocktrack.models.metadata import Bin, Color, Pack, ProductCategory, ProductSize

logger = logging.getLogger(__name__)

BIN_NAME_PATTERN = re.compile(r"^[A-Za-z0-9\-_\s]+$")
BIN_NAME_MAX_LENGTH = 50

METADATA_MODELS = {
    "bins": (Bin, "Bin"),
    "sizes": (ProductSize, "Size"),
    "colors": (Color, "Color"),
    "packs": (Pack, "Pack"),
    "categories": (ProductCategory, "Category"),
}

DEFAULT_VALUES = {
    "sizes": ["XS", "S", "M", "L", "XL", "XXL", "FREE SIZE"],
    "colors": ["BLACK", "WHITE", "RED", "BLUE", "GREEN", "YELLOW", "GRAY", "NAVY"],
    "packs": ["PACK OF 1", "PACK OF 2", "PACK OF 3", "PACK OF 5", "PACK OF 10"],
    "categories": ["GENERAL"],
    "bins": ["A1", "A2", "A3", "B1", "B2", "B3", "STORAGE-01", "STORAGE-02"],
}


def _model(kind: str):
    if kind not in METADATA_MODELS:
        raise NotFoundError(f"Unknown metadata type: {kind}")
    return METADATA_MODELS[kind]


def clean_name(kind: str, name: str) -> str:
    name = (name or "").strip().upper()
    if not name:
        raise ValidationError(f"{_model(kind)[1]} name is required")
    if len(name) > BIN_NAME_MAX_LENGTH:
        raise ValidationError(f"{_model(kind)[1]} name cannot exceed {BIN_NAME_MAX_LENGTH} characters")
    if kind == "bins" and not BIN_NAME_PATTERN.match(name):
        raise ValidationError("Bin name can only contain letters, numbers, hyphens, underscores, and spaces")
    return name


def list_active(db: Session, kind: str) -> list:
    model, _ = _model(kind)
    return db.query(model).filter(model.is_active == True).order_by(model.name).all()  # noqa: E712


def get_all_names(db: Session) -> dict[str, list[str]]:
    return {kind: [row.name for row in list_active(db, kind)] for kind in METADATA_MODELS}


def create_entry(db: Session, kind: str, name: str, user_id: str | None = None):
    model, label = _model(kind)
    name = clean_name(kind, name)
    existing = db.query(model).filter(model.name == name).first()
    if existing and existing.is_active:
        raise ConflictError(f"{label} already exists")
    if existing:
        existing.is_active = True
        entry = existing
    else:
        entry = model(name=name, created_by=user_id, is_active=True)
        db.add(entry)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"{label} already exists")
    db.refresh(entry)
    return entry


def update_entry(db: Session, kind: str, entry_id: str, name: str | None = None, is_active: bool | None = None):
    model, label = _model(kind)
    entry = db.query(model).filter(model.id == entry_id).first()
    if not entry:
        raise NotFoundError(f"{label} not found")
    if name is not None:
        entry.name = clean_name(kind, name)
    if is_active is not None:
        entry.is_active = is_active
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"{label} already exists")
    db.refresh(entry)
    return entry


def delete_entry(db: Session, kind: str, entry_id: str) -> None:
    """Soft delete."""
    model, label = _model(kind)
    entry = db.query(model).filter(model.id == entry_id).first()
    if not entry:
        raise NotFoundError(f"{label} not found")
    entry.is_active = False
    db.commit()


def ensure_bin(db: Session, name: str, user_id: str | None = None) -> bool:
    """Look up an active bin by name, creating or reactivating it if needed.

    Returns True when the bin had to be created. Commits nothing itself; a
    concurrent creator of the same name is tolerated.
    """
    name = clean_name("bins", name)
    existing = db.query(Bin).filter(Bin.name == name).first()
    if existing and existing.is_active:
        return False
    try:
        with db.begin_nested():
            if existing:
                existing.is_active = True
            else:
                db.add(Bin(name=name, is_active=True, created_by=user_id))
    except IntegrityError:
        logger.info("Bin %s created concurrently", name)
        return False
    return True


def seed_defaults(db: Session, user_id: str | None = None) -> None:
    for kind, names in DEFAULT_VALUES.items():
        model, _ = _model(kind)
        existing = {row.name for row in db.query(model).all()}
        for name in names:
            if name not in existing:
                db.add(model(name=name, created_by=user_id, is_active=True))
    db.commit()
