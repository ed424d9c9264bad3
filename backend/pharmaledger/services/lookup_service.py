# Overview: Named lookup values offered by the product form.

from ..extensions import db
from ..errors import DomainError
from ..models import Category, Presentation, Concentration
from ..validation import ConflictError, ValidationError, require_text
from .permission_service import Actor, require_capability


LOOKUP_MODELS = {
    "categories": Category,
    "presentations": Presentation,
    "concentrations": Concentration,
}


class LookupValueError(DomainError):
    """Unknown lookup kind or value."""
    pass


def _model_for(kind: str):
    model = LOOKUP_MODELS.get(kind)
    if model is None:
        raise LookupValueError(f"Unknown lookup kind: {kind}", not_found=True)
    return model


def list_values(kind: str) -> list[dict]:
    model = _model_for(kind)
    return [v.to_dict() for v in db.session.query(model).order_by(model.name.asc()).all()]


def add_value(kind: str, name: str, actor: Actor) -> dict:
    require_capability(actor, "MANAGE_PRODUCTS")
    model = _model_for(kind)
    name = require_text("name", name)
    if len(name) > 120:
        raise ValidationError("name exceeds max length 120")

    if db.session.query(model).filter(db.func.lower(model.name) == name.lower()).first():
        raise ConflictError(f"'{name}' already exists")

    value = model(name=name)
    db.session.add(value)
    db.session.commit()
    return value.to_dict()


def delete_value(kind: str, value_id: int, actor: Actor) -> None:
    require_capability(actor, "MANAGE_PRODUCTS")
    model = _model_for(kind)
    value = db.session.query(model).filter_by(id=value_id).first()
    if not value:
        raise LookupValueError(f"{kind} value not found", not_found=True)
    db.session.delete(value)
    db.session.commit()
