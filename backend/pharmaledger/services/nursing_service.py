"""
Nursing Service

Billed nursing services are cash income: each record writes an "income"
entry ("Servicio de enfermería: type - patient") and raises total_income of
the branch's open session. Updates touch metadata only; the cost is fixed
once billed.
"""

import logging

from ..extensions import db
from ..errors import DomainError
from ..models import Branch, NursingRecord
from ..models.expenses import NURSING_SERVICE_TYPES
from ..models.registers import ENTRY_TYPE_INCOME
from ..validation import ModelValidationPolicy, ValidationError, require_text, validate_amount_cents, validate_payload
from pharmaledger.time_utils import utcnow
from .concurrency import bulk_delete, lock_for_update, run_with_retry
from .permission_service import Actor, require_capability, resolve_branch_id
from .register_service import LEDGER_KIND_INCOME, record_movement
from . import live_query_service


logger = logging.getLogger("pharmaledger.nursing")

NURSING_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"patient_name", "notes", "service_type"},
)


class NursingError(DomainError):
    """Raised for nursing record errors."""
    pass


def _validate_service_type(service_type: str) -> str:
    if service_type not in NURSING_SERVICE_TYPES:
        raise ValidationError(f"service_type must be one of: {', '.join(NURSING_SERVICE_TYPES)}")
    return service_type


def create_nursing_record(
    branch_id: int | None,
    service_type: str,
    patient_name: str,
    cost_cents: int,
    actor: Actor,
    notes: str | None = None,
) -> NursingRecord:
    service_type = _validate_service_type(require_text("service_type", service_type))
    patient_name = require_text("patient_name", patient_name)
    cost = validate_amount_cents("cost_cents", cost_cents)
    branch_id = resolve_branch_id(actor, branch_id)
    require_capability(actor, "RECORD_NURSING_SERVICE", branch_id)

    def _op():
        if not db.session.query(Branch).filter_by(id=branch_id).first():
            raise NursingError("Branch not found", not_found=True)

        record = NursingRecord(
            branch_id=branch_id,
            service_type=service_type,
            patient_name=patient_name,
            notes=notes.strip() if notes else None,
            cost_cents=cost,
            user_uid=actor.uid,
            user_name=actor.display_name,
            date=utcnow(),
        )
        db.session.add(record)
        db.session.flush()

        record_movement(
            branch_id,
            kind=LEDGER_KIND_INCOME,
            entry_type=ENTRY_TYPE_INCOME,
            amount_cents=cost,
            concept=f"Servicio de enfermería: {service_type} - {patient_name}",
            actor=actor,
            nursing_record_id=record.id,
        )

        db.session.commit()
        return record

    record = run_with_retry(_op)
    logger.info("Nursing record %s at branch %s: %s cents", record.id, branch_id, cost)
    return record


def update_nursing_record(record_id: int, patch: dict, actor: Actor) -> NursingRecord:
    """Patient, notes and service type only."""
    if isinstance(patch, dict) and "cost_cents" in patch:
        raise ValidationError("cost_cents cannot change after billing; delete and record again")
    clean = validate_payload(model=NursingRecord, payload=patch, policy=NURSING_UPDATE_POLICY, partial=True)
    if "service_type" in clean:
        _validate_service_type(clean["service_type"])

    def _op():
        record = lock_for_update(db.session.query(NursingRecord).filter_by(id=record_id)).first()
        if not record:
            raise NursingError("Nursing record not found", not_found=True)

        require_capability(actor, "RECORD_NURSING_SERVICE", record.branch_id)

        for key, value in clean.items():
            setattr(record, key, value)

        db.session.commit()
        return record

    return run_with_retry(_op)


def delete_nursing_record(record_id: int, actor: Actor) -> None:
    def _op():
        record = lock_for_update(db.session.query(NursingRecord).filter_by(id=record_id)).first()
        if not record:
            raise NursingError("Nursing record not found", not_found=True)

        require_capability(actor, "DELETE_NURSING_RECORD", record.branch_id)

        record_movement(
            record.branch_id,
            kind=LEDGER_KIND_INCOME,
            entry_type=ENTRY_TYPE_INCOME,
            amount_cents=-record.cost_cents,
            concept=f"Anulación Servicio de enfermería: {record.service_type} - {record.patient_name}",
            actor=actor,
            nursing_record_id=record.id,
        )
        db.session.delete(record)
        db.session.commit()

    run_with_retry(_op)
    logger.info("Nursing record %s deleted by %s", record_id, actor.uid)


def delete_nursing_records(record_ids: list[int], actor: Actor):
    return bulk_delete(record_ids, lambda record_id: delete_nursing_record(record_id, actor), label="nursing record")


def _records_query(session, branch_id=None, start=None, end=None, service_type=None):
    query = session.query(NursingRecord)
    if branch_id is not None:
        query = query.filter(NursingRecord.branch_id == branch_id)
    if start is not None:
        query = query.filter(NursingRecord.date >= start)
    if end is not None:
        query = query.filter(NursingRecord.date <= end)
    if service_type:
        query = query.filter(NursingRecord.service_type == service_type)
    return query.order_by(NursingRecord.date.desc(), NursingRecord.id.desc())


def list_nursing_records(branch_id=None, start=None, end=None, service_type=None) -> list[NursingRecord]:
    return _records_query(db.session, branch_id, start, end, service_type).all()


def on_nursing_records_update(callback, branch_id: int | None = None):
    def _fetch(session):
        return [r.to_dict() for r in _records_query(session, branch_id).all()]

    return live_query_service.subscribe(("nursing_records",), _fetch, callback)
