"""
HTTP API

JSON endpoints under /api for the ledger. Every response uses one
envelope:

    {"success": true, "data": ...}
    {"success": false, "error": "...", "details": [...]}

Views are async (Flask's async support) and call the orchestrator flows
stored on the app by create_app.
"""

import json
from datetime import date
from typing import Optional
from uuid import UUID

import structlog
from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from family_ledger.models.categories import TransactionKind
from family_ledger.models.ledger import RecurringRuleCreate, TransactionCreate
from family_ledger.orchestrator import (
    AppComponents,
    EntryNotFoundError,
    FamilyFullError,
)
from family_ledger.queries import QueryExecutionError
from family_ledger.recurring import RecurringProcessingError
from family_ledger.services.storage import StorageError
from family_ledger.utils.dates import parse_month
from family_ledger.validation import EntryValidationError


logger = structlog.get_logger(__name__)

bp = Blueprint("api", __name__, url_prefix="/api")

EXTENSION_KEY = "family_ledger"


class BadRequestError(Exception):
    """Missing or malformed request parameter."""
    pass


# =============================================================================
# HELPERS
# =============================================================================

def _components() -> AppComponents:
    return current_app.extensions[EXTENSION_KEY]


def _ok(data, status: int = 200):
    return jsonify({"success": True, "data": data}), status


def _fail(error: str, status: int, details: Optional[list] = None):
    body = {"success": False, "error": error}
    if details:
        body["details"] = details
    return jsonify(body), status


def _dump(model) -> dict:
    return model.model_dump(by_alias=True, mode="json")


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise BadRequestError("Request body must be a JSON object")
    return body


def _family_codes() -> list[str]:
    """familyCodes=a,b or familyCode=a; at least one is required."""
    raw = request.args.get("familyCodes") or request.args.get("familyCode") or ""
    codes = [code.strip() for code in raw.split(",") if code.strip()]
    if not codes:
        raise BadRequestError("familyCode or familyCodes is required")
    return codes


def _date_arg(name: str) -> Optional[date]:
    value = request.args.get(name)
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise BadRequestError(f"{name} must be an ISO date (YYYY-MM-DD)")


def _uuid_arg(name: str = "id") -> UUID:
    value = request.args.get(name)
    if not value:
        raise BadRequestError(f"{name} is required")
    try:
        return UUID(value)
    except ValueError:
        raise BadRequestError(f"{name} must be a UUID")


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@bp.errorhandler(BadRequestError)
def _handle_bad_request(e: BadRequestError):
    return _fail(str(e), 400)


@bp.errorhandler(ValidationError)
def _handle_schema_error(e: ValidationError):
    details = json.loads(e.json(include_url=False))
    return _fail("Invalid request", 400, details)


@bp.errorhandler(EntryValidationError)
def _handle_entry_error(e: EntryValidationError):
    return _fail(str(e), 400, e.result.to_details())


@bp.errorhandler(EntryNotFoundError)
def _handle_not_found(e: EntryNotFoundError):
    return _fail(str(e), 404)


@bp.errorhandler(FamilyFullError)
def _handle_family_full(e: FamilyFullError):
    return _fail(str(e), 409)


@bp.errorhandler(RecurringProcessingError)
@bp.errorhandler(QueryExecutionError)
@bp.errorhandler(StorageError)
def _handle_server_error(e: Exception):
    logger.error("request_failed", path=request.path, error=str(e), error_type=type(e).__name__)
    return _fail(str(e), 500)


# =============================================================================
# FAMILY
# =============================================================================

@bp.post("/auth")
async def auth():
    """Join a family (creating it on first use)."""
    body = _json_body()
    family_code = body.get("familyCode")
    user_name = body.get("userName")
    if not family_code or not user_name:
        raise BadRequestError("familyCode and userName are required")

    family = await _components().family_flow.join(str(family_code), str(user_name))
    return _ok({
        "user": {"name": str(user_name).strip(), "familyCode": family.code},
        "family": _dump(family),
    })


# =============================================================================
# SPENDING / INCOME
# =============================================================================

async def _list_entries(kind: TransactionKind):
    transactions = await _components().ledger_flow.list_entries(
        kind,
        family_codes=_family_codes(),
        date_from=_date_arg("from"),
        date_to=_date_arg("to"),
    )
    return _ok([_dump(t) for t in transactions])


async def _create_entry(kind: TransactionKind):
    payload = TransactionCreate.model_validate(_json_body())
    transaction = await _components().ledger_flow.record(kind, payload)
    return _ok(_dump(transaction), 201)


async def _delete_entry(kind: TransactionKind):
    transaction_id = _uuid_arg()
    await _components().ledger_flow.delete(kind, transaction_id)
    return _ok({"id": str(transaction_id)})


@bp.get("/spending")
async def list_spending():
    return await _list_entries(TransactionKind.SPENDING)


@bp.post("/spending")
async def create_spending():
    return await _create_entry(TransactionKind.SPENDING)


@bp.delete("/spending")
async def delete_spending():
    return await _delete_entry(TransactionKind.SPENDING)


@bp.get("/income")
async def list_income():
    return await _list_entries(TransactionKind.INCOME)


@bp.post("/income")
async def create_income():
    return await _create_entry(TransactionKind.INCOME)


@bp.delete("/income")
async def delete_income():
    return await _delete_entry(TransactionKind.INCOME)


# =============================================================================
# RECURRING
# =============================================================================

@bp.get("/recurring-rules")
async def list_recurring_rules():
    family_code = request.args.get("familyCode")
    if not family_code:
        raise BadRequestError("familyCode is required")
    rules = await _components().recurring_flow.list_rules(family_code.strip())
    return _ok([_dump(rule) for rule in rules])


@bp.post("/recurring-rules")
async def create_recurring_rule():
    payload = RecurringRuleCreate.model_validate(_json_body())
    rule = await _components().recurring_flow.create_rule(payload)
    return _ok(_dump(rule), 201)


@bp.delete("/recurring-rules")
async def delete_recurring_rule():
    rule_id = _uuid_arg()
    await _components().recurring_flow.deactivate(rule_id)
    return _ok({"id": str(rule_id)})


@bp.post("/recurring-process")
async def process_recurring():
    """Run the materializer now. Safe to call any number of times."""
    result = await _components().recurring_flow.process()
    return _ok({
        "processed": result.processed,
        "skipped": result.skipped,
        "failed": result.failed,
        "runDate": result.run_date.isoformat(),
    })


# =============================================================================
# DASHBOARD
# =============================================================================

@bp.get("/summary")
async def summary():
    """Monthly totals; month defaults to the current month."""
    components = _components()
    month_arg = request.args.get("month")
    if month_arg:
        try:
            year, month = parse_month(month_arg)
        except ValueError as e:
            raise BadRequestError(str(e))
    else:
        today = components.today()
        year, month = today.year, today.month

    result = await components.query_flow.monthly_summary(_family_codes(), year, month)
    data = _dump(result)
    data["balance"] = result.balance
    return _ok(data)
