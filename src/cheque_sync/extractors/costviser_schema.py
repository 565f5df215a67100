"""
Costviser check listing schema.

Structural validation of the /checks JSON payload. Every field is checked
recursively; a payload either matches completely (SchemaMatch with typed
dataclasses) or is rejected with the list of offending paths
(SchemaMismatch), e.g. "items[0].fields.KKT.date: expected string, got missing".
"""

import math
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

# Russian key carrying the VAT amount label inside fields.KKT
KKT_VAT_KEY = "Сумма НДС"

_MISSING = object()


@dataclass
class Actions:
    read: bool
    edit: bool
    destroy: bool


@dataclass
class Cashier:
    id: float
    name: str


@dataclass
class KKT:
    """Fiscal register block (fields.KKT)."""

    fn: str
    inn: str
    num: float
    sno: str
    date: str  # ISO 8601 with offset, e.g. 2025-10-27T16:30:00.000+10:00
    flag: str
    total: float
    kkt_rn: str
    vat_amount: str  # "Сумма НДС"


@dataclass
class CheckItem:
    """One check in the listing."""

    actions: Actions
    id: float
    code: str
    check_type: str  # sale, sale_return, buy, return_buy
    created_at: str
    num: float
    quantity: float
    discount: float
    total: float
    error: str | None
    comment: str | None
    shift: float
    kkt: KKT
    change: float
    total_payments: float
    payment_source: str  # electron, cash, combined, cashback
    employee_ids: list[float]
    turn_id: float
    cashbox_id: float
    cashier_id: float
    device_id: float
    department_id: float
    card_id: float | None
    check_id: float | None
    card: dict[str, Any] | None
    cashier: Cashier
    vat_amount: float


@dataclass
class CostviserChecksResponse:
    items: list[CheckItem] = field(default_factory=list)


@dataclass
class SchemaMatch:
    """Payload matched the schema."""

    value: CostviserChecksResponse


@dataclass
class SchemaMismatch:
    """Payload was rejected."""

    errors: list[str]

    @property
    def summary(self) -> str:
        head = "; ".join(self.errors[:3])
        more = len(self.errors) - 3
        return f"{head} (+{more} more)" if more > 0 else head


# Primitive guards


def _is_object(value: Any) -> bool:
    return isinstance(value, dict)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _is_string(value: Any) -> bool:
    return isinstance(value, str)


def _is_bool(value: Any) -> bool:
    return isinstance(value, bool)


def _is_nullable_string(value: Any) -> bool:
    return value is None or _is_string(value)


def _is_nullable_number(value: Any) -> bool:
    return value is None or _is_number(value)


def _is_nullable_object(value: Any) -> bool:
    return value is None or _is_object(value)


Guard = Callable[[Any], bool]

_EXPECTED: dict[Guard, str] = {
    _is_object: "object",
    _is_number: "finite number",
    _is_string: "string",
    _is_bool: "boolean",
    _is_nullable_string: "string or null",
    _is_nullable_number: "finite number or null",
    _is_nullable_object: "object or null",
}

ACTIONS_FIELDS: dict[str, Guard] = {
    "read": _is_bool,
    "edit": _is_bool,
    "destroy": _is_bool,
}

CASHIER_FIELDS: dict[str, Guard] = {
    "id": _is_number,
    "name": _is_string,
}

KKT_FIELDS: dict[str, Guard] = {
    "fn": _is_string,
    "inn": _is_string,
    "num": _is_number,
    "sno": _is_string,
    "date": _is_string,
    "flag": _is_string,
    "total": _is_number,
    "kkt_rn": _is_string,
    KKT_VAT_KEY: _is_string,
}

# Scalar fields of a check item; nested blocks are validated separately
CHECK_ITEM_FIELDS: dict[str, Guard] = {
    "id": _is_number,
    "code": _is_string,
    "check_type": _is_string,
    "created_at": _is_string,
    "num": _is_number,
    "quantity": _is_number,
    "discount": _is_number,
    "total": _is_number,
    "error": _is_nullable_string,
    "comment": _is_nullable_string,
    "shift": _is_number,
    "change": _is_number,
    "total_payments": _is_number,
    "payment_source": _is_string,
    "turn_id": _is_number,
    "cashbox_id": _is_number,
    "cashier_id": _is_number,
    "device_id": _is_number,
    "department_id": _is_number,
    "card_id": _is_nullable_number,
    "check_id": _is_nullable_number,
    "card": _is_nullable_object,
    "vat_amount": _is_number,
}


def _describe(value: Any) -> str:
    if value is _MISSING:
        return "missing"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number" if math.isfinite(value) else "non-finite number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _check(value: Any, guard: Guard, path: str, errors: list[str]) -> bool:
    if guard(value):
        return True
    errors.append(f"{path}: expected {_EXPECTED[guard]}, got {_describe(value)}")
    return False


def _check_fields(obj: dict, guards: dict[str, Guard], path: str, errors: list[str]) -> None:
    for name, guard in guards.items():
        _check(obj.get(name, _MISSING), guard, f"{path}.{name}", errors)


def _check_object(value: Any, guards: dict[str, Guard], path: str, errors: list[str]) -> None:
    if _check(value, _is_object, path, errors):
        _check_fields(value, guards, path, errors)


def _validate_item(item: Any, path: str, errors: list[str]) -> None:
    if not _check(item, _is_object, path, errors):
        return

    _check_object(item.get("actions", _MISSING), ACTIONS_FIELDS, f"{path}.actions", errors)
    _check_fields(item, CHECK_ITEM_FIELDS, path, errors)

    fields_block = item.get("fields", _MISSING)
    if _check(fields_block, _is_object, f"{path}.fields", errors):
        _check_object(
            fields_block.get("KKT", _MISSING), KKT_FIELDS, f"{path}.fields.KKT", errors
        )

    employee_ids = item.get("employee_ids", _MISSING)
    if isinstance(employee_ids, list):
        for index, employee_id in enumerate(employee_ids):
            _check(employee_id, _is_number, f"{path}.employee_ids[{index}]", errors)
    else:
        errors.append(f"{path}.employee_ids: expected array, got {_describe(employee_ids)}")

    _check_object(item.get("cashier", _MISSING), CASHIER_FIELDS, f"{path}.cashier", errors)


def _build_item(item: dict) -> CheckItem:
    kkt = item["fields"]["KKT"]
    return CheckItem(
        actions=Actions(**{name: item["actions"][name] for name in ACTIONS_FIELDS}),
        id=item["id"],
        code=item["code"],
        check_type=item["check_type"],
        created_at=item["created_at"],
        num=item["num"],
        quantity=item["quantity"],
        discount=item["discount"],
        total=item["total"],
        error=item["error"],
        comment=item["comment"],
        shift=item["shift"],
        kkt=KKT(
            fn=kkt["fn"],
            inn=kkt["inn"],
            num=kkt["num"],
            sno=kkt["sno"],
            date=kkt["date"],
            flag=kkt["flag"],
            total=kkt["total"],
            kkt_rn=kkt["kkt_rn"],
            vat_amount=kkt[KKT_VAT_KEY],
        ),
        change=item["change"],
        total_payments=item["total_payments"],
        payment_source=item["payment_source"],
        employee_ids=list(item["employee_ids"]),
        turn_id=item["turn_id"],
        cashbox_id=item["cashbox_id"],
        cashier_id=item["cashier_id"],
        device_id=item["device_id"],
        department_id=item["department_id"],
        card_id=item["card_id"],
        check_id=item["check_id"],
        card=item["card"],
        cashier=Cashier(id=item["cashier"]["id"], name=item["cashier"]["name"]),
        vat_amount=item["vat_amount"],
    )


def validate_checks_response(value: Any) -> SchemaMatch | SchemaMismatch:
    """
    Validate a parsed Costviser /checks payload.

    Returns:
        SchemaMatch with typed items, or SchemaMismatch listing every
        offending path
    """
    errors: list[str] = []

    if not _check(value, _is_object, "$", errors):
        return SchemaMismatch(errors)

    items = value.get("items", _MISSING)
    if not isinstance(items, list):
        errors.append(f"items: expected array, got {_describe(items)}")
        return SchemaMismatch(errors)

    for index, item in enumerate(items):
        _validate_item(item, f"items[{index}]", errors)

    if errors:
        return SchemaMismatch(errors)

    return SchemaMatch(CostviserChecksResponse(items=[_build_item(item) for item in items]))


def is_checks_response(value: Any) -> bool:
    """Check whether a parsed payload is a Costviser check listing."""
    return isinstance(validate_checks_response(value), SchemaMatch)
