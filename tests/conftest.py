"""Test fixtures and utilities."""

import copy
import json
from pathlib import Path

import pytest

from cheque_sync.config import SCOPE_ENV_VARS
from cheque_sync.schemas.cheque import Cheque
from cheque_sync.state_store import CollectionRepository

# PlatformaOFD cheque search result (two data rows, one header row)
SAMPLE_PLATFORMAOFD_HTML = """
<html>
<body>
<table class="table table-cheques_search">
  <thead>
    <tr><th>ФНС</th><th>Оплата</th><th>Признак</th><th>Дата</th><th>ККТ</th>
        <th>Продажа</th><th>Смена</th><th>Сумма</th><th>ЦРПТ</th></tr>
  </thead>
  <tbody>
    <tr id="terminal_cheque_150331958551_id" href="/web/auth/cheques/details/150331958551">
      <td><i class="icon-ok" title="Принят"></i></td>
      <td><i class="icon-card" title="Оплата картой"></i></td>
      <td>Приход</td>
      <td>27.10.2025&nbsp;16:30</td>
      <td><span class="js__trim_long_text">Касса   №1</span><small>0001234567890123</small></td>
      <td>42</td>
      <td>206</td>
      <td>1&nbsp;234,56&nbsp;₽</td>
      <td><i class="icon-ok" title="Не передан"></i></td>
    </tr>
    <tr id="terminal_cheque_150331958552_id" href="/web/auth/cheques/details/150331958552">
      <td><i title="Принят"></i></td>
      <td><i title="Наличными"></i></td>
      <td>Возврат прихода</td>
      <td>27.10.2025 17:05</td>
      <td>Касса №2</td>
      <td>43</td>
      <td>206</td>
      <td>99,90 ₽</td>
      <td></td>
    </tr>
  </tbody>
</table>
</body>
</html>
"""

# One complete Costviser /checks item
SAMPLE_COSTVISER_ITEM = {
    "actions": {"read": True, "edit": False, "destroy": False},
    "id": 987654,
    "code": "CHK-987654",
    "check_type": "sale",
    "created_at": "2025-10-27T06:30:05.000Z",
    "num": 318,
    "quantity": 3,
    "discount": 0,
    "total": 1234.56,
    "error": None,
    "comment": None,
    "shift": 206,
    "fields": {
        "KKT": {
            "fn": "7281440500123456",
            "inn": "2536000000",
            "num": 318,
            "sno": "osn",
            "date": "2025-10-27T16:30:00.000+10:00",
            "flag": "ok",
            "total": 1234.56,
            "kkt_rn": "0001234567890123",
            "Сумма НДС": "205,76",
        }
    },
    "change": 0,
    "total_payments": 1234.56,
    "payment_source": "electron",
    "employee_ids": [11, 12],
    "turn_id": 5501,
    "cashbox_id": 7,
    "cashier_id": 11,
    "device_id": 3301,
    "department_id": 2,
    "card_id": None,
    "check_id": None,
    "card": None,
    "cashier": {"id": 11, "name": "Иванова А."},
    "vat_amount": 205.76,
}


def make_costviser_item(**overrides) -> dict:
    """Copy of the sample item with top-level fields replaced."""
    item = copy.deepcopy(SAMPLE_COSTVISER_ITEM)
    item.update(overrides)
    return item


def make_cheque(**overrides) -> Cheque:
    """Cheque with realistic defaults."""
    values = {
        "id": "150331958551",
        "payment_type": "Оплата картой",
        "sign": "Приход",
        "date": "27.10.2025 16:30",
        "device_name": "Касса №1",
        "sale": "42",
        "shift": "206",
        "amount": "1 234,56 ₽",
        "source": "PlatformaOFD",
    }
    values.update(overrides)
    return Cheque(**values)


@pytest.fixture(autouse=True)
def clean_scope_env(monkeypatch):
    """Keep deployment scope variables of the host out of tests."""
    for var in SCOPE_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def sample_html() -> str:
    """PlatformaOFD cheque search page."""
    return SAMPLE_PLATFORMAOFD_HTML


@pytest.fixture
def sample_costviser_item() -> dict:
    """One Costviser check item (a fresh copy)."""
    return copy.deepcopy(SAMPLE_COSTVISER_ITEM)


@pytest.fixture
def sample_costviser_json(sample_costviser_item) -> str:
    """Costviser /checks response text with one item."""
    return json.dumps({"items": [sample_costviser_item]}, ensure_ascii=False)


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_cheques.db"


@pytest.fixture
def repo(temp_db) -> CollectionRepository:
    """Fresh repository in the "test" scope."""
    return CollectionRepository(temp_db, scope="test")
