from datetime import datetime
from types import SimpleNamespace

import pytest

from hlrcheck.app.services import export_service


def _row(**kw):
    base = {"phone_number": "+4915112345671", "valid_number": "valid", "status": "success",
            "health_score": 90, "is_valid": True, "created_at": datetime(2026, 1, 2, 3, 4, 5)}
    base.update(kw)
    return SimpleNamespace(**base)


def test_resolve_fields():
    assert export_service.resolve_fields("hlr", preset="basic")[0] == "phone_number"
    assert export_service.resolve_fields("email") == export_service.field_keys("email")
    assert export_service.resolve_fields("hlr", ["gsm_code", "gsm_code"], preset="basic") == ["gsm_code"]
    with pytest.raises(ValueError):
        export_service.resolve_fields("hlr", ["email"])
    with pytest.raises(ValueError):
        export_service.resolve_fields("hlr", preset="huge")


def test_filter_results():
    rows = [_row(), _row(phone_number="+4915112345670", is_valid=False)]
    assert len(export_service.filter_results(rows, "valid")) == 1
    assert export_service.filter_results(rows, "invalid")[0].phone_number == "+4915112345670"
    with pytest.raises(ValueError):
        export_service.filter_results(rows, "odd")


def test_export_rows_format_values():
    rows = export_service.export_rows(
        [_row(is_free=True)], ["phone_number", "health_label", "created_at"], "hlr",
    )
    assert rows[0] == ["Phone Number", "Health", "Checked At"]
    assert rows[1] == ["+4915112345671", "Excellent", "2026-01-02 03:04:05"]


def test_bool_values_render_as_yes_no():
    rows = export_service.export_rows([SimpleNamespace(email="a@example.com", is_free=True, is_role=False)],
                                      ["email", "is_free", "is_role"], "email")
    assert rows[1] == ["a@example.com", "yes", "no"]


def test_csv_has_bom_and_blank_nones():
    out = export_service.render([_row(gsm_code=None)], "hlr", ["phone_number", "gsm_code"], "csv")
    assert out.startswith("﻿".encode("utf-8"))
    assert out.decode("utf-8-sig").splitlines()[1] == "+4915112345671,"


def test_unknown_format():
    with pytest.raises(ValueError):
        export_service.render([], "hlr", ["phone_number"], "pdf")
