from hlrcheck.app.services.batch_processor import create_batch
from hlrcheck.scripts import export_batch as script


def test_export_after_inline_resume(db, user, fake_hlr, tmp_path, monkeypatch):
    monkeypatch.setattr(script, "init_db", lambda: None)
    batch, _ = create_batch(db, user, "hlr", ["+4915112345671", "+4915112345670"])
    out = tmp_path / "batch.csv"

    code = script.main([str(batch.id), "--resume", "--fields", "phone_number,valid_number",
                        "--filter", "valid", "-o", str(out)])

    assert code == 0
    lines = out.read_bytes().decode("utf-8-sig").splitlines()
    assert lines == ["Phone Number,Valid", "+4915112345671,valid"]


def test_missing_batch_returns_error(monkeypatch, tmp_path):
    monkeypatch.setattr(script, "init_db", lambda: None)
    assert script.main(["999", "-o", str(tmp_path / "x.csv")]) == 1


def test_bad_fields_return_error(db, user, monkeypatch, tmp_path):
    monkeypatch.setattr(script, "init_db", lambda: None)
    batch, _ = create_batch(db, user, "email", ["a@example.com"])
    assert script.main([str(batch.id), "--kind", "email", "--fields", "phone_number", "-o", str(tmp_path / "x.csv")]) == 1
