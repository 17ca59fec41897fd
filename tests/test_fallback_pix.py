# tests/test_fallback_pix.py
from datetime import datetime, timedelta
from decimal import Decimal
from urllib.parse import unquote

from vitrine_app.services import fallback_pix


NOW = datetime(2025, 3, 10, 12, 0, 0)


def test_format_amount_always_two_decimals():
    assert fallback_pix.format_amount(Decimal("99.9")) == "99.90"
    assert fallback_pix.format_amount("10") == "10.00"
    assert fallback_pix.format_amount(Decimal("0.005")) == "0.01"


def test_pix_code_has_emv_shape_and_amount():
    code = fallback_pix.build_pix_code(Decimal("99.90"), "abc123")
    assert code.startswith("000201")
    assert "BR.GOV.BCB.PIX" in code
    assert "540599.90" in code          # tag 54, tamanho 05, valor
    assert "5802BR" in code
    assert fallback_pix.DEMO_MERCHANT in code
    assert code.endswith("6304")


def test_pix_code_is_deterministic_per_correlation():
    a = fallback_pix.build_pix_code(Decimal("50.00"), "corr-1")
    b = fallback_pix.build_pix_code(Decimal("50.00"), "corr-1")
    c = fallback_pix.build_pix_code(Decimal("50.00"), "corr-2")
    assert a == b
    assert a != c


def test_qr_url_encodes_pix_code():
    code = fallback_pix.build_pix_code(Decimal("12.34"), "x")
    url = fallback_pix.build_qr_code_url(code)
    assert url.startswith("https://api.qrserver.com/v1/create-qr-code/?size=300x300&data=")
    data = url.split("data=", 1)[1]
    assert " " not in data
    assert unquote(data) == code


def test_qr_url_respects_custom_template():
    url = fallback_pix.build_qr_code_url("ABC", "https://qr.local/img?d={data}")
    assert url == "https://qr.local/img?d=ABC"


def test_generate_sets_expiry_window():
    pix = fallback_pix.generate(Decimal("99.90"), "corr", now=NOW)
    assert pix.expires_at == NOW + timedelta(minutes=30)
    assert "99.90" in pix.pix_code
    assert pix.qr_code_url.endswith(fallback_pix.build_qr_code_url(pix.pix_code).split("data=", 1)[1])

    short = fallback_pix.generate(Decimal("1.00"), "corr", now=NOW, minutes=5)
    assert short.expires_at == NOW + timedelta(minutes=5)
