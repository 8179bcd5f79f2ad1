import pytest

from app.vietqr import bank_bin, build_qr_content, build_qr_url, crc16_ccitt, tlv


def test_crc16_ccitt_check_value():
    assert crc16_ccitt("123456789") == "29B1"


def test_tlv_length_prefix():
    assert tlv("00", "01") == "000201"
    assert tlv("62", "x" * 12) == "6212" + "x" * 12
    with pytest.raises(ValueError):
        tlv("08", "x" * 100)


def test_bank_bin_lookup():
    assert bank_bin("MB") == "970422"
    assert bank_bin("vcb") == "970436"
    assert bank_bin("970418") == "970418"


def test_qr_content_fields():
    payload = build_qr_content("MB", "0123456789", 150000, "RBABCDE12345")

    assert payload.startswith("000201010212")
    assert "0010A000000727" in payload
    assert "0006970422" + "01100123456789" in payload
    assert "0208QRIBFTTA" in payload
    assert "5303704" in payload
    assert "5406150000" in payload
    assert "5802VN" in payload
    assert "62160812RBABCDE12345" in payload


def test_qr_content_checksum_trailer():
    payload = build_qr_content("MB", "0123456789", 150000, "RBABCDE12345")

    body, crc = payload[:-4], payload[-4:]
    assert body.endswith("6304")
    assert crc == crc16_ccitt(body)


def test_qr_url():
    url = build_qr_url("MB", "0123456789", "REETRO BARBERSHOP", 150000, "RBABCDE12345")

    assert url == (
        "https://img.vietqr.io/image/MB-0123456789-compact2.png"
        "?amount=150000&addInfo=RBABCDE12345&accountName=REETRO%20BARBERSHOP"
    )
