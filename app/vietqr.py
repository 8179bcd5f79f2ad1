# app/vietqr.py
"""
VietQR bank-transfer descriptors.

Two renderings of the same transfer are produced: an image URL served by
img.vietqr.io, and the raw EMVCo payload a client can draw locally.
"""

from urllib.parse import quote

from app.config import VIETQR_IMAGE_URL, VIETQR_TEMPLATE

VIETQR_GUID = "A000000727"
TRANSFER_SERVICE_CODE = "QRIBFTTA"  # transfer to account
CURRENCY_VND = "704"
COUNTRY_CODE = "VN"

# Short bank code -> Bank Identification Number
BANK_BINS = {
    "VCB": "970436",   # Vietcombank
    "TCB": "970407",   # Techcombank
    "MB": "970422",    # MB Bank
    "ACB": "970416",
    "VPB": "970432",   # VPBank
    "TPB": "970423",   # TPBank
    "STB": "970403",   # Sacombank
    "VIB": "970441",
    "SHB": "970443",
    "MSB": "970426",
    "HDB": "970437",   # HDBank
    "OCB": "970448",
    "BIDV": "970418",
    "CTG": "970415",   # VietinBank
    "AGR": "970405",   # Agribank
    "ABB": "970425",   # ABBank
    "BAB": "970409",   # BacABank
    "VAB": "970427",   # VietABank
    "NAB": "970428",   # NamABank
    "SCB": "970429",
    "PVCB": "970412",  # PVcomBank
    "VRB": "970421",
    "SEAB": "970440",  # SeABank
    "CIMB": "422589",
    "EIB": "970431",   # Eximbank
    "KLB": "970452",   # KienLongBank
    "LPB": "970449",   # LPBank
}


def bank_bin(bank_code: str) -> str:
    """BIN for a short bank code; unknown codes (already a BIN) pass through."""
    return BANK_BINS.get(bank_code.upper(), bank_code)


def tlv(tag: str, value: str) -> str:
    if len(value) > 99:
        raise ValueError(f"EMVCo field {tag} is longer than 99 characters")
    return f"{tag}{len(value):02d}{value}"


def crc16_ccitt(data: str) -> str:
    """CRC-16/CCITT-FALSE (poly 0x1021, init 0xFFFF) as 4 uppercase hex digits."""
    crc = 0xFFFF
    for byte in data.encode("utf-8"):
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return f"{crc:04X}"


def build_qr_content(bank_code: str, account_number: str, amount: int, description: str) -> str:
    beneficiary = tlv("00", bank_bin(bank_code)) + tlv("01", account_number)
    merchant_info = (
        tlv("00", VIETQR_GUID)
        + tlv("01", beneficiary)
        + tlv("02", TRANSFER_SERVICE_CODE)
    )

    payload = "".join([
        tlv("00", "01"),          # payload format indicator
        tlv("01", "12"),          # dynamic QR
        tlv("38", merchant_info),
        tlv("53", CURRENCY_VND),
        tlv("54", str(int(amount))),
        tlv("58", COUNTRY_CODE),
        tlv("62", tlv("08", description)),
    ])
    payload += "6304"
    return payload + crc16_ccitt(payload)


def build_qr_url(
    bank_code: str,
    account_number: str,
    account_name: str,
    amount: int,
    description: str,
    template: str = VIETQR_TEMPLATE,
) -> str:
    return (
        f"{VIETQR_IMAGE_URL}/{bank_code}-{account_number}-{template}.png"
        f"?amount={int(amount)}"
        f"&addInfo={quote(description, safe='')}"
        f"&accountName={quote(account_name, safe='')}"
    )
