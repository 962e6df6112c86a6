import base64
import os


def config_get_hex_str(value: str, name: str = "") -> str:
    """Returns `value` if it is a hex string, otherwise the hex encoded
    contents of the file `value` points to."""
    if value is None or len(value) == 0:
        raise ValueError(f"{name} cannot be null or empty")

    if _is_hex(value):
        return value

    if not os.path.exists(value):
        raise ValueError(f"{name} is not a valid path")

    with open(value, "rb") as f:
        m = f.read()
        m = m.hex()
        return m


def _is_hex(s):
    try:
        int(s, 16)
        return True
    except ValueError:
        return False


def hex_to_b64(value: str) -> str:
    """Hex string to standard base64, the encoding LND REST expects for bytes"""
    return bytes_to_b64(bytes.fromhex(value))


def bytes_to_b64(value: bytes) -> str:
    return base64.b64encode(value).decode()


def msat_to_sat_ceil(msat: int) -> int:
    return (msat + 999) // 1000
