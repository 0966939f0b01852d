import base64
import binascii
from typing import Tuple


def decode_data_url(data_url: str) -> Tuple[str, bytes]:
    """
    "data:image/png;base64,AAAA" → ("image/png", b"...").
    Lève ValueError si la chaîne n'est pas une data URL base64 valide.
    """
    if not data_url or not data_url.startswith("data:"):
        raise ValueError("dataUrl doit commencer par 'data:'")

    comma = data_url.find(",")
    if comma < 0:
        raise ValueError("dataUrl sans séparateur ','")

    meta = data_url[5:comma]  # ex: "image/png;base64"
    parts = meta.split(";")
    if "base64" not in parts[1:]:
        raise ValueError("seules les data URL base64 sont acceptées")

    try:
        data = base64.b64decode(data_url[comma + 1:], validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"base64 invalide: {e}") from e

    mime = parts[0] or "application/octet-stream"
    return mime, data


def encode_data_url(data: bytes, mime_type: str = "image/png") -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"
