from typing import Optional

from fastapi import Security
from fastapi.security.api_key import APIKeyHeader

signature_header = APIKeyHeader(name="X-Signature", auto_error=False)


def get_signature_header(signature: Optional[str] = Security(signature_header)) -> Optional[str]:
    """
    Signature HMAC optionnelle du corps brut. La vérification elle-même est
    faite par le relais (elle dépend d'UPLOAD_SECRET).
    """
    return signature or None
