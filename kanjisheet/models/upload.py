from typing import Optional
from pydantic import BaseModel, Field


class UploadJsonRequest(BaseModel):
    filename: str = Field("", description="Nom du fichier de destination")
    mimeType: str = Field("image/png", description="Type MIME du contenu")
    dataUrl: str = Field("", description="data:<mime>;base64,<contenu>")
    signature: Optional[str] = Field(None, description="HMAC-SHA256 base64 du filename")


class UploadResponse(BaseModel):
    ok: bool
    id: Optional[str] = None
    name: Optional[str] = None
    webViewLink: Optional[str] = None
    error: Optional[str] = None
    detail: Optional[str] = None
