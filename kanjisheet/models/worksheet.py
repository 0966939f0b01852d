from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator


class DocumentKind(str, Enum):
    words = "words"
    questions = "questions"


class Question(BaseModel):
    fullText: str = Field("", description="Phrase complète (écrite verticalement)")
    targetKanji: str = Field("", description="Kanji à remplacer par des cases")
    yomigana: str = Field("", description="Lecture affichée à droite des cases")
    questionType: str = Field("", description="Type libre (non utilisé au rendu)")

    @field_validator("fullText", "targetKanji", "yomigana", "questionType", mode="before")
    @classmethod
    def _coerce_str(cls, v: Any) -> str:
        # Même tolérance que l'import JS : null / absent → ""
        if v is None:
            return ""
        return str(v)


class WordListDocument(BaseModel):
    version: int = 1
    words: List[str]
    cols: int = 2


class DocumentSummary(BaseModel):
    kind: DocumentKind
    count: int
    words: List[str]
    cols: int
    filename: str = ""


class FieldsUpdate(BaseModel):
    """
    Équivalent des champs éditables de la page (#words, #cols).
    """
    words: str = Field("", description="Mots séparés par des retours à la ligne ou des virgules")
    cols: Optional[int] = Field(None, ge=1, le=20)


class GeneratePayload(BaseModel):
    filename: Optional[str] = None
    questions: Optional[List[Dict[str, Any]]] = None
    words: Optional[Union[List[str], str]] = None
    cols: Optional[int] = None


class GenerateMessage(BaseModel):
    type: str
    payload: GeneratePayload = Field(default_factory=GeneratePayload)
