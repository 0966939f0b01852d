import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from kanjisheet.models.worksheet import DocumentKind, DocumentSummary, GenerateMessage, Question, WordListDocument
from kanjisheet.services.layout import WORDS_MAX_COLS
from kanjisheet.utils.text_utils import from_words_list, to_words_list

logger = logging.getLogger(__name__)

DEFAULT_COLS = 2
EXPORT_FILENAME = "kanji-test.json"
PNG_FILENAME = "kanji-test.png"


class DocumentError(ValueError):
    """JSON refusé (mauvaise forme) ; le message est affiché tel quel."""


@dataclass
class WorksheetState:
    """
    État de l'application (remplace les variables globales de la page) :
    questions chargées, JSON original pour l'export, nom du fichier source,
    et les deux champs éditables (#words / #cols).
    """
    questions: Optional[List[Question]] = None
    last_imported_original: Optional[Dict[str, Any]] = None
    source_filename: str = ""
    words_text: str = ""
    cols: int = DEFAULT_COLS

    @property
    def kind(self) -> DocumentKind:
        return DocumentKind.questions if self.questions is not None else DocumentKind.words

    @property
    def words(self) -> List[str]:
        return to_words_list(self.words_text)

    def set_source_filename(self, name: Optional[str]) -> None:
        self.source_filename = "" if name is None else str(name)

    def summary(self) -> DocumentSummary:
        count = len(self.questions) if self.questions is not None else len(self.words)
        return DocumentSummary(
            kind=self.kind,
            count=count,
            words=self.words,
            cols=self.cols,
            filename=self.source_filename,
        )


def parse_cols(value: Any, default: int = DEFAULT_COLS) -> int:
    """
    parseInt(...) || 2 : tout ce qui n'est pas un entier > 0 donne la valeur
    par défaut. Plafonné à WORDS_MAX_COLS.
    """
    if isinstance(value, bool):
        return default
    try:
        n = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    return min(n, WORDS_MAX_COLS) if n > 0 else default


def load_document(state: WorksheetState, obj: Any) -> DocumentKind:
    """
    Classe le JSON (questions ou liste de mots) et met à jour l'état.
    Le contrôle de forme est fait AVANT toute modification : en cas
    d'erreur, l'état (et donc le rendu) reste inchangé.
    """
    if not isinstance(obj, dict):
        raise DocumentError("JSONがオブジェクトではありません")

    if isinstance(obj.get("questions"), list):
        questions = []
        for q in obj["questions"]:
            questions.append(Question.model_validate(q if isinstance(q, dict) else {}))

        state.questions = questions
        state.last_imported_original = obj  # round-trip
        state.words_text = from_words_list([q.targetKanji for q in questions if q.targetKanji])
        state.cols = DEFAULT_COLS
        logger.info("questions chargées: %d", len(questions))
        return DocumentKind.questions

    if isinstance(obj.get("words"), list):
        words = [str(w) for w in obj["words"] if w is not None]
        state.questions = None
        state.last_imported_original = None
        state.words_text = from_words_list(words)
        state.cols = parse_cols(obj.get("cols"))
        logger.info("liste de mots chargée: %d mots, %d colonnes", len(words), state.cols)
        return DocumentKind.words

    raise DocumentError("対応していないJSON形式です（words または questions が必要）")


def load_text(state: WorksheetState, text: str, filename: Optional[str] = None) -> DocumentKind:
    """
    Charge un JSON texte (fichier importé / déposé / collé).
    """
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as e:
        raise DocumentError(f"JSONの解析に失敗しました: {e.msg} (line {e.lineno})") from e

    kind = load_document(state, obj)
    if filename is not None:
        state.set_source_filename(filename)
    return kind


def current_json(state: WorksheetState) -> Dict[str, Any]:
    if state.last_imported_original is not None and isinstance(
        state.last_imported_original.get("questions"), list
    ):
        return state.last_imported_original  # format d'origine, tel quel
    return WordListDocument(words=state.words, cols=state.cols).model_dump()


def dump_json(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, indent=2)


def export_json(state: WorksheetState) -> str:
    return dump_json(current_json(state))


def update_fields(state: WorksheetState, words: str, cols: Optional[int] = None) -> None:
    """Édition manuelle des champs : ne touche pas aux questions chargées."""
    state.words_text = from_words_list(to_words_list(words))
    if cols is not None:
        state.cols = parse_cols(cols)


def parse_params(state: WorksheetState, query: Mapping[str, str]) -> Dict[str, Any]:
    """
    Paramètres d'URL `words`, `cols`, `auto`. Sans paramètre, on retombe
    sur les champs de l'état. auto=1 recopie les valeurs dans les champs.
    """
    words_param = query.get("words")
    cols_param = query.get("cols")
    auto = query.get("auto")

    words = to_words_list(words_param) if words_param else state.words
    cols = parse_cols(cols_param, state.cols) if cols_param else (state.cols or DEFAULT_COLS)

    if auto == "1":
        state.words_text = from_words_list(words)
        state.cols = cols

    return {"words": words, "cols": cols, "auto": auto}


def apply_message(state: WorksheetState, message: GenerateMessage) -> Optional[DocumentKind]:
    """
    Message inter-fenêtres {type: "GENERATE", payload}. Les autres types
    sont ignorés (None).
    """
    if message.type != "GENERATE":
        logger.debug("message ignoré: %s", message.type)
        return None

    payload = message.payload
    if isinstance(payload.filename, str):
        state.set_source_filename(payload.filename)

    if isinstance(payload.questions, list):
        return load_document(state, {"questions": payload.questions})

    if isinstance(payload.words, list):
        words = payload.words
    else:
        words = to_words_list(str(payload.words or ""))
    return load_document(state, {"words": words, "cols": payload.cols or DEFAULT_COLS})
