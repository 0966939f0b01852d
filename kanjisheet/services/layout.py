"""
Géométrie des feuilles (pure, sans Pillow).

Tout est exprimé en coordonnées logiques (1700x1200 ou 1200x1700) ;
le facteur d'échelle est appliqué plus tard par la surface de dessin.
"""
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from kanjisheet.models.worksheet import Question
from kanjisheet.utils.text_utils import split_target

Rect = Tuple[float, float, float, float]  # x, y, w, h


@dataclass(frozen=True)
class PageSize:
    width: int
    height: int

    @classmethod
    def for_orientation(cls, orientation: str) -> "PageSize":
        if (orientation or "").lower() == "portrait":
            return cls(1200, 1700)
        return cls(1700, 1200)


LANDSCAPE = PageSize(1700, 1200)

# ---------- Liste de mots ----------
WORDS_PADDING = 80
WORDS_LINE_GAP = 64
WORDS_FIRST_LINE = 64
WORDS_RIGHT_MARGIN = 24
WORDS_CHAR_STEP = 34
WORDS_FONT_SIZE = 32
WORDS_MAX_COLS = 20  # au-delà, col_w tombe à 0 et les colonnes se superposent

# ---------- Questions ----------
Q_PAD_X = 64
Q_PAD_Y = 40
Q_ROW_GAP_TOP = 6
Q_ROW_GAP_BOTTOM = 6
Q_COLS = 10
Q_ROWS = 2
Q_MAX_ITEMS = Q_COLS * Q_ROWS
Q_CHAR_GAP = 28  # pas vertical du texte (before/after)
Q_BOX = 104
Q_BOX_GAP = 8
Q_AFTER_GAP = 12
Q_BEFORE_GAP = 4
Q_NUM_R = 13
Q_AFTER_NUM_PADDING = 6
Q_FURIGANA_DX = 30
Q_FURIGANA_DY = 10
Q_FURIGANA_LINE_H = 26
Q_FURIGANA_FONT_SIZE = 18
Q_TEXT_FONT_SIZE = 32
Q_ANSWER_FONT_SIZE = 72

FOOTER_MARGIN_RIGHT = 20
FOOTER_MARGIN_BOTTOM = 16
FOOTER_FONT_SIZE = 24


@dataclass
class WordPlacement:
    index: int
    word: str
    col: int
    row: int
    x_right: float
    y_top: float
    char_xs: List[float]
    frame: Rect


@dataclass
class WordsLayout:
    page: PageSize
    content: Rect
    placements: List[WordPlacement]


def layout_words(words: Sequence[str], cols: int = 2, page: PageSize = LANDSCAPE) -> WordsLayout:
    """
    Colonnes de mots, de droite à gauche : le mot 0 est dans la colonne la
    plus à droite. Chaque caractère est décalé de WORDS_CHAR_STEP vers la gauche.
    """
    cols = min(cols, WORDS_MAX_COLS) if cols and cols > 0 else 2
    content_w = page.width - WORDS_PADDING * 2
    content_h = page.height - WORDS_PADDING * 2
    col_w = content_w // cols

    placements: List[WordPlacement] = []
    for i, w in enumerate(words):
        col = i % cols
        row = i // cols
        x_right = WORDS_PADDING + content_w - col_w * col - WORDS_RIGHT_MARGIN
        y_top = WORDS_PADDING + WORDS_FIRST_LINE + row * WORDS_LINE_GAP

        char_xs = [x_right - WORDS_CHAR_STEP * k for k in range(len(w))]
        width = WORDS_CHAR_STEP * len(w) + 24
        frame = (x_right - width + 12, y_top - 40, width, 48)

        placements.append(
            WordPlacement(
                index=i, word=w, col=col, row=row,
                x_right=x_right, y_top=y_top, char_xs=char_xs, frame=frame,
            )
        )

    return WordsLayout(
        page=page,
        content=(WORDS_PADDING, WORDS_PADDING, content_w, content_h),
        placements=placements,
    )


@dataclass
class QuestionSlot:
    index: int
    row: int
    col_from_right: int
    anchor_x: float
    row_top: float
    clip: Rect
    num_center_y: float
    before: str
    target: str
    after: str
    yomigana: str
    found: bool
    before_y: float
    boxes_y: float
    boxes_h: float
    after_y: float
    # Centres (x, y) des cases, une par caractère de target
    cell_centers: List[Tuple[float, float]] = field(default_factory=list)

    @property
    def number(self) -> int:
        return self.index + 1


@dataclass
class QuestionsLayout:
    page: PageSize
    mid_y: float
    rule: Tuple[float, float, float, float]  # x1, y1, x2, y2
    slots: List[QuestionSlot]
    footer_anchor: Tuple[float, float]


def boxes_height(count: int, box: float = Q_BOX, gap: float = Q_BOX_GAP) -> float:
    return count * (box + gap) - gap if count > 0 else 0


def layout_questions(questions: Sequence[Question], page: PageSize = LANDSCAPE) -> QuestionsLayout:
    """
    2 rangées x 10 colonnes, lues de droite à gauche. Au-delà de 20
    questions, le reste est ignoré.
    """
    w = page.width - Q_PAD_X * 2
    h = page.height - Q_PAD_Y * 2
    mid_y = Q_PAD_Y + h / 2
    row_height = h / 2 - Q_ROW_GAP_TOP - Q_ROW_GAP_BOTTOM
    col_w = w / Q_COLS

    slots: List[QuestionSlot] = []
    for i, q in enumerate(list(questions)[:Q_MAX_ITEMS]):
        row = 0 if i < Q_COLS else 1
        col_from_right = i % Q_COLS
        anchor_x = Q_PAD_X + w - (col_from_right + 0.5) * col_w
        row_top = (Q_PAD_Y if row == 0 else mid_y) + Q_ROW_GAP_TOP

        num_center_y = row_top + Q_NUM_R + 2
        before, after, found = split_target(q.fullText, q.targetKanji)
        target = q.targetKanji if found else ""

        cursor_y = num_center_y + Q_NUM_R + Q_AFTER_NUM_PADDING
        before_y = cursor_y
        if before:
            cursor_y += len(before) * Q_CHAR_GAP + Q_BEFORE_GAP

        boxes_y = cursor_y
        boxes_h = boxes_height(len(target))
        cells = [
            (anchor_x, boxes_y + j * (Q_BOX + Q_BOX_GAP) + Q_BOX / 2)
            for j in range(len(target))
        ]
        if target:
            cursor_y += boxes_h + Q_AFTER_GAP

        slots.append(
            QuestionSlot(
                index=i,
                row=row,
                col_from_right=col_from_right,
                anchor_x=anchor_x,
                row_top=row_top,
                clip=(Q_PAD_X, row_top, w, row_height),
                num_center_y=num_center_y,
                before=before,
                target=target,
                after=after,
                yomigana=q.yomigana if target else "",
                found=found,
                before_y=before_y,
                boxes_y=boxes_y,
                boxes_h=boxes_h,
                after_y=cursor_y,
                cell_centers=cells,
            )
        )

    return QuestionsLayout(
        page=page,
        mid_y=mid_y,
        rule=(Q_PAD_X, mid_y, Q_PAD_X + w, mid_y),
        slots=slots,
        footer_anchor=(page.width - FOOTER_MARGIN_RIGHT, page.height - FOOTER_MARGIN_BOTTOM),
    )
