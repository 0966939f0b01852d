"""
Rendu des feuilles sur une surface Pillow.

Deux formes :
  1. Liste de mots en colonnes (droite → gauche)
  2. Questions à trous : 2 rangées x 10 colonnes, texte vertical, cases
     pour le kanji cible, ふりがな à droite ; variante « corrigé » qui
     remplit chaque case avec le caractère attendu.

La géométrie vient de services.layout ; ce module ne fait que dessiner.
"""
import io
import logging
import math
import os
from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator, List, Optional, Sequence

from PIL import Image, ImageDraw, ImageFont

from kanjisheet.models.worksheet import Question
from kanjisheet.services import layout as L
from kanjisheet.services.layout import PageSize, Rect
from kanjisheet.utils.data_url import encode_data_url

logger = logging.getLogger(__name__)

WHITE = (255, 255, 255)
BLACK = (0, 0, 0)
INK = (17, 17, 17)  # #111
CIRCLE_INK = (34, 34, 34)  # #222
RULE_COLOR = (153, 153, 153)  # #999
CONTENT_FRAME = (229, 229, 229)  # #e5e5e5
WORD_FRAME = (221, 221, 221)  # #ddd

NO_FILENAME = "（ファイル未指定）"
ANSWER_SUFFIX = "（解答）"

# Ponctuation décalée vers la droite en écriture verticale
PUNCT_X_ADJUST = {
    "。": 24, "、": 24, "．": 24, "，": 24,
    "・": 12, "！": 10, "？": 10,
    "」": 8, "』": 8, "）": 8, "］": 8, "｝": 8,
}


# ── Polices ──────────────────────────────────────────────────────────────────

_CJK_REGULAR = [
    "/usr/share/fonts/opentype/noto/NotoSerifCJK-Regular.ttc",
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/noto-cjk/NotoSerifCJK-Regular.ttc",
    "/usr/share/fonts/noto-cjk/NotoSansCJK-Regular.ttc",
    "/usr/share/fonts/truetype/fonts-japanese-mincho.ttf",
    "/usr/share/fonts/truetype/fonts-japanese-gothic.ttf",
    "/usr/share/fonts/truetype/takao-mincho/TakaoMincho.ttf",
    "/usr/share/fonts/truetype/ipafont-mincho/ipam.ttf",
    "/System/Library/Fonts/ヒラギノ明朝 ProN.ttc",
    "/System/Library/Fonts/Hiragino Sans GB.ttc",
    "C:/Windows/Fonts/msmincho.ttc",
    "C:/Windows/Fonts/YuGothR.ttc",
]
_CJK_BOLD = [
    "/usr/share/fonts/opentype/noto/NotoSansCJK-Bold.ttc",
    "/usr/share/fonts/noto-cjk/NotoSansCJK-Bold.ttc",
    "C:/Windows/Fonts/YuGothB.ttc",
]


@lru_cache(maxsize=4)
def find_font(bold: bool = False, preferred: Optional[str] = None) -> Optional[str]:
    """
    Cherche une police utilisable : FONT_PATH d'abord, puis des polices CJK
    connues, puis n'importe quel .ttf/.otf/.ttc des dossiers système.
    """
    if preferred and os.path.exists(preferred):
        return preferred
    if preferred:
        logger.warning("FONT_PATH introuvable (%s), recherche d'une police système", preferred)

    for p in (_CJK_BOLD + _CJK_REGULAR) if bold else _CJK_REGULAR:
        if os.path.exists(p):
            return p

    for d in ["/usr/share/fonts", "/usr/local/share/fonts",
              os.path.expanduser("~/.fonts"), "/Library/Fonts",
              "C:/Windows/Fonts"]:
        if os.path.isdir(d):
            for root, _, files in os.walk(d):
                for f in sorted(files):
                    if f.lower().endswith((".ttf", ".otf", ".ttc")):
                        return os.path.join(root, f)

    logger.warning("Aucune police TrueType trouvée, police Pillow par défaut (kanji non rendus)")
    return None


@lru_cache(maxsize=64)
def load_font(path: Optional[str], size: int) -> ImageFont.FreeTypeFont:
    if path:
        try:
            return ImageFont.truetype(path, size)
        except OSError as e:
            logger.warning("Police illisible %s: %s", path, e)
    return ImageFont.load_default(size=size)


# ── Surface ──────────────────────────────────────────────────────────────────

class Surface:
    """
    Image Pillow + facteur d'échelle (équivalent devicePixelRatio).
    Les appels se font en coordonnées logiques ; l'échelle est appliquée
    une seule fois ici.
    """

    def __init__(
        self,
        page: PageSize = L.LANDSCAPE,
        scale: float = 1.0,
        font_path: Optional[str] = None,
        *,
        _image: Optional[Image.Image] = None,
        _origin: tuple = (0.0, 0.0),
    ):
        self.page = page
        self.scale = scale if scale and scale > 0 else 1.0
        self.font_path = font_path
        self.origin = _origin
        if _image is None:
            _image = Image.new(
                "RGB",
                (math.floor(page.width * self.scale), math.floor(page.height * self.scale)),
                WHITE,
            )
        self.image = _image
        self._draw = ImageDraw.Draw(self.image)

    # ---------- conversions ----------

    def _px(self, v: float) -> float:
        return v * self.scale

    def _pt(self, x: float, y: float) -> tuple:
        return ((x - self.origin[0]) * self.scale, (y - self.origin[1]) * self.scale)

    def _lw(self, width: float) -> int:
        return max(1, round(width * self.scale))

    def font(self, size: float, bold: bool = False):
        path = find_font(bold, self.font_path)
        return load_font(path, max(1, round(size * self.scale)))

    # ---------- primitives ----------

    def fill(self, color=WHITE) -> None:
        self._draw.rectangle([(0, 0), self.image.size], fill=color)

    def stroke_rect(self, rect: Rect, color=INK, width: float = 1) -> None:
        x, y, w, h = rect
        x0, y0 = self._pt(x, y)
        x1, y1 = self._pt(x + w, y + h)
        self._draw.rectangle([x0, y0, x1, y1], outline=color, width=self._lw(width))

    def line(self, x1: float, y1: float, x2: float, y2: float, color=INK, width: float = 1) -> None:
        self._draw.line([self._pt(x1, y1), self._pt(x2, y2)], fill=color, width=self._lw(width))

    def circle(self, cx: float, cy: float, r: float, color=CIRCLE_INK, width: float = 2) -> None:
        x0, y0 = self._pt(cx - r, cy - r)
        x1, y1 = self._pt(cx + r, cy + r)
        self._draw.ellipse([x0, y0, x1, y1], outline=color, width=self._lw(width))

    def text(
        self,
        x: float,
        y: float,
        s: str,
        size: float = 32,
        anchor: str = "ls",
        fill=BLACK,
        bold: bool = False,
    ) -> None:
        """
        anchor suit la convention Pillow : "mt" = centré / haut,
        "mm" = centré / milieu, "rs" = droite / ligne de base...
        """
        self._draw.text(self._pt(x, y), s, font=self.font(size, bold), fill=fill, anchor=anchor)

    @contextmanager
    def clipped(self, rect: Rect) -> Iterator["Surface"]:
        """
        Dessine dans un calque limité à `rect`, puis le recompose sur
        l'image : tout ce qui déborde est perdu.
        """
        x, y, w, h = rect
        layer = Image.new(
            "RGBA",
            (max(1, math.floor(w * self.scale)), max(1, math.floor(h * self.scale))),
            (0, 0, 0, 0),
        )
        child = Surface(
            self.page, self.scale, self.font_path,
            _image=layer, _origin=(x, y),
        )
        yield child
        dest = self._pt(x, y)
        self.image.paste(layer, (round(dest[0]), round(dest[1])), layer)

    # ---------- export ----------

    def to_png(self) -> bytes:
        buf = io.BytesIO()
        self.image.save(buf, format="PNG")
        return buf.getvalue()

    def to_data_url(self) -> str:
        return encode_data_url(self.to_png(), "image/png")


# ── Helpers de dessin ────────────────────────────────────────────────────────

def draw_vertical_text(
    surface: Surface,
    text: str,
    x: float,
    y: float,
    line_h: float = 36,
    font_size: float = 32,
) -> None:
    """Un caractère par ligne, centré sur x, ponctuation décalée à droite."""
    for i, ch in enumerate(text):
        dx = PUNCT_X_ADJUST.get(ch, 0)
        surface.text(x + dx, y + i * line_h, ch, size=font_size, anchor="mt", fill=BLACK)


def draw_number_circle(surface: Surface, n: int, x: float, y: float, r: float = 16) -> None:
    surface.circle(x, y, r, color=CIRCLE_INK, width=2)
    surface.text(x, y, str(n), size=16, anchor="mm", fill=INK)


def draw_kanji_boxes(
    surface: Surface,
    x: float,
    y: float,
    count: int,
    box: float = 64,
    gap: float = 8,
    yomigana: str = "",
    furigana_dx: float = 7,
    furigana_dy: float = 9,
    furigana_line_h: float = 26,
    furigana_size: float = 22,
) -> float:
    """
    Cadre vertical de `count` cases + séparateurs, ふりがな à droite.
    Retourne la hauteur totale.
    """
    total_h = L.boxes_height(count, box, gap)
    if count <= 0:
        return 0

    surface.stroke_rect((x - box / 2, y, box, total_h), color=INK, width=2)
    for i in range(1, count):
        yy = y + i * (box + gap) - gap / 2
        surface.line(x - box / 2, yy, x + box / 2, yy, color=INK, width=2)

    if yomigana:
        draw_vertical_text(
            surface, yomigana,
            x + box / 2 + furigana_dx, y + furigana_dy,
            line_h=furigana_line_h, font_size=furigana_size,
        )
    return total_h


# ── Feuilles ─────────────────────────────────────────────────────────────────

def render_words(
    words: Sequence[str],
    cols: int = 2,
    page: PageSize = L.LANDSCAPE,
    scale: float = 1.0,
    font_path: Optional[str] = None,
) -> Surface:
    surface = Surface(page, scale, font_path)
    surface.fill(WHITE)

    lay = L.layout_words(words, cols, page)
    surface.stroke_rect(lay.content, color=CONTENT_FRAME, width=1)

    for p in lay.placements:
        for ch, cx in zip(p.word, p.char_xs):
            surface.text(cx, p.y_top, ch, size=L.WORDS_FONT_SIZE, anchor="ls", fill=BLACK)
        surface.stroke_rect(p.frame, color=WORD_FRAME, width=1)

    return surface


def render_questions(
    questions: Sequence[Question],
    filename: str = "",
    page: PageSize = L.LANDSCAPE,
    scale: float = 1.0,
    answers: bool = False,
    font_path: Optional[str] = None,
) -> Surface:
    """
    Feuille de questions ; answers=True produit le corrigé (cases remplies).
    """
    surface = Surface(page, scale, font_path)
    surface.fill(WHITE)

    lay = L.layout_questions(questions, page)
    x1, y1, x2, y2 = lay.rule
    surface.line(x1, y1, x2, y2, color=RULE_COLOR, width=1)

    for slot in lay.slots:
        # Numéro hors clip (évite qu'il soit coupé)
        draw_number_circle(surface, slot.number, slot.anchor_x, slot.num_center_y, r=L.Q_NUM_R)

        with surface.clipped(slot.clip) as row:
            if slot.before:
                draw_vertical_text(row, slot.before, slot.anchor_x, slot.before_y, line_h=L.Q_CHAR_GAP)

            if slot.target:
                draw_kanji_boxes(
                    row, slot.anchor_x, slot.boxes_y, len(slot.target),
                    box=L.Q_BOX, gap=L.Q_BOX_GAP, yomigana=slot.yomigana,
                    furigana_dx=L.Q_FURIGANA_DX, furigana_dy=L.Q_FURIGANA_DY,
                    furigana_line_h=L.Q_FURIGANA_LINE_H, furigana_size=L.Q_FURIGANA_FONT_SIZE,
                )
                if answers:
                    for ch, (cx, cy) in zip(slot.target, slot.cell_centers):
                        row.text(cx, cy, ch, size=L.Q_ANSWER_FONT_SIZE, anchor="mm", fill=BLACK)

            if slot.after:
                draw_vertical_text(row, slot.after, slot.anchor_x, slot.after_y, line_h=L.Q_CHAR_GAP)

    draw_footer(surface, lay.footer_anchor, footer_text(filename, answers))
    return surface


def footer_text(filename: str, answers: bool = False) -> str:
    text = filename.strip() if filename and filename.strip() else NO_FILENAME
    return text + ANSWER_SUFFIX if answers else text


def draw_footer(surface: Surface, anchor: tuple, text: str) -> None:
    # Gras / grand / noir : lisible après scan
    surface.text(anchor[0], anchor[1], text, size=L.FOOTER_FONT_SIZE, anchor="rs", fill=BLACK, bold=True)


def render_sheet(
    questions: Optional[List[Question]],
    words: Sequence[str],
    cols: int,
    filename: str = "",
    page: PageSize = L.LANDSCAPE,
    scale: float = 1.0,
    answers: bool = False,
    font_path: Optional[str] = None,
) -> Surface:
    """Questions si présentes, sinon liste de mots (le corrigé n'existe que pour les questions)."""
    if questions is not None:
        return render_questions(questions, filename, page, scale, answers, font_path)
    return render_words(words, cols, page, scale, font_path)
