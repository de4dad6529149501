# page.py
"""
One fixed-size PDF page backed by a reportlab canvas.

Every primitive drawn through Page is also recorded as a DrawOp, so callers
(and tests) can see what ended up on the page without parsing PDF streams.
"""
import io
from dataclasses import dataclass

from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from geometry import PAGE_H, PAGE_W

Color = tuple[float, float, float]
BLACK: Color = (0.0, 0.0, 0.0)


@dataclass
class DrawOp:
    kind: str  # text | line | rect | image
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0
    text: str = ""
    font: str = ""
    size: float = 0.0
    color: Color | None = None
    fill: Color | None = None
    opacity: float = 1.0


def _fit_pieces(token, font, size, max_width):
    """Yields pieces of a token wider than the column (emails, IBANs) that each fit."""
    while len(token) > 1 and stringWidth(token, font, size) > max_width:
        cut = len(token) - 1
        while cut > 1 and stringWidth(token[:cut], font, size) > max_width:
            cut -= 1
        yield token[:cut]
        token = token[cut:]
    yield token


def _wrap_text(text, font, size, max_width):
    """
    Word-wraps text into lines no wider than max_width. Explicit newlines
    start a new line; a blank input line stays a blank output line.
    """
    lines = []
    for paragraph in str(text).splitlines() or [""]:
        current = ""
        for word in paragraph.split():
            for piece in _fit_pieces(word, font, size, max_width):
                candidate = f"{current} {piece}" if current else piece
                if current and stringWidth(candidate, font, size) > max_width:
                    lines.append(current)
                    current = piece
                else:
                    current = candidate
        lines.append(current)
    return lines


class Page:
    def __init__(self, width: float = PAGE_W, height: float = PAGE_H, title: str = ""):
        self.width = float(width)
        self.height = float(height)
        self._buf = io.BytesIO()
        self.canvas = canvas.Canvas(self._buf, pagesize=(self.width, self.height))
        if title:
            self.canvas.setTitle(title)
        self.ops: list[DrawOp] = []
        # data URL -> EmbeddedImage | None, filled by ImageEmbedder
        self.image_cache: dict = {}
        self._saved = False

    # -----------------------------
    # Measuring
    # -----------------------------
    @staticmethod
    def text_width(text: str, font: str, size: float) -> float:
        return stringWidth(str(text), font, size)

    # -----------------------------
    # Primitives
    # -----------------------------
    def draw_text(
        self,
        text,
        x: float,
        y: float,
        *,
        font: str = "Helvetica",
        size: float = 10,
        color: Color = BLACK,
        max_width: float | None = None,
        line_height: float | None = None,
    ) -> float:
        """
        Draws text with its baseline at y. With max_width the text is
        word-wrapped and each further line goes line_height lower.
        Returns the baseline of the last line drawn.
        """
        text = str(text)
        lines = _wrap_text(text, font, size, max_width) if max_width else [text]
        step = line_height or size * 1.2

        pdf = self.canvas
        pdf.setFont(font, size)
        pdf.setFillColorRGB(*color)
        ty = y
        for idx, line in enumerate(lines):
            ty = y - idx * step
            pdf.drawString(x, ty, line)
            self.ops.append(DrawOp("text", x, ty, width=stringWidth(line, font, size), text=line, font=font, size=size, color=color))
        return ty

    def draw_line(self, x1: float, y1: float, x2: float, y2: float, *, thickness: float = 1, color: Color = BLACK) -> None:
        pdf = self.canvas
        pdf.setStrokeColorRGB(*color)
        pdf.setLineWidth(thickness)
        pdf.line(x1, y1, x2, y2)
        self.ops.append(DrawOp("line", x1, y1, width=x2 - x1, height=y2 - y1, size=thickness, color=color))

    def draw_rect(
        self,
        x: float,
        y: float,
        width: float,
        height: float,
        *,
        fill: Color | None = None,
        stroke: Color | None = None,
        stroke_width: float = 1,
    ) -> None:
        pdf = self.canvas
        if fill is not None:
            pdf.setFillColorRGB(*fill)
        if stroke is not None:
            pdf.setStrokeColorRGB(*stroke)
            pdf.setLineWidth(stroke_width)
        pdf.rect(x, y, width, height, stroke=1 if stroke is not None else 0, fill=1 if fill is not None else 0)
        self.ops.append(DrawOp("rect", x, y, width=width, height=height, size=stroke_width, color=stroke, fill=fill))

    def draw_image(self, image, x: float, y: float, width: float, height: float, *, opacity: float = 1.0) -> None:
        pdf = self.canvas
        pdf.saveState()
        try:
            if opacity < 1.0:
                pdf.setFillAlpha(max(0.0, opacity))
            pdf.drawImage(image.reader, x, y, width=width, height=height, mask="auto")
        finally:
            pdf.restoreState()
        self.ops.append(DrawOp("image", x, y, width=width, height=height, text=image.format, opacity=opacity))

    # -----------------------------
    # Inspection / output
    # -----------------------------
    def texts(self) -> list[str]:
        return [op.text for op in self.ops if op.kind == "text"]

    def ops_of(self, kind: str) -> list[DrawOp]:
        return [op for op in self.ops if op.kind == kind]

    def save(self) -> bytes:
        if not self._saved:
            self.canvas.showPage()
            self.canvas.save()
            self._saved = True
        return self._buf.getvalue()
