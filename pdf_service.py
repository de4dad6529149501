# pdf_service.py
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

from reportlab.pdfbase import pdfmetrics

from config import Config
from geometry import PAGE_H, PAGE_W, hex_to_rgb, resolve_position
from image_service import ImageEmbedder
from invoice import (
    Component,
    ImageComponent,
    Invoice,
    InvoiceDataComponent,
    InvoiceDatesComponent,
    InvoiceSummaryComponent,
    InvoiceTableComponent,
    PagerComponent,
    SeparatorComponent,
    Summary,
    TableRow,
    TextComponent,
    parse_date,
)
from page import Page

logger = logging.getLogger(__name__)

DEFAULT_FONT = "Helvetica"
FONT_MAP = {
    "Times New Roman": "Times-Roman",
    "Courier New": "Courier",
}

BLACK = (0.0, 0.0, 0.0)
RED = (1.0, 0.0, 0.0)
GRAY = (0.5, 0.5, 0.5)
LIGHT_GRAY = (0.7, 0.7, 0.7)
RULE_GRAY = (0.8, 0.8, 0.8)
BORDER_GRAY = (0.9, 0.9, 0.9)
STRIPE_GRAY = (0.95, 0.95, 0.95)

TABLE_HEADERS = ["Description", "Quantité", "Prix unitaire", "Taxes", "Montant"]
TABLE_X = [50, 300, 370, 440, 510]
TABLE_RIGHT = 545

CUSTOM_TABLE_HEADERS = ["Description", "Quantité", "Prix unitaire", "TVA", "Total"]
CUSTOM_TABLE_WIDTHS = [200, 50, 70, 50, 70]

EMPTY_MESSAGE = "Facture vide - Ajoutez des composants pour voir le contenu"


# -----------------------------
# Formatting helpers
# -----------------------------
def _money(x, pattern: str) -> str:
    try:
        return pattern.format(amount=f"{float(x):.2f}")
    except (TypeError, ValueError):
        return pattern.format(amount=x)


def _num(x) -> str:
    # 20.0 -> "20", 5.5 -> "5.5"
    return f"{float(x):g}"


def _format_date(value: str, fmt: str) -> str:
    parsed = parse_date(value)
    if parsed is None:
        return (value or "").strip()
    return parsed.strftime(fmt)


def _flatten(text: str) -> str:
    return re.sub(r"\s*[\r\n]+\s*", " ", text or "").strip()


def _safe_filename(name: str) -> str:
    # strip characters not allowed on Windows/mac paths
    return re.sub(r'[\\/*?:"<>|]', "", (name or "")).strip() or "Invoice"


def resolve_font(name: str | None) -> str:
    font = FONT_MAP.get((name or "").strip(), DEFAULT_FONT)
    try:
        pdfmetrics.getFont(font)
    except Exception:
        logger.warning("Font %r unavailable, using %s", font, DEFAULT_FONT)
        return DEFAULT_FONT
    return font


@dataclass(frozen=True)
class RenderOptions:
    table_money_format: str = "$ {amount}"
    component_money_format: str = "{amount} €"
    date_format: str = "%d/%m/%Y"

    @classmethod
    def from_config(cls) -> "RenderOptions":
        return cls(
            table_money_format=Config.TABLE_MONEY_FORMAT,
            component_money_format=Config.COMPONENT_MONEY_FORMAT,
            date_format=Config.DATE_FORMAT,
        )


@dataclass
class RenderWarning:
    step: str
    message: str


# -----------------------------
# Renderer
# -----------------------------
class InvoiceRenderer:
    """
    Draws one Invoice onto one Page.

    The fixed layout is an ordered list of named steps; each step runs inside
    the same guard, so a failing step is logged, recorded in `warnings` and
    left off the page while the following steps still run. Builder components
    are drawn last, each under its own guard.
    """

    def __init__(
        self,
        page: Page,
        embedder: ImageEmbedder | None = None,
        options: RenderOptions | None = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.page = page
        self.embedder = embedder or ImageEmbedder()
        self.options = options or RenderOptions.from_config()
        self.now = now
        self.width = page.width
        self.height = page.height
        self.font = DEFAULT_FONT
        self.warnings: list[RenderWarning] = []
        self._table_bottom = self.height - 280

    def steps(self) -> list[tuple[str, Callable[[Invoice], None]]]:
        return [
            ("watermark", self.render_watermark),
            ("header-image", self.render_header),
            ("model", self.render_model),
            ("logo", self.render_logo),
            ("company-details", self.render_company_details),
            ("client-details", self.render_client_details),
            ("invoice-number", self.render_invoice_title),
            ("dates", self.render_dates),
            ("items-table", self.render_items_table),
            ("summary", self.render_summary),
            ("footer-image", self.render_footer_image),
            ("payment-info", self.render_payment_info),
            ("footer-number", self.render_footer_number),
            ("slogan", self.render_slogan),
            ("signature", self.render_signature),
            ("components", self.render_components),
        ]

    def render(self, invoice: Invoice) -> list[RenderWarning]:
        try:
            self.font = resolve_font(invoice.font)
            self.render_page_border(invoice)

            if invoice.is_empty():
                self._guarded("empty-state", self.render_empty_state, invoice)
                return self.warnings

            for name, step in self.steps():
                self._guarded(name, step, invoice)
        except Exception as e:
            logger.exception("Error in render")
            self.warnings.append(RenderWarning("render", str(e)))
            self.page.draw_text(
                f"Erreur lors du rendu: {e}",
                50,
                self.height - 100,
                font=DEFAULT_FONT,
                size=12,
                color=RED,
            )
        return self.warnings

    def _guarded(self, name: str, fn, *args) -> None:
        try:
            fn(*args)
        except Exception as e:
            logger.warning("Failed to render %s: %s", name, e, exc_info=True)
            self.warnings.append(RenderWarning(name, str(e)))

    def _pos(self, invoice: Invoice, element: str, axis: str, default):
        return resolve_position(
            invoice.position_data, element, axis, default, page_w=self.width, page_h=self.height
        )

    def _text(self, text, x, y, *, size=10, color=BLACK, max_width=None, line_height=None) -> float:
        return self.page.draw_text(
            text, x, y, font=self.font, size=size, color=color, max_width=max_width, line_height=line_height
        )

    def _right_text(self, right_x, y, text, *, size=10, color=BLACK) -> None:
        w = self.page.text_width(text, self.font, size)
        self._text(text, right_x - w, y, size=size, color=color)

    def _centered_text(self, center_x, y, text, *, size=10, color=BLACK) -> None:
        w = self.page.text_width(text, self.font, size)
        self._text(text, center_x - w / 2.0, y, size=size, color=color)

    # -----------------------------
    # Page frame
    # -----------------------------
    def render_page_border(self, invoice: Invoice) -> None:
        bg = (invoice.background or "").strip()
        if re.fullmatch(r"#[0-9a-fA-F]{6}", bg):
            self.page.draw_rect(0, 0, self.width, self.height, fill=hex_to_rgb(bg))
        self.page.draw_rect(10, 10, self.width - 20, self.height - 20, stroke=BORDER_GRAY, stroke_width=1)

    def render_empty_state(self, invoice: Invoice) -> None:
        self._centered_text(self.width / 2, self.height / 2, EMPTY_MESSAGE, size=14, color=GRAY)
        stamp = self.now().strftime(f"{self.options.date_format} %H:%M")
        self._centered_text(self.width / 2, self.height / 2 - 30, f"Généré le: {stamp}", size=10, color=LIGHT_GRAY)

    # -----------------------------
    # Images
    # -----------------------------
    def _embed(self, data):
        return self.embedder.embed(self.page, data)

    def render_watermark(self, invoice: Invoice) -> None:
        if not invoice.images.watermark:
            return
        img = self._embed(invoice.images.watermark)
        if img is None:
            return

        x = self._pos(invoice, "watermark", "x", self.width / 2)
        y = self._pos(invoice, "watermark", "y", self.height / 2)
        size = self._pos(invoice, "watermark", "size", 1)
        opacity = invoice.images.watermark_opacity / 100

        img_w = min(self.width * 0.8, img.width) * size
        img_h = (img_w / img.width) * img.height
        self.page.draw_image(img, x - img_w / 2, y - img_h / 2, img_w, img_h, opacity=opacity)

    def render_header(self, invoice: Invoice) -> None:
        if not invoice.images.header:
            return
        img = self._embed(invoice.images.header)
        if img is None:
            return

        x = self._pos(invoice, "header-image", "x", self.width / 2)
        y = self._pos(invoice, "header-image", "y", self.height - 50)
        size = self._pos(invoice, "header-image", "size", 1)

        img_w = min(self.width - 40, img.width) * size
        img_h = (img_w / img.width) * img.height
        self.page.draw_image(img, x - img_w / 2, y - img_h, img_w, img_h)

    def render_logo(self, invoice: Invoice) -> None:
        if not invoice.images.logo:
            return
        img = self._embed(invoice.images.logo)
        if img is None:
            return

        x = self._pos(invoice, "logo", "x", 50)
        y = self._pos(invoice, "logo", "y", self.height - 50)
        size = self._pos(invoice, "logo", "size", 1)

        img_w = min(100, img.width) * size
        img_h = (img_w / img.width) * img.height
        self.page.draw_image(img, x, y - img_h, img_w, img_h)

    def render_footer_image(self, invoice: Invoice) -> None:
        if not invoice.images.footer:
            return
        img = self._embed(invoice.images.footer)
        if img is None:
            return

        x = self._pos(invoice, "footer-image", "x", self.width / 2)
        y = self._pos(invoice, "footer-image", "y", 100)
        size = self._pos(invoice, "footer-image", "size", 1)

        img_w = min(self.width - 40, img.width) * size
        img_h = (img_w / img.width) * img.height
        self.page.draw_image(img, x - img_w / 2, y, img_w, img_h)

    def render_signature(self, invoice: Invoice) -> None:
        if not invoice.images.signature:
            return
        img = self._embed(invoice.images.signature)
        if img is None:
            return

        x = self._pos(invoice, "signature", "x", 400)
        y = self._pos(invoice, "signature", "y", 120)
        size = self._pos(invoice, "signature", "size", 1)

        img_w = min(150, img.width) * size
        img_h = (img_w / img.width) * img.height
        self.page.draw_image(img, x, y, img_w, img_h)

    # -----------------------------
    # Model decoration
    # -----------------------------
    def render_model(self, invoice: Invoice) -> None:
        primary = hex_to_rgb(invoice.primary_color)
        if invoice.model == "boxed":
            self.page.draw_rect(20, 20, self.width - 40, self.height - 40, stroke=primary, stroke_width=2)
        elif invoice.model == "bold":
            self.page.draw_rect(0, self.height - 50, self.width, 50, fill=primary)
        # light: nothing; striped: rows are banded in the items table

    # -----------------------------
    # Text blocks
    # -----------------------------
    def render_company_details(self, invoice: Invoice) -> None:
        if not invoice.company_details.strip():
            return
        x = self._pos(invoice, "company-details", "x", 50)
        y = self._pos(invoice, "company-details", "y", self.height - 100)
        self._text(_flatten(invoice.company_details), x, y, max_width=200, line_height=15)

    def render_client_details(self, invoice: Invoice) -> None:
        if not invoice.client_details.strip():
            return
        x = self._pos(invoice, "client-details", "x", 350)
        y = self._pos(invoice, "client-details", "y", self.height - 100)
        self._text(_flatten(invoice.client_details), x, y, max_width=200, line_height=15)

    def render_invoice_title(self, invoice: Invoice) -> None:
        if not invoice.invoice_number:
            return
        x = self._pos(invoice, "invoice-number", "x", 50)
        y = self._pos(invoice, "invoice-number", "y", self.height - 200)
        self._text(invoice.invoice_number, x, y, size=16, color=hex_to_rgb(invoice.primary_color))

    def render_dates(self, invoice: Invoice) -> None:
        x = self._pos(invoice, "dates", "x", 50)
        y = self._pos(invoice, "dates", "y", self.height - 230)
        fmt = self.options.date_format

        if invoice.invoice_date:
            self._text(f"Date de la facture: {_format_date(invoice.invoice_date, fmt)}", x, y)
            y -= 15
        if invoice.due_date:
            self._text(f"Date d'échéance: {_format_date(invoice.due_date, fmt)}", x, y)

    def render_payment_info(self, invoice: Invoice) -> None:
        if not invoice.payment_info.strip():
            return
        x = self._pos(invoice, "payment-info", "x", 50)
        y = self._pos(invoice, "payment-info", "y", 150)
        self._text(_flatten(invoice.payment_info), x, y)

    def render_footer_number(self, invoice: Invoice) -> None:
        if not invoice.footer_number:
            return
        x = self._pos(invoice, "footer-number", "x", self.width / 2)
        y = self._pos(invoice, "footer-number", "y", 50)
        self._centered_text(x, y, invoice.footer_number, size=10)

    def render_slogan(self, invoice: Invoice) -> None:
        if not invoice.slogan:
            return
        x = self._pos(invoice, "slogan", "x", self.width / 2)
        y = self._pos(invoice, "slogan", "y", 30)
        self._centered_text(x, y, invoice.slogan, size=8, color=GRAY)

    # -----------------------------
    # Items + summary
    # -----------------------------
    def render_items_table(self, invoice: Invoice) -> None:
        if not invoice.items:
            return

        money = self.options.table_money_format
        y = self._pos(invoice, "items-table", "y", self.height - 280)

        for head, hx in zip(TABLE_HEADERS, TABLE_X):
            self._text(head, hx, y)
        self.page.draw_line(TABLE_X[0], y - 10, TABLE_RIGHT, y - 10, thickness=1, color=RULE_GRAY)

        y -= 30
        for index, item in enumerate(invoice.items):
            # Band goes down first so the row text sits on top of it.
            if invoice.model == "striped" and index % 2 == 1:
                self.page.draw_rect(TABLE_X[0], y - 20, TABLE_RIGHT - TABLE_X[0], 30, fill=STRIPE_GRAY)

            self._text(item.description, TABLE_X[0], y)
            if item.details:
                self._text(item.details, TABLE_X[0], y - 15, size=9, color=GRAY)
            self._text(f"{item.quantity:.3f}", TABLE_X[1], y)
            self._text(f"{item.price:.2f}", TABLE_X[2], y)
            self._text(f"{_num(invoice.tax_rate)}%", TABLE_X[3], y)
            self._text(_money(item.total(), money), TABLE_X[4], y)
            y -= 40

        self._table_bottom = y

    def render_summary(self, invoice: Invoice) -> None:
        if not invoice.items:
            return

        money = self.options.table_money_format
        subtotal = invoice.subtotal()
        tax_amount = invoice.tax_amount()
        total = invoice.total()

        label_x = 450
        y = self._pos(invoice, "summary", "y", min(450, self._table_bottom))

        self._text("Sous-total", label_x, y)
        self._right_text(TABLE_RIGHT, y, _money(subtotal, money))

        y -= 20
        self._text(f"Taxes {_num(invoice.tax_rate)}%", label_x, y)
        self._right_text(TABLE_RIGHT, y, _money(tax_amount, money))

        y -= 20
        self.page.draw_line(label_x, y + 10, TABLE_RIGHT, y + 10, thickness=1, color=RULE_GRAY)
        self._text("Total", label_x, y)
        self._right_text(TABLE_RIGHT, y, _money(total, money))

    # -----------------------------
    # Builder components
    # -----------------------------
    def component_drawers(self) -> dict[type, Callable[[Component, Invoice], None]]:
        return {
            TextComponent: self.draw_text_component,
            SeparatorComponent: self.draw_separator,
            PagerComponent: self.draw_pager,
            InvoiceDataComponent: self.draw_invoice_data,
            InvoiceDatesComponent: self.draw_invoice_dates,
            InvoiceTableComponent: self.draw_invoice_table,
            InvoiceSummaryComponent: self.draw_invoice_summary,
            ImageComponent: self.draw_image_component,
        }

    def render_components(self, invoice: Invoice) -> None:
        if not invoice.components:
            return
        drawers = self.component_drawers()
        for comp in invoice.components:
            draw = drawers.get(type(comp))
            if draw is None:
                logger.debug("Skipping component %s of unknown type %r", comp.id, comp.type)
                continue
            self._guarded(f"component {comp.id}", draw, comp, invoice)

    def _anchor(self, comp: Component) -> tuple[float, float]:
        return comp.position.x, self.height - comp.position.y

    def _width(self, comp: Component, default: float) -> float:
        return (comp.size.width if comp.size and comp.size.width else None) or default

    def _draw_block(self, text: str, x: float, y: float, max_width: float) -> None:
        for line in (text or "").splitlines():
            if not line.strip():
                y -= 15
                continue
            y = self._text(line, x, y, max_width=max_width, line_height=15) - 15

    def draw_text_component(self, comp: TextComponent, invoice: Invoice) -> None:
        if not comp.content:
            return
        x, y = self._anchor(comp)
        self._draw_block(comp.content, x, y, self._width(comp, 200))

    def draw_invoice_data(self, comp: InvoiceDataComponent, invoice: Invoice) -> None:
        text = comp.content or invoice.field_value(comp.data_field)
        if not text:
            return
        x, y = self._anchor(comp)
        self._draw_block(text, x, y, self._width(comp, 200))

    def draw_separator(self, comp: SeparatorComponent, invoice: Invoice) -> None:
        x, y = self._anchor(comp)
        width = self._width(comp, 200)
        self.page.draw_line(x, y, x + width, y, thickness=comp.thickness, color=hex_to_rgb(comp.color))

    def draw_pager(self, comp: PagerComponent, invoice: Invoice) -> None:
        x, y = self._anchor(comp)
        self._text(comp.text(1, 1), x, y, color=GRAY)

    def draw_invoice_dates(self, comp: InvoiceDatesComponent, invoice: Invoice) -> None:
        issued = comp.invoice_date or invoice.invoice_date
        due = comp.due_date or invoice.due_date
        if not issued and not due:
            return
        fmt = self.options.date_format
        x, y = self._anchor(comp)
        self._text(f"Date de la facture: {_format_date(issued, fmt)}", x, y)
        self._text(f"Date d'échéance: {_format_date(due, fmt)}", x, y - 20)

    def draw_invoice_table(self, comp: InvoiceTableComponent, invoice: Invoice) -> None:
        rows = list(comp.rows) or [
            TableRow(
                description=item.description,
                quantity=item.quantity,
                unit_price=item.price,
                tax=invoice.tax_rate,
                total=item.total(),
            )
            for item in invoice.items
        ]
        if not rows:
            return

        money = self.options.component_money_format
        x, y = self._anchor(comp)
        col_x = [x]
        for w in CUSTOM_TABLE_WIDTHS[:-1]:
            col_x.append(col_x[-1] + w)
        table_w = sum(CUSTOM_TABLE_WIDTHS)

        for head, hx in zip(CUSTOM_TABLE_HEADERS, col_x):
            self._text(head, hx, y)
        y -= 15
        self.page.draw_line(x, y + 5, x + table_w, y + 5, thickness=1, color=RULE_GRAY)

        y -= 10
        for row in rows:
            self._text(row.description, col_x[0], y, max_width=CUSTOM_TABLE_WIDTHS[0] - 5, line_height=12)
            self._text(_num(row.quantity), col_x[1], y)
            self._text(_money(row.unit_price, money), col_x[2], y)
            self._text(f"{_num(row.tax)}%", col_x[3], y)
            self._text(_money(row.total, money), col_x[4], y)
            y -= 25

    def draw_invoice_summary(self, comp: InvoiceSummaryComponent, invoice: Invoice) -> None:
        summary = comp.summary
        if summary is None:
            if not invoice.items:
                return
            summary = Summary(
                subtotal=invoice.subtotal(),
                tax_rate=invoice.tax_rate,
                tax_amount=invoice.tax_amount(),
                total=invoice.total(),
            )

        money = self.options.component_money_format
        x, y = self._anchor(comp)

        self._text("Sous-total:", x, y)
        self._text(_money(summary.subtotal, money), x + 150, y)

        y -= 20
        self._text(f"TVA ({_num(summary.tax_rate)}%):", x, y)
        self._text(_money(summary.tax_amount, money), x + 150, y)

        y -= 20
        self.page.draw_line(x, y + 10, x + 180, y + 10, thickness=1, color=RULE_GRAY)
        self._text("Total:", x, y, size=12)
        self._text(_money(summary.total, money), x + 150, y, size=12)

    def draw_image_component(self, comp: ImageComponent, invoice: Invoice) -> None:
        if not comp.image_data:
            return
        img = self._embed(comp.image_data)
        if img is None:
            return
        x, y = self._anchor(comp)
        img_w = self._width(comp, 100)
        img_h = (comp.size.height if comp.size and comp.size.height else None) or (img_w / img.width) * img.height
        self.page.draw_image(img, x, y - img_h, img_w, img_h)


# -----------------------------
# Document generation
# -----------------------------
@dataclass
class DocumentGenerator:
    embedder: ImageEmbedder = field(default_factory=ImageEmbedder)
    options: RenderOptions = field(default_factory=RenderOptions.from_config)
    page_size: tuple[float, float] = (PAGE_W, PAGE_H)

    def generate(self, invoice: Invoice) -> bytes:
        """
        Renders the invoice to PDF bytes. If the page itself cannot be built
        or serialized, the simple confirmation document is returned instead;
        only a failure of that one propagates.
        """
        for problem in invoice.validate():
            logger.warning("Validation warning: %s", problem)

        try:
            page = Page(*self.page_size, title=f"Facture - {invoice.invoice_number}")
            renderer = InvoiceRenderer(page, self.embedder, self.options)
            warnings = renderer.render(invoice)
            pdf_bytes = page.save()
            logger.info(
                "PDF generated successfully, size: %d bytes (%d render warnings)",
                len(pdf_bytes),
                len(warnings),
            )
            return pdf_bytes
        except Exception:
            logger.exception("Error generating PDF, falling back to the simple document")
            return generate_simple_pdf()


def generate_simple_pdf(now: datetime | None = None) -> bytes:
    """The fixed one-page confirmation document."""
    now = now or datetime.now()
    page = Page(PAGE_W, PAGE_H, title="Configuration de Facture")
    page.draw_text("Configuration de Facture", 50, 750, size=24)
    page.draw_text("PDF généré avec succès!", 50, 700, size=16, color=(0.0, 0.5, 0.0))
    page.draw_text(f"Date de génération: {now.strftime(Config.DATE_FORMAT)}", 50, 650, size=12, color=GRAY)
    page.draw_text("Votre système de configuration de facture fonctionne correctement.", 50, 600, size=12)
    page.draw_rect(30, 30, PAGE_W - 60, PAGE_H - 60, stroke=BLACK, stroke_width=2)
    pdf_bytes = page.save()
    logger.info("Simple PDF generated successfully, size: %d bytes", len(pdf_bytes))
    return pdf_bytes


def generate_pdf(payload) -> bytes:
    return DocumentGenerator().generate(Invoice.from_payload(payload))


def generate_and_store_pdf(invoice: Invoice, out_dir: str | None = None, filename: str | None = None) -> str:
    """
    Generates a PDF for the invoice and writes it to disk.

    Returns: absolute pdf path on disk.
    """
    out_dir = out_dir or Config.EXPORTS_DIR
    Path(out_dir).mkdir(parents=True, exist_ok=True)
    fname = _safe_filename(filename or invoice.invoice_number)
    if not fname.lower().endswith(".pdf"):
        fname += ".pdf"
    pdf_path = os.path.abspath(os.path.join(out_dir, fname))

    pdf_bytes = DocumentGenerator().generate(invoice)
    with open(pdf_path, "wb") as f:
        f.write(pdf_bytes)
    return pdf_path
