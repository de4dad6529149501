# invoice.py
"""
Invoice data model.

An Invoice is built once per render request from the wire payload sent by the
designer (camelCase JSON), with every missing field replaced by its default.
It is frozen: the renderer only reads it. Editing happens on an InvoiceDraft,
which notifies listeners and produces a new Invoice with freeze().
"""
from __future__ import annotations

import copy
import logging
import math
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, ClassVar, Optional

from config import Config

logger = logging.getLogger(__name__)

MODELS = ("light", "boxed", "bold", "striped")
DEFAULT_INVOICE_NUMBER = "INV-001"
DEFAULT_PAGER_FORMAT = "Page {page} sur {total}"


class PayloadError(ValueError):
    """The request body is not an invoice payload at all."""


# -----------------------------
# Helpers
# -----------------------------
def _to_float(value, default=0.0) -> float:
    if value is None or isinstance(value, bool):
        return float(default)
    try:
        s = str(value).strip()
        result = float(s) if s else float(default)
    except (TypeError, ValueError):
        return float(default)
    # "nan" and "inf" parse, but are not usable amounts
    return result if math.isfinite(result) else float(default)


def _to_str(value, default: str = "") -> str:
    if value is None:
        return default
    s = str(value)
    return s if s else default


def parse_date(value) -> Optional[date]:
    """Accepts ISO dates (2024-01-31, with or without time) and dd/mm/yyyy."""
    s = (str(value) if value is not None else "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        pass
    m = re.fullmatch(r"(\d{1,2})/(\d{1,2})/(\d{4})", s)
    if m:
        try:
            return date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
        except ValueError:
            return None
    return None


# -----------------------------
# Line items
# -----------------------------
@dataclass(frozen=True)
class LineItem:
    description: str = ""
    details: str = ""
    quantity: float = 0.0
    price: float = 0.0

    def total(self) -> float:
        return self.quantity * self.price

    def validate(self) -> list[str]:
        errors = []
        if self.quantity < 0:
            errors.append("Quantity cannot be negative")
        if self.price < 0:
            errors.append("Price cannot be negative")
        return errors

    @classmethod
    def from_payload(cls, data) -> "LineItem":
        if not isinstance(data, dict):
            data = {}
        return cls(
            description=_to_str(data.get("description")),
            details=_to_str(data.get("details")),
            quantity=_to_float(data.get("quantity")),
            price=_to_float(data.get("price")),
        )

    def to_payload(self) -> dict:
        return {
            "description": self.description,
            "details": self.details,
            "quantity": self.quantity,
            "price": self.price,
        }


# -----------------------------
# Images
# -----------------------------
@dataclass(frozen=True)
class ImageSet:
    logo: Optional[str] = None
    signature: Optional[str] = None
    header: Optional[str] = None
    footer: Optional[str] = None
    watermark: Optional[str] = None
    watermark_opacity: float = 10.0

    # attribute -> wire key
    SLOTS: ClassVar[dict[str, str]] = {
        "logo": "logoImage",
        "signature": "signatureImage",
        "header": "headerImage",
        "footer": "footerImage",
        "watermark": "watermarkImage",
    }

    def has_any(self) -> bool:
        return any(getattr(self, attr) for attr in self.SLOTS)

    @classmethod
    def from_payload(cls, data, fallback=None) -> "ImageSet":
        """
        `data` is the nested `images` object; `fallback` is the top-level
        payload, which may carry the same keys flat. Nested wins.
        """
        nested = data if isinstance(data, dict) else {}
        flat = fallback if isinstance(fallback, dict) else {}

        def pick(key):
            return nested.get(key) or flat.get(key) or None

        values = {attr: pick(key) for attr, key in cls.SLOTS.items()}
        opacity = _to_float(pick("watermarkOpacity"), 0.0) or 10.0
        return cls(watermark_opacity=opacity, **values)

    def to_payload(self) -> dict:
        out = {key: getattr(self, attr) for attr, key in self.SLOTS.items()}
        out["watermarkOpacity"] = self.watermark_opacity
        return out


# -----------------------------
# Components (builder mode)
# -----------------------------
@dataclass(frozen=True)
class Position:
    x: float = 50.0
    y: float = 50.0

    @classmethod
    def from_payload(cls, data) -> "Position":
        if not isinstance(data, dict):
            return cls()
        return cls(x=_to_float(data.get("x"), 50.0), y=_to_float(data.get("y"), 50.0))

    def to_payload(self) -> dict:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class Size:
    width: Optional[float] = None
    height: Optional[float] = None

    @classmethod
    def from_payload(cls, data) -> Optional["Size"]:
        if not isinstance(data, dict):
            return None
        width = _to_float(data.get("width"), 0.0) or None
        height = _to_float(data.get("height"), 0.0) or None
        return cls(width=width, height=height)

    def to_payload(self) -> dict:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class Component:
    """Common shape of every positioned drawable. Coordinates are page points, y from the top."""
    id: str
    position: Position = field(default_factory=Position)
    size: Optional[Size] = None

    kind: ClassVar[str] = ""

    @property
    def type(self) -> str:
        return self.kind

    @classmethod
    def _fields_from_payload(cls, data: dict) -> dict:
        return {}

    def _fields_to_payload(self) -> dict:
        return {}

    @staticmethod
    def from_payload(data) -> Optional["Component"]:
        if not isinstance(data, dict):
            return None
        comp_id = _to_str(data.get("id")).strip()
        raw_type = _to_str(data.get("type")).strip()
        if not comp_id or not raw_type:
            return None
        common = {
            "id": comp_id,
            "position": Position.from_payload(data.get("position")),
            "size": Size.from_payload(data.get("size")),
        }
        cls = COMPONENT_TYPES.get(raw_type)
        if cls is None:
            return UnknownComponent(raw_type=raw_type, raw=dict(data), **common)
        return cls(**common, **cls._fields_from_payload(data))

    def to_payload(self) -> dict:
        out = {
            "id": self.id,
            "type": self.type,
            "position": self.position.to_payload(),
        }
        if self.size is not None:
            out["size"] = self.size.to_payload()
        out.update(self._fields_to_payload())
        return out


@dataclass(frozen=True)
class TextComponent(Component):
    content: str = ""

    kind: ClassVar[str] = "text"

    @classmethod
    def _fields_from_payload(cls, data):
        return {"content": _to_str(data.get("content") or data.get("text"))}

    def _fields_to_payload(self):
        return {"content": self.content}


@dataclass(frozen=True)
class SeparatorComponent(Component):
    thickness: float = 2.0
    color: str = "#000000"

    kind: ClassVar[str] = "separator"

    @classmethod
    def _fields_from_payload(cls, data):
        return {
            "thickness": _to_float(data.get("thickness"), 2.0) or 2.0,
            "color": _to_str(data.get("color"), "#000000"),
        }

    def _fields_to_payload(self):
        return {"thickness": self.thickness, "color": self.color}


@dataclass(frozen=True)
class PagerComponent(Component):
    format: str = DEFAULT_PAGER_FORMAT

    kind: ClassVar[str] = "pager"

    @classmethod
    def _fields_from_payload(cls, data):
        return {"format": _to_str(data.get("format"), DEFAULT_PAGER_FORMAT)}

    def _fields_to_payload(self):
        return {"format": self.format}

    def text(self, page: int = 1, total: int = 1) -> str:
        return self.format.replace("{page}", str(page)).replace("{total}", str(total))


@dataclass(frozen=True)
class InvoiceDataComponent(Component):
    content: str = ""
    data_field: str = ""

    kind: ClassVar[str] = "invoice-data"

    @classmethod
    def _fields_from_payload(cls, data):
        return {
            "content": _to_str(data.get("content") or data.get("text")),
            "data_field": _to_str(data.get("dataField")),
        }

    def _fields_to_payload(self):
        out = {"content": self.content}
        if self.data_field:
            out["dataField"] = self.data_field
        return out


@dataclass(frozen=True)
class InvoiceDatesComponent(Component):
    invoice_date: str = ""
    due_date: str = ""

    kind: ClassVar[str] = "invoice-dates"

    @classmethod
    def _fields_from_payload(cls, data):
        dates = data.get("dates") if isinstance(data.get("dates"), dict) else {}
        return {
            "invoice_date": _to_str(dates.get("invoiceDate")),
            "due_date": _to_str(dates.get("dueDate")),
        }

    def _fields_to_payload(self):
        return {"dates": {"invoiceDate": self.invoice_date, "dueDate": self.due_date}}


@dataclass(frozen=True)
class TableRow:
    description: str = ""
    quantity: float = 0.0
    unit_price: float = 0.0
    tax: float = 0.0
    total: float = 0.0

    @classmethod
    def from_payload(cls, data) -> "TableRow":
        if not isinstance(data, dict):
            data = {}
        return cls(
            description=_to_str(data.get("description")),
            quantity=_to_float(data.get("quantity")),
            unit_price=_to_float(data.get("unitPrice")),
            tax=_to_float(data.get("tax")),
            total=_to_float(data.get("total")),
        )

    def to_payload(self) -> dict:
        return {
            "description": self.description,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "tax": self.tax,
            "total": self.total,
        }


@dataclass(frozen=True)
class InvoiceTableComponent(Component):
    rows: tuple[TableRow, ...] = ()

    kind: ClassVar[str] = "invoice-table"

    @classmethod
    def _fields_from_payload(cls, data):
        rows = data.get("rows") if isinstance(data.get("rows"), list) else []
        return {"rows": tuple(TableRow.from_payload(r) for r in rows)}

    def _fields_to_payload(self):
        return {"rows": [r.to_payload() for r in self.rows]}


@dataclass(frozen=True)
class Summary:
    subtotal: float = 0.0
    tax_rate: float = 0.0
    tax_amount: float = 0.0
    total: float = 0.0

    @classmethod
    def from_payload(cls, data) -> Optional["Summary"]:
        if not isinstance(data, dict):
            return None
        return cls(
            subtotal=_to_float(data.get("subtotal")),
            tax_rate=_to_float(data.get("taxRate")),
            tax_amount=_to_float(data.get("taxAmount")),
            total=_to_float(data.get("total")),
        )

    def to_payload(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "taxRate": self.tax_rate,
            "taxAmount": self.tax_amount,
            "total": self.total,
        }


@dataclass(frozen=True)
class InvoiceSummaryComponent(Component):
    summary: Optional[Summary] = None

    kind: ClassVar[str] = "invoice-summary"

    @classmethod
    def _fields_from_payload(cls, data):
        return {"summary": Summary.from_payload(data.get("summary"))}

    def _fields_to_payload(self):
        return {"summary": self.summary.to_payload() if self.summary else None}


@dataclass(frozen=True)
class ImageComponent(Component):
    image_data: Optional[str] = None

    kind: ClassVar[str] = "image"

    @classmethod
    def _fields_from_payload(cls, data):
        return {"image_data": data.get("imageData") or None}

    def _fields_to_payload(self):
        return {"imageData": self.image_data}


@dataclass(frozen=True)
class UnknownComponent(Component):
    """A component type this renderer does not know. Kept so it round-trips; never drawn."""
    raw_type: str = ""
    raw: dict = field(default_factory=dict, compare=False)

    @property
    def type(self) -> str:
        return self.raw_type

    def to_payload(self) -> dict:
        out = dict(self.raw)
        out.update({"id": self.id, "type": self.raw_type})
        return out


COMPONENT_TYPES: dict[str, type[Component]] = {
    cls.kind: cls
    for cls in (
        TextComponent,
        SeparatorComponent,
        PagerComponent,
        InvoiceDataComponent,
        InvoiceDatesComponent,
        InvoiceTableComponent,
        InvoiceSummaryComponent,
        ImageComponent,
    )
}


def components_from_payload(raw) -> Optional[tuple[Component, ...]]:
    if raw is None:
        return None
    if not isinstance(raw, list):
        logger.warning("Ignoring components: expected a list, got %s", type(raw).__name__)
        return None
    out: list[Component] = []
    seen: set[str] = set()
    for entry in raw:
        comp = Component.from_payload(entry)
        if comp is None:
            logger.warning("Ignoring component without id/type: %r", entry)
            continue
        if comp.id in seen:
            logger.warning("Ignoring duplicate component id %r", comp.id)
            continue
        seen.add(comp.id)
        out.append(comp)
    return tuple(out)


# -----------------------------
# Invoice
# -----------------------------
@dataclass(frozen=True)
class Invoice:
    model: str = "light"
    font: str = "Helvetica"
    primary_color: str = "#000000"
    secondary_color: str = "#000000"
    background: str = "none"
    slogan: str = ""
    company_details: str = ""
    client_details: str = ""
    invoice_number: str = DEFAULT_INVOICE_NUMBER
    invoice_date: str = ""
    due_date: str = ""
    tax_rate: float = 0.0
    footer_number: str = ""
    payment_info: str = ""
    items: tuple[LineItem, ...] = ()
    images: ImageSet = field(default_factory=ImageSet)
    position_data: dict = field(default_factory=dict)
    components: Optional[tuple[Component, ...]] = None

    # Convenience totals (computed, not stored)
    def subtotal(self) -> float:
        return sum((item.total() for item in self.items), 0.0)

    def tax_amount(self) -> float:
        return self.subtotal() * (self.tax_rate / 100)

    def total(self) -> float:
        return self.subtotal() + self.tax_amount()

    def validate(self) -> list[str]:
        errors = []
        if self.tax_rate < 0:
            errors.append("Tax rate cannot be negative")
        for idx, item in enumerate(self.items, start=1):
            errors.extend(f"Item {idx}: {e}" for e in item.validate())
        return errors

    def is_empty(self) -> bool:
        """
        True when nothing the user supplied would appear on the page.
        The invoice number and the dates always carry defaults, so they do
        not count as content.
        """
        text_fields = (
            self.company_details,
            self.client_details,
            self.slogan,
            self.payment_info,
            self.footer_number,
        )
        return (
            not any(s.strip() for s in text_fields)
            and not self.items
            and not self.images.has_any()
            and not self.components
        )

    def field_value(self, name: str) -> str:
        """Text of a named invoice field, for components bound to a dataField."""
        def first_line(text: str) -> str:
            lines = (text or "").strip().splitlines()
            return lines[0].strip() if lines else ""

        # details = name line + address lines
        def address(text: str) -> str:
            lines = (text or "").strip().splitlines()
            return "\n".join(line.strip() for line in lines[1:])

        values = {
            "companyDetails": self.company_details,
            "companyAddress": address(self.company_details),
            "clientDetails": self.client_details,
            "clientAddress": address(self.client_details),
            "companyName": first_line(self.company_details),
            "clientName": first_line(self.client_details),
            "invoiceNumber": self.invoice_number,
            "slogan": self.slogan,
            "paymentInfo": self.payment_info,
            "footerNumber": self.footer_number,
        }
        return values.get(name, "")

    @classmethod
    def from_payload(cls, data, *, today: Optional[date] = None) -> "Invoice":
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise PayloadError(f"Invoice payload must be a JSON object, got {type(data).__name__}")

        today = today or date.today()

        model = _to_str(data.get("model"), "light").strip().lower()
        if model not in MODELS:
            logger.warning("Unknown model %r, using 'light'", model)
            model = "light"

        invoice_date = _to_str(data.get("invoiceDate")).strip() or today.isoformat()
        due_date = _to_str(data.get("dueDate")).strip()
        if not due_date:
            issued = parse_date(invoice_date) or today
            due_date = (issued + timedelta(days=Config.DEFAULT_DUE_DAYS)).isoformat()

        tax_rate = _to_float(data.get("taxRate"))
        if tax_rate < 0:
            logger.warning("Negative tax rate %s replaced by 0", tax_rate)
            tax_rate = 0.0

        raw_items = data.get("items")
        items = tuple(LineItem.from_payload(i) for i in raw_items) if isinstance(raw_items, list) else ()

        position_data = data.get("positionData")
        if not isinstance(position_data, dict):
            position_data = {}

        return cls(
            model=model,
            font=_to_str(data.get("font"), "Helvetica"),
            primary_color=_to_str(data.get("primaryColor"), "#000000"),
            secondary_color=_to_str(data.get("secondaryColor"), "#000000"),
            background=_to_str(data.get("background"), "none"),
            slogan=_to_str(data.get("slogan")),
            company_details=_to_str(data.get("companyDetails")),
            client_details=_to_str(data.get("clientDetails")),
            invoice_number=_to_str(data.get("invoiceNumber"), DEFAULT_INVOICE_NUMBER),
            invoice_date=invoice_date,
            due_date=due_date,
            tax_rate=tax_rate,
            footer_number=_to_str(data.get("footerNumber")),
            payment_info=_to_str(data.get("paymentInfo")),
            items=items,
            images=ImageSet.from_payload(data.get("images"), fallback=data),
            position_data=dict(position_data),
            components=components_from_payload(data.get("components")),
        )

    def to_payload(self) -> dict:
        out = {
            "model": self.model,
            "font": self.font,
            "primaryColor": self.primary_color,
            "secondaryColor": self.secondary_color,
            "background": self.background,
            "slogan": self.slogan,
            "companyDetails": self.company_details,
            "clientDetails": self.client_details,
            "invoiceNumber": self.invoice_number,
            "invoiceDate": self.invoice_date,
            "dueDate": self.due_date,
            "taxRate": self.tax_rate,
            "footerNumber": self.footer_number,
            "paymentInfo": self.payment_info,
            "items": [i.to_payload() for i in self.items],
            "images": self.images.to_payload(),
            "positionData": self.position_data,
        }
        if self.components is not None:
            out["components"] = [c.to_payload() for c in self.components]
        return out


# -----------------------------
# Editable draft with change notifications
# -----------------------------
Listener = Callable[[str, object], None]

_COLOR_RE = re.compile(r"#[0-9a-fA-F]{6}")


class InvoiceDraft:
    """
    Mutable wire-form invoice for callers that edit before rendering.
    Each accepted change is announced to listeners as (field, value);
    invalid values (unknown model, bad color, negative tax) are ignored.
    """

    def __init__(self, invoice: Optional[Invoice] = None):
        self._data = copy.deepcopy((invoice or Invoice()).to_payload())
        self._listeners: list[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        self._listeners = [l for l in self._listeners if l is not listener]

    def _notify(self, name: str, value) -> None:
        for listener in list(self._listeners):
            listener(name, value)

    def set(self, name: str, value) -> bool:
        if name == "model" and value not in MODELS:
            return False
        if name in ("primaryColor", "secondaryColor") and not _COLOR_RE.fullmatch(str(value or "")):
            return False
        if name == "taxRate":
            rate = _to_float(value, -1.0)
            if rate < 0:
                return False
            value = rate
        if name in ("items", "images", "positionData", "components"):
            raise KeyError(f"Use the dedicated method to change {name!r}")
        self._data[name] = value
        self._notify(name, value)
        return True

    def add_item(self, item: LineItem) -> None:
        self._data["items"].append(item.to_payload())
        self._notify("items", self._data["items"])

    def remove_item(self, index: int) -> None:
        if 0 <= index < len(self._data["items"]):
            del self._data["items"][index]
            self._notify("items", self._data["items"])

    def update_item(self, index: int, name: str, value) -> None:
        if 0 <= index < len(self._data["items"]):
            self._data["items"][index][name] = value
            self._notify("items", self._data["items"])

    def set_image(self, slot: str, data: Optional[str]) -> None:
        if slot not in ImageSet.SLOTS.values():
            raise KeyError(f"Unknown image slot {slot!r}")
        self._data["images"][slot] = data
        self._notify("images", self._data["images"])

    def set_position(self, element: str, axis: str, value) -> None:
        self._data["positionData"].setdefault(element, {})[axis] = value
        self._notify("positionData", self._data["positionData"])

    def put_component(self, component: Component) -> None:
        comps = self._data.setdefault("components", [])
        payload = component.to_payload()
        for idx, existing in enumerate(comps):
            if existing.get("id") == component.id:
                comps[idx] = payload
                break
        else:
            comps.append(payload)
        self._notify("components", comps)

    def freeze(self) -> Invoice:
        return Invoice.from_payload(copy.deepcopy(self._data))
