# component_library.py
"""
Catalog of the components the designer can drop onto the canvas.

Each entry names the component kind it creates, the invoice field it is bound
to (if any) and where it lands by default. Demo data fills bound components
when no invoice is available yet.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from invoice import (
    Component,
    ImageComponent,
    Invoice,
    InvoiceDataComponent,
    InvoiceDatesComponent,
    InvoiceSummaryComponent,
    InvoiceTableComponent,
    PagerComponent,
    Position,
    SeparatorComponent,
    Size,
    Summary,
    TableRow,
    TextComponent,
)


@dataclass(frozen=True)
class LibraryEntry:
    id: str
    name: str
    type: str
    description: str
    icon: str
    default_position: dict = field(default_factory=dict)
    data_field: str = ""

    def to_dict(self) -> dict:
        out = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "icon": self.icon,
            "defaultPosition": dict(self.default_position),
        }
        if self.data_field:
            out["dataField"] = self.data_field
        return out


_ENTRIES = [
    # Basic components
    LibraryEntry("text", "Texte", "text", "Bloc de texte personnalisable", "text", {"x": 50, "y": 50}),
    LibraryEntry("image", "Image", "image", "Image personnalisable", "image", {"x": 50, "y": 50, "size": 1}),
    LibraryEntry("separator", "Séparateur", "separator", "Ligne de séparation horizontale", "minus", {"x": 50, "y": 50, "width": 500}),
    LibraryEntry("pager", "Numérotation de page", "pager", "Numéro de page / Nombre total de pages", "file-text", {"x": 297.5, "y": 800}),
    # Invoice-bound components
    LibraryEntry("client-address", "Adresse client", "invoice-data", "Adresse du client", "map-pin", {"x": 400, "y": 150}, "clientAddress"),
    LibraryEntry("company-address", "Adresse entreprise", "invoice-data", "Adresse de l'entreprise", "home", {"x": 50, "y": 150}, "companyAddress"),
    LibraryEntry("client-name", "Nom du client", "invoice-data", "Nom du client", "user", {"x": 400, "y": 100}, "clientName"),
    LibraryEntry("company-name", "Nom de l'entreprise", "invoice-data", "Nom de l'entreprise", "briefcase", {"x": 50, "y": 100}, "companyName"),
    LibraryEntry("invoice-number", "Num Facture", "invoice-data", "Numéro de facture", "hash", {"x": 50, "y": 100}, "invoiceNumber"),
    LibraryEntry("invoice-date", "Dates de facture", "invoice-dates", "Dates de la facture", "calendar", {"x": 50, "y": 150}, "invoiceDates"),
    LibraryEntry("articles-table", "Tableau d'articles", "invoice-table", "Tableau des articles", "grid", {"x": 50, "y": 250}, "articles"),
    LibraryEntry("amounts-summary", "Résumé des montants", "invoice-summary", "Résumé des montants", "dollar-sign", {"x": 400, "y": 500}, "amounts"),
]

COMPONENTS: dict[str, LibraryEntry] = {e.id: e for e in _ENTRIES}

CATEGORIES = [
    {
        "id": "basic",
        "name": "Éléments de base",
        "icon": "layout-template",
        "components": ["text", "image", "separator", "pager"],
    },
    {
        "id": "invoice",
        "name": "Éléments de facture",
        "icon": "file-text",
        "components": [
            "client-address",
            "company-address",
            "client-name",
            "company-name",
            "invoice-number",
            "invoice-date",
            "articles-table",
            "amounts-summary",
        ],
    },
]

DEMO_DATA = {
    "clientName": "Entreprise ABC",
    "clientAddress": "123 Rue du Client\n75001 Paris\nFrance",
    "clientDetails": "Entreprise ABC\n123 Rue du Client\n75001 Paris\nFrance",
    "companyName": "Ma Société SARL",
    "companyAddress": "456 Avenue de l'Entreprise\n69001 Lyon\nFrance",
    "companyDetails": "Ma Société SARL\n456 Avenue de l'Entreprise\n69001 Lyon\nFrance",
    "invoiceNumber": "INV/2020/07/0003",
    "invoiceDates": {"invoiceDate": "07/06/2020", "dueDate": "08/07/2020"},
    "articles": [
        {"description": "Développement site web", "quantity": 1, "unitPrice": 1200, "tax": 20, "total": 1200},
        {"description": "Hébergement annuel", "quantity": 12, "unitPrice": 25, "tax": 20, "total": 300},
        {"description": "Maintenance", "quantity": 5, "unitPrice": 75, "tax": 20, "total": 375},
    ],
    "amounts": {"subtotal": 1875, "taxRate": 20, "taxAmount": 375, "total": 2250},
}


def categories() -> list[dict]:
    return [dict(c, components=list(c["components"])) for c in CATEGORIES]


def components_in(category_id: str) -> list[LibraryEntry]:
    for cat in CATEGORIES:
        if cat["id"] == category_id:
            return [COMPONENTS[cid] for cid in cat["components"]]
    return []


def get(component_id: str) -> Optional[LibraryEntry]:
    return COMPONENTS.get(component_id)


def demo_data(data_field: str):
    return DEMO_DATA.get(data_field)


def to_dict() -> dict:
    return {
        "categories": categories(),
        "components": [e.to_dict() for e in _ENTRIES],
    }


def create_component(library_id: str, component_id: str, invoice: Invoice | None = None) -> Component:
    """
    A new component of the given library kind at its default position.
    Bound components take their content from `invoice` when given, else from
    the demo data.
    """
    entry = COMPONENTS.get(library_id)
    if entry is None:
        raise KeyError(f"Unknown library component: {library_id}")

    pos = entry.default_position
    position = Position(x=float(pos.get("x", 50)), y=float(pos.get("y", 50)))
    size = Size(width=float(pos["width"])) if "width" in pos else None
    common = {"id": component_id, "position": position, "size": size}

    if entry.type == "text":
        return TextComponent(content="", **common)
    if entry.type == "image":
        return ImageComponent(**common)
    if entry.type == "separator":
        return SeparatorComponent(**common)
    if entry.type == "pager":
        return PagerComponent(**common)

    if entry.type == "invoice-data":
        content = invoice.field_value(entry.data_field) if invoice else demo_data(entry.data_field) or ""
        return InvoiceDataComponent(content=content, data_field=entry.data_field, **common)

    if entry.type == "invoice-dates":
        if invoice:
            return InvoiceDatesComponent(invoice_date=invoice.invoice_date, due_date=invoice.due_date, **common)
        dates = DEMO_DATA["invoiceDates"]
        return InvoiceDatesComponent(invoice_date=dates["invoiceDate"], due_date=dates["dueDate"], **common)

    if entry.type == "invoice-table":
        if invoice:
            rows = tuple(
                TableRow(i.description, i.quantity, i.price, invoice.tax_rate, i.total())
                for i in invoice.items
            )
        else:
            rows = tuple(TableRow.from_payload(r) for r in DEMO_DATA["articles"])
        return InvoiceTableComponent(rows=rows, **common)

    if entry.type == "invoice-summary":
        if invoice:
            summary = Summary(invoice.subtotal(), invoice.tax_rate, invoice.tax_amount(), invoice.total())
        else:
            summary = Summary.from_payload(DEMO_DATA["amounts"])
        return InvoiceSummaryComponent(summary=summary, **common)

    raise KeyError(f"Library component {library_id} has no constructor for type {entry.type}")
