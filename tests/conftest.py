import base64
import io
import sys
from pathlib import Path

import pytest
from PIL import Image

# Ensure the repo root modules are importable when running tests from anywhere.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _data_url(mime: str, raw: bytes) -> str:
    return f"data:{mime};base64," + base64.b64encode(raw).decode("ascii")


def _image_bytes(fmt: str, size=(4, 2), color="red") -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, fmt)
    return buf.getvalue()


@pytest.fixture
def png_data_url():
    return _data_url("image/png", _image_bytes("PNG"))


@pytest.fixture
def jpeg_data_url():
    return _data_url("image/jpeg", _image_bytes("JPEG"))


@pytest.fixture
def gif_data_url():
    return _data_url("image/gif", _image_bytes("GIF"))


@pytest.fixture
def svg_data_url():
    svg = b'<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10"><rect width="10" height="10"/></svg>'
    return _data_url("image/svg+xml", svg)


@pytest.fixture
def sample_payload():
    return {
        "model": "striped",
        "font": "Helvetica",
        "primaryColor": "#1d4ed8",
        "companyDetails": "Ma Société SARL\n456 Avenue de l'Entreprise",
        "clientDetails": "Entreprise ABC\n123 Rue du Client",
        "invoiceNumber": "INV-2024-001",
        "invoiceDate": "2024-03-05",
        "dueDate": "2024-04-04",
        "taxRate": 20,
        "paymentInfo": "IBAN FR76 0000 0000 0000",
        "footerNumber": "+33 1 23 45 67 89",
        "slogan": "Merci pour votre confiance",
        "items": [
            {"description": "Widget", "details": "Blue", "quantity": 2, "price": 10},
            {"description": "Gadget", "quantity": "1.5", "price": "4"},
            {"description": "Service", "quantity": 1, "price": 100},
        ],
        "images": {"watermarkOpacity": 25},
        "positionData": {"logo": {"x": 50, "y": 50}},
    }


@pytest.fixture
def client(tmp_path):
    from app import create_app

    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{(tmp_path / 'templates.db').as_posix()}",
    })
    return app.test_client()
