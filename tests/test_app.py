import base64

import app as app_module
from config import Config
from pdf_service import DocumentGenerator


def _filename(resp):
    return resp.headers["Content-Disposition"]


class TestGeneratePdf:
    def test_renders_payload(self, client, sample_payload):
        resp = client.post("/api/generate-pdf", json=sample_payload)
        assert resp.status_code == 200
        assert resp.mimetype == "application/pdf"
        assert resp.data.startswith(b"%PDF")
        assert "invoice-template.pdf" in _filename(resp)

    def test_empty_body_returns_simple_pdf(self, client):
        resp = client.post("/api/generate-pdf")
        assert resp.status_code == 200
        assert resp.data.startswith(b"%PDF")
        assert "simple-invoice.pdf" in _filename(resp)

    def test_non_object_body_falls_back(self, client):
        resp = client.post("/api/generate-pdf", json=[1, 2, 3])
        assert resp.status_code == 200
        assert "simple-invoice.pdf" in _filename(resp)

    def test_generator_failure_falls_back(self, client, monkeypatch):
        def boom(self, invoice):
            raise RuntimeError("render exploded")

        monkeypatch.setattr(DocumentGenerator, "generate", boom)
        resp = client.post("/api/generate-pdf", json={"companyDetails": "ACME"})
        assert resp.status_code == 200
        assert "simple-invoice.pdf" in _filename(resp)

    def test_both_failures_return_json(self, client, monkeypatch):
        def boom(self, invoice):
            raise RuntimeError("render exploded")

        def simple_boom():
            raise RuntimeError("simple exploded")

        monkeypatch.setattr(DocumentGenerator, "generate", boom)
        monkeypatch.setattr(app_module, "generate_simple_pdf", simple_boom)
        resp = client.post("/api/generate-pdf", json={"companyDetails": "ACME"})

        assert resp.status_code == 500
        body = resp.get_json()
        assert body["error"] == "Failed to generate PDF"
        assert body["details"] == "render exploded"
        assert body["fallbackError"] == "simple exploded"
        assert "stack" in body

    def test_stack_hidden_in_production(self, client, monkeypatch):
        def boom(self, invoice):
            raise RuntimeError("render exploded")

        def simple_boom():
            raise RuntimeError("simple exploded")

        monkeypatch.setattr(DocumentGenerator, "generate", boom)
        monkeypatch.setattr(app_module, "generate_simple_pdf", simple_boom)
        monkeypatch.setattr(Config, "APP_ENV", "production")
        body = client.post("/api/generate-pdf", json={"companyDetails": "ACME"}).get_json()
        assert "stack" not in body

    def test_test_pdf(self, client):
        resp = client.get("/api/test-pdf")
        assert resp.status_code == 200
        assert resp.data.startswith(b"%PDF")


class TestImages:
    def test_process_image(self, client, png_data_url):
        resp = client.post("/api/process-image", json={"imageData": png_data_url, "imageType": "logo"})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["detectedType"] == "png"

    def test_process_image_without_data(self, client):
        resp = client.post("/api/process-image", json={})
        assert resp.status_code == 400
        assert resp.get_json() == {"success": False, "error": "No image data provided"}

    def test_process_image_bad_data(self, client):
        resp = client.post("/api/process-image", json={"imageData": "hello"})
        assert resp.status_code == 400
        assert resp.get_json()["success"] is False

    def test_debug_images(self, client):
        resp = client.post("/api/debug-images", json={"images": {"logoImage": "data:abc"}, "footerImage": "data:xy"})
        body = resp.get_json()
        assert body["logoImage"] == "Received (length: 8)"
        assert body["footerImage"] == "Received (length: 7)"
        assert body["watermarkImage"] == "Not received"



class TestDiagnostics:
    def test_image_embed(self, client, png_data_url):
        resp = client.post("/api/test-image-embed", json={"imageData": png_data_url})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["success"] is True
        assert body["message"] == "Image embedded successfully"
        assert base64.b64decode(body["pdfBase64"]).startswith(b"%PDF")

    def test_image_embed_without_data(self, client):
        resp = client.post("/api/test-image-embed", json={})
        assert resp.status_code == 400
        assert resp.get_json()["success"] is False

    def test_image_embed_failure(self, client, monkeypatch, png_data_url):
        def boom(self, invoice):
            raise RuntimeError("out of memory")

        monkeypatch.setattr(DocumentGenerator, "generate", boom)
        resp = client.post("/api/test-image-embed", json={"imageData": png_data_url})
        assert resp.status_code == 500
        assert resp.get_json() == {"success": False, "message": "Error testing image embed", "error": "out of memory"}

    def test_debug_get(self, client):
        body = client.get("/api/debug?x=1").get_json()
        assert body["success"] is True
        info = body["debug"]
        assert info["requestMethod"] == "GET"
        assert info["requestUrl"] == "/api/debug?x=1"
        assert info["environment"] == Config.APP_ENV
        assert info["pythonVersion"]
        assert info["requestBody"] is None

    def test_debug_post_echoes_body(self, client):
        info = client.post("/api/debug", json={"ping": "pong"}).get_json()["debug"]
        assert info["requestMethod"] == "POST"
        assert info["requestUrl"] == "/api/debug"
        assert info["requestBody"] == {"ping": "pong"}

def test_components(client):
    body = client.get("/api/components").get_json()
    assert [c["id"] for c in body["categories"]] == ["basic", "invoice"]
    assert len(body["components"]) == 12


def test_health(client):
    body = client.get("/api/health").get_json()
    assert body["success"] is True
    assert body["timestamp"]


class TestTemplates:
    def test_crud(self, client, sample_payload):
        resp = client.post("/api/templates", json={"name": "Standard", "payload": sample_payload})
        assert resp.status_code == 201
        template_id = resp.get_json()["id"]

        listing = client.get("/api/templates").get_json()
        assert [t["name"] for t in listing] == ["Standard"]

        fetched = client.get(f"/api/templates/{template_id}").get_json()
        assert fetched["payload"] == sample_payload

        pdf = client.get(f"/api/templates/{template_id}/pdf")
        assert pdf.status_code == 200
        assert pdf.data.startswith(b"%PDF")

        assert client.delete(f"/api/templates/{template_id}").get_json() == {"success": True}
        missing = client.get(f"/api/templates/{template_id}")
        assert missing.status_code == 404
        assert missing.get_json()["error"] == "Not Found"

    def test_save_same_name_replaces(self, client):
        first = client.post("/api/templates", json={"name": "A", "payload": {"slogan": "one"}}).get_json()
        second = client.post("/api/templates", json={"name": "A", "payload": {"slogan": "two"}}).get_json()
        assert first["id"] == second["id"]
        assert client.get(f"/api/templates/{first['id']}").get_json()["payload"] == {"slogan": "two"}

    def test_validation(self, client):
        assert client.post("/api/templates", json={"payload": {}}).status_code == 400
        assert client.post("/api/templates", json={"name": "X", "payload": []}).status_code == 400

    def test_missing_pdf_is_404(self, client):
        assert client.get("/api/templates/999/pdf").status_code == 404

    def test_delete_missing_is_404(self, client):
        assert client.delete("/api/templates/999").status_code == 404
