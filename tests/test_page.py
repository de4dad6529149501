from reportlab.pdfbase.pdfmetrics import stringWidth

from page import Page, _wrap_text


def test_wrap_keeps_lines_within_width():
    text = "Développement du site web vitrine avec formulaire de contact et hébergement"
    lines = _wrap_text(text, "Helvetica", 10, 120)
    assert len(lines) > 1
    assert all(stringWidth(line, "Helvetica", 10) <= 120 for line in lines)
    assert " ".join(lines) == text


def test_wrap_splits_long_tokens():
    email = "facturation.service-client@entreprise-exemple.fr"
    lines = _wrap_text(email, "Helvetica", 10, 60)
    assert len(lines) > 1
    assert "".join(lines) == email
    assert all(stringWidth(line, "Helvetica", 10) <= 60 for line in lines)


def test_wrap_respects_newlines():
    assert _wrap_text("one\n\ntwo", "Helvetica", 10, 200) == ["one", "", "two"]


def test_wrap_empty_text():
    assert _wrap_text("", "Helvetica", 10, 200) == [""]
    assert _wrap_text("   ", "Helvetica", 10, 200) == [""]


def test_draw_text_returns_last_baseline():
    page = Page()
    last = page.draw_text("a b c d e f g h", 10, 500, size=10, max_width=15, line_height=12)
    ys = [op.y for op in page.ops_of("text")]
    assert ys[0] == 500
    assert last == ys[-1] == 500 - 12 * (len(ys) - 1)


def test_records_and_saves():
    page = Page(title="Facture - INV-001")
    page.draw_line(0, 0, 100, 0, thickness=2)
    page.draw_rect(10, 10, 50, 20, fill=(1.0, 0.0, 0.0))
    assert [op.kind for op in page.ops] == ["line", "rect"]
    first = page.save()
    assert first.startswith(b"%PDF")
    assert page.save() == first
