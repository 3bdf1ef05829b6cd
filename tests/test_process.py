import re
from pathlib import Path

import pytest
from PyPDF2 import PdfReader

import label_pdfs
from conftest import create_pdf
from page_layout import Corner, DrawText, FillRect, LabelOptions, attribute_pages, overlay_for_page, text_width


def _record_draws(monkeypatch) -> list:
    calls = []
    real_draw = label_pdfs._draw

    def recording_draw(c, op):
        calls.append(op)
        real_draw(c, op)

    monkeypatch.setattr(label_pdfs, "_draw", recording_draw)
    return calls


def _filled_rects(content: bytes) -> list:
    # merge_page adds a clipping "re W n"; only filled rectangles count
    return re.findall(rb"\bre\s+f\*?", content)


def test_two_sources_scenario(make_pdfs, tmp_path: Path, monkeypatch) -> None:
    files = make_pdfs([2, 3])
    out = tmp_path / "out.pdf"
    options = LabelOptions(
        prefix="DOC",
        title_corner=Corner.TOP_LEFT,
        page_number_corner=Corner.BOTTOM_RIGHT,
        background=True,
    )
    calls = _record_draws(monkeypatch)

    assert label_pdfs.process_pdfs(files, str(out), options) == str(out)

    r = PdfReader(str(out))
    assert len(r.pages) == 5
    texts = [op.text for op in calls if isinstance(op, DrawText)]
    assert texts == ["DOC 1", "1", "2", "DOC 2", "3", "4", "5"]
    # one gray box per label
    assert len([op for op in calls if isinstance(op, FillRect)]) == 7

    numbers = [op for op in calls if isinstance(op, DrawText) and op.font_size == 10]
    for op in numbers:
        assert op.y == 50
        assert op.x + text_width(op.text, op.font_size) == pytest.approx(612 - 50)

    page_text = [page.extract_text() for page in r.pages]
    assert "DOC 1" in page_text[0]
    assert "DOC 2" in page_text[2]
    assert "DOC" not in page_text[1]
    assert all(str(n) in page_text[n - 1] for n in range(1, 6))


def test_two_sources_overlay_specs() -> None:
    options = LabelOptions(prefix="DOC", page_number_corner=Corner.BOTTOM_RIGHT, background=True)
    specs = [overlay_for_page(a, 612, 792, options) for a in attribute_pages([2, 3])]

    assert [s.title.text if s.title else None for s in specs] == ["DOC 1", None, "DOC 2", None, None]
    assert [s.page_number.text for s in specs] == ["1", "2", "3", "4", "5"]


def test_single_page_without_background(make_pdfs, tmp_path: Path, monkeypatch) -> None:
    files = make_pdfs([1])
    out = tmp_path / "out.pdf"
    calls = _record_draws(monkeypatch)

    label_pdfs.process_pdfs(files, str(out), LabelOptions(background=False))

    assert calls and all(isinstance(op, DrawText) for op in calls)
    content = PdfReader(str(out)).pages[0].get_contents().get_data()
    assert _filled_rects(content) == []


def test_background_is_drawn(make_pdfs, tmp_path: Path) -> None:
    files = make_pdfs([1])
    out = tmp_path / "out.pdf"

    label_pdfs.process_pdfs(files, str(out), LabelOptions(background=True))

    content = PdfReader(str(out)).pages[0].get_contents().get_data()
    # title box and page number box
    assert len(_filled_rects(content)) == 2


def test_page_sizes_are_kept(tmp_path: Path) -> None:
    a = create_pdf(tmp_path / "a.pdf", width=200, height=300)
    b = create_pdf(tmp_path / "b.pdf", pages=2, width=595.28, height=841.89)
    out = tmp_path / "out.pdf"

    label_pdfs.process_pdfs([str(a), str(b)], str(out))

    r = PdfReader(str(out))
    sizes = [(float(p.mediabox.width), float(p.mediabox.height)) for p in r.pages]
    assert sizes[0] == pytest.approx((200, 300))
    assert sizes[2] == pytest.approx((595.28, 841.89))


def test_zero_page_source_is_skipped(tmp_path: Path, monkeypatch) -> None:
    a = create_pdf(tmp_path / "a.pdf", pages=1)
    empty = create_pdf(tmp_path / "empty.pdf", pages=0)
    c = create_pdf(tmp_path / "c.pdf", pages=1)
    out = tmp_path / "out.pdf"
    calls = _record_draws(monkeypatch)

    label_pdfs.process_pdfs([str(a), str(empty), str(c)], str(out), LabelOptions(prefix="DOC"))

    assert [op.text for op in calls] == ["DOC 1", "1", "DOC 3", "2"]
    assert len(PdfReader(str(out)).pages) == 2


def test_temporary_files_removed(make_pdfs, tmp_path: Path, monkeypatch) -> None:
    files = make_pdfs([1])
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    monkeypatch.setattr(label_pdfs.tempfile, "tempdir", str(scratch))

    label_pdfs.process_pdfs(files, str(tmp_path / "out.pdf"))
    assert list(scratch.iterdir()) == []

    with pytest.raises(label_pdfs.OutputWriteError):
        label_pdfs.process_pdfs(files, str(tmp_path / "missing" / "out.pdf"))
    assert list(scratch.iterdir()) == []


def test_cli(make_pdfs, tmp_path: Path, capsys) -> None:
    files = make_pdfs([2, 1])
    out = tmp_path / "cli.pdf"

    rc = label_pdfs.main(
        files + ["-o", str(out), "-p", "DOC", "--page-number-position", "bottom-right", "--background"]
    )

    assert rc == 0
    assert "PDFs processed successfully" in capsys.readouterr().out
    r = PdfReader(str(out))
    assert len(r.pages) == 3
    assert "DOC 2" in r.pages[2].extract_text()


def test_cli_expands_directories(make_pdfs, tmp_path: Path) -> None:
    make_pdfs([1, 2])
    (tmp_path / "notes.txt").write_text("not a pdf")
    out = tmp_path / "out" / "result.pdf"
    out.parent.mkdir()

    rc = label_pdfs.main([str(tmp_path), "-o", str(out), "-q"])

    assert rc == 0
    assert len(PdfReader(str(out)).pages) == 3


def _nested_workdir(tmp_path: Path) -> Path:
    work = tmp_path / "work"
    (work / "nested").mkdir(parents=True)
    create_pdf(work / "a.pdf", pages=1)
    create_pdf(work / "nested" / "b.pdf", pages=2)
    return work


def test_cli_without_files_uses_current_directory(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(_nested_workdir(tmp_path))
    out = tmp_path / "result.pdf"

    rc = label_pdfs.main(["-o", str(out), "-q"])

    assert rc == 0
    assert len(PdfReader(str(out)).pages) == 1


def test_cli_recursive(tmp_path: Path, monkeypatch) -> None:
    work = _nested_workdir(tmp_path)
    out = tmp_path / "result.pdf"

    rc = label_pdfs.main([str(work), "-r", "-o", str(out), "-q"])
    assert rc == 0
    assert len(PdfReader(str(out)).pages) == 3

    monkeypatch.chdir(work)
    rc = label_pdfs.main(["-r", "-o", str(out), "-q", "-p", "DOC"])
    assert rc == 0
    r = PdfReader(str(out))
    assert len(r.pages) == 3
    # a.pdf sorts before nested/b.pdf
    assert "DOC 2" in r.pages[1].extract_text()
