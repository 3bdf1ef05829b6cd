from pathlib import Path
from typing import Callable, Iterator, Sequence

from PyPDF2 import PdfWriter
from pytest import fixture


def create_pdf(path: Path, pages: int = 1, width: float = 612, height: float = 792) -> Path:
    w = PdfWriter()
    for _ in range(pages):
        w.add_blank_page(width=width, height=height)
    with open(path, "wb") as f:
        w.write(f)
    return path


@fixture()
def make_pdfs(tmp_path: Path) -> Callable[[Sequence[int]], list]:
    """Build one blank Letter-sized PDF per page count, named src0.pdf, src1.pdf, ..."""

    def _make(page_counts: Sequence[int]) -> list:
        return [str(create_pdf(tmp_path / f"src{i}.pdf", pages=n)) for i, n in enumerate(page_counts)]

    return _make


@fixture()
def client() -> Iterator:
    import webapp

    flask_app = getattr(webapp, "app")
    flask_app.testing = True
    with flask_app.test_client() as c:
        yield c
