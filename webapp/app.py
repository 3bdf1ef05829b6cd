from __future__ import annotations

import io
import logging
import os
import tempfile
from pathlib import Path
from typing import List

from flask import Flask, Response, flash, redirect, render_template, request, send_file, url_for

from label_pdfs import DEFAULT_OUTPUT, is_pdf_path, process_pdfs
from page_layout import Corner, LabelOptions

logger = logging.getLogger(__name__)

# use package-local templates directory
TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
app = Flask(__name__, template_folder=str(TEMPLATES_DIR))
app.secret_key = os.environ.get("FLASK_SECRET", "change-me")


@app.route("/", methods=["GET"])
def index():
    try:
        return render_template("index.html", corners=list(Corner), default_prefix=LabelOptions().prefix)
    except Exception as exc:
        return Response(f"Template error: {exc}\n", status=500)


def _options_from_form(form) -> LabelOptions:
    return LabelOptions(
        prefix=form.get("prefix", LabelOptions().prefix),
        title_corner=Corner.parse(form.get("title_position")),
        page_number_corner=Corner.parse(form.get("page_number_position")),
        background=form.get("background") in ("on", "true", "1"),
    )


@app.route("/process", methods=["POST"])
def process():
    # only PDFs are accepted, in the order they were uploaded
    files = [f for f in request.files.getlist("files") if is_pdf_path(f.filename or "")]
    if not files:
        flash("No PDF files uploaded", "error")
        return redirect(url_for("index"))

    options = _options_from_form(request.form)

    with tempfile.TemporaryDirectory() as tmpdir:
        paths: List[str] = []
        for idx, f in enumerate(files):
            # prefix with the position so same-named uploads don't collide
            target = Path(tmpdir) / f"{idx:04d}-{Path(f.filename).name}"
            f.save(str(target))
            paths.append(str(target))

        out_path = Path(tmpdir) / DEFAULT_OUTPUT
        try:
            process_pdfs(paths, str(out_path), options)
        except Exception as exc:
            logger.warning("Processing %d upload(s) failed: %s", len(paths), exc)
            return Response(f"Error processing PDFs: {exc}\n", status=400)

        with open(out_path, "rb") as f:
            data = f.read()

    bio = io.BytesIO(data)
    bio.seek(0)
    return send_file(bio, as_attachment=True, download_name=DEFAULT_OUTPUT, mimetype="application/pdf")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    app.run(debug=True, port=5000)
