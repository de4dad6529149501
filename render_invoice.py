# render_invoice.py
import argparse
import json
import logging
import os
from pathlib import Path

from config import Config
from invoice import Invoice
from pdf_service import generate_and_store_pdf, generate_simple_pdf


def main(argv=None):
    parser = argparse.ArgumentParser(description="Render invoice payload files (JSON) to PDF.")
    parser.add_argument("payloads", nargs="*", help="Payload JSON files, as sent to /api/generate-pdf.")
    parser.add_argument("--out", type=str, default="", help="Output directory (default: EXPORTS_DIR).")
    parser.add_argument("--simple", action="store_true", help="Write the simple confirmation document only.")
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, Config.LOG_LEVEL, logging.INFO), format="%(levelname)s %(name)s %(message)s")

    out_dir = args.out or Config.EXPORTS_DIR
    Path(out_dir).mkdir(parents=True, exist_ok=True)

    if args.simple:
        path = os.path.abspath(os.path.join(out_dir, "simple-invoice.pdf"))
        with open(path, "wb") as f:
            f.write(generate_simple_pdf())
        print(f"DONE  simple -> {path}")
        return 0

    if not args.payloads:
        parser.error("at least one payload file is required (or --simple)")

    total = len(args.payloads)
    generated = 0
    failed = 0

    for i, name in enumerate(args.payloads, start=1):
        try:
            payload = json.loads(Path(name).read_text(encoding="utf-8"))
            invoice = Invoice.from_payload(payload)
            path = generate_and_store_pdf(invoice, out_dir, Path(name).stem)
            generated += 1
            print(f"[{i}/{total}] DONE  {name} -> {path}")
        except Exception as e:
            failed += 1
            print(f"[{i}/{total}] FAIL  {name}  ({e})")

    print("\nPDF rendering complete.")
    print(f"Generated: {generated}")
    print(f"Failed:    {failed}")
    print(f"Exports:   {out_dir}")
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
