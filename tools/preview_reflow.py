# tools/preview_reflow.py
"""Show how a text reflows at a given width, and where a saved index lands.

The text comes from a local file, or from a running server with
--api/--token/--text-id (the saved progress index is then used by default).
"""
import argparse, os, sys, pathlib

# --- ensure we can import 'typetrainer.*' from project root ---
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from typetrainer.errors import PersistenceFailure, TextNotFound
from typetrainer.gateway import HttpGateway
from typetrainer.positions import start_of_line, to_position
from typetrainer.reflow import split_into_lines, total_display_length
from typetrainer.stats import completion_percent
from typetrainer.textprep import cleanup_text
from typetrainer.width import MIN_TARGET_WIDTH, width_for_pixels


def _load_remote(args):
    gw = HttpGateway(args.api, args.token or os.getenv("TYPETRAINER_TOKEN", ""))
    try:
        loaded = gw.load_text(args.text_id, None)
    except TextNotFound:
        print(f"ERR: text {args.text_id} not found on {args.api}", file=sys.stderr)
        return None, None
    except PersistenceFailure as e:
        print(f"ERR: {e}", file=sys.stderr)
        return None, None
    return loaded.content, loaded.progress_index


def main(argv=None):
    p = argparse.ArgumentParser(description=__doc__)
    p.add_argument("path", nargs="?", help="Text file to reflow")
    p.add_argument("--api", help="Base URL of a typetrainer server to load the text from")
    p.add_argument("--token", help="Bearer token for --api (default: $TYPETRAINER_TOKEN)")
    p.add_argument("--text-id", type=int, help="Text id to load with --api")
    p.add_argument("--width", type=int, default=60, help="Target width in columns (default: 60)")
    p.add_argument("--container-px", type=float, help="Estimate the width from a container size instead")
    p.add_argument("--glyph-px", type=float, default=9.6, help="Width of one glyph in px (default: 9.6)")
    p.add_argument("--index", type=int, help="Flat progress index to resolve")
    p.add_argument("--clean", action="store_true", help="Run the stored-text cleanup first")
    args = p.parse_args(argv)

    index = args.index
    if args.api:
        if args.text_id is None:
            p.error("--api needs --text-id")
        text, saved = _load_remote(args)
        if text is None:
            return 2
        if index is None:
            index = saved
    else:
        if not args.path:
            p.error("give a file path, or --api with --text-id")
        src = pathlib.Path(args.path)
        if not src.exists():
            print(f"ERR: {src} not found", file=sys.stderr)
            return 2
        text = src.read_text(encoding="utf-8")
    if args.clean:
        text = cleanup_text(text)

    width = args.width
    if args.container_px:
        width = width_for_pixels(args.container_px, args.glyph_px)
    width = max(MIN_TARGET_WIDTH, width)

    lines = split_into_lines(text, width)
    total = total_display_length(lines)
    for i, line in enumerate(lines):
        print(f"{i:>4} {start_of_line(i, lines):>7} |{line}")
    print(f"width={width} lines={len(lines)} total_length={total}")

    if index is not None:
        pos = to_position(index, lines)
        pct = completion_percent(index, total, text)
        print(f"index {index} -> line {pos.line_index}, offset {pos.offset} ({pct}% done)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
