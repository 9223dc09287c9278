import sys
from pathlib import Path

# Local imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))
import course_schedule_pdf as core  # type: ignore


def main(pdf_path: str, max_pages: int = core.MAX_PAGES):
    print(f"PDF: {pdf_path}")
    text = core.read_pdf_text(pdf_path, max_pages=max_pages)
    lines = text.splitlines()
    print(f"Lines: {len(lines)}")
    print("-- Raw lines --")
    for i, line in enumerate(lines):
        print(f"{i:04d}: {line}")

    header_idx = core.find_header(lines)
    if header_idx is None:
        print("No weekday header detected.")
    else:
        width = core.header_width(lines, header_idx)
        print(f"Header at line {header_idx} (width {width})")

    name, student_id, semester = core.extract_metadata(lines)
    print("-- Extracted --")
    print(f"Name:     {name}")
    print(f"ID:       {student_id}")
    print(f"Semester: {semester}")

    blocks = core.extract_blocks(lines)
    print(f"-- Blocks ({len(blocks)}) --")
    for bi, b in enumerate(blocks, 1):
        print(f"[{bi:02d}] day={b.day_of_week} section={b.section}: {' | '.join(b.text.splitlines())}")
        course = core.parse_course_block(b.text, b.day_of_week, b.section)
        if course is None:
            print("     -> dropped")
        else:
            print(f"     -> {core.format_course(course)}")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python tools/debug_extract.py <path-to-pdf> [max-pages]")
        sys.exit(1)
    main(sys.argv[1], int(sys.argv[2]) if len(sys.argv) > 2 else core.MAX_PAGES)
