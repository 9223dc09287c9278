"""
PDF course schedule → structured schedule (JSON / ICS)

- Input: a personal course-schedule PDF (CLI arg). If omitted, the script auto-selects the first .pdf in the current folder.
- Output: student name/id, semester and one entry per course cell, printed and optionally written as JSON or .ics.
- Approach: pdfplumber only gives us reading-order text here, so the table is rebuilt from text cues:
  the weekday header run, short numeric period rows, course blocks opened by the ★ ▲ markers,
  and labeled fields (节 / 教师: / 场地:) inside each block.
"""

import os
import sys
import glob
import json
import re
import argparse
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta, timezone
from typing import Callable

import pdfplumber
from ics import Calendar, Event


# ---------------------------------------------------------------------------
# Marker vocabulary
# ---------------------------------------------------------------------------

WEEKDAYS = ("星期一", "星期二", "星期三", "星期四", "星期五", "星期六", "星期日")
COURSE_MARKERS = ("★", "▲")
# Legend line of the theory-hours breakdown, carries a marker but is not a course
THEORY_HOURS_NOTE = ": 理论"
TIME_OF_DAY_LABELS = ("上午", "下午", "晚上")
NOISE_TOKENS = ("其他课程", "打印时间", "时间段") + TIME_OF_DAY_LABELS

SEMESTER_TOKENS = ("学年第", "学期")
SCHEDULE_SUFFIX = "课表"
STUDENT_ID_LABEL = "学号"
PERIOD_UNIT = "节"

MIN_SECTION = 1
MAX_SECTION = 12
MAX_PAGES = 10

STUDENT_ID_RE = re.compile(STUDENT_ID_LABEL + r"\s*[:：]\s*([0-9]*)")
PERIOD_SPAN_RE = re.compile(r"[(（]([^()（）]*?)" + PERIOD_UNIT + r"[)）]")
TEACHER_RE = re.compile(r"教师[:：]")
LOCATION_RE = re.compile(r"场地[:：]")

# Section to time mapping (24h); used only for calendar export
SECTION_TIMES = {
    1: ("08:00", "08:40"),
    2: ("08:45", "09:25"),
    3: ("09:40", "10:20"),
    4: ("10:35", "11:15"),
    5: ("11:20", "12:00"),
    6: ("14:00", "14:40"),
    7: ("14:45", "15:25"),
    8: ("15:40", "16:20"),
    9: ("16:30", "17:10"),
    10: ("18:00", "18:40"),
    11: ("18:45", "19:25"),
    12: ("19:40", "20:20"),
}


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Course:
    name: str
    teacher: str
    location: str
    time_slot: str  # raw period span, e.g. "1-2"
    weeks: str  # raw weeks text, e.g. "6-8周(双),9-18周"
    day_of_week: int  # 1 = Monday
    start_section: int
    end_section: int


@dataclass(frozen=True)
class CourseSchedule:
    student_name: str = ""
    student_id: str = ""
    semester: str = ""
    courses: tuple[Course, ...] = ()


@dataclass(frozen=True)
class CourseBlock:
    """One course cell as cut out of the text stream, before field parsing."""

    day_of_week: int
    text: str
    section: int


def schedule_to_dict(schedule: CourseSchedule) -> dict:
    data = asdict(schedule)
    data["courses"] = list(data["courses"])
    return data


def find_default_pdf() -> str | None:
    pdfs = sorted(glob.glob("*.pdf"))
    return pdfs[0] if pdfs else None


# ---------------------------------------------------------------------------
# Page text provider
# ---------------------------------------------------------------------------

def collect_page_text(page_text: Callable[[int], str | None], max_pages: int = MAX_PAGES) -> str:
    """Concatenate the text of pages 1..max_pages in page order.

    `page_text` receives a 1-based page number and returns that page's text or raises.
    Pages that fail or come back blank are skipped.
    """
    parts: list[str] = []
    for page_no in range(1, max_pages + 1):
        try:
            text = page_text(page_no)
        except Exception:
            continue
        if text and text.strip():
            parts.append(text)
    return "\n".join(parts)


def read_pdf_text(pdf_path: str, max_pages: int = MAX_PAGES) -> str:
    # Opening errors (missing file, broken PDF) propagate to the caller
    with pdfplumber.open(pdf_path) as pdf:
        pages = pdf.pages

        def page_text(page_no: int) -> str | None:
            # IndexError past the last page counts as a failed page
            return pages[page_no - 1].extract_text()

        return collect_page_text(page_text, max_pages=max_pages)


def read_course_schedule_pdf(pdf_path: str, max_pages: int = MAX_PAGES) -> CourseSchedule:
    return parse_schedule_text(read_pdf_text(pdf_path, max_pages=max_pages))


# ---------------------------------------------------------------------------
# Metadata (semester, student name / id)
# ---------------------------------------------------------------------------

def _is_cjk(ch: str) -> bool:
    return "\u4e00" <= ch <= "\u9fff"


def extract_semester(line: str) -> str:
    # e.g. "2025-2026学年第1学期"
    if not all(tok in line for tok in SEMESTER_TOKENS):
        return ""
    m = re.search(r"\d", line)
    if not m:
        return ""
    rest = line[m.start():]
    end = rest.find(SEMESTER_TOKENS[1])
    if end < 0:
        return ""
    return rest[: end + len(SEMESTER_TOKENS[1])]


def extract_student_id(line: str) -> str:
    m = STUDENT_ID_RE.search(line)
    return m.group(1) if m else ""


def extract_student_name(line: str) -> str:
    """Name is the CJK run in front of 课表, as in "都书锐课表 学号：252712004"."""
    pos = line.find(SCHEDULE_SUFFIX)
    if pos < 0:
        return ""
    name = []
    for ch in line[:pos]:
        if _is_cjk(ch):
            name.append(ch)
        elif name:
            break
    return "".join(name)


def extract_metadata(lines: list[str]) -> tuple[str, str, str]:
    """Return (student_name, student_id, semester); missing values are empty strings.

    Every 课表 line is tried for the name, so a name printed on the line above
    the 学号 line is found without looking back from the id line.
    """
    name = student_id = semester = ""
    for line in lines:
        if not semester:
            semester = extract_semester(line)
        if not name and SCHEDULE_SUFFIX in line:
            name = extract_student_name(line)
        if not student_id:
            student_id = extract_student_id(line)
    return name, student_id, semester


# ---------------------------------------------------------------------------
# Weekday header
# ---------------------------------------------------------------------------

def find_header(lines: list[str]) -> int | None:
    for idx, line in enumerate(lines):
        if line.strip() == WEEKDAYS[0]:
            return idx
    return None


def header_width(lines: list[str], start: int) -> int:
    width = 0
    for offset, day in enumerate(WEEKDAYS):
        idx = start + offset
        if idx >= len(lines) or lines[idx].strip() != day:
            break
        width += 1
    return width


# ---------------------------------------------------------------------------
# Section & block segmentation
# ---------------------------------------------------------------------------
# The extracted text lists the weekday header once, then for each period a
# short numeric line followed by that period's course cells in Monday → Sunday
# order. Cells carry no day label, so the day comes from their position.

SCANNING = "scanning"
IN_BLOCK = "in_block"

NOISE = "noise"
PERIOD = "period"
COURSE_START = "course_start"
FILLER = "filler"


class DayCounter:
    """Counts course blocks within one period row; the Nth block falls on weekday ((N-1) % 7) + 1."""

    def __init__(self) -> None:
        self.count = 0

    def next_day(self) -> int:
        day = self.count % len(WEEKDAYS) + 1
        self.count += 1
        return day

    def reset(self) -> None:
        self.count = 0


def is_period_marker(line: str) -> bool:
    return len(line) <= 3 and line.isascii() and line.isdecimal()


def has_course_marker(line: str) -> bool:
    return any(m in line for m in COURSE_MARKERS)


def classify_line(line: str) -> str:
    """Classify a trimmed line while scanning outside a course block."""
    if not line or any(tok in line for tok in NOISE_TOKENS):
        return NOISE
    if is_period_marker(line):
        return PERIOD
    if has_course_marker(line) and THEORY_HOURS_NOTE not in line:
        return COURSE_START
    return FILLER


def is_block_terminator(line: str) -> bool:
    return (
        has_course_marker(line)
        or is_period_marker(line)
        or any(label in line for label in TIME_OF_DAY_LABELS)
    )


def segment_blocks(lines: list[str], start: int) -> list[CourseBlock]:
    """Cut the lines after the weekday header into course blocks tagged with day and period."""
    blocks: list[CourseBlock] = []
    # Blocks of the current period row, flushed when the next period marker shows up
    pending: list[tuple[int, str]] = []
    section = 0
    days = DayCounter()
    state = SCANNING
    block_lines: list[str] = []
    block_day = 0

    i = start
    while i < len(lines):
        line = lines[i].strip()

        if state == IN_BLOCK:
            if not line:
                i += 1
                continue
            if is_block_terminator(line):
                pending.append((block_day, "\n".join(block_lines)))
                state = SCANNING
                # The terminator itself is examined again while scanning
                continue
            block_lines.append(line)
            i += 1
            continue

        kind = classify_line(line)
        if kind == PERIOD:
            blocks.extend(CourseBlock(day, text, section) for day, text in pending)
            pending = []
            days.reset()
            value = int(line)
            if MIN_SECTION <= value <= MAX_SECTION:
                section = value
        elif kind == COURSE_START:
            state = IN_BLOCK
            block_lines = [line]
            block_day = days.next_day()
        i += 1

    if state == IN_BLOCK:
        pending.append((block_day, "\n".join(block_lines)))
    blocks.extend(CourseBlock(day, text, section) for day, text in pending)
    return blocks


# ---------------------------------------------------------------------------
# Course fields
# ---------------------------------------------------------------------------

def _parse_section(text: str) -> int | None:
    try:
        value = int(text.strip())
    except ValueError:
        return None
    if MIN_SECTION <= value <= MAX_SECTION:
        return value
    return None


def _until_slash(text: str) -> str:
    return text.split("/", 1)[0].strip()


def _period_span_rule(line: str) -> dict | None:
    # "(1-2节)6周,11周/..." -> time slot "1-2", weeks "6周,11周"
    m = PERIOD_SPAN_RE.search(line)
    if not m:
        return None
    slot = m.group(1)
    if "-" in slot:
        left, right = slot.split("-", 1)
        start = _parse_section(left)
        end = _parse_section(right.split(PERIOD_UNIT, 1)[0])
    else:
        # No dash, e.g. "(5节)": bounds stay at the ambient period
        start = end = None
    return {
        "time_slot": slot,
        "start_section": start,
        "end_section": end,
        "weeks": _until_slash(line[m.end():]),
    }


def _labeled_rule(pattern: re.Pattern, field: str) -> Callable[[str], dict | None]:
    def rule(line: str) -> dict | None:
        m = pattern.search(line)
        if not m:
            return None
        return {field: _until_slash(line[m.end():])}
    return rule


FIELD_RULES = (
    ("period_span", _period_span_rule),
    ("teacher", _labeled_rule(TEACHER_RE, "teacher")),
    ("location", _labeled_rule(LOCATION_RE, "location")),
)


def extract_fields(meta_lines: list[str]) -> dict:
    """Apply every field rule to every line; the first line a rule matches fills its fields."""
    fields: dict = {}
    matched: set[str] = set()
    for line in meta_lines:
        info = line.strip()
        for rule_name, rule in FIELD_RULES:
            if rule_name in matched:
                continue
            found = rule(info)
            if found is not None:
                fields.update(found)
                matched.add(rule_name)
    return fields


def parse_course_block(text: str, day_of_week: int, section: int) -> Course | None:
    lines = text.split("\n")
    name = lines[0]
    for marker in COURSE_MARKERS:
        name = name.replace(marker, "")
    name = name.strip()
    if not name:
        return None

    fields = extract_fields(lines[1:])
    start = fields.get("start_section") or section
    end = fields.get("end_section") or section
    # Blocks seen before any period marker have no usable section
    if not (MIN_SECTION <= start <= MAX_SECTION and MIN_SECTION <= end <= MAX_SECTION):
        return None
    if not 1 <= day_of_week <= len(WEEKDAYS):
        return None

    return Course(
        name=name,
        teacher=fields.get("teacher", ""),
        location=fields.get("location", ""),
        time_slot=fields.get("time_slot", ""),
        weeks=fields.get("weeks", ""),
        day_of_week=day_of_week,
        start_section=start,
        end_section=end,
    )


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

def extract_blocks(lines: list[str]) -> list[CourseBlock]:
    header_idx = find_header(lines)
    if header_idx is None:
        return []
    width = header_width(lines, header_idx)
    if width == 0:
        return []
    return segment_blocks(lines, header_idx + width)


def parse_schedule_lines(lines: list[str]) -> CourseSchedule:
    name, student_id, semester = extract_metadata(lines)
    courses = []
    for block in extract_blocks(lines):
        course = parse_course_block(block.text, block.day_of_week, block.section)
        if course is not None:
            courses.append(course)
    return CourseSchedule(
        student_name=name,
        student_id=student_id,
        semester=semester,
        courses=tuple(courses),
    )


def parse_schedule_text(text: str) -> CourseSchedule:
    return parse_schedule_lines(text.splitlines())


# ---------------------------------------------------------------------------
# Weeks
# ---------------------------------------------------------------------------

def parse_weeks(weeks_text: str) -> list[int]:
    """Expand a weeks string like "6-8周(双),9-18周" into week numbers.

    (单) keeps odd weeks only, (双) even weeks only. Unrecognized parts are ignored.
    """
    weeks = set()
    if not weeks_text:
        return []
    for part in re.split(r"[,，]", weeks_text):
        part = part.strip()
        if not part:
            continue
        m = re.search(r"(\d+)(?:-(\d+))?\s*周", part)
        if not m:
            continue
        a = int(m.group(1))
        b = int(m.group(2)) if m.group(2) else a
        if a > b:
            continue
        parity = None
        if "(单)" in part or "（单）" in part:
            parity = 1
        elif "(双)" in part or "（双）" in part:
            parity = 0
        weeks.update(w for w in range(a, b + 1) if parity is None or w % 2 == parity)
    return sorted(weeks)


def courses_in_week(schedule: CourseSchedule, week: int) -> list[Course]:
    return [c for c in schedule.courses if week in parse_weeks(c.weeks)]


# ---------------------------------------------------------------------------
# Calendar export
# ---------------------------------------------------------------------------

def build_ics(
    schedule: CourseSchedule,
    monday_date: str,
    output_path: str,
    tz: str = "Asia/Shanghai",
    cal_name: str | None = None,
) -> int:
    """Write one event per course per teaching week; returns the number of events.

    Times are floating local times taken from SECTION_TIMES.
    """
    cal = Calendar()
    monday = datetime.strptime(monday_date, "%Y-%m-%d")
    uid_dom = schedule.student_id or "course-schedule.local"
    uid_counter = 1

    for course in schedule.courses:
        t_start = SECTION_TIMES.get(course.start_section)
        t_end = SECTION_TIMES.get(course.end_section)
        if not t_start or not t_end:
            continue
        for w in parse_weeks(course.weeks):
            class_date = monday + timedelta(days=course.day_of_week - 1, weeks=w - 1)
            ev = Event()
            ev.name = course.name
            ev.begin = datetime.strptime(f"{class_date.date()} {t_start[0]}", "%Y-%m-%d %H:%M")
            ev.end = datetime.strptime(f"{class_date.date()} {t_end[1]}", "%Y-%m-%d %H:%M")
            ev.location = course.location or "未定"
            ev.description = f"教师: {course.teacher}".strip()
            ev.uid = f"class-{uid_counter:04d}@{uid_dom}"
            uid_counter += 1
            cal.events.add(ev)

    try:
        content = "".join(cal.serialize_iter())
    except Exception:
        content = str(cal)

    if cal_name is None:
        cal_name = " ".join(x for x in (schedule.student_name, schedule.semester) if x) or "课表"
    content = _fix_ics_content(content, cal_name, tz)
    with open(output_path, "wb") as f:
        f.write(content.encode("utf-8"))
    return len(cal.events)


def _fix_ics_content(text: str, cal_name: str, tz: str) -> str:
    # Calendar headers after VERSION, floating DTSTART/DTEND, DTSTAMP per event, CRLF
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    utc_now = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    out: list[str] = []
    buf: list[str] = []
    in_event = False
    have_dtstamp = False
    for l in lines:
        if not l:
            continue
        if l == "BEGIN:VEVENT":
            in_event = True
            have_dtstamp = False
            buf = [l]
            continue
        if not in_event:
            out.append(l)
            if l.startswith("VERSION:"):
                out.append("CALSCALE:GREGORIAN")
                out.append("METHOD:PUBLISH")
                out.append(f"X-WR-CALNAME:{cal_name}")
                out.append(f"X-WR-TIMEZONE:{tz}")
            continue
        if l.startswith("DTSTAMP:"):
            have_dtstamp = True
        if l.startswith("DTSTART") or l.startswith("DTEND"):
            key_params, val = l.split(":", 1)
            l = f"{key_params.split(';', 1)[0]}:{val.rstrip('Z')}"
        buf.append(l)
        if l == "END:VEVENT":
            if not have_dtstamp:
                buf.insert(1, f"DTSTAMP:{utc_now}")
            out.extend(buf)
            in_event = False
    return "\r\n".join(out) + "\r\n"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def format_course(course: Course) -> str:
    day = WEEKDAYS[course.day_of_week - 1]
    if course.start_section == course.end_section:
        span = f"{course.start_section}"
    else:
        span = f"{course.start_section}-{course.end_section}"
    return f"[{day} {span}节] {course.name} | {course.weeks or '-'} | {course.teacher or '-'} @ {course.location or '-'}"


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="course-schedule-pdf",
        description="Parse a personal course-schedule PDF into a structured schedule",
    )
    p.add_argument("pdf", nargs="?", help="Schedule PDF (default: first .pdf in the current folder)")
    p.add_argument("--max-pages", type=int, default=MAX_PAGES, help="Number of pages to scan")
    p.add_argument("--json", dest="json_out", help="Write the schedule as JSON ('-' for stdout)")
    p.add_argument("--week", type=int, help="Only list courses held in this teaching week")
    p.add_argument("--ics", dest="ics_out", help="Write an .ics calendar (needs --monday)")
    p.add_argument("--monday", help="Monday date of week 1 (YYYY-MM-DD)")
    return p


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    pdf_path = args.pdf or find_default_pdf()
    if not pdf_path or not os.path.exists(pdf_path):
        print("PDF not found. Please run again and provide a valid path.")
        sys.exit(1)

    if args.ics_out:
        try:
            datetime.strptime(args.monday or "", "%Y-%m-%d")
        except ValueError:
            print("Invalid or missing --monday date. Please use YYYY-MM-DD.")
            sys.exit(1)

    try:
        lines = read_pdf_text(pdf_path, max_pages=args.max_pages).splitlines()
    except Exception as e:
        print(f"Failed to read PDF: {e}")
        sys.exit(1)
    schedule = parse_schedule_lines(lines)

    if os.getenv("TT_DEBUG") == "1":
        print("-- Blocks --")
        for b in extract_blocks(lines):
            print(f"day={b.day_of_week} section={b.section:2d} :: {b.text.splitlines()[0]}")

    print(f"学生姓名: {schedule.student_name}")
    print(f"学号: {schedule.student_id}")
    print(f"学期: {schedule.semester}")

    courses = list(schedule.courses)
    if args.week is not None:
        courses = courses_in_week(schedule, args.week)
        print(f"第{args.week}周: {len(courses)} 门课程")
    else:
        print(f"找到 {len(courses)} 门课程")
    for i, c in enumerate(courses, start=1):
        print(f"{i:02d}. {format_course(c)}")

    if args.json_out:
        payload = json.dumps(schedule_to_dict(schedule), ensure_ascii=False, indent=2)
        if args.json_out == "-":
            print(payload)
        else:
            with open(args.json_out, "w", encoding="utf-8") as f:
                f.write(payload + "\n")
            print(f"JSON written: {args.json_out}")

    if args.ics_out:
        n = build_ics(schedule, monday_date=args.monday, output_path=args.ics_out)
        print(f"Calendar exported: {args.ics_out} (events: {n})")


if __name__ == "__main__":
    main()
