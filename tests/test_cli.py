"""
Tests for the command line entry point.

PDF reading is patched out; the CLI only has to validate arguments,
print the schedule and write the requested outputs.
"""

import io
import os
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest import mock

import course_schedule_pdf
from course_schedule_pdf import main


SAMPLE_TEXT = """2025-2026学年第1学期
都书锐课表 学号：252712004
星期一
星期二
星期三
1
高等数学★
(1-2节)1-16周/场地: A101/教师: 张三
大学英语▲
(1-2节)2-8周(双)/场地: B202/教师: 李四
"""


class TestCLI(unittest.TestCase):
    def run_main(self, argv: list[str]) -> str:
        buf = io.StringIO()
        with redirect_stdout(buf):
            main(argv)
        return buf.getvalue()

    def test_missing_pdf_exits_nonzero(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            with self.assertRaises(SystemExit) as ctx:
                self.run_main([str(Path(d) / "missing.pdf")])
        self.assertEqual(ctx.exception.code, 1)

    def test_ics_requires_monday(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            pdf = Path(d) / "schedule.pdf"
            pdf.write_bytes(b"")
            with self.assertRaises(SystemExit) as ctx:
                self.run_main([str(pdf), "--ics", str(Path(d) / "out.ics")])
        self.assertEqual(ctx.exception.code, 1)

    def test_unreadable_pdf_exits_nonzero(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            pdf = Path(d) / "schedule.pdf"
            pdf.write_bytes(b"not a pdf")
            with mock.patch.object(course_schedule_pdf, "read_pdf_text", side_effect=ValueError("broken")):
                with self.assertRaises(SystemExit) as ctx:
                    self.run_main([str(pdf)])
        self.assertEqual(ctx.exception.code, 1)

    def test_prints_schedule_and_writes_json(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            pdf = Path(d) / "schedule.pdf"
            pdf.write_bytes(b"")
            out = Path(d) / "schedule.json"
            with mock.patch.object(course_schedule_pdf, "read_pdf_text", return_value=SAMPLE_TEXT):
                printed = self.run_main([str(pdf), "--json", str(out)])
            data = json.loads(out.read_text(encoding="utf-8"))

        self.assertIn("学号: 252712004", printed)
        self.assertIn("找到 2 门课程", printed)
        self.assertIn("[星期二 1-2节] 大学英语", printed)
        self.assertEqual(data["student_name"], "都书锐")
        self.assertEqual([c["name"] for c in data["courses"]], ["高等数学", "大学英语"])
        self.assertEqual(data["courses"][1]["day_of_week"], 2)

    def test_week_filter(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            pdf = Path(d) / "schedule.pdf"
            pdf.write_bytes(b"")
            with mock.patch.object(course_schedule_pdf, "read_pdf_text", return_value=SAMPLE_TEXT):
                printed = self.run_main([str(pdf), "--week", "3"])

        self.assertIn("第3周: 1 门课程", printed)
        self.assertNotIn("大学英语", printed)

    def test_debug_dump_reuses_extracted_text(self) -> None:
        with tempfile.TemporaryDirectory() as d:
            pdf = Path(d) / "schedule.pdf"
            pdf.write_bytes(b"")
            with mock.patch.dict(os.environ, {"TT_DEBUG": "1"}), \
                    mock.patch.object(course_schedule_pdf, "read_pdf_text", return_value=SAMPLE_TEXT) as read:
                printed = self.run_main([str(pdf)])

        read.assert_called_once()
        self.assertIn("-- Blocks --", printed)
        self.assertIn("day=2 section= 1 :: 大学英语▲", printed)
        self.assertIn("找到 2 门课程", printed)


if __name__ == "__main__":
    unittest.main()
