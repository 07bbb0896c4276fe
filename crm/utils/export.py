"""
Экспорт карточки ученика в Excel (XLSX).
"""

import io

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, PatternFill, Border, Side
from openpyxl.utils import get_column_letter

from crm.entities import Student
from crm.states import AttendanceMark
from crm.utils.dates import format_date
from crm.utils.exams import Heatmap, SequenceRow
from crm.utils.finance import FeeSummary
from crm.utils.stats import AttendanceStats


# Стили
header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
header_font_white = Font(bold=True, size=11, color="FFFFFF")
center_align = Alignment(horizontal="center", vertical="center")

present_fill = PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid")
absent_fill = PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid")
late_fill = PatternFill(start_color="FFEB9C", end_color="FFEB9C", fill_type="solid")
extra_fill = PatternFill(start_color="D9D9D9", end_color="D9D9D9", fill_type="solid")

thin_border = Border(
    left=Side(style='thin'),
    right=Side(style='thin'),
    top=Side(style='thin'),
    bottom=Side(style='thin')
)

MARK_FILLS = {
    AttendanceMark.PRESENT: present_fill,
    AttendanceMark.ABSENT: absent_fill,
    AttendanceMark.LATE: late_fill,
}


def _header(ws, row: int, titles: list[str]) -> None:
    for col, title in enumerate(titles, 1):
        cell = ws.cell(row=row, column=col, value=title)
        cell.font = header_font_white
        cell.fill = header_fill
        cell.alignment = center_align
        cell.border = thin_border


def _cell(ws, row: int, col: int, value, fill=None, center: bool = True):
    cell = ws.cell(row=row, column=col, value=value)
    cell.border = thin_border
    if center:
        cell.alignment = center_align
    if fill is not None:
        cell.fill = fill
    return cell


def _widths(ws, widths: list[int]) -> None:
    for i, width in enumerate(widths, 1):
        ws.column_dimensions[get_column_letter(i)].width = width


def create_student_report(
    student: Student,
    fees: FeeSummary,
    attendance: AttendanceStats,
    heatmap: Heatmap,
    sequence: list[SequenceRow],
) -> io.BytesIO:
    """
    Отчёт по ученику: посещаемость, курсы, экзамены, оплата - каждый на своём листе.
    Возвращает файл в памяти (BytesIO).
    """
    wb = Workbook()

    ws = wb.active
    ws.title = "Посещаемость"
    _fill_attendance_sheet(ws, student, attendance)

    _fill_courses_sheet(wb.create_sheet("Курсы"), attendance)
    _fill_exams_sheet(wb.create_sheet("Экзамены"), heatmap, sequence)
    _fill_finance_sheet(wb.create_sheet("Оплата"), student, fees)

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)

    return output


def _fill_attendance_sheet(ws, student: Student, stats: AttendanceStats) -> None:
    ws['A1'] = f"Посещаемость: {student.full_name}"
    ws['A1'].font = Font(bold=True, size=14)
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=4)

    _header(ws, 3, ["Дата", "Отметка", "Предмет", "Тема"])

    row = 4
    for record in stats.history:
        _cell(ws, row, 1, format_date(record.date))
        _cell(ws, row, 2, record.status.value, MARK_FILLS.get(record.status))
        _cell(ws, row, 3, record.subject, center=False)
        _cell(ws, row, 4, record.topic, center=False)
        row += 1

    # Итоговая строка
    if stats.history:
        row += 1
        totals = stats.totals
        ws.cell(row=row, column=1, value="ИТОГО").font = Font(bold=True)
        ws.cell(row=row, column=2, value=f"{totals.percent}%").font = Font(bold=True)
        ws.cell(row=row, column=3, value=(
            f"П: {totals.present}, Н: {totals.absent}, О: {totals.late}, У: {totals.excused}"
        ))

    _widths(ws, [12, 10, 25, 40])


def _fill_courses_sheet(ws, stats: AttendanceStats) -> None:
    _header(ws, 1, ["Предмет", "П", "Н", "О", "У", "Всего", "%"])

    row = 2
    for subject, counts in stats.by_course.items():
        _cell(ws, row, 1, subject, center=False)
        _cell(ws, row, 2, counts.present)
        _cell(ws, row, 3, counts.absent)
        _cell(ws, row, 4, counts.late)
        _cell(ws, row, 5, counts.excused)
        _cell(ws, row, 6, counts.total)
        _cell(ws, row, 7, f"{counts.percent}%")
        row += 1

    _widths(ws, [25, 6, 6, 6, 6, 8, 8])


def _fill_exams_sheet(ws, heatmap: Heatmap, sequence: list[SequenceRow]) -> None:
    # Тепловая карта
    _header(ws, 1, ["Предмет"] + [f"{m.label} {m.key[:4]}" for m in heatmap.months])

    row = 2
    for heat_row in heatmap.rows:
        _cell(ws, row, 1, heat_row.subject, center=False)
        for col, cell in enumerate(heat_row.cells, 2):
            if cell is None:
                _cell(ws, row, col, "")
            else:
                _cell(ws, row, col, f"{cell.percent}% ({cell.raw_avg}/{cell.raw_max})",
                      extra_fill if cell.is_extra else None)
        row += 1

    # Сравнение по порядковому номеру
    row += 1
    _header(ws, row, ["Экзамен", "%", "Учтено", "Всего", "Предметы"])
    row += 1
    for seq in sequence:
        _cell(ws, row, 1, seq.label, extra_fill if seq.is_extra else None, center=False)
        _cell(ws, row, 2, f"{seq.percent}%")
        _cell(ws, row, 3, seq.count)
        _cell(ws, row, 4, seq.total_count)
        _cell(ws, row, 5, ", ".join(seq.subjects), center=False)
        row += 1

    _widths(ws, [30] + [16] * max(4, len(heatmap.months)))


def _fill_finance_sheet(ws, student: Student, fees: FeeSummary) -> None:
    _header(ws, 1, ["Предмет", "Цена", "Скидка", "К оплате"])

    row = 2
    for line in fees.lines:
        _cell(ws, row, 1, line.subject, center=False)
        _cell(ws, row, 2, line.base_price)
        _cell(ws, row, 3, f"{line.discount}%")
        _cell(ws, row, 4, line.final_price)
        row += 1

    ws.cell(row=row, column=1, value="ИТОГО").font = Font(bold=True)
    ws.cell(row=row, column=2, value=fees.total_base_fee).font = Font(bold=True)
    ws.cell(row=row, column=4, value=fees.total_monthly_fee).font = Font(bold=True)

    ws.cell(row=row + 2, column=1, value="Баланс")
    ws.cell(row=row + 2, column=2, value=student.balance)
    if student.debt_promise:
        ws.cell(row=row + 3, column=1, value="Обещание")
        deadline = format_date(student.debt_promise_deadline) if student.debt_promise_deadline else ""
        ws.cell(row=row + 3, column=2, value=f"{student.debt_promise} {deadline}".strip())

    _widths(ws, [25, 12, 10, 12])
