"""
Агрегация результатов экзаменов ученика.

- exam_time_series: сумма баллов по датам (для графика динамики)
- exam_heatmap: предмет x месяц
- exam_sequence_summary: сравнение N-го экзамена по всем предметам

Экзамен "вне программы" (is_extra) - предмет, которого не было у ученика на
момент записи результата. Он виден везде, но в средних по порядковому номеру
не участвует. Проценты округляются при агрегации, а не при отображении.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

import pandas as pd

from crm.entities import ExamResult
from crm.utils.dates import month_key, month_label
from crm.utils.rounding import percent, round_half_up, to_decimal


@dataclass
class ExamPoint:
    """Точка графика: все экзамены одной даты."""
    date: date
    score: float
    max_score: float
    percent: int
    is_extra: bool
    subjects: list[str] = field(default_factory=list)


@dataclass
class HeatmapCell:
    """Ячейка тепловой карты: один предмет в одном месяце."""
    percent: int
    count: int
    raw_avg: int
    raw_max: int
    is_extra: bool


@dataclass
class HeatmapMonth:
    key: str    # 2024-03
    label: str  # март


@dataclass
class HeatmapRow:
    subject: str
    cells: list[Optional[HeatmapCell]] = field(default_factory=list)


@dataclass
class Heatmap:
    months: list[HeatmapMonth] = field(default_factory=list)
    rows: list[HeatmapRow] = field(default_factory=list)


@dataclass
class SequenceRow:
    """Строка сравнения по порядковому номеру экзамена."""
    sequence: int
    label: str
    percent: int
    count: int              # экзамены, вошедшие в процент (без is_extra)
    total_count: int        # все экзамены с этим номером
    is_extra: bool = False
    subjects: list[str] = field(default_factory=list)
    date: Optional[date] = None
    score: Optional[float] = None
    max_score: Optional[float] = None


def _chronological(results: Iterable[ExamResult]) -> list[ExamResult]:
    return sorted(results, key=lambda r: (r.date, r.id))


def exam_subjects(results: Iterable[ExamResult]) -> list[str]:
    """Предметы в порядке первого появления в истории."""
    return list(dict.fromkeys(r.subject for r in _chronological(results)))


def exam_time_series(results: Iterable[ExamResult], subject: Optional[str] = None) -> list[ExamPoint]:
    """
    Динамика результатов по датам (по возрастанию даты).

    Все экзамены одной даты суммируются, включая экзамены вне программы;
    такая дата помечается is_extra.
    """
    by_date: dict[date, list[ExamResult]] = defaultdict(list)
    for result in results:
        if subject is None or result.subject == subject:
            by_date[result.date].append(result)

    points = []
    for day in sorted(by_date):
        day_results = by_date[day]
        score = sum(r.score for r in day_results)
        max_score = sum(r.max_score for r in day_results)
        points.append(ExamPoint(
            date=day,
            score=score,
            max_score=max_score,
            percent=percent(score, max_score),
            is_extra=any(r.is_extra for r in day_results),
            subjects=list(dict.fromkeys(r.subject for r in day_results)),
        ))
    return points


def _heatmap_cell(results: list[ExamResult]) -> HeatmapCell:
    count = len(results)
    ratio_sum = sum(
        (to_decimal(r.score) / to_decimal(r.max_score) if r.max_score else to_decimal(0))
        for r in results
    )
    return HeatmapCell(
        percent=round_half_up(ratio_sum * 100 / count),
        count=count,
        raw_avg=round_half_up(to_decimal(sum(r.score for r in results)) / count),
        raw_max=round_half_up(to_decimal(sum(r.max_score for r in results)) / count),
        is_extra=any(r.is_extra for r in results),
    )


def exam_heatmap(results: Iterable[ExamResult], current_subjects: Iterable[str] = ()) -> Heatmap:
    """
    Тепловая карта предмет x месяц.

    Строки - текущие предметы плюс все предметы из истории; столбцы - месяцы,
    в которых были экзамены. Один экзамен вне программы помечает всю ячейку.
    """
    results = _chronological(results)

    subjects = list(dict.fromkeys(current_subjects))
    for subject in exam_subjects(results):
        if subject not in subjects:
            subjects.append(subject)

    keys = sorted({month_key(r.date) for r in results})
    grouped: dict[tuple[str, str], list[ExamResult]] = defaultdict(list)
    for result in results:
        grouped[(result.subject, month_key(result.date))].append(result)

    heatmap = Heatmap(months=[HeatmapMonth(key, month_label(key)) for key in keys])
    for subject in subjects:
        row = HeatmapRow(subject=subject)
        for key in keys:
            cell_results = grouped.get((subject, key))
            row.cells.append(_heatmap_cell(cell_results) if cell_results else None)
        heatmap.rows.append(row)

    return heatmap


def assign_sequences(results: Iterable[ExamResult]) -> dict[str, list[tuple[int, ExamResult]]]:
    """Порядковые номера экзаменов внутри каждого предмета (с 1, по хронологии)."""
    by_subject: dict[str, list[ExamResult]] = defaultdict(list)
    for result in _chronological(results):
        by_subject[result.subject].append(result)

    return {
        subject: list(enumerate(subject_results, start=1))
        for subject, subject_results in by_subject.items()
    }


def exam_sequence_summary(results: Iterable[ExamResult], subject: Optional[str] = None) -> list[SequenceRow]:
    """
    Сравнение экзаменов по порядковому номеру.

    Без фильтра: одна строка на номер i - средний результат i-х экзаменов всех
    предметов, только по экзаменам программы. С фильтром: каждый экзамен
    предмета отдельной строкой со своим номером.
    """
    sequences = assign_sequences(results)

    if subject is not None:
        rows = []
        for number, result in sequences.get(subject, []):
            rows.append(SequenceRow(
                sequence=number,
                label=f"Экзамен №{number}",
                percent=percent(result.score, result.max_score),
                count=0 if result.is_extra else 1,
                total_count=1,
                is_extra=result.is_extra,
                subjects=[result.subject],
                date=result.date,
                score=result.score,
                max_score=result.max_score,
            ))
        return rows

    by_number: dict[int, list[ExamResult]] = defaultdict(list)
    for numbered in sequences.values():
        for number, result in numbered:
            by_number[number].append(result)

    rows = []
    for number in sorted(by_number):
        all_results = by_number[number]
        counted = [r for r in all_results if not r.is_extra]
        rows.append(SequenceRow(
            sequence=number,
            label=f"Экзамен №{number} (все предметы)",
            percent=percent(sum(r.score for r in counted), sum(r.max_score for r in counted)),
            count=len(counted),
            total_count=len(all_results),
            is_extra=not counted,
            subjects=list(dict.fromkeys(r.subject for r in all_results)),
        ))
    return rows


def subject_performance(results: Iterable[ExamResult], month: str) -> list[dict]:
    """
    Средний процент по предметам за месяц (лучшие сверху).

    Returns:
        [{"subject", "avg_percent", "count"}]
    """
    stats: dict[str, dict] = defaultdict(lambda: {"total": 0, "max": 0, "count": 0})
    for result in results:
        if month_key(result.date) != month:
            continue
        entry = stats[result.subject]
        entry["total"] += result.score
        entry["max"] += result.max_score
        entry["count"] += 1

    performance = [
        {"subject": subject, "avg_percent": percent(s["total"], s["max"]), "count": s["count"]}
        for subject, s in stats.items()
    ]
    performance.sort(key=lambda p: p["avg_percent"], reverse=True)
    return performance


def heatmap_df(heatmap: Heatmap) -> pd.DataFrame:
    """
    DataFrame процентов тепловой карты.

    Returns:
        DataFrame: index=предметы, columns=подписи месяцев, NaN для пустых ячеек
    """
    # Подписи месяцев разных лет совпадают, поэтому столбцы передаются списком
    return pd.DataFrame(
        [[cell.percent if cell else None for cell in row.cells] for row in heatmap.rows],
        index=[row.subject for row in heatmap.rows],
        columns=[month.label for month in heatmap.months],
        dtype="float",
    )


def time_series_df(points: list[ExamPoint]) -> pd.DataFrame:
    """
    DataFrame динамики результатов.

    Returns:
        DataFrame: columns=['date', 'score', 'max_score', 'percent', 'is_extra']
    """
    columns = ["date", "score", "max_score", "percent", "is_extra"]
    return pd.DataFrame(
        [{c: getattr(p, c) for c in columns} for p in points],
        columns=columns,
    )
