"""
Графики по ученику: динамика экзаменов, тепловая карта, посещаемость по курсам.
"""

import io
import matplotlib
matplotlib.use('Agg')  # Для работы без GUI

import matplotlib.pyplot as plt
import seaborn as sns

from crm.utils.exams import ExamPoint, Heatmap, heatmap_df, time_series_df
from crm.utils.stats import AttendanceStats, by_course_df


# Настройка стиля
sns.set_theme(style="whitegrid")
plt.rcParams['font.family'] = 'DejaVu Sans'
plt.rcParams['figure.figsize'] = (12, 6)
plt.rcParams['figure.dpi'] = 100

EXTRA_COLOR = '#9E9E9E'


def percent_color(pct: float) -> str:
    """Цвет по проценту: зелёный / жёлтый / оранжевый / красный."""
    if pct >= 80:
        return '#4CAF50'
    elif pct >= 60:
        return '#FFC107'
    elif pct >= 40:
        return '#FF9800'
    return '#F44336'


def _to_png(fig) -> io.BytesIO:
    plt.tight_layout()
    buf = io.BytesIO()
    plt.savefig(buf, format='png', bbox_inches='tight', facecolor='white')
    plt.close(fig)
    buf.seek(0)
    return buf


def create_exam_progress_chart(points: list[ExamPoint], student_name: str) -> io.BytesIO | None:
    """
    Линейный график процента по датам экзаменов.

    Даты с экзаменами вне программы отмечены серыми точками.

    Returns:
        BytesIO с изображением PNG или None если нет данных
    """
    df = time_series_df(points)
    if df.empty:
        return None

    fig, ax = plt.subplots(figsize=(12, 6))
    df['date_str'] = df['date'].apply(lambda x: x.strftime('%d.%m.%y'))
    x = range(len(df))

    ax.plot(x, df['percent'], color='#4472C4', linewidth=2, marker='o', zorder=1)
    colors = [EXTRA_COLOR if extra else percent_color(pct) for pct, extra in zip(df['percent'], df['is_extra'])]
    ax.scatter(x, df['percent'], c=colors, s=80, zorder=2, edgecolors='white')

    for i, (pct, score, max_score) in enumerate(zip(df['percent'], df['score'], df['max_score'])):
        ax.annotate(f'{pct}% ({score:g}/{max_score:g})',
                    xy=(i, pct),
                    xytext=(0, 8),
                    textcoords="offset points",
                    ha='center', va='bottom', fontsize=9)

    ax.set_xlabel('Дата', fontsize=12)
    ax.set_ylabel('Результат (%)', fontsize=12)
    ax.set_title(f'📈 Результаты экзаменов: {student_name}', fontsize=14, fontweight='bold')
    ax.set_xticks(list(x))
    ax.set_xticklabels(df['date_str'], rotation=45, ha='right')
    ax.set_ylim(0, 110)

    return _to_png(fig)


def create_exam_heatmap_chart(heatmap: Heatmap, student_name: str) -> io.BytesIO | None:
    """
    Тепловая карта предмет x месяц.

    Ячейки с экзаменами вне программы подписаны звёздочкой.
    """
    if not heatmap.months or not heatmap.rows:
        return None

    df = heatmap_df(heatmap)
    labels = [
        [f"{cell.percent}%{'*' if cell.is_extra else ''}" if cell else "" for cell in row.cells]
        for row in heatmap.rows
    ]

    fig, ax = plt.subplots(figsize=(max(6, len(heatmap.months) * 1.2), max(3, len(heatmap.rows) * 0.6)))
    sns.heatmap(
        df,
        annot=labels,
        fmt="",
        cmap="RdYlGn",
        vmin=0,
        vmax=100,
        linewidths=0.5,
        cbar_kws={"label": "%"},
        ax=ax,
    )
    ax.set_xlabel('')
    ax.set_ylabel('')
    ax.set_title(f'🗓 Экзамены по месяцам: {student_name}', fontsize=14, fontweight='bold')

    return _to_png(fig)


def create_course_attendance_chart(stats: AttendanceStats, student_name: str) -> io.BytesIO | None:
    """Горизонтальная гистограмма посещаемости по курсам."""
    df = by_course_df(stats)
    if df.empty:
        return None

    fig, ax = plt.subplots(figsize=(10, max(4, len(df) * 0.6)))
    bars = ax.barh(df['subject'], df['percent'], color=[percent_color(p) for p in df['percent']], edgecolor='white')

    ax.set_xlabel('Посещаемость (%)', fontsize=12)
    ax.set_ylabel('')
    ax.set_title(f'📊 Посещаемость по курсам: {student_name}', fontsize=14, fontweight='bold')
    ax.set_xlim(0, 105)

    for bar, pct, present, total in zip(bars, df['percent'], df['present'], df['total']):
        ax.annotate(f'{pct}% ({present}/{total})',
                    xy=(bar.get_width(), bar.get_y() + bar.get_height() / 2),
                    xytext=(5, 0),
                    textcoords="offset points",
                    ha='left', va='center', fontsize=10)

    ax.axvline(x=80, color='#4CAF50', linestyle='--', linewidth=1, alpha=0.5)
    ax.invert_yaxis()

    return _to_png(fig)
