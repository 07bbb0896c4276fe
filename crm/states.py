"""
Перечисления состояний: статусы учеников, этапы воронки, отметки посещаемости.
"""

from enum import Enum, IntEnum, auto


class StudentStatus(str, Enum):
    """Статус ученика."""
    ACTIVE = "Активен"
    ARCHIVED = "Неактивен"
    PRESALE = "Предзапись"
    DROPPED = "Отвалился"
    PAUSED = "Пауза"


class PipelineStage(str, Enum):
    """Этап воронки оформления (порядок объявления = порядок воронки)."""
    NEW = "Записан"
    CALL = "Тестирование"
    TRIAL = "Пробный урок"
    CONTRACT = "Договор"
    PAYMENT = "Ожидает оплаты"


PIPELINE_ORDER = list(PipelineStage)


class AttendanceMark(str, Enum):
    """Отметка в журнале посещаемости."""
    PRESENT = "П"
    ABSENT = "Н"
    LATE = "О"
    EXCUSED = "У"  # Уважительная причина


class Severity(str, Enum):
    """Уровень уведомления для оператора."""
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    WARNING = "warning"


class ProfileStates(IntEnum):
    """Состояния для ConversationHandler карточки ученика."""
    WAITING_STUDENT_ID = auto()     # Ожидание ID ученика
