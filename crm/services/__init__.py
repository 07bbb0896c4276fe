"""
Сервисы CRM.
Экспортирует основные компоненты для удобного импорта.
"""

from crm.services.students import StudentService, validate_student
from crm.services.pipeline import PipelineService
from crm.services.journal import JournalService
from crm.services.finance import FinanceService

__all__ = [
    "StudentService",
    "validate_student",
    "PipelineService",
    "JournalService",
    "FinanceService",
]
