"""
Буфер отмены на одно действие.

Хранит снимок состояния до разрушительного действия (активация лида,
удаление предмета) в течение нескольких секунд. Срок проверяется по
монотонному дедлайну при каждом обращении; таймер обратного отсчёта в
интерфейсе только перерисовывает кнопку и вызывает tick().
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class UndoEntry:
    """Ожидающая отмена: снимок предыдущего состояния и срок жизни."""
    payload: Any
    expires_in_seconds: int
    label: str


class UndoBuffer:
    """
    Одна ячейка отмены.

    Новая запись вытесняет предыдущую (и останавливает её таймер).
    apply получает payload записи при отмене.
    """

    def __init__(self, apply: Callable[[Any], None], clock: Callable[[], float] = time.monotonic):
        self._apply = apply
        self._clock = clock
        self._entry: Optional[UndoEntry] = None
        self._deadline: float = 0.0
        self._cancel_timer: Optional[Callable[[], None]] = None

    def set(self, entry: UndoEntry) -> None:
        """Поставить новую запись на отмену."""
        if self._entry is not None:
            logger.info("Отмена '%s' вытеснена новой записью '%s'", self._entry.label, entry.label)
        self._stop_timer()
        self._entry = entry
        self._deadline = self._clock() + entry.expires_in_seconds

    def attach_timer(self, cancel: Callable[[], None]) -> None:
        """Привязать таймер обратного отсчёта; cancel вызывается при очистке буфера."""
        self._stop_timer()
        self._cancel_timer = cancel

    @property
    def pending(self) -> Optional[UndoEntry]:
        """Текущая запись, если срок ещё не вышел."""
        if self._entry is not None and self._clock() >= self._deadline:
            self.clear()
        return self._entry

    def remaining_seconds(self) -> int:
        """Сколько целых секунд осталось (0, если отменять нечего)."""
        if self.pending is None:
            return 0
        return max(0, math.ceil(self._deadline - self._clock()))

    def tick(self) -> int:
        """Вызов раз в секунду из таймера. По истечении срока буфер очищается."""
        remaining = self.remaining_seconds()
        if remaining <= 0:
            self.clear()
        return remaining

    def undo(self) -> bool:
        """
        Применить отмену.

        Returns:
            True, если снимок был применён; False - если отменять нечего
        """
        entry = self.pending
        if entry is None:
            return False

        self.clear()
        self._apply(entry.payload)
        logger.info("Выполнена отмена: %s", entry.label)
        return True

    def clear(self) -> None:
        self._entry = None
        self._deadline = 0.0
        self._stop_timer()

    def close(self) -> None:
        """Закрыть буфер вместе с экраном: таймер не должен пережить владельца."""
        self.clear()

    def _stop_timer(self) -> None:
        cancel, self._cancel_timer = self._cancel_timer, None
        if cancel is not None:
            cancel()
