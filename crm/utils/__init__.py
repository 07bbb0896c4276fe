"""
Вспомогательные утилиты: даты, округление, расчёт оплаты, статистика, графики, экспорт.
"""
