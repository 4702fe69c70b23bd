"""
Ошибки доменной модели бронирований
"""


class BookingError(Exception):
    """Базовая ошибка: сообщение для пользователя и HTTP-статус"""

    status_code = 500
    default_message = "Внутренняя ошибка"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message}


class ValidationError(BookingError):
    status_code = 400
    default_message = "Некорректные данные"


class PermissionDeniedError(BookingError):
    status_code = 403
    default_message = "Действие недоступно для этой роли"


class NotFoundError(BookingError):
    status_code = 404
    default_message = "Бронирование не найдено"


class ConflictError(BookingError):
    """Бронирование изменили параллельно, нужно перечитать состояние"""

    status_code = 409
    default_message = "Бронирование уже было изменено, обновите страницу"


class PersistenceError(BookingError):
    status_code = 500
    default_message = "Не удалось сохранить изменения"


class ConfigurationReadError(BookingError):
    """Не наружу: ловится в CommissionRateProvider и заменяется значением по умолчанию"""

    default_message = "Не удалось прочитать настройки платформы"
