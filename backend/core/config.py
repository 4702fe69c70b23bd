"""
Конфигурация сервисов маркетплейса Дедов Морозов
"""
import os

# База данных
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./dedmoroz.db")
DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"

# Комиссия платформы (в процентах), используется если настройка не читается
DEFAULT_COMMISSION_RATE = int(os.getenv("DEFAULT_COMMISSION_RATE", 40))
COMMISSION_RATE_KEY = "commission_rate"

# Системный пользователь для записей аудита от вебхуков
SYSTEM_USER_ID = "00000000-0000-0000-0000-000000000000"

# Порты сервисов
BOOKING_SERVICE_PORT = int(os.getenv("BOOKING_SERVICE_PORT", 5001))
PAYMENT_SERVICE_PORT = int(os.getenv("PAYMENT_SERVICE_PORT", 5002))
NOTIFICATION_SERVICE_PORT = int(os.getenv("NOTIFICATION_SERVICE_PORT", 5004))

# Режим работы платёжного шлюза: mock, test, production
PAYMENT_ENV = os.getenv("PAYMENT_ENV", "mock").lower()

# ВТБ: эквайринг через API счетов
VTB_AUTH_URL = os.getenv("VTB_AUTH_URL", "https://payment-gateway-api.vtb.ru/oauth/token")
VTB_INVOICE_URL = os.getenv("VTB_INVOICE_URL", "https://payment-gateway-api.vtb.ru/api/v1/invoices")
VTB_CLIENT_ID = os.getenv("VTB_CLIENT_ID")
VTB_CLIENT_SECRET = os.getenv("VTB_CLIENT_SECRET")
VTB_MERCHANT_SITE_ID = os.getenv("VTB_MERCHANT_SITE_ID")

SITE_URL = os.getenv("SITE_URL", "https://дед-морозы.рф")

# Каналы уведомлений. Без ключей канал работает в режиме заглушки
SMS_API_URL = os.getenv("SMS_API_URL", "https://api.notificore.ru/v1.0/2fa/send")
SMS_API_KEY = os.getenv("SMS_API_KEY")
EMAIL_API_URL = os.getenv("EMAIL_API_URL", "https://api.resend.com/emails")
EMAIL_API_KEY = os.getenv("EMAIL_API_KEY")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "Деды Морозы <noreply@дед-морозы.рф>")
PUSH_API_URL = os.getenv("PUSH_API_URL")

# Таймауты внешних запросов (в секундах)
REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", 5))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
