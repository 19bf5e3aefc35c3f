from decimal import Decimal

from decouple import config

from .base import SECRET_KEY

# Supported ISO 4217 codes for payments
CURRENCIES = ("LKR", "USD", "EUR")
DEFAULT_CURRENCY = config("DEFAULT_CURRENCY", default="LKR")

# A pending payment not settled within this window is treated as failed
PAYMENT_EXPIRY_HOURS = config("PAYMENT_EXPIRY_HOURS", default=24, cast=int)

TICKET_TAX_PERCENT = config("TICKET_TAX_PERCENT", default="0", cast=Decimal)
TICKET_SERVICE_FEE_PERCENT = config("TICKET_SERVICE_FEE_PERCENT", default="0", cast=Decimal)

# Upper bound on units per booking line
MAX_UNITS_PER_LINE = config("MAX_UNITS_PER_LINE", default=10, cast=int)

# Key used to sign ticket QR tokens. Leaving it empty disables minting.
QR_SIGNING_KEY = config("QR_SIGNING_KEY", default=SECRET_KEY)

STRIPE_SECRET_KEY = config("STRIPE_SECRET_KEY", default="sk_test_...")

# provider -> processor class
PAYMENT_PROCESSORS = {
    "stripe": "events.service.payment_processors.StripeCardProcessor",
    "cod": "events.service.payment_processors.CashOnDeliveryProcessor",
    "payhere": "events.service.payment_processors.SandboxProcessor",
    "dialog": "events.service.payment_processors.SandboxProcessor",
    "mobitel": "events.service.payment_processors.SandboxProcessor",
    "hutch": "events.service.payment_processors.SandboxProcessor",
}

# Used when a payment method does not name a provider
DEFAULT_PAYMENT_PROVIDERS = {
    "credit_card": "stripe",
    "debit_card": "stripe",
    "mobile_wallet": "dialog",
    "bank_transfer": "payhere",
    "cash_on_delivery": "cod",
}
