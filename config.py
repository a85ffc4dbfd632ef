import os
from decimal import Decimal
from dotenv import load_dotenv

# Загрузка .env
load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# База данных
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///mlm.db")

# Логирование
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# MLM defaults (used when the settings row is missing or incomplete)
MLM_ENABLED = _flag("MLM_ENABLED", "true")
MLM_MAX_LEVELS = int(os.getenv("MLM_MAX_LEVELS", "5"))
MLM_MIN_WITHDRAWAL = Decimal(os.getenv("MLM_MIN_WITHDRAWAL", "500"))
MLM_WITHDRAWAL_FEE_PERCENT = Decimal(os.getenv("MLM_WITHDRAWAL_FEE_PERCENT", "0"))
MLM_DEFAULT_SIGNUP_BONUS = Decimal(os.getenv("MLM_DEFAULT_SIGNUP_BONUS", "0"))
MLM_AUTO_APPROVE = _flag("MLM_AUTO_APPROVE", "false")
MLM_AUTO_ENABLE = _flag("MLM_AUTO_ENABLE", "true")

# Рефералка
REFERRAL_BASE_URL = os.getenv("REFERRAL_BASE_URL", "http://localhost:3000")
