import os
from decimal import Decimal, InvalidOperation
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parents[1]
load_dotenv(BASE_DIR / ".env")

SETTLEMENT_MODES = ("wallet", "processor")


class Settings:
    def __init__(self):
        self.database_url = os.environ.get("DATABASE_URL", "sqlite:///./firefight.db")
        self.database_sslmode = os.environ.get("DATABASE_SSLMODE")
        self.log_level = os.environ.get("LOG_LEVEL", "INFO").upper()

        # wallet: entry fee settles inside the registration
        # processor: entry fee waits for the payment callback
        self.entry_fee_settlement = os.environ.get("ENTRY_FEE_SETTLEMENT", "wallet")
        if self.entry_fee_settlement not in SETTLEMENT_MODES:
            raise ValueError(
                f"ENTRY_FEE_SETTLEMENT must be one of {SETTLEMENT_MODES}, "
                f"got {self.entry_fee_settlement!r}"
            )

        self.payment_callback_secret = os.environ.get("PAYMENT_CALLBACK_SECRET")

        try:
            self.min_withdrawal = Decimal(os.environ.get("MIN_WITHDRAWAL", "100"))
        except InvalidOperation:
            raise ValueError("MIN_WITHDRAWAL must be a number")


settings = Settings()
