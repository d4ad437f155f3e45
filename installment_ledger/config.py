"""Runtime configuration.

Locale and timezone settings are passed explicitly to the currency and date
helpers instead of being read from global state. ``load_config`` builds the
configuration from environment variables, falling back to the Brazilian
defaults the company operates with.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Mapping, Optional
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class LocaleConfig:
    currency_symbol: str = "R$"
    thousands_separator: str = "."
    decimal_separator: str = ","
    timezone: str = "America/Sao_Paulo"
    date_format: str = "%d/%m/%Y"

    def today(self) -> date:
        """Current date in the company timezone."""
        return datetime.now(ZoneInfo(self.timezone)).date()


DEFAULT_LOCALE = LocaleConfig()


@dataclass(frozen=True)
class AppConfig:
    locale: LocaleConfig = field(default_factory=LocaleConfig)
    database_url: str = "sqlite:///ledger_data.sqlite3"


def load_config(environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    env = os.environ if environ is None else environ
    locale = LocaleConfig(
        currency_symbol=env.get("LEDGER_CURRENCY_SYMBOL", DEFAULT_LOCALE.currency_symbol),
        timezone=env.get("LEDGER_TIMEZONE", DEFAULT_LOCALE.timezone),
    )
    return AppConfig(
        locale=locale,
        database_url=env.get("LEDGER_DATABASE_URL") or AppConfig.database_url,
    )
