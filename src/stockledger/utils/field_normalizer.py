import pandas as pd
from datetime import datetime, date
from typing import Any, Optional

class FieldNormalizer:
    """Utility class for normalizing record fields at the storage boundary."""

    # Month-first slash dates are what the billing screens store
    DATE_FORMATS = [
        "%Y-%m-%d", "%m/%d/%Y", "%d-%m-%Y", "%Y/%m/%d",
        "%d.%m.%Y", "%Y.%m.%d"
    ]

    @staticmethod
    def normalize_string(val: Any) -> str:
        """Normalize string fields for consistency."""
        if val is None or (not isinstance(val, str) and pd.isna(val)):
            return ""
        return str(val).strip()

    @classmethod
    def parse_datetime(cls, val: Any) -> Optional[datetime]:
        """Parse an ISO timestamp or a calendar date string into a naive datetime."""
        if val is None:
            return None
        if isinstance(val, datetime):
            return val.replace(tzinfo=None)
        if isinstance(val, date):
            return datetime(val.year, val.month, val.day)

        val_str = str(val).strip()
        if not val_str:
            return None

        for fmt in cls.DATE_FORMATS:
            try:
                return datetime.strptime(val_str, fmt)
            except (ValueError, TypeError):
                continue

        try:
            return datetime.fromisoformat(val_str.replace("Z", "+00:00")).replace(tzinfo=None)
        except ValueError:
            pass

        # Fallback to pandas flexible parsing
        try:
            parsed = pd.to_datetime(val_str, errors='coerce')
        except (ValueError, TypeError):
            return None
        if pd.isna(parsed):
            return None
        return parsed.to_pydatetime().replace(tzinfo=None)

    @classmethod
    def parse_date(cls, val: Any, default_date: Optional[date] = None) -> Optional[date]:
        """Parse date with multiple format support."""
        parsed = cls.parse_datetime(val)
        return parsed.date() if parsed else default_date

    @staticmethod
    def parse_numeric(val: Any, default: float = 0.0) -> float:
        """Parse numeric value with fallback."""
        try:
            if val is None or (not isinstance(val, str) and pd.isna(val)):
                return default
            return float(val)
        except (ValueError, TypeError):
            return default
