from datetime import datetime, timezone


def now_utc_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def ms_to_minutes(ms: int) -> float:
    return max(0, int(ms)) / 1000 / 60
