from sqlalchemy.ext.asyncio import AsyncSession

from looptrading.models.user_settings import DEFAULT_SETTINGS_ID, UserSettings

DEFAULT_USER_SETTINGS = {
    "id": DEFAULT_SETTINGS_ID,
    "strategy_pullback": True,
    "strategy_breakout": True,
    "strategy_macd_cross": True,
    "min_score_alert": 75,
    "push_enabled": True,
    "quiet_hours_enabled": False,
    "quiet_hours_start": "22:00",
    "quiet_hours_end": "08:00",
}


async def get_or_create_user_settings(session: AsyncSession) -> UserSettings:
    """Return the singleton settings row, inserting defaults on first use."""
    user_settings = await session.get(UserSettings, DEFAULT_SETTINGS_ID)
    if user_settings is None:
        user_settings = UserSettings(**DEFAULT_USER_SETTINGS)
        session.add(user_settings)
        await session.flush()
    return user_settings


def is_strategy_enabled(strategy: str, user_settings: UserSettings) -> bool:
    """Strategy toggles; SCORE_THRESHOLD (and anything unknown) is always on."""
    if strategy == "PULLBACK":
        return bool(user_settings.strategy_pullback)
    if strategy == "BREAKOUT":
        return bool(user_settings.strategy_breakout)
    if strategy == "MACD_CROSS":
        return bool(user_settings.strategy_macd_cross)
    return True
