from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Pricing engine
    CPMM_MIN_POOL_QTY: float = 0.01
    TAKER_FEE_CONSTANT: float = 0.0  # fee hook stays inert at 0

    # Arbitrage solver (dependent multi-choice markets)
    ARBITRAGE_MAX_ITERATIONS: int = 200
    ARBITRAGE_TOLERANCE: float = 1e-9

    # Lifecycle
    GRADUATION_VOLUME_THRESHOLD: float = 500.0
    GRADUATION_TIMER_MS: int = 5 * 60 * 1000

    # Market creation
    MINIMUM_ANTE: float = 50.0
    MAX_ANSWERS: int = 20

    # Price history
    PRICE_HISTORY_LIMIT: int = 500

    # Periodic sweeps
    EXPIRY_SWEEP_INTERVAL_S: float = 60.0
    GRADUATION_SWEEP_INTERVAL_S: float = 30.0

    # App
    APP_NAME: str = "Prediction Market Core"
    MACHINE_ID: int = 0
    DEBUG: bool = False


settings = Settings()
