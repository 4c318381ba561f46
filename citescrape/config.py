from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Scraper provider
    chatgpt_scraper_provider: str = "oxylabs"  # oxylabs | brightdata

    # Brightdata
    brightdata_api_key: str = ""
    brightdata_dataset_id: str = "gd_m7aof0k82r803d5bjm"

    # Oxylabs
    oxylabs_username: str = ""
    oxylabs_password: str = ""

    # Job lifecycle
    job_poll_interval_seconds: float = 5.0
    job_max_wait_seconds: float = 600.0
    http_timeout_seconds: float = 60.0

    # App
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = ""  # empty disables the file sink

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "env_prefix": "",
    }


settings = Settings()
