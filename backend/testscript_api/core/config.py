from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "TestScript Validation Service"
    VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    # FHIR release assumed when X-FHIR-Version is absent or unknown
    DEFAULT_FHIR_VERSION: str = "R5"

    # External FHIR $validate endpoints
    FHIR_VALIDATION_URL_R4: str = "https://hapi.fhir.org/baseR4/TestScript/$validate"
    FHIR_VALIDATION_URL_R5: str = "https://hapi.fhir.org/baseR5/TestScript/$validate"
    FHIR_VALIDATION_TIMEOUT: int = 10
    REMOTE_VALIDATION_ENABLED: bool = True  # Local result only when False

    class Config:
        env_file = ".env"


settings = Settings()
