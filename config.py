from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    APP_NAME: str = "tracker-gateway"
    PROD: bool = False

    # Device-facing TCP listener
    DEVICE_HOST: str = "0.0.0.0"
    DEVICE_PORT: int = 9001

    # Relay listener for the consumer application
    CLIENT_HOST: str = "0.0.0.0"
    CLIENT_PORT: int = 9500

    # Authentication code returned in JT808 registration acks
    JT808_AUTH_CODE: str = "123456"

    # Connection limits
    MAX_CONNECTIONS: int = 1000
    MAX_CONNECTIONS_PER_IP: int = 50
    MAX_BUFFER_SIZE: int = 8192  # bytes buffered per connection
    CONNECTION_TIMEOUT: int = 300  # idle seconds

    # Logging
    LOG_FILE: str = "./logs/logs.log"
    ASYNC_LOGGING: bool = True

    class Config:
        env_file = '.env'
        extra = 'ignore'


settings = Settings()
