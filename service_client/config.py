from pydantic import Field, PositiveFloat, PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    BASE_URI: str = Field(description="Base URI prepended to relative request paths", default="")

    CONTENT_TYPE: str = Field(
        description="Content type sent with request bodies and preferred in Accept",
        default="application/json",
    )

    TIMEOUT: PositiveFloat = Field(description="Per-call timeout in seconds", default=60.0)

    BUFFER_SIZE: PositiveInt = Field(description="Size in bytes of each response body read", default=8192)

    EMULATE_HTTP_VIA_POST: bool = Field(
        description="Send verbs other than GET and POST as POST with X-HTTP-Method-Override",
        default=False,
    )

    ALWAYS_SEND_BASIC_AUTH_HEADER: bool = Field(
        description="Attach basic auth to every request instead of waiting for a challenge",
        default=False,
    )

    STORE_COOKIES: bool = Field(description="Keep cookies across calls in the client cookie jar", default=False)

    USERNAME: str | None = Field(description="Username for basic auth", default=None)

    PASSWORD: str | None = Field(description="Password for basic auth", default=None)

    LOG_LEVEL: str = Field(description="Log level", default="INFO")

    LOG_FORMAT: str = Field(
        description="Log format",
        default="%(asctime)s.%(msecs)03d %(levelname)s [%(threadName)s] [%(filename)s:%(lineno)d] %(call_id)s - %(message)s",
    )

    LOG_DATEFORMAT: str | None = Field(description="Log date format", default=None)

    model_config = SettingsConfigDict(
        env_prefix="SERVICE_CLIENT_",
        # read from dotenv format config file
        env_file=".env",
        env_file_encoding="utf-8",
        # ignore extra attributes
        extra="ignore",
    )
