from pathlib import Path
from typing import Annotated, ClassVar, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource, YamlConfigSettingsSource

from symbiote.core.models.config import SessionConfig, SwapPolicy


class SessionSettings(BaseModel):
    encoding: Annotated[
        Literal["json", "binary"],
        Field(
            description=(
                "Wire encoding of protocol messages and payloads.\n"
                "Both parties must use the same encoding for a session."
            ),
            default="json"
        )
    ]

    serializer: Annotated[
        Literal["json", "msgpack"],
        Field(
            description=(
                "Framing of the JSON message tree when encoding is 'json'.\n"
                "'json' sends UTF-8 text, 'msgpack' a MessagePack rendition of the same tree."
            ),
            default="json"
        )
    ]

    trials: Annotated[
        int,
        Field(
            description=(
                "Number of trials this party generates per topic.\n"
                "Capped by the number of distinct values of a topic's type."
            ),
            default=100,
            ge=0
        )
    ]

    swap: Annotated[
        SwapPolicy,
        Field(
            description=(
                "When the generating role is handed to the peer.\n"
                "topic → after all trials of the topic (default).\n"
                "trial → after each trial.\n"
                "never → only the first party generates."
            ),
            default=SwapPolicy.topic
        )
    ]

    max_size: Annotated[
        int,
        Field(
            description="Upper bound of the size parameter given to value generators.",
            default=64,
            ge=0
        )
    ]

    reply_timeout: Annotated[
        float,
        Field(
            description="Maximum time (in seconds) to wait for the next expected message.",
            default=10.0,
            gt=0
        )
    ]

    receive_retries: Annotated[
        int,
        Field(
            description="Additional timeout periods tolerated before the session aborts.",
            default=2,
            ge=0
        )
    ]

    max_topic_failures: Annotated[
        int | None,
        Field(
            description=(
                "Stop generating for a topic once this many of its trials failed.\n"
                "The topic is then reported as aborted. Unset disables the threshold."
            ),
            default=None,
            ge=1
        )
    ]

    size_tolerance: Annotated[
        int | None,
        Field(
            description=(
                "Largest accepted difference between both parties' size hints.\n"
                "Unset accepts any difference."
            ),
            default=None,
            ge=0
        )
    ]

    seed: Annotated[
        int | None,
        Field(
            description="Seed of the value generator, for reproducible sessions.",
            default=None
        )
    ]

    def to_config(self) -> SessionConfig:
        return SessionConfig(
            trials=self.trials,
            swap=self.swap,
            max_size=self.max_size,
            reply_timeout=self.reply_timeout,
            receive_retries=self.receive_retries,
            max_topic_failures=self.max_topic_failures,
            size_tolerance=self.size_tolerance,
            seed=self.seed,
        )


class ServerSettings(BaseModel):
    host: Annotated[
        str,
        Field(
            description="Bind address the second party listens on.",
            default="127.0.0.1"
        )
    ]

    port: Annotated[
        int,
        Field(
            description="TCP port the second party listens on.",
            default=7700,
            ge=0,
            le=65535
        )
    ]

    backlog: Annotated[
        int,
        Field(
            description="Maximum number of pending TCP connections.",
            default=128
        )
    ]

    timeout_graceful_shutdown: Annotated[
        float,
        Field(
            description="Maximum time allowed for graceful shutdown.",
            default=5.0
        )
    ]

    max_buffer_size: Annotated[
        int,
        Field(
            description="Maximum allowed buffer size for incoming data.",
            default=4 * 1024 * 1024
        )
    ]


class ClientSettings(BaseModel):
    address: Annotated[
        str,
        Field(
            description="Address (host:port) of the second party the first party connects to.",
            default="127.0.0.1:7700"
        )
    ]

    max_retries: Annotated[
        int,
        Field(
            description="Connection attempts retried before giving up.",
            default=10,
            ge=0
        )
    ]

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        host, sep, port = v.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"Address {v!r} must be of the form host:port")
        return v


class SymbioteConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SYMBIOTE_",
        env_nested_delimiter="__",
        extra="ignore"
    )

    configfile: ClassVar[Path | None] = None

    session: Annotated[
        SessionSettings,
        Field(
            description=(
                "Protocol parameters of every session run by this party.\n"
                "Trial counts and turn policy are local choices; the encoding\n"
                "must match the peer's."
            ),
            default_factory=SessionSettings
        )
    ]

    server: Annotated[
        ServerSettings,
        Field(
            description="Listening socket of the second party.",
            default_factory=ServerSettings
        )
    ]

    client: Annotated[
        ClientSettings,
        Field(
            description="Connection of the first party to its peer.",
            default_factory=ClientSettings
        )
    ]

    topics: Annotated[
        list[str],
        Field(
            description=(
                "Topics of the catalog this party advertises.\n"
                "Empty advertises the whole catalog."
            ),
            default_factory=list
        )
    ]

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: tuple[PydanticBaseSettingsSource, ...] = (init_settings, env_settings)
        if cls.configfile is not None:
            sources += (YamlConfigSettingsSource(settings_cls, yaml_file=cls.configfile),)
        return sources

    @classmethod
    def load(cls, configfile: Path | None = None) -> "SymbioteConfig":
        """
        Build the configuration from init values, then SYMBIOTE_* environment
        variables, then `configfile` when given. Missing sections use defaults.
        """
        cls.configfile = configfile
        return cls()
