import json
from functools import lru_cache

from pydantic import ValidationError

from symbiote.bootstrap.config.loader import get_cli_args, resolve_configfile
from symbiote.bootstrap.config.settings import SessionSettings, SymbioteConfig
from symbiote.core.catalog.defaults import default_registry
from symbiote.core.models.report import Role
from symbiote.core.protocol.driver import Driver
from symbiote.core.registry import CodecRegistry
from symbiote.core.wire.messages import BinaryMessageCodec, JsonMessageCodec, MessageCodec
from symbiote.infra.json_serializer import JsonSerializer
from symbiote.infra.msgpack_serializer import MsgPackSerializer


@lru_cache
def get_config() -> SymbioteConfig:
    cli = get_cli_args()
    try:
        return SymbioteConfig.load(resolve_configfile(cli.config))
    except ValidationError as ex:
        msg = ["Configuration validation failed:"]
        errs = json.loads(ex.json())
        for err in errs:
            msg.append(f"  {'.'.join(str(p) for p in err['loc'])}: {err['msg']}")
        raise SystemExit("\n".join(msg))


@lru_cache
def get_registry() -> CodecRegistry:
    return build_registry(get_config().topics)


def build_registry(topics: list[str]) -> CodecRegistry:
    registry = default_registry()
    if topics:
        try:
            registry = registry.restrict(topics)
        except KeyError as ex:
            raise SystemExit(f"[config] {ex.args[0]}")
    return registry.freeze()


def build_message_codec(settings: SessionSettings) -> MessageCodec:
    if settings.encoding == "binary":
        return BinaryMessageCodec()

    serializer = MsgPackSerializer() if settings.serializer == "msgpack" else JsonSerializer()
    return JsonMessageCodec(serializer)


@lru_cache
def get_driver(role: Role) -> Driver:
    config = get_config()
    return Driver(
        role=role,
        registry=get_registry(),
        codec=build_message_codec(config.session),
        config=config.session.to_config(),
    )
