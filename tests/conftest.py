import pytest

from symbiote.core.catalog import primitives as p
from symbiote.core.catalog.capabilities import identity
from symbiote.core.catalog.defaults import default_registry
from symbiote.core.models.config import SessionConfig
from symbiote.core.registry import CodecRegistry
from symbiote.core.wire.messages import BinaryMessageCodec, JsonMessageCodec
from symbiote.infra.json_serializer import JsonSerializer
from symbiote.infra.msgpack_serializer import MsgPackSerializer
from tests.fake.fake_transport import FakeTransport


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture(scope="session")
def registry() -> CodecRegistry:
    return default_registry()


@pytest.fixture
def small_registry(registry) -> CodecRegistry:
    return registry.restrict(["Int32", "String8"]).freeze()


@pytest.fixture
def identity_registry() -> CodecRegistry:
    """Int32 with identity as its only check, so every trial is predictable."""
    registry = CodecRegistry()
    registry.register(p.INT32.name, p.INT32, identity())
    return registry.freeze()


@pytest.fixture
def binary_codec():
    return BinaryMessageCodec()


@pytest.fixture
def json_codec():
    return JsonMessageCodec(JsonSerializer())


@pytest.fixture(params=["binary", "json", "msgpack"])
def message_codec(request):
    if request.param == "binary":
        return BinaryMessageCodec()
    if request.param == "json":
        return JsonMessageCodec(JsonSerializer())
    return JsonMessageCodec(MsgPackSerializer())


@pytest.fixture
def session_config() -> SessionConfig:
    return SessionConfig(trials=5, max_size=16, reply_timeout=1.0, receive_retries=0, seed=7)
