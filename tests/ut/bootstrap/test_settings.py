import pytest
from pydantic import ValidationError

from symbiote.bootstrap.config.loader import build_parser, resolve_configfile
from symbiote.bootstrap.config.settings import SymbioteConfig
from symbiote.bootstrap.deps import build_message_codec, build_registry
from symbiote.core.models.config import SwapPolicy
from symbiote.core.wire.messages import BinaryMessageCodec, JsonMessageCodec
from symbiote.infra.json_serializer import JsonSerializer
from symbiote.infra.msgpack_serializer import MsgPackSerializer


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SYMBIOTECONFIG", "SYMBIOTE_SESSION__TRIALS", "SYMBIOTE_SESSION__SWAP"):
        monkeypatch.delenv(name, raising=False)
    yield
    SymbioteConfig.configfile = None


@pytest.fixture
def configfile(tmp_path):
    file = tmp_path / "symbiote.yaml"
    file.write_text(
        "session:\n"
        "  encoding: binary\n"
        "  trials: 7\n"
        "  swap: trial\n"
        "client:\n"
        "  address: peer.local:9000\n"
        "topics:\n"
        "  - Int32\n"
        "  - String8\n"
    )
    return file


@pytest.mark.ut
def test_defaults_without_configfile():
    config = SymbioteConfig.load(None)

    assert config.session.encoding == "json"
    assert config.session.trials == 100
    assert config.session.swap is SwapPolicy.topic
    assert config.server.port == 7700
    assert config.client.address == "127.0.0.1:7700"
    assert config.topics == []


@pytest.mark.ut
def test_load_from_yaml(configfile):
    config = SymbioteConfig.load(configfile)

    assert config.session.encoding == "binary"
    assert config.session.trials == 7
    assert config.session.swap is SwapPolicy.trial
    assert config.client.address == "peer.local:9000"
    assert config.topics == ["Int32", "String8"]
    assert config.server.host == "127.0.0.1"


@pytest.mark.ut
def test_environment_overrides_yaml(configfile, monkeypatch):
    monkeypatch.setenv("SYMBIOTE_SESSION__TRIALS", "3")

    config = SymbioteConfig.load(configfile)

    assert config.session.trials == 3
    assert config.session.encoding == "binary"


@pytest.mark.ut
def test_invalid_values_are_rejected(tmp_path):
    file = tmp_path / "bad.yaml"
    file.write_text("session:\n  trials: -1\nclient:\n  address: nohost\n")

    with pytest.raises(ValidationError) as ex:
        SymbioteConfig.load(file)

    locs = {err["loc"] for err in ex.value.errors()}
    assert ("session", "trials") in locs
    assert ("client", "address") in locs


@pytest.mark.ut
def test_session_settings_to_config(configfile):
    session = SymbioteConfig.load(configfile).session.to_config()

    assert session.trials == 7
    assert session.swap is SwapPolicy.trial
    assert session.max_topic_failures is None


@pytest.mark.ut
def test_resolve_configfile_priority(configfile, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert resolve_configfile(None) == tmp_path / "symbiote.yaml"

    other = tmp_path / "other.yaml"
    other.write_text("{}\n")
    monkeypatch.setenv("SYMBIOTECONFIG", str(other))
    assert resolve_configfile(None) == other
    assert resolve_configfile(str(configfile)) == configfile


@pytest.mark.ut
def test_resolve_configfile_without_any_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    assert resolve_configfile(None) is None
    with pytest.raises(SystemExit):
        resolve_configfile(str(tmp_path / "missing.yaml"))


@pytest.mark.ut
def test_parser_roles_and_flags():
    args = build_parser().parse_args(["second", "--once", "-f", "json", "-l", "DEBUG"])

    assert args.role == "second"
    assert args.once is True
    assert args.format == "json"
    assert args.log_level == "DEBUG"
    assert args.config is None

    with pytest.raises(SystemExit):
        build_parser().parse_args(["third"])


@pytest.mark.ut
def test_build_registry():
    assert list(build_registry(["String8", "Int32"]).available()) == ["Int32", "String8"]
    assert len(build_registry([]).available()) > 2

    with pytest.raises(SystemExit):
        build_registry(["NoSuchTopic"])


@pytest.mark.ut
def test_build_message_codec():
    config = SymbioteConfig.load(None)
    assert isinstance(build_message_codec(config.session), JsonMessageCodec)

    binary = config.session.model_copy(update={"encoding": "binary"})
    assert isinstance(build_message_codec(binary), BinaryMessageCodec)

    msgpack = config.session.model_copy(update={"serializer": "msgpack"})
    codec = build_message_codec(msgpack)
    assert isinstance(codec._serializer, MsgPackSerializer)
    assert isinstance(build_message_codec(config.session)._serializer, JsonSerializer)
