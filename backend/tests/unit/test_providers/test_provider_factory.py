import pytest

from app.config import Settings
from app.providers.echo import EchoTransport
from app.providers.factory import create_transport, load_transport_class


def test_load_transport_class_resolves_echo():
    assert load_transport_class("app.providers.echo:EchoTransport") is EchoTransport


def test_create_transport_from_settings():
    transport = create_transport(Settings(TRANSPORT_CLASS="app.providers.echo:EchoTransport"))
    assert isinstance(transport, EchoTransport)


@pytest.mark.parametrize("path", ["app.providers.echo", "app.providers.echo:", ":EchoTransport"])
def test_malformed_path(path):
    with pytest.raises(ValueError):
        load_transport_class(path)


def test_class_must_be_a_transport():
    with pytest.raises(ValueError):
        load_transport_class("app.config:Settings")


def test_missing_class():
    with pytest.raises(ValueError):
        load_transport_class("app.providers.echo:NoSuchTransport")
