import pytest

from utils.pin_handler import (
    PinFormatError,
    PinHandler,
    PinHashFormatError,
    PinValidationError,
)


def test_hash_has_salt_and_digest_hex_parts():
    stored = PinHandler.hash_pin("4826")

    salt_hex, hash_hex = stored.split(":")
    assert len(bytes.fromhex(salt_hex)) == PinHandler.SALT_LENGTH
    assert len(bytes.fromhex(hash_hex)) == PinHandler.KEY_LENGTH


def test_same_pin_hashes_differently():
    assert PinHandler.hash_pin("4826") != PinHandler.hash_pin("4826")


def test_verify_accepts_right_pin_and_rejects_wrong_one():
    stored = PinHandler.hash_pin("4826")

    assert PinHandler.verify_pin("4826", stored) is True
    assert PinHandler.verify_pin("4827", stored) is False


@pytest.mark.parametrize("pin", ["123", "12345", ""])
def test_hash_rejects_wrong_length(pin):
    with pytest.raises(PinFormatError):
        PinHandler.hash_pin(pin)


@pytest.mark.parametrize(
    "stored", ["", "nocolon", "zz:11", "aa:bb:cc", ":abcd", "abcd:"]
)
def test_verify_rejects_malformed_stored_hash(stored):
    with pytest.raises(PinHashFormatError):
        PinHandler.verify_pin("4826", stored)


@pytest.mark.parametrize(
    "pin, message",
    [
        ("123", PinHandler.MSG_LENGTH),
        ("12a4", PinHandler.MSG_DIGITS),
        ("४८२६", PinHandler.MSG_DIGITS),
        ("1234", PinHandler.MSG_WEAK),
        ("1111", PinHandler.MSG_WEAK),
        ("7777", PinHandler.MSG_WEAK),
        ("1212", PinHandler.MSG_WEAK),
        ("0987", PinHandler.MSG_WEAK),
    ],
)
def test_validate_pin_messages(pin, message):
    with pytest.raises(PinValidationError) as exc_info:
        PinHandler.validate_pin(pin)

    assert str(exc_info.value) == message


@pytest.mark.parametrize("pin", ["4096", "4826", "0192", "5031"])
def test_validate_pin_accepts_ordinary_pins(pin):
    PinHandler.validate_pin(pin)


def test_every_deny_listed_pin_is_weak():
    for pin in PinHandler.WEAK_PINS:
        assert PinHandler.is_weak_pin(pin)


def test_generated_pins_are_valid():
    for _ in range(200):
        pin = PinHandler.generate_random_pin()
        assert len(pin) == 4
        PinHandler.validate_pin(pin)


def test_configure_warns_when_time_cost_differs(caplog):
    try:
        with caplog.at_level("WARNING", logger="capify"):
            PinHandler.configure(time_cost=3)

        assert PinHandler.TIME_COST == 3
        assert "PIN hash time cost is 3" in caplog.text
    finally:
        PinHandler.configure(time_cost=PinHandler.DEFAULT_TIME_COST)


def test_configure_default_time_cost_is_silent(caplog):
    with caplog.at_level("WARNING", logger="capify"):
        PinHandler.configure(time_cost=PinHandler.DEFAULT_TIME_COST)

    assert "PIN hash time cost" not in caplog.text
