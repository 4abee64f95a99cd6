"""
PIN Handler
Hashing, verification and strength checks for 4-digit login PINs.

Stored credentials are "<salt hex>:<argon2id hash hex>". The Argon2 cost
parameters are not stored with them, so they must stay fixed once PINs exist.
"""

import hmac
import secrets
import threading

from argon2.low_level import Type, hash_secret_raw

from logger import logger


class PinValidationError(ValueError):
    """PIN rejected by the format or strength policy. The message is user-facing."""


class PinFormatError(PinValidationError):
    """PIN does not have exactly four characters."""


class PinHashFormatError(ValueError):
    """Stored PIN hash is not a salt:hash hex pair."""


class PinHandler:
    PIN_LENGTH = 4

    # Argon2id parameters
    SALT_LENGTH = 16
    KEY_LENGTH = 32
    DEFAULT_TIME_COST = 1
    TIME_COST = DEFAULT_TIME_COST
    MEMORY_COST_KIB = 64 * 1024
    PARALLELISM = 4

    # Policy table of rejected PINs, on top of the all-same-digit rule
    WEAK_PINS = frozenset(
        {
            "1234", "2345", "3456", "4567", "5678", "6789", "7890",
            "4321", "5432", "6543", "7654", "8765", "9876", "0987",
            "1212", "2323", "3434", "4545", "5656", "6767", "7878", "8989", "9090",
            "0123", "1357", "2468", "0000",
        }
    )

    MSG_LENGTH = "PIN must be exactly 4 digits"
    MSG_DIGITS = "PIN must contain only digits"
    MSG_WEAK = "PIN is too weak. Avoid sequences like 1234, 1111, or 1212"

    # caps concurrent derivations, each one holds 64 MiB
    _derivation_slots = threading.BoundedSemaphore(4)

    @classmethod
    def configure(cls, time_cost: int = None, max_concurrency: int = None):
        """Apply deployment settings. Called once at startup."""
        if time_cost is not None:
            if time_cost != cls.DEFAULT_TIME_COST:
                logger.warning(
                    msg=f"PIN hash time cost is {time_cost} (default {cls.DEFAULT_TIME_COST}). "
                    "PINs stored under a different time cost will no longer verify."
                )
            cls.TIME_COST = time_cost
        if max_concurrency is not None:
            cls._derivation_slots = threading.BoundedSemaphore(max_concurrency)

    @classmethod
    def _derive(cls, pin: str, salt: bytes) -> bytes:
        with cls._derivation_slots:
            return hash_secret_raw(
                secret=pin.encode("utf-8"),
                salt=salt,
                time_cost=cls.TIME_COST,
                memory_cost=cls.MEMORY_COST_KIB,
                parallelism=cls.PARALLELISM,
                hash_len=cls.KEY_LENGTH,
                type=Type.ID,
            )

    @classmethod
    def _check_length(cls, pin: str):
        if pin is None or len(pin) != cls.PIN_LENGTH:
            raise PinFormatError(cls.MSG_LENGTH)

    @classmethod
    def hash_pin(cls, pin: str) -> str:
        """
        Hash a PIN with a fresh random salt.

        Args:
            pin: 4-character PIN

        Returns:
            str: "<salt hex>:<hash hex>"
        """
        cls._check_length(pin)

        salt = secrets.token_bytes(cls.SALT_LENGTH)
        digest = cls._derive(pin, salt)

        return f"{salt.hex()}:{digest.hex()}"

    @classmethod
    def verify_pin(cls, pin: str, stored_hash: str) -> bool:
        """
        Check a candidate PIN against a stored salt:hash credential.

        The comparison runs in constant time.
        """
        cls._check_length(pin)
        salt, expected = cls._parse_stored_hash(stored_hash)

        candidate = cls._derive(pin, salt)

        return hmac.compare_digest(candidate, expected)

    @staticmethod
    def _parse_stored_hash(stored_hash: str):
        if not stored_hash or stored_hash.count(":") != 1:
            raise PinHashFormatError("stored PIN hash must be a salt:hash pair")

        salt_hex, hash_hex = stored_hash.split(":")
        try:
            salt = bytes.fromhex(salt_hex)
            digest = bytes.fromhex(hash_hex)
        except ValueError as e:
            raise PinHashFormatError("stored PIN hash is not valid hex") from e

        if not salt or not digest:
            raise PinHashFormatError("stored PIN hash has an empty component")

        return salt, digest

    @classmethod
    def is_weak_pin(cls, pin: str) -> bool:
        if len(set(pin)) == 1:
            return True
        return pin in cls.WEAK_PINS

    @classmethod
    def validate_pin(cls, pin: str) -> None:
        """Raise PinValidationError with a user-facing reason if the PIN is not acceptable."""
        cls._check_length(pin)

        if not all("0" <= char <= "9" for char in pin):
            raise PinValidationError(cls.MSG_DIGITS)

        if cls.is_weak_pin(pin):
            raise PinValidationError(cls.MSG_WEAK)

    @classmethod
    def generate_random_pin(cls) -> str:
        while True:
            pin = f"{secrets.randbelow(10 ** cls.PIN_LENGTH):04d}"
            if not cls.is_weak_pin(pin):
                return pin
