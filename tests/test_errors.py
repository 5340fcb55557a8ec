import pytest
from redis import exceptions as redis_exceptions
from sqlalchemy import exc as sa_exc

from core.errors import NotFoundError, TransientError, ValidationError, is_transient, storage_errors
from services.validation import clean_content, validate_match_id, validate_uid


def _operational() -> sa_exc.OperationalError:
    return sa_exc.OperationalError("SELECT 1", {}, Exception("could not connect to server"))


def test_operational_error_becomes_transient():
    with pytest.raises(TransientError) as info:
        with storage_errors("send_message"):
            raise _operational()

    assert info.value.status_code == 503
    assert isinstance(info.value.__cause__, sa_exc.OperationalError)


def test_redis_connection_error_becomes_transient():
    with pytest.raises(TransientError):
        with storage_errors("publish"):
            raise redis_exceptions.ConnectionError("refused")


def test_integrity_error_propagates_unchanged():
    with pytest.raises(sa_exc.IntegrityError):
        with storage_errors("submit_like"):
            raise sa_exc.IntegrityError("INSERT", {}, Exception("duplicate key"))


def test_domain_errors_pass_through():
    with pytest.raises(NotFoundError):
        with storage_errors("list_messages"):
            raise NotFoundError("Match not found")


def test_is_transient():
    assert is_transient(_operational())
    assert is_transient(redis_exceptions.TimeoutError())
    assert not is_transient(ValueError("nope"))


@pytest.mark.parametrize("value", [True, "12", 1.5, 0])
def test_validate_match_id_rejects(value):
    with pytest.raises(ValidationError):
        validate_match_id(value)


def test_validators_accept_well_formed_input():
    assert validate_match_id(42) == 42
    assert validate_uid("user_01-x") == "user_01-x"
    assert clean_content("  hi  ", 10) == "hi"

    with pytest.raises(ValidationError):
        clean_content("x" * 11, 10)
