"""
Tests for result values and the service boundary decorator.
"""
import logging

import pytest
from pydantic import BaseModel

from kissa.database.models import PlaceStatus
from kissa.services.errors import ErrorKind, Ok, ServiceError, coerce_enum, service_operation


class Sample(BaseModel):
    count: int


@service_operation("sample_operation")
async def sample(behaviour):
    if behaviour == "ok":
        return 42
    if behaviour == "service":
        raise ServiceError(ErrorKind.PLACE_NOT_FOUND, "Place not found")
    if behaviour == "validation":
        Sample.model_validate({"count": "many"})
    raise KeyError("boom")


@pytest.mark.asyncio
async def test_success_wraps_value():
    result = await sample("ok")
    assert result == Ok(42)
    assert result.unwrap() == 42


@pytest.mark.asyncio
async def test_service_error_is_tagged():
    result = await sample("service")

    assert not result.is_ok
    assert result.kind == ErrorKind.PLACE_NOT_FOUND
    assert result.error.usecase == "sample_operation"
    with pytest.raises(ServiceError):
        result.unwrap()


@pytest.mark.asyncio
async def test_validation_error_names_field():
    result = await sample("validation")

    assert result.kind == ErrorKind.VALIDATION_ERROR
    assert result.error.message.startswith("count:")


@pytest.mark.asyncio
async def test_unexpected_error_is_logged(caplog):
    with caplog.at_level(logging.ERROR, logger="kissa.services.errors"):
        result = await sample("crash")

    assert result.kind == ErrorKind.INTERNAL_ERROR
    assert isinstance(result.error.cause, KeyError)
    assert "Unexpected error in sample_operation" in caplog.text


def test_to_dict_hides_cause_by_default():
    error = ServiceError(
        ErrorKind.TRANSACTION_FAILED, "Transaction failed", cause=RuntimeError("disk full"), usecase="x"
    )

    assert error.to_dict() == {"kind": "TRANSACTION_FAILED", "message": "Transaction failed", "usecase": "x"}
    assert error.to_dict(include_cause=True)["cause"] == "RuntimeError: disk full"


def test_coerce_enum():
    assert coerce_enum(PlaceStatus, "draft", "status") is PlaceStatus.DRAFT
    with pytest.raises(ServiceError) as exc_info:
        coerce_enum(PlaceStatus, "gone", "status")
    assert exc_info.value.kind == ErrorKind.VALIDATION_ERROR
    assert "status" in exc_info.value.message
