"""Per-primitive request configuration and JSON-RPC envelope building.

Each options model validates its fields once, then serialises to the wire
parameter object (camelCase keys) for either the basic or the signed method.
See https://api.random.org/json-rpc/4/basic and /signed.
"""

from __future__ import annotations

import math
import uuid
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

INTEGER_METHOD = "generateIntegers"
INTEGER_SEQUENCE_METHOD = "generateIntegerSequences"
DECIMAL_FRACTION_METHOD = "generateDecimalFractions"
GAUSSIAN_METHOD = "generateGaussians"
STRING_METHOD = "generateStrings"
UUID_METHOD = "generateUUIDs"
BLOB_METHOD = "generateBlobs"
GET_USAGE_METHOD = "getUsage"

SIGNED_INTEGER_METHOD = "generateSignedIntegers"
SIGNED_INTEGER_SEQUENCE_METHOD = "generateSignedIntegerSequences"
SIGNED_DECIMAL_FRACTION_METHOD = "generateSignedDecimalFractions"
SIGNED_GAUSSIAN_METHOD = "generateSignedGaussians"
SIGNED_STRING_METHOD = "generateSignedStrings"
SIGNED_UUID_METHOD = "generateSignedUUIDs"
SIGNED_BLOB_METHOD = "generateSignedBlobs"
GET_RESULT_METHOD = "getResult"
CREATE_TICKETS_METHOD = "createTickets"
LIST_TICKETS_METHOD = "listTickets"
GET_TICKET_METHOD = "getTicket"
VERIFY_SIGNATURE_METHOD = "verifySignature"

# Size of a single UUID in bits
UUID_SIZE_BITS = 122

BLOB_FORMAT_BASE64 = "base64"
BLOB_FORMAT_HEX = "hex"

_INT_BOUND = 1_000_000_000


def build_request(method: str, params: dict[str, Any], *, api_key: str | None = None) -> dict[str, Any]:
    """Wrap parameters in a JSON-RPC 2.0 request with a random correlation id.

    Args:
        method: JSON-RPC method name.
        params: Parameter object; copied, never mutated.
        api_key: Embedded as "apiKey" for keyed methods.

    Returns:
        dict[str, Any]: Request object ready for the transport.
    """
    payload = dict(params)
    if api_key is not None:
        payload["apiKey"] = api_key
    return {
        "jsonrpc": "2.0",
        "method": method,
        "params": payload,
        "id": str(uuid.uuid4()),
    }


def _max_value(value: int | list[int]) -> int:
    return max(value) if isinstance(value, list) else value


def _min_value(value: int | list[int]) -> int:
    return min(value) if isinstance(value, list) else value


class SignedOptions(BaseModel):
    """Optional parameters accepted only by the signed API."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    license_data: dict[str, Any] | None = Field(
        None,
        description="License-specific data, e.g. {'maxPayout': {'currency': 'USD', 'amount': 100}}.",
    )
    user_data: Any = Field(
        None,
        description="Arbitrary JSON (up to 1000 characters) echoed back in the signed response.",
    )
    ticket_id: str | None = Field(
        None,
        description="Unused ticket to associate with this response.",
    )


class RequestOptions(BaseModel):
    """Common base for the generate* parameter models."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    basic_method: ClassVar[str]
    signed_method: ClassVar[str]

    n: int = Field(..., ge=1, description="Number of values (or sequences) requested.")
    pregenerated_randomization: dict[str, str] | None = Field(
        None,
        description="Historical randomization selector: {'date': 'YYYY-MM-DD'} or {'id': '...'}.",
    )

    def method(self, signed: bool = False) -> str:
        return self.signed_method if signed else self.basic_method

    def to_params(self, signed: SignedOptions | None = None) -> dict[str, Any]:
        params = self.model_dump(by_alias=True)
        if signed is not None:
            params.update(signed.model_dump(by_alias=True))
        return params

    def build(self, api_key: str, *, signed: SignedOptions | None = None) -> dict[str, Any]:
        """Build the keyed JSON-RPC request for this configuration."""
        return build_request(
            self.method(signed is not None),
            self.to_params(signed),
            api_key=api_key,
        )

    def scaled(self, times: int) -> "RequestOptions":
        """Copy requesting `times` result sets in one call."""
        return self.model_copy(update={"n": self.n * times})

    def supports_bulk(self) -> bool:
        """Whether several result sets can be fetched in one call and split apart."""
        return True

    def unit_bits(self) -> int:
        """Estimated bit cost of one result set, used to shrink bulk requests."""
        raise NotImplementedError


class IntegerOptions(RequestOptions):
    basic_method: ClassVar[str] = INTEGER_METHOD
    signed_method: ClassVar[str] = SIGNED_INTEGER_METHOD

    n: int = Field(..., ge=1, le=10_000)
    min: int = Field(..., ge=-_INT_BOUND, le=_INT_BOUND)
    max: int = Field(..., ge=-_INT_BOUND, le=_INT_BOUND)
    replacement: bool = True
    base: Literal[2, 8, 10, 16] = 10

    @model_validator(mode="after")
    def _check_range(self) -> "IntegerOptions":
        if self.min > self.max:
            raise ValueError("min must not be greater than max")
        return self

    def supports_bulk(self) -> bool:
        return self.replacement

    def unit_bits(self) -> int:
        return max(1, math.ceil(math.log2(self.max - self.min + 1) * self.n))


class IntegerSequenceOptions(RequestOptions):
    """Uniform (scalar) or multiform (per-sequence list) integer sequences."""

    basic_method: ClassVar[str] = INTEGER_SEQUENCE_METHOD
    signed_method: ClassVar[str] = SIGNED_INTEGER_SEQUENCE_METHOD

    n: int = Field(..., ge=1, le=1_000)
    length: int | list[int]
    min: int | list[int]
    max: int | list[int]
    replacement: bool | list[bool] = True
    base: int | list[int] = 10

    @model_validator(mode="after")
    def _check_multiform(self) -> "IntegerSequenceOptions":
        for name in ("length", "min", "max", "replacement", "base"):
            value = getattr(self, name)
            if isinstance(value, list) and len(value) != self.n:
                raise ValueError(f"{name} must have exactly n={self.n} entries")
        lengths = self.length if isinstance(self.length, list) else [self.length]
        if any(not 1 <= item <= 10_000 for item in lengths):
            raise ValueError("each length must be within [1, 1e4]")
        return self

    def supports_bulk(self) -> bool:
        if isinstance(self.replacement, list):
            return all(self.replacement)
        return self.replacement

    def unit_bits(self) -> int:
        span = _max_value(self.max) - _min_value(self.min) + 1
        return max(1, math.ceil(math.log2(span) * self.n * _max_value(self.length)))

    def scaled(self, times: int) -> "IntegerSequenceOptions":
        """Copy with n and every per-sequence list repeated `times` times."""
        update: dict[str, Any] = {"n": self.n * times}
        for name in ("length", "min", "max", "replacement", "base"):
            value = getattr(self, name)
            if isinstance(value, list):
                update[name] = value * times
        return self.model_copy(update=update)


class DecimalFractionOptions(RequestOptions):
    basic_method: ClassVar[str] = DECIMAL_FRACTION_METHOD
    signed_method: ClassVar[str] = SIGNED_DECIMAL_FRACTION_METHOD

    n: int = Field(..., ge=1, le=10_000)
    decimal_places: int = Field(..., ge=1, le=14)
    replacement: bool = True

    def supports_bulk(self) -> bool:
        return self.replacement

    def unit_bits(self) -> int:
        return max(1, math.ceil(math.log2(10) * self.decimal_places * self.n))


class GaussianOptions(RequestOptions):
    basic_method: ClassVar[str] = GAUSSIAN_METHOD
    signed_method: ClassVar[str] = SIGNED_GAUSSIAN_METHOD

    n: int = Field(..., ge=1, le=10_000)
    mean: float = Field(..., ge=-1e6, le=1e6)
    standard_deviation: float = Field(..., ge=-1e6, le=1e6)
    significant_digits: int = Field(..., ge=2, le=14)

    def unit_bits(self) -> int:
        return max(1, math.ceil(math.log2(10) * self.significant_digits * self.n))


class StringOptions(RequestOptions):
    basic_method: ClassVar[str] = STRING_METHOD
    signed_method: ClassVar[str] = SIGNED_STRING_METHOD

    n: int = Field(..., ge=1, le=10_000)
    length: int = Field(..., ge=1, le=32)
    characters: str = Field(..., min_length=1, max_length=128)
    replacement: bool = True

    def supports_bulk(self) -> bool:
        return self.replacement

    def unit_bits(self) -> int:
        return max(1, math.ceil(math.log2(len(self.characters)) * self.length * self.n))


class UUIDOptions(RequestOptions):
    basic_method: ClassVar[str] = UUID_METHOD
    signed_method: ClassVar[str] = SIGNED_UUID_METHOD

    n: int = Field(..., ge=1, le=1_000)

    def unit_bits(self) -> int:
        return self.n * UUID_SIZE_BITS


class BlobOptions(RequestOptions):
    basic_method: ClassVar[str] = BLOB_METHOD
    signed_method: ClassVar[str] = SIGNED_BLOB_METHOD

    n: int = Field(..., ge=1, le=100)
    size: int = Field(..., ge=1, le=1_048_576, description="Blob size in bits; multiple of 8.")
    format: Literal["base64", "hex"] = BLOB_FORMAT_BASE64

    @model_validator(mode="after")
    def _check_size(self) -> "BlobOptions":
        if self.size % 8:
            raise ValueError("size must be divisible by 8")
        return self

    def unit_bits(self) -> int:
        return self.n * self.size
