"""
Transaction record models.

TransactionRecord is the validated form of one raw input row. ResolvedRecord
is the same transaction after its natural keys have been replaced by
dimension surrogate keys.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from salesdw.exceptions import ValidationError
from salesdw.warehouse.dates import parse_date


class TransactionRecord(BaseModel):
    """One validated sales transaction"""

    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore", frozen=True)

    transaction_id: Optional[str] = None

    customer_id: str = Field(min_length=1, max_length=50)
    customer_name: str = Field(min_length=1, max_length=200)
    store_id: str = Field(min_length=1, max_length=50)
    store_name: str = Field(min_length=1, max_length=200)
    supplier_id: str = Field(min_length=1, max_length=50)
    supplier_name: str = Field(min_length=1, max_length=200)
    product_id: str = Field(min_length=1, max_length=50)
    product_name: str = Field(min_length=1, max_length=200)

    sale_date: date = Field(validation_alias=AliasChoices("sale_date", "t_date"))
    quantity: int = Field(gt=0)
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    total_sale: Optional[Decimal] = Field(default=None, ge=0, max_digits=12, decimal_places=2)

    @field_validator(
        "transaction_id", "customer_id", "store_id", "supplier_id", "product_id",
        mode="before",
    )
    @classmethod
    def coerce_identifier(cls, v: Any) -> Any:
        """Source systems hand out numeric ids; keys are stored as text"""
        if isinstance(v, (int, Decimal)) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("sale_date", mode="before")
    @classmethod
    def parse_sale_date(cls, v: Any) -> Any:
        if v is None:
            return v
        return parse_date(v)

    @field_validator("total_sale", mode="before")
    @classmethod
    def blank_total_is_missing(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], record_number: Optional[int] = None) -> "TransactionRecord":
        """
        Validate a raw input row.

        Raises:
            ValidationError: With a readable summary of every invalid field
        """
        if isinstance(raw, TransactionRecord):
            return raw
        try:
            return cls.model_validate(raw)
        except PydanticValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}"
                for err in e.errors()
            )
            raise ValidationError(problems, record_number=record_number) from e
        except ValidationError as e:
            e.record_number = record_number
            raise


@dataclass(frozen=True)
class ResolvedRecord:
    """A transaction whose dimensions have surrogate keys"""
    customer_key: int
    store_key: int
    supplier_key: int
    product_key: int
    date_key: int
    quantity: int
    price: Decimal
    total_sale: Optional[Decimal] = None
    transaction_id: Optional[str] = None

    @property
    def business_key(self) -> tuple:
        return (
            self.customer_key,
            self.store_key,
            self.supplier_key,
            self.product_key,
            self.date_key,
        )
