"""
Digest payload validation

Pydantic models for the JSON accepted on POST /monthly. Unknown keys are
ignored; numbers must be real JSON numbers and links must be URLs.
"""
from typing import Optional, Union
from urllib.parse import urlparse

from pydantic import BaseModel, Field, StrictFloat, StrictInt, ValidationError, field_validator


def _reject_null(value):
    # Optional fields may be omitted, not sent as null
    if value is None:
        raise ValueError('Expected a value, received null')
    return value


def _is_valid_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc or parsed.path)


class IpoLinks(BaseModel):
    drhp: Optional[str] = None
    rhp: Optional[str] = None
    exchange_notice: Optional[str] = None
    news: Optional[str] = None

    @field_validator('drhp', 'rhp', 'exchange_notice', 'news', mode='before')
    @classmethod
    def not_null(cls, value):
        return _reject_null(value)

    @field_validator('drhp', 'rhp', 'exchange_notice', 'news')
    @classmethod
    def must_be_url(cls, value):
        if value is not None and not _is_valid_url(value):
            raise ValueError('Invalid url')
        return value


class IpoItem(BaseModel):
    company: str
    sector: Optional[str] = None
    issue_size_cr: Optional[Union[StrictInt, StrictFloat]] = None
    status: str  # preferred: rumor | DRHP | RHP | approved
    expected_window: Optional[str] = None
    lead_banks: Optional[list[str]] = None
    links: Optional[IpoLinks] = None
    notes: Optional[str] = None

    @field_validator('sector', 'issue_size_cr', 'expected_window', 'lead_banks', 'links', 'notes',
                     mode='before')
    @classmethod
    def not_null(cls, value):
        return _reject_null(value)


class DigestPayload(BaseModel):
    as_of_date: str
    timezone: str = 'Asia/Kolkata'
    source_notes: list[str] = Field(default_factory=list)
    changes_since_last_run: Optional[str] = None
    items: list[IpoItem]

    @field_validator('changes_since_last_run', mode='before')
    @classmethod
    def not_null(cls, value):
        return _reject_null(value)

    def to_payload(self) -> dict:
        """Plain dict with defaults applied and unset optionals removed."""
        return self.model_dump(exclude_none=True)


def flatten_errors(error: ValidationError) -> dict:
    """
    Group validation errors by top-level field.

    Returns:
        {"formErrors": [...], "fieldErrors": {field: [message, ...]}}
    """
    form_errors = []
    field_errors = {}
    for detail in error.errors():
        loc = detail.get('loc') or ()
        message = detail.get('msg', 'Invalid value')
        if loc:
            field_errors.setdefault(str(loc[0]), []).append(message)
        else:
            form_errors.append(message)
    return {'formErrors': form_errors, 'fieldErrors': field_errors}
