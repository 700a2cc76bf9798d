from pydantic import BaseModel, ValidationError, field_validator
import re

from app.logging.utils import get_app_logger
logger = get_app_logger('phone_number_validations')

PHONE_PATTERN = re.compile(r'^\+?[0-9]{10,15}$')
COUNTRY_CODE_PATTERN = re.compile(r'^\+[0-9]{1,4}$')


def clean_phone(phone: str) -> str:
    """Remove everything except digits and +"""
    return re.sub(r'[^\d+]', '', phone or '')


def normalize_phone(phone: str, country_code: str) -> str:
    """
    Canonical international form of a phone number.

    Numbers already starting with + are only cleaned; local numbers lose one
    leading 0 and get the country code. Normalizing twice is a no-op.
    """
    cleaned = clean_phone(phone)
    if cleaned.startswith('+'):
        return cleaned
    if cleaned.startswith('0'):
        cleaned = cleaned[1:]
    return f"{country_code}{cleaned}"


class PhoneNumberValidator(BaseModel):
    phone_number: str

    @field_validator('phone_number')
    @classmethod
    def validate_phone_number(cls, v):
        if not v:
            logger.error("Incorrect phone number")
            raise ValueError('Incorrect Phone number')

        cleaned = clean_phone(v)
        if PHONE_PATTERN.match(cleaned):
            return cleaned
        logger.warning(f"Invalid phone number format: {v}")
        raise ValueError('Invalid phone number format. Expected 10-15 digits with optional leading +')


def validate_phone_number(phone: str) -> str:
    try:
        return PhoneNumberValidator(phone_number=phone).phone_number
    except ValidationError as e:
        # plain ValueError: the enclosing model reports a single message
        raise ValueError(e.errors()[0]['msg'].removeprefix('Value error, ')) from None


def validate_country_code(country_code: str) -> str:
    cleaned = (country_code or '').strip()
    if not cleaned.startswith('+'):
        cleaned = f"+{cleaned}"
    if not COUNTRY_CODE_PATTERN.match(cleaned):
        raise ValueError('Invalid country code. Expected + followed by 1-4 digits')
    return cleaned
