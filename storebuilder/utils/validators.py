"""Validation utilities for store configuration and data formats."""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import phonenumbers


@dataclass
class ValidationError:
    """Validation error details."""
    field: str
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


@dataclass
class ValidationResult:
    """Result of validation operation."""
    is_valid: bool
    errors: List[ValidationError]

    @property
    def missing_fields(self) -> List[str]:
        return [e.field for e in self.errors if e.code == "REQUIRED_FIELD_MISSING"]


REQUIRED_STORE_FIELDS = ("name", "country", "language", "currency")


class DomainValidator:
    """Validator for fully qualified host names."""

    LABEL_PATTERN = re.compile(r"^(?!-)[a-z0-9-]{1,63}(?<!-)$")

    @classmethod
    def normalize(cls, domain: str) -> str:
        """Lowercase, strip scheme, path, port and a trailing dot."""
        value = domain.strip().lower()
        value = re.sub(r"^[a-z]+://", "", value)
        value = value.split("/", 1)[0].split(":", 1)[0]
        return value.rstrip(".")

    @classmethod
    def is_valid(cls, domain: str) -> bool:
        if not domain or len(domain) > 253:
            return False
        labels = domain.split(".")
        if len(labels) < 2:
            return False
        return all(cls.LABEL_PATTERN.match(label) for label in labels)

    @classmethod
    def validate(cls, domain: Optional[str], field: str = "domain") -> List[ValidationError]:
        """Validate domain format."""
        errors = []

        if not domain:
            return errors

        if not cls.is_valid(cls.normalize(domain)):
            errors.append(ValidationError(
                field=field,
                code="INVALID_DOMAIN_FORMAT",
                message="Domain must be a valid host name such as shop.example.com",
                details={"provided": domain}
            ))

        return errors


class SubdomainValidator:
    """Validator for subdomain labels."""

    SUBDOMAIN_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{1,61}[a-z0-9])?$")

    @classmethod
    def validate(cls, subdomain: Optional[str]) -> List[ValidationError]:
        errors = []

        if not subdomain:
            return errors

        if len(subdomain) < 3 or not cls.SUBDOMAIN_PATTERN.match(subdomain):
            errors.append(ValidationError(
                field="subdomain",
                code="INVALID_SUBDOMAIN_FORMAT",
                message="Subdomain must be 3-63 lowercase letters, digits or hyphens",
                details={"provided": subdomain}
            ))

        return errors


class LocaleValidator:
    """Validator for ISO country, language and currency codes."""

    COUNTRY_PATTERN = re.compile(r"^[A-Z]{2}$")
    LANGUAGE_PATTERN = re.compile(r"^[a-z]{2}$")
    CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")

    @classmethod
    def validate(
        cls,
        country: Optional[str],
        language: Optional[str],
        currency: Optional[str],
    ) -> List[ValidationError]:
        """Validate locale codes; empty values are left to the required check."""
        errors = []

        if country and not cls.COUNTRY_PATTERN.match(country.upper()):
            errors.append(ValidationError(
                field="country",
                code="INVALID_COUNTRY_CODE",
                message="Country must be an ISO 3166-1 alpha-2 code",
                details={"provided": country}
            ))

        if language and not cls.LANGUAGE_PATTERN.match(language.lower()):
            errors.append(ValidationError(
                field="language",
                code="INVALID_LANGUAGE_CODE",
                message="Language must be an ISO 639-1 code",
                details={"provided": language}
            ))

        if currency and not cls.CURRENCY_PATTERN.match(currency.upper()):
            errors.append(ValidationError(
                field="currency",
                code="INVALID_CURRENCY_CODE",
                message="Currency must be an ISO 4217 code",
                details={"provided": currency}
            ))

        return errors


class PhoneValidator:
    """Validator for phone numbers."""

    @classmethod
    def validate(
        cls,
        phone: Optional[str],
        country_code: Optional[str] = None,
        field: str = "phone",
    ) -> List[ValidationError]:
        """Validate phone number format."""
        errors = []

        if not phone:
            return errors

        try:
            parsed = phonenumbers.parse(phone, country_code)

            if not phonenumbers.is_valid_number(parsed):
                errors.append(ValidationError(
                    field=field,
                    code="INVALID_PHONE_NUMBER",
                    message="Invalid phone number format",
                    details={"provided": phone}
                ))

        except phonenumbers.NumberParseException as e:
            errors.append(ValidationError(
                field=field,
                code="PHONE_PARSE_ERROR",
                message=f"Failed to parse phone number: {e}",
                details={"provided": phone, "error": str(e)}
            ))

        return errors

    @classmethod
    def format_international(cls, phone: str, country_code: Optional[str] = None) -> Optional[str]:
        """Format phone number in international format."""
        try:
            parsed = phonenumbers.parse(phone, country_code)
        except phonenumbers.NumberParseException:
            return None
        if phonenumbers.is_valid_number(parsed):
            return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.INTERNATIONAL)
        return None


class EmailValidator:
    """Validator for email addresses."""

    EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

    @classmethod
    def validate(cls, email: Optional[str], field: str = "email") -> List[ValidationError]:
        """Validate email format."""
        errors = []

        if not email:
            return errors

        if not cls.EMAIL_PATTERN.match(email):
            errors.append(ValidationError(
                field=field,
                code="INVALID_EMAIL_FORMAT",
                message="Invalid email address format",
                details={"provided": email}
            ))

        if len(email) > 255:
            errors.append(ValidationError(
                field=field,
                code="EMAIL_TOO_LONG",
                message="Email address too long (max 255 characters)",
                details={"provided_length": len(email)}
            ))

        return errors


class ColorValidator:
    """Validator for #rrggbb colours."""

    HEX_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")

    @classmethod
    def validate(cls, color: Optional[str], field: str) -> List[ValidationError]:
        if not color or cls.HEX_PATTERN.match(color):
            return []
        return [ValidationError(
            field=field,
            code="INVALID_COLOR",
            message="Colour must be a hex value such as #007cba",
            details={"provided": color}
        )]


def validate_store_config(config: Dict[str, Any]) -> ValidationResult:
    """
    Validate a store configuration before anything is written.

    Required fields are reported first; format checks only run for values
    that are present.

    Args:
        config: Store attributes as supplied by the caller

    Returns:
        ValidationResult: Combined result, ``missing_fields`` lists absent required fields
    """
    errors: List[ValidationError] = []

    for field in REQUIRED_STORE_FIELDS:
        value = config.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.append(ValidationError(
                field=field,
                code="REQUIRED_FIELD_MISSING",
                message=f"{field} is required",
            ))

    errors.extend(DomainValidator.validate(config.get("domain")))
    errors.extend(SubdomainValidator.validate(config.get("subdomain")))
    errors.extend(LocaleValidator.validate(
        config.get("country"), config.get("language"), config.get("currency")
    ))
    errors.extend(EmailValidator.validate(config.get("support_email"), field="support_email"))
    errors.extend(PhoneValidator.validate(
        config.get("support_phone"),
        (config.get("country") or "").upper() or None,
        field="support_phone",
    ))
    errors.extend(ColorValidator.validate(config.get("primary_color"), "primary_color"))
    errors.extend(ColorValidator.validate(config.get("secondary_color"), "secondary_color"))

    return ValidationResult(is_valid=not errors, errors=errors)
