import re
import html
from datetime import datetime
from typing import List, Optional, Tuple
from .logging_config import ValidationError

# Input size limits
MAX_TEXT_LENGTH = 2000
MAX_NAME_LENGTH = 200
MAX_DOSE_LENGTH = 100
MAX_NOTES_LENGTH = 1000
MAX_IMAGES_PER_MEDICINE = 5
MAX_COURSE_DAYS = 365
MAX_DOSES_PER_DAY = 24
MAX_HOURS_BETWEEN_DOSES = 24

CLOCK_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})$')
OVERFLOW_POLICIES = ("truncate", "wrap")

def sanitize_text(text: str, max_length: int = MAX_TEXT_LENGTH) -> str:
    """Sanitize text input by removing HTML and limiting length"""
    if not isinstance(text, str):
        raise ValidationError("Input must be a string")

    # Remove HTML tags and decode HTML entities
    clean_text = html.escape(text.strip())

    # Remove control characters except newlines and tabs
    clean_text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', clean_text)

    # Limit length
    if len(clean_text) > max_length:
        raise ValidationError(f"Text exceeds maximum length of {max_length} characters")

    return clean_text

def validate_name(name: str, field: str = "name") -> str:
    """Validate a display name (profile, medicine, doctor)"""
    clean_name = sanitize_text(name, MAX_NAME_LENGTH)

    if len(clean_name) == 0:
        raise ValidationError("Name cannot be empty", field=field)

    return clean_name

def validate_dose(dose: str) -> str:
    """Validate free-text dose such as '500 mg' or '2 tablets'"""
    clean_dose = sanitize_text(dose, MAX_DOSE_LENGTH)

    if len(clean_dose) == 0:
        raise ValidationError("Dose cannot be empty", field="dose")

    return clean_dose

def parse_clock(value: str, field: str = "time") -> Tuple[int, int]:
    """Parse an HH:MM wall-clock string into (hour, minute)"""
    if not isinstance(value, str):
        raise ValidationError("Time must be a string in HH:MM format", field=field)

    match = CLOCK_PATTERN.match(value.strip())
    if not match:
        raise ValidationError(f"Invalid time '{value}', expected HH:MM", field=field)

    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValidationError(f"Time out of range: '{value}'", field=field)

    return hour, minute

def validate_clock_time(value: str, field: str = "time") -> str:
    """Validate and normalize a clock string to zero-padded HH:MM"""
    hour, minute = parse_clock(value, field)
    return f"{hour:02d}:{minute:02d}"

def validate_course_days(course_days: int) -> int:
    """Validate course length in days"""
    if isinstance(course_days, bool) or not isinstance(course_days, int):
        raise ValidationError("Course length must be a whole number of days", field="course_days")

    if course_days <= 0:
        raise ValidationError("Course length must be positive", field="course_days")

    if course_days > MAX_COURSE_DAYS:
        raise ValidationError(f"Course too long (maximum {MAX_COURSE_DAYS} days)", field="course_days")

    return course_days

def validate_frequency(frequency_type: str, frequency_value: int) -> int:
    """Validate frequency value against its type"""
    if isinstance(frequency_value, bool) or not isinstance(frequency_value, int):
        raise ValidationError("Frequency must be a whole number", field="frequency_value")

    if frequency_value <= 0:
        raise ValidationError("Frequency must be positive", field="frequency_value")

    if frequency_type == "times_a_day":
        if frequency_value > MAX_DOSES_PER_DAY:
            raise ValidationError(f"Too many doses (maximum {MAX_DOSES_PER_DAY} a day)", field="frequency_value")
    elif frequency_type == "every_x_hours":
        if frequency_value > MAX_HOURS_BETWEEN_DOSES:
            raise ValidationError(
                f"Interval too long (maximum {MAX_HOURS_BETWEEN_DOSES} hours)", field="frequency_value"
            )
    else:
        raise ValidationError(f"Unknown frequency type: {frequency_type}", field="frequency_type")

    return frequency_value

def validate_overflow_policy(policy: str) -> str:
    """Validate the every-X-hours midnight overflow policy"""
    if not isinstance(policy, str) or policy.lower().strip() not in OVERFLOW_POLICIES:
        raise ValidationError(f"Overflow policy must be one of: {', '.join(OVERFLOW_POLICIES)}")

    return policy.lower().strip()

def validate_image_url(image_url: str) -> str:
    """Validate image URL or base64 data"""
    if not isinstance(image_url, str):
        raise ValidationError("Image URL must be a string")

    image_url = image_url.strip()

    if len(image_url) == 0:
        raise ValidationError("Image URL cannot be empty")

    # Check if it's a data URL (base64)
    if image_url.startswith("data:image/"):
        # Validate data URL format
        if ";base64," not in image_url:
            raise ValidationError("Invalid data URL format")

        # Check for reasonable size limit (10MB base64 ≈ 7.5MB image)
        if len(image_url) > 10 * 1024 * 1024:
            raise ValidationError("Image too large (maximum 10MB)")

        return image_url

    # Validate regular URL
    url_pattern = r'^https?://[^\s]+\.(jpg|jpeg|png|gif|webp)(\?[^\s]*)?$'
    if not re.match(url_pattern, image_url, re.IGNORECASE):
        raise ValidationError("Invalid image URL format")

    return image_url

def validate_image_urls(image_urls: List[str]) -> List[str]:
    """Validate the list of images attached to a medicine"""
    if len(image_urls) > MAX_IMAGES_PER_MEDICINE:
        raise ValidationError(f"Too many images (maximum {MAX_IMAGES_PER_MEDICINE})", field="image_urls")

    return [validate_image_url(url) for url in image_urls]

def validate_optional_text(text: Optional[str], max_length: int = MAX_NOTES_LENGTH) -> Optional[str]:
    """Sanitize optional free text, collapsing blanks to None"""
    if text is None:
        return None

    clean_text = sanitize_text(text, max_length)
    return clean_text or None

def normalize_instant(value: datetime) -> datetime:
    """Convert aware datetimes to naive local wall-clock time"""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value

def validate_date_range(start: datetime, end: datetime) -> Tuple[datetime, datetime]:
    """Validate a reporting period"""
    start, end = normalize_instant(start), normalize_instant(end)

    if end < start:
        raise ValidationError("End of period is before its start", field="end")

    return start, end
