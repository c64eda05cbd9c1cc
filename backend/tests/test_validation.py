import pytest
from datetime import datetime, timezone
from backend.api.validation import (
    sanitize_text, validate_name, validate_dose, validate_clock_time,
    validate_course_days, validate_frequency, validate_image_url,
    validate_image_urls, validate_optional_text, validate_overflow_policy,
    validate_date_range, normalize_instant, ValidationError
)

class TestValidation:
    """Test input validation functions"""

    def test_sanitize_text(self):
        """Test text sanitization"""
        # Basic sanitization
        assert sanitize_text("  hello world  ") == "hello world"

        # HTML escaping
        assert sanitize_text("<script>alert('xss')</script>") == "&lt;script&gt;alert(&#x27;xss&#x27;)&lt;/script&gt;"

        # Control character removal
        assert sanitize_text("hello\x00\x01world") == "helloworld"

        # Length validation
        with pytest.raises(ValidationError):
            sanitize_text("a" * 3000)  # Too long

        # Type validation
        with pytest.raises(ValidationError):
            sanitize_text(123)  # Not a string

    def test_validate_name_and_dose(self):
        """Test names and free-text doses"""
        assert validate_name("  Paracetamol ") == "Paracetamol"
        assert validate_dose("2 tablets") == "2 tablets"

        with pytest.raises(ValidationError):
            validate_name("   ")

        with pytest.raises(ValidationError) as exc:
            validate_dose("")
        assert exc.value.field == "dose"

    def test_validate_clock_time(self):
        """Test HH:MM parsing and normalization"""
        assert validate_clock_time("07:00") == "07:00"
        assert validate_clock_time("7:05") == "07:05"
        assert validate_clock_time("23:59") == "23:59"

        for bad in ["24:00", "12:60", "noon", "12", "12:5", None]:
            with pytest.raises(ValidationError):
                validate_clock_time(bad)

    def test_validate_course_days(self):
        """Test course length"""
        assert validate_course_days(7) == 7
        assert validate_course_days(365) == 365

        for bad in [0, -3, 366, 2.5, True]:
            with pytest.raises(ValidationError):
                validate_course_days(bad)

    def test_validate_frequency(self):
        """Test frequency bounds per type"""
        assert validate_frequency("times_a_day", 3) == 3
        assert validate_frequency("every_x_hours", 24) == 24

        with pytest.raises(ValidationError):
            validate_frequency("times_a_day", 0)  # Zero

        with pytest.raises(ValidationError):
            validate_frequency("times_a_day", 25)  # Too many

        with pytest.raises(ValidationError):
            validate_frequency("every_x_hours", 48)  # Interval too long

        with pytest.raises(ValidationError):
            validate_frequency("weekly", 1)  # Unknown type

    def test_validate_image_url(self):
        """Test image URL validation"""
        # Valid URLs
        valid_urls = [
            "https://example.com/prescription.jpg",
            "http://test.com/scan.png?v=1",
            "data:image/jpeg;base64,/9j/4AAQSkZJRgABAQAAAQ..."
        ]

        for url in valid_urls:
            assert validate_image_url(url) == url

        # Invalid URLs
        invalid_urls = [
            "",
            "not-a-url",
            "https://example.com/document.pdf",
            "data:image/jpeg,invalid-format",
            "javascript:alert('xss')"
        ]

        for url in invalid_urls:
            with pytest.raises(ValidationError):
                validate_image_url(url)

        with pytest.raises(ValidationError):
            validate_image_urls(["https://example.com/a.png"] * 6)  # Too many

    def test_validate_optional_text(self):
        assert validate_optional_text(None) is None
        assert validate_optional_text("   ") is None
        assert validate_optional_text(" take with water ") == "take with water"

    def test_validate_overflow_policy(self):
        assert validate_overflow_policy("Truncate") == "truncate"
        assert validate_overflow_policy("wrap") == "wrap"

        with pytest.raises(ValidationError):
            validate_overflow_policy("carry")

    def test_validate_date_range(self):
        start, end = validate_date_range(datetime(2024, 1, 1), datetime(2024, 1, 31))
        assert (start, end) == (datetime(2024, 1, 1), datetime(2024, 1, 31))

        with pytest.raises(ValidationError):
            validate_date_range(datetime(2024, 2, 1), datetime(2024, 1, 1))

    def test_normalize_instant(self):
        naive = datetime(2024, 1, 15, 8, 0)
        assert normalize_instant(naive) is naive

        aware = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)
        normalized = normalize_instant(aware)
        assert normalized.tzinfo is None
        assert normalized == aware.astimezone().replace(tzinfo=None)
