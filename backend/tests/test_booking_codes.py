"""
Tests for booking code generation.
"""
import random

import pytest

from rentclaims.services import booking_codes
from rentclaims.services.booking_codes import (
    booking_code_pattern,
    generate_booking_code,
    generate_booking_codes,
    is_valid_booking_code,
    vehicle_letters,
)


class TestVehicleLetters:

    @pytest.mark.parametrize("make,model,expected", [
        ("Toyota", "Camry", "TOYCAM"),
        ("Kia", "K5", "KIAK"),
        ("Mercedes-Benz", "C-Class", "MERCCL"),
        ("", "", "X"),
        (None, None, "X"),
    ])
    def test_letters(self, make, model, expected):
        assert vehicle_letters(make, model) == expected


class TestGenerateBookingCode:

    def test_format(self):
        code = generate_booking_code("Toyota", "Camry", "az", 2024, rng=random.Random(7))

        assert is_valid_booking_code(code)
        assert code.startswith("RENTTOYCAM-")
        assert code.endswith("-AZ24")

    def test_seeded_rng_is_reproducible(self):
        first = generate_booking_code("Honda", "Civic", "CA", 2019, rng=random.Random(42))
        second = generate_booking_code("Honda", "Civic", "CA", 2019, rng=random.Random(42))
        assert first == second

    def test_custom_prefix(self):
        code = generate_booking_code("Ford", "F150", "TX", 2030, prefix="FLEET", rng=random.Random(1))
        assert is_valid_booking_code(code, prefix="FLEET")
        assert not is_valid_booking_code(code)

    @pytest.mark.parametrize("state", ["", "A", "ARIZ", "4Z", None])
    def test_invalid_state(self, state):
        with pytest.raises(ValueError):
            generate_booking_code("Toyota", "Camry", state, 2024)

    @pytest.mark.parametrize("code", [
        "",
        "RENTTOYCAM-12345-AZ24",
        "RENT-123456-AZ24",
        "RENTTOYCAMRY-123456-AZ24",
        "renttoycam-123456-az24",
    ])
    def test_rejects_malformed_codes(self, code):
        assert is_valid_booking_code(code) is False

    def test_pattern_matches_example(self):
        assert booking_code_pattern().match("RENTTOYCAM-482913-AZ24")


class TestGenerateBookingCodes:

    def test_batch_is_unique(self):
        codes = generate_booking_codes(500, "Toyota", "Camry", "AZ", 2024, rng=random.Random(3))

        assert len(codes) == 500
        assert len(set(codes)) == 500
        assert all(is_valid_booking_code(c) for c in codes)

    def test_batch_avoids_existing_codes(self):
        existing = set(generate_booking_codes(50, "Toyota", "Camry", "AZ", 2024, rng=random.Random(9)))

        fresh = generate_booking_codes(50, "Toyota", "Camry", "AZ", 2024, rng=random.Random(9), existing=existing)

        assert existing.isdisjoint(fresh)

    def test_negative_count(self):
        with pytest.raises(ValueError):
            generate_booking_codes(-1, "Toyota", "Camry", "AZ", 2024)

    def test_batch_larger_than_code_space(self):
        with pytest.raises(ValueError):
            generate_booking_codes(1000001, "Toyota", "Camry", "AZ", 2024)

    def test_existing_codes_use_up_the_vehicle_space(self, monkeypatch):
        monkeypatch.setattr(booking_codes, "CODES_PER_VEHICLE", 100)
        existing = set(generate_booking_codes(95, "Toyota", "Camry", "AZ", 2024, rng=random.Random(5)))

        with pytest.raises(ValueError):
            generate_booking_codes(6, "Toyota", "Camry", "AZ", 2024, existing=existing)

        last = generate_booking_codes(5, "Toyota", "Camry", "AZ", 2024, rng=random.Random(5), existing=existing)
        assert len(existing | set(last)) == 100

    def test_other_vehicles_codes_do_not_count(self, monkeypatch):
        monkeypatch.setattr(booking_codes, "CODES_PER_VEHICLE", 100)
        existing = set(generate_booking_codes(100, "Honda", "Civic", "AZ", 2024, rng=random.Random(5)))

        codes = generate_booking_codes(100, "Toyota", "Camry", "AZ", 2024, rng=random.Random(5), existing=existing)

        assert len(codes) == 100
