"""Tests for identifier and credential helpers."""

from __future__ import annotations

import pytest

from sisid.populate.identifiers import (
    format_sis_user_id,
    generate_temporary_password,
    login_handle,
    pattern_prefix,
    pwd_context,
)


class TestFormatSisUserId:
    @pytest.mark.parametrize(
        ("pattern", "user_id", "expected"),
        [
            ("Canvas-%05d", 7, "Canvas-00007"),
            ("Canvas-%05d", 123, "Canvas-00123"),
            ("Canvas-%05d", 123456, "Canvas-123456"),
            ("SIS-%06d", 42, "SIS-000042"),
            ("U%d", 9999, "U9999"),
        ],
    )
    def test_pads_to_minimum_width(self, pattern: str, user_id: int, expected: str) -> None:
        assert format_sis_user_id(pattern, user_id) == expected

    def test_pattern_without_placeholder_raises(self) -> None:
        with pytest.raises(TypeError):
            format_sis_user_id("Canvas", 1)


class TestPatternPrefix:
    @pytest.mark.parametrize(
        ("pattern", "expected"),
        [
            ("Canvas-%05d", "Canvas-"),
            ("SIS-%06d", "SIS-"),
            ("%05d", ""),
            ("A-%d-B", "A-"),
        ],
    )
    def test_literal_text_before_placeholder(self, pattern: str, expected: str) -> None:
        assert pattern_prefix(pattern) == expected


class TestLoginHandle:
    def test_uses_email(self) -> None:
        assert login_handle(1, "u1@x.edu") == "u1@x.edu"

    def test_keeps_email_as_stored(self) -> None:
        assert login_handle(1, "U1@X.edu") == "U1@X.edu"
        assert login_handle(1, " u1@x.edu") == " u1@x.edu"

    @pytest.mark.parametrize("email", [None, "", "   "])
    def test_falls_back_without_email(self, email: str | None) -> None:
        assert login_handle(42, email) == "canvas_user_42@generated.local"


class TestTemporaryPassword:
    def test_is_a_hash(self) -> None:
        hashed = generate_temporary_password()

        assert hashed.startswith("$pbkdf2-sha512$")

    def test_each_call_differs(self) -> None:
        assert generate_temporary_password() != generate_temporary_password()

    def test_unknown_secret_does_not_verify(self) -> None:
        hashed = generate_temporary_password()

        assert pwd_context.identify(hashed) == "pbkdf2_sha512"
        assert pwd_context.verify("password", hashed) is False
